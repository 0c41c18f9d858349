"""Tests for the service factory wiring."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

import pytest

from cadence.core.config.settings import Settings
from cadence.core.service.app import create_service
from cadence.core.storage.database import CoachingDatabase
from cadence.core.storage.encryption import EncryptionError, FieldEncryptor
from cadence.core.storage.repository import RepositoryError
from cadence.domains.coaching.connectors.providers import StaticActivityProvider
from cadence.domains.coaching.domain_logic.coaching_models import (
    WeeklyActivityAggregate,
    WeekPerformanceRecord,
)


def _settings(**overrides) -> Settings:
    defaults = dict(db_path=":memory:", encryption_key=FieldEncryptor.generate_key())
    defaults.update(overrides)
    return Settings(**defaults)


class TestCreateService:
    def test_wires_components(self):
        service = create_service(settings_override=_settings())
        try:
            assert service.database.get_schema_version() == 2
            assert service.audit is not None
            assert service.coordinator.privacy_mode == "strict"
        finally:
            service.close()

    def test_uses_settings_for_coordinator(self):
        service = create_service(
            settings_override=_settings(default_privacy_mode="explicit", history_window_weeks=6)
        )
        try:
            assert service.coordinator.privacy_mode == "explicit"
            assert service.coordinator.history_window_weeks == 6
        finally:
            service.close()

    def test_audit_disabled(self):
        service = create_service(settings_override=_settings(audit_enabled=False))
        try:
            assert service.audit is None
        finally:
            service.close()

    def test_database_override(self):
        db = CoachingDatabase(":memory:")
        service = create_service(settings_override=_settings(), database_override=db)
        try:
            assert service.database is db
        finally:
            service.close()

    def test_file_database_from_environment(self, tmp_path):
        service = create_service()
        try:
            assert Path(tmp_path / "coaching.db").exists()
        finally:
            service.close()

    def test_without_key_refuses_user_context(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cadence.core.service.app"):
            service = create_service(settings_override=_settings(encryption_key=""))
        try:
            assert "No ENCRYPTION_KEY configured" in caplog.text
            record = WeekPerformanceRecord(
                user_id="user-1",
                week_start=date(2026, 3, 7),
                week_type="bad",
                momentum_score=20,
                user_notes="private",
            )
            with pytest.raises(RepositoryError):
                service.repository.save_week_record(record)
        finally:
            service.close()

    def test_invalid_key_raises(self):
        with pytest.raises(EncryptionError):
            create_service(settings_override=_settings(encryption_key="not-a-key"))

    def test_provider_override_reaches_coordinator(self):
        provider = StaticActivityProvider()
        week = date(2026, 3, 7)
        provider.add(
            "user-1",
            week,
            WeeklyActivityAggregate(
                workouts_planned=4, workouts_completed=4, nutrition_days_hit_target=6
            ),
        )
        service = create_service(settings_override=_settings(), provider_override=provider)
        try:
            result = service.coordinator.close_week("user-1", week)
            assert result.record.week_type == "excellent"
        finally:
            service.close()
