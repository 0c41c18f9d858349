"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cadence.core.config.settings import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DB_PATH", raising=False)
        monkeypatch.delenv("DEFAULT_PRIVACY_MODE", raising=False)
        settings = Settings()
        assert settings.db_path == "~/.cadence/coaching.db"
        assert settings.cadence_log_level == "info"
        assert settings.history_window_weeks == 12
        assert settings.weigh_in_limit == 30
        assert settings.default_privacy_mode == "strict"
        assert settings.audit_enabled is True
        assert settings.encryption_key == ""

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("HISTORY_WINDOW_WEEKS", "8")
        monkeypatch.setenv("DEFAULT_PRIVACY_MODE", "standard")
        monkeypatch.setenv("AUDIT_ENABLED", "false")
        settings = get_settings()
        assert settings.db_path == str(tmp_path / "x.db")
        assert settings.history_window_weeks == 8
        assert settings.default_privacy_mode == "standard"
        assert settings.audit_enabled is False

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CADENCE_LOG_LEVEL", raising=False)
        (tmp_path / ".env").write_text("CADENCE_LOG_LEVEL=debug\nWEIGH_IN_LIMIT=10\n")
        settings = Settings()
        assert settings.cadence_log_level == "debug"
        assert settings.weigh_in_limit == 10

    def test_invalid_privacy_mode(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_PRIVACY_MODE", "open")
        with pytest.raises(ValidationError):
            Settings()
