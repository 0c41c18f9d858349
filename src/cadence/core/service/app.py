"""Cadence service factory.

``create_service()`` wires settings, storage, audit and the weekly-close
coordinator together. Tests pass ``*_override`` arguments to swap in an
in-memory database or a static activity provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cadence.core.audit.logger import DecisionAuditLogger
from cadence.core.config.settings import Settings, get_settings
from cadence.core.storage.database import CoachingDatabase
from cadence.core.storage.encryption import EncryptionError, FieldEncryptor
from cadence.core.storage.repository import CoachingRepository
from cadence.domains.coaching.connectors import WeeklyActivityProvider
from cadence.domains.coaching.pipeline.weekly_close import WeeklyCloseCoordinator

logger = logging.getLogger(__name__)


@dataclass
class CadenceService:
    settings: Settings
    database: CoachingDatabase
    repository: CoachingRepository
    coordinator: WeeklyCloseCoordinator
    audit: DecisionAuditLogger | None = None

    def close(self) -> None:
        self.database.close()


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))


def create_service(
    *,
    settings_override: Settings | None = None,
    database_override: CoachingDatabase | None = None,
    provider_override: WeeklyActivityProvider | None = None,
) -> CadenceService:
    """Create and wire the coaching service.

    Steps:
    1. Load settings and configure logging
    2. Open the coaching database (schema migrations run here)
    3. Build the field encryptor if a key is configured
    4. Create the repository, audit logger and weekly-close coordinator
    """
    settings = settings_override or get_settings()
    configure_logging(settings.cadence_log_level)

    # --- Storage ---
    database = database_override or CoachingDatabase(settings.db_path)
    database.initialize()
    logger.info(
        "Coaching store ready: %s (schema v%d)", settings.db_path, database.get_schema_version()
    )

    encryptor: FieldEncryptor | None = None
    if settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
        except EncryptionError as exc:
            logger.error("Failed to initialize encryption: %s", exc)
            raise
    else:
        logger.warning("No ENCRYPTION_KEY configured; user notes and bad-week reasons will be refused")

    repository = CoachingRepository(database, encryptor)

    # --- Audit ---
    audit = DecisionAuditLogger(database) if settings.audit_enabled else None
    if audit is None:
        logger.info("Decision audit trail disabled")

    coordinator = WeeklyCloseCoordinator(
        repository,
        provider_override,
        audit,
        history_window_weeks=settings.history_window_weeks,
        weigh_in_limit=settings.weigh_in_limit,
        privacy_mode=settings.default_privacy_mode,
    )

    return CadenceService(
        settings=settings,
        database=database,
        repository=repository,
        coordinator=coordinator,
        audit=audit,
    )
