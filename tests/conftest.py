"""Shared test fixtures for Cadence tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DB_PATH", str(tmp_path / "coaching.db"))
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DEFAULT_PRIVACY_MODE", "strict")
    monkeypatch.setenv("AUDIT_ENABLED", "true")
    monkeypatch.chdir(tmp_path)  # keep any local .env out of Settings

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def coaching_db():
    """Create an in-memory CoachingDatabase for testing."""
    from cadence.core.storage.database import CoachingDatabase

    db = CoachingDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def fernet_key() -> str:
    from cryptography.fernet import Fernet

    return Fernet.generate_key().decode()


@pytest.fixture
def field_encryptor(fernet_key):
    """Create a FieldEncryptor with a test key."""
    from cadence.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(fernet_key)


@pytest.fixture
def coaching_repository(coaching_db, field_encryptor):
    """Create a CoachingRepository backed by in-memory SQLite."""
    from cadence.core.storage.repository import CoachingRepository

    return CoachingRepository(coaching_db, field_encryptor)


@pytest.fixture
def audit_logger(coaching_db):
    """Create a DecisionAuditLogger backed by in-memory SQLite."""
    from cadence.core.audit.logger import DecisionAuditLogger

    return DecisionAuditLogger(coaching_db)


@pytest.fixture
def static_provider():
    from cadence.domains.coaching.connectors.providers import StaticActivityProvider

    return StaticActivityProvider()


@pytest.fixture
def coordinator(coaching_repository, static_provider, audit_logger):
    """WeeklyCloseCoordinator over in-memory storage and a static provider."""
    from cadence.domains.coaching.pipeline.weekly_close import WeeklyCloseCoordinator

    return WeeklyCloseCoordinator(coaching_repository, static_provider, audit_logger)
