"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cadence coaching engine configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    cadence_log_level: str = "info"

    # Storage (week history, goals, proposals)
    db_path: str = "~/.cadence/coaching.db"

    # Encryption of free-text user context (bad-week reasons, notes)
    encryption_key: str = ""

    # Weekly close
    history_window_weeks: int = 12
    weigh_in_limit: int = 30

    # Privacy
    default_privacy_mode: Literal["strict", "standard", "explicit"] = "strict"

    # Audit
    audit_enabled: bool = True


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
