"""SQLite database management for coaching history.

Handles connection lifecycle, schema creation, and migrations. One connection
is shared by every thread of the process; ``lock`` serialises access to it.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- Append-only: one row per (user, week)
CREATE TABLE IF NOT EXISTS week_performance (
    id                          TEXT PRIMARY KEY,
    user_id                     TEXT NOT NULL,
    week_start                  TEXT NOT NULL,
    week_end                    TEXT,
    week_type                   TEXT NOT NULL,
    confidence                  REAL NOT NULL DEFAULT 0,
    momentum_score              INTEGER NOT NULL,
    scores_json                 TEXT,
    is_bad_week                 INTEGER NOT NULL DEFAULT 0,
    is_recovery_week            INTEGER NOT NULL DEFAULT 0,
    recovery_from_week          TEXT,
    weight_change               REAL,
    weight_change_target        REAL NOT NULL DEFAULT 0,
    weight_status               TEXT,
    workout_completion_rate     REAL NOT NULL DEFAULT 0,
    nutrition_consistency_rate  REAL NOT NULL DEFAULT 0,
    avg_feeling                 REAL,
    avg_extra_rest              REAL,
    reasons_json                TEXT,
    highlights_json             TEXT,
    issues_json                 TEXT,

    -- Free-text user context, encrypted, writable once
    bad_week_reasons_enc        TEXT,
    user_notes_enc              TEXT,
    context_patched_at          TEXT,

    created_at                  TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (user_id, week_start)
);

CREATE TABLE IF NOT EXISTS goal_states (
    user_id             TEXT PRIMARY KEY,
    goal_start_weight   REAL NOT NULL,
    goal_start_date     TEXT NOT NULL,
    target_weight_min   REAL NOT NULL,
    target_weight_max   REAL NOT NULL,
    goal_weekly_rate    REAL NOT NULL,
    actual_weekly_rate  REAL,
    current_phase       TEXT NOT NULL DEFAULT 'weight_loss',
    updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS goal_adjustments (
    id                      TEXT PRIMARY KEY,
    user_id                 TEXT NOT NULL,
    week_performance_id     TEXT REFERENCES week_performance(id),
    trigger_type            TEXT NOT NULL,
    trigger_reason          TEXT NOT NULL,
    weeks_off_track         INTEGER NOT NULL DEFAULT 0,
    confidence              REAL NOT NULL DEFAULT 0,

    previous_target_min     REAL,
    previous_target_max     REAL,
    previous_weekly_rate    REAL,

    suggested_target_min    REAL NOT NULL,
    suggested_target_max    REAL NOT NULL,
    suggested_weekly_rate   REAL NOT NULL,
    reasoning               TEXT NOT NULL DEFAULT '',
    adjustment_type         TEXT NOT NULL,

    status                  TEXT NOT NULL DEFAULT 'pending',
    final_target_min        REAL,
    final_target_max        REAL,
    final_weekly_rate       REAL,
    resolved_at             TEXT,
    created_at              TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS weigh_ins (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    weight      REAL NOT NULL,
    measured_at TEXT NOT NULL,
    created_at  TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_week_perf_user_start ON week_performance(user_id, week_start);
CREATE INDEX IF NOT EXISTS idx_adjustments_user     ON goal_adjustments(user_id);
CREATE INDEX IF NOT EXISTS idx_weigh_ins_user_ts    ON weigh_ins(user_id, measured_at);

-- At most one open proposal per user
CREATE UNIQUE INDEX IF NOT EXISTS idx_adjustments_one_pending
    ON goal_adjustments(user_id) WHERE status = 'pending';
"""

# ---------------------------------------------------------------------------
# V2: decision audit trail
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id               TEXT PRIMARY KEY,
    timestamp        TEXT NOT NULL DEFAULT (datetime('now')),
    action           TEXT NOT NULL,
    user_id          TEXT,
    input_hash       TEXT,
    week_start       TEXT,
    week_type        TEXT,
    patterns_json    TEXT,
    proposal_trigger TEXT,
    program_action   TEXT,
    duration_ms      REAL,
    status           TEXT NOT NULL DEFAULT 'success',
    error_type       TEXT,
    metadata_json    TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_user      ON audit_log(user_id);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class CoachingDatabase:
    """SQLite database manager for the coaching history store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = CoachingDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        # Guards the shared connection; held for the length of a transaction
        self.lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and ensure the schema exists. Idempotent."""
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_file)
        else:
            target = ":memory:"

        # Shared across coordinator threads; callers hold self.lock
        self._conn = sqlite3.connect(target, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Coaching database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        conn = self.connection

        conn.executescript(_SCHEMA_V1)

        current_version = self.get_schema_version()

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Coaching database closed")

    def __enter__(self) -> CoachingDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
