"""Decision audit trail for weekly closes and goal resolutions.

Each row says which decision the engine took for which user, without storing
the inputs themselves:

* ``input_hash`` is the SHA-256 of the canonical JSON of the aggregate (or
  request) the decision was computed from. Re-running on identical inputs
  yields the same hash, which makes determinism checkable after the fact.
* week type, detected pattern types, proposal trigger and program action
  record the outcome.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import date, datetime, timezone
from typing import Any

from cadence.core.storage.database import CoachingDatabase

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input hashing
# ---------------------------------------------------------------------------

def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


def hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON.

    Dataclasses are hashed through ``asdict``. Returns an empty string when the
    input cannot be serialized.
    """
    if is_dataclass(data) and not isinstance(data, type):
        data = asdict(data)
    try:
        canonical = json.dumps(
            data, sort_keys=True, separators=(",", ":"), default=_json_default
        )
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'weekly_close' | 'goal_resolution' | 'context_patch'
    user_id: str | None = None
    input_hash: str = ""
    week_start: str | None = None
    week_type: str | None = None
    patterns: list[str] = field(default_factory=list)
    proposal_trigger: str | None = None  # trigger type when a proposal was created
    program_action: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure' | 'skipped'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class DecisionAuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    A failed audit write is logged and swallowed; it never fails the
    decision it describes. Audit writes commit immediately, so they must
    not be issued from inside an open repository transaction.
    """

    def __init__(self, database: CoachingDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event.

        Returns:
            The generated event ID, or an empty string if the write failed.
        """
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        try:
            with self._db.lock:
                conn = self._db.connection
                conn.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, user_id, input_hash, week_start, week_type,
                        patterns_json, proposal_trigger, program_action, duration_ms,
                        status, error_type, metadata_json)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        event_id,
                        now,
                        event.action,
                        event.user_id,
                        event.input_hash or None,
                        event.week_start,
                        event.week_type,
                        json.dumps(event.patterns) if event.patterns else None,
                        event.proposal_trigger,
                        event.program_action,
                        event.duration_ms,
                        event.status,
                        event.error_type,
                        json.dumps(event.metadata, separators=(",", ":")) if event.metadata else None,
                    ),
                )
                conn.commit()
        except Exception:
            logger.exception("Failed to write audit event (%s)", event.action)
            return ""

        return event_id

    def log_weekly_close(
        self,
        user_id: str,
        week_start: date,
        aggregate: Any,
        *,
        week_type: str | None = None,
        patterns: list[str] | None = None,
        proposal_trigger: str | None = None,
        program_action: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return self.log_event(AuditEvent(
            action="weekly_close",
            user_id=user_id,
            input_hash=hash_input(aggregate) if aggregate is not None else "",
            week_start=week_start.isoformat(),
            week_type=week_type,
            patterns=list(patterns or []),
            proposal_trigger=proposal_trigger,
            program_action=program_action,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_goal_resolution(
        self,
        user_id: str,
        adjustment_id: str,
        response: str,
        *,
        status: str = "success",
        error_type: str | None = None,
    ) -> str:
        return self.log_event(AuditEvent(
            action="goal_resolution",
            user_id=user_id,
            input_hash=hash_input({"adjustment_id": adjustment_id, "response": response}),
            status=status,
            error_type=error_type,
            metadata={"adjustment_id": adjustment_id, "response": response},
        ))

    def log_context_patch(
        self,
        user_id: str,
        record_id: str,
        *,
        status: str = "success",
        error_type: str | None = None,
    ) -> str:
        # Free text is never hashed or stored here
        return self.log_event(AuditEvent(
            action="context_patch",
            user_id=user_id,
            status=status,
            error_type=error_type,
            metadata={"record_id": record_id},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        with self._db.lock:
            rows = self._db.connection.execute(query, params).fetchall()
        events = []
        for row in rows:
            event = dict(row)
            event["patterns"] = json.loads(event.pop("patterns_json") or "[]")
            event["metadata"] = json.loads(event.pop("metadata_json") or "{}")
            events.append(event)
        return events

    def count_events(self, *, action: str | None = None) -> int:
        query = "SELECT COUNT(*) FROM audit_log"
        params: tuple[Any, ...] = ()
        if action:
            query += " WHERE action = ?"
            params = (action,)
        with self._db.lock:
            row = self._db.connection.execute(query, params).fetchone()
        return row[0]
