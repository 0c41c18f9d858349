"""Coaching repository: persistence for week history, goals and proposals.

The repository mediates between the coaching dataclasses and SQLite. Week
records are append-only per (user, week_start); the free-text context a user
attaches to a week is encrypted with ``FieldEncryptor`` and may be written
once.

All access holds the database lock so that a ``transaction()`` is
never interleaved with statements from another thread on the shared
connection.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any

from cadence.core.storage.database import CoachingDatabase
from cadence.core.storage.encryption import FieldEncryptor
from cadence.core.storage.models import AdjustmentResponse, StoredGoalAdjustment
from cadence.domains.coaching.domain_logic.coaching_models import (
    GoalAdjustmentProposal,
    GoalState,
    SuggestedGoal,
    WeekPerformanceRecord,
    WeekScores,
    WeighIn,
)
from cadence.domains.coaching.domain_logic.goal_adjustment import apply_goal_adjustment

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class DuplicateWeekError(RepositoryError):
    """A performance record already exists for this user and week."""


class ContextAlreadyPatchedError(RepositoryError):
    """User context on a week record can only be written once."""


class PendingAdjustmentExistsError(RepositoryError):
    """The user already has an unresolved goal-adjustment proposal."""


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _loads_list(raw: str | None) -> list[Any]:
    return json.loads(raw) if raw else []


class CoachingRepository:
    """CRUD repository for coaching history.

    Usage::

        db = CoachingDatabase(":memory:")
        db.initialize()
        repo = CoachingRepository(db, FieldEncryptor(key="..."))

        with repo.transaction():
            record_id = repo.save_week_record(record)
            repo.create_goal_adjustment("user-1", proposal, current_goal=goal,
                                        week_performance_id=record_id)

    ``encryptor`` may be None; the repository then refuses to store user
    context but everything else works.
    """

    def __init__(self, database: CoachingDatabase, encryptor: FieldEncryptor | None = None) -> None:
        self._db = database
        self._enc = encryptor
        self._tx_depth = 0

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed writes atomically.

        Nested transactions join the outermost one; only the outermost
        commits or rolls back.
        """
        with self._db.lock:
            conn = self._db.connection
            self._tx_depth += 1
            try:
                yield conn
            except BaseException:
                self._tx_depth -= 1
                if self._tx_depth == 0:
                    conn.rollback()
                    logger.debug("Transaction rolled back")
                raise
            self._tx_depth -= 1
            if self._tx_depth == 0:
                conn.commit()

    # ------------------------------------------------------------------
    # Week performance
    # ------------------------------------------------------------------

    def save_week_record(self, record: WeekPerformanceRecord) -> str:
        """Persist a classified week.

        Returns:
            The record ID (generated when ``record.id`` is empty).

        Raises:
            DuplicateWeekError: A record for (user, week_start) already exists.
        """
        if not record.user_id:
            raise RepositoryError("Week record has no user_id")

        rid = record.id or self._new_id()
        created = record.created_at or self._now_iso()
        with self.transaction() as conn:
            try:
                conn.execute(
                    """INSERT INTO week_performance (
                        id, user_id, week_start, week_end, week_type, confidence,
                        momentum_score, scores_json, is_bad_week, is_recovery_week,
                        recovery_from_week, weight_change, weight_change_target,
                        weight_status, workout_completion_rate, nutrition_consistency_rate,
                        avg_feeling, avg_extra_rest, reasons_json, highlights_json,
                        issues_json, bad_week_reasons_enc, user_notes_enc, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        rid,
                        record.user_id,
                        record.week_start.isoformat(),
                        record.week_end.isoformat() if record.week_end else None,
                        record.week_type,
                        record.confidence,
                        record.momentum_score,
                        _dumps(asdict(record.scores)) if record.scores else None,
                        int(record.is_bad_week),
                        int(record.is_recovery_week),
                        record.recovery_from_week,
                        record.weight_change,
                        record.weight_change_target,
                        record.weight_status,
                        record.workout_completion_rate,
                        record.nutrition_consistency_rate,
                        record.avg_feeling,
                        record.avg_extra_rest,
                        _dumps(list(record.reasons)),
                        _dumps(list(record.highlights)),
                        _dumps(list(record.issues)),
                        self._encrypt_context(record.bad_week_reasons),
                        self._encrypt_context(record.user_notes),
                        created,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if "week_performance.user_id" in str(exc):
                    raise DuplicateWeekError(
                        f"Week {record.week_start.isoformat()} already recorded for user {record.user_id}"
                    ) from exc
                raise RepositoryError(f"Could not save week record: {exc}") from exc

        record.id = rid
        record.created_at = created
        logger.info(
            "Saved week %s for user %s (type=%s, momentum=%d)",
            record.week_start.isoformat(),
            record.user_id,
            record.week_type,
            record.momentum_score,
        )
        return rid

    def get_week_record(self, user_id: str, week_start: date) -> WeekPerformanceRecord | None:
        with self._db.lock:
            row = self._db.connection.execute(
                "SELECT * FROM week_performance WHERE user_id = ? AND week_start = ?",
                (user_id, week_start.isoformat()),
            ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def get_week_record_by_id(self, record_id: str) -> WeekPerformanceRecord | None:
        with self._db.lock:
            row = self._db.connection.execute(
                "SELECT * FROM week_performance WHERE id = ?", (record_id,)
            ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def get_week_history(
        self,
        user_id: str,
        *,
        before: date | None = None,
        limit: int = 12,
    ) -> list[WeekPerformanceRecord]:
        """Past week records for a user, newest first.

        Args:
            before: Only weeks starting strictly before this date.
            limit: Maximum records.
        """
        query = "SELECT * FROM week_performance WHERE user_id = ?"
        params: list[Any] = [user_id]
        if before is not None:
            query += " AND week_start < ?"
            params.append(before.isoformat())
        query += " ORDER BY week_start DESC LIMIT ?"
        params.append(limit)

        with self._db.lock:
            rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count_week_records(self, user_id: str) -> int:
        with self._db.lock:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM week_performance WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    def patch_week_context(
        self,
        record_id: str,
        *,
        bad_week_reasons: list[str] | None = None,
        user_notes: str | None = None,
    ) -> None:
        """Attach the user's own explanation to a week, exactly once.

        Raises:
            ContextAlreadyPatchedError: Context was already written.
            RepositoryError: Unknown record, or no encryption key configured.
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """UPDATE week_performance
                   SET bad_week_reasons_enc = ?, user_notes_enc = ?, context_patched_at = ?
                   WHERE id = ? AND context_patched_at IS NULL""",
                (
                    self._encrypt_context(bad_week_reasons),
                    self._encrypt_context(user_notes),
                    self._now_iso(),
                    record_id,
                ),
            )
            if cursor.rowcount == 0:
                exists = conn.execute(
                    "SELECT 1 FROM week_performance WHERE id = ?", (record_id,)
                ).fetchone()
                if exists is None:
                    raise RepositoryError(f"Week record not found: {record_id}")
                raise ContextAlreadyPatchedError(
                    f"User context already recorded for week record {record_id}"
                )
        logger.info("Recorded user context for week record %s", record_id)

    # ------------------------------------------------------------------
    # Goal state
    # ------------------------------------------------------------------

    def save_goal_state(self, user_id: str, goal: GoalState) -> None:
        """Insert or replace the user's current goal."""
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO goal_states (
                       user_id, goal_start_weight, goal_start_date, target_weight_min,
                       target_weight_max, goal_weekly_rate, actual_weekly_rate,
                       current_phase, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       goal_start_weight = excluded.goal_start_weight,
                       goal_start_date = excluded.goal_start_date,
                       target_weight_min = excluded.target_weight_min,
                       target_weight_max = excluded.target_weight_max,
                       goal_weekly_rate = excluded.goal_weekly_rate,
                       actual_weekly_rate = excluded.actual_weekly_rate,
                       current_phase = excluded.current_phase,
                       updated_at = excluded.updated_at""",
                (
                    user_id,
                    goal.goal_start_weight,
                    goal.goal_start_date.isoformat(),
                    goal.target_weight_min,
                    goal.target_weight_max,
                    goal.goal_weekly_rate,
                    goal.actual_weekly_rate,
                    goal.current_phase,
                    self._now_iso(),
                ),
            )

    def get_goal_state(self, user_id: str) -> GoalState | None:
        with self._db.lock:
            row = self._db.connection.execute(
                "SELECT * FROM goal_states WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return None
        return GoalState(
            goal_start_weight=row["goal_start_weight"],
            goal_start_date=datetime.fromisoformat(row["goal_start_date"]),
            target_weight_min=row["target_weight_min"],
            target_weight_max=row["target_weight_max"],
            goal_weekly_rate=row["goal_weekly_rate"],
            actual_weekly_rate=row["actual_weekly_rate"],
            current_phase=row["current_phase"],
        )

    # ------------------------------------------------------------------
    # Weigh-ins
    # ------------------------------------------------------------------

    def add_weigh_in(self, user_id: str, weight: float, measured_at: datetime) -> str:
        wid = self._new_id()
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO weigh_ins (id, user_id, weight, measured_at) VALUES (?, ?, ?, ?)",
                (wid, user_id, weight, measured_at.isoformat()),
            )
        return wid

    def get_weigh_ins(
        self,
        user_id: str,
        *,
        until: datetime | None = None,
        limit: int = 30,
    ) -> list[WeighIn]:
        """The most recent ``limit`` weigh-ins, returned oldest first."""
        query = "SELECT weight, measured_at FROM weigh_ins WHERE user_id = ?"
        params: list[Any] = [user_id]
        if until is not None:
            query += " AND measured_at <= ?"
            params.append(until.isoformat())
        query += " ORDER BY measured_at DESC LIMIT ?"
        params.append(limit)

        with self._db.lock:
            rows = self._db.connection.execute(query, params).fetchall()
        return [
            WeighIn(weight=row["weight"], measured_at=datetime.fromisoformat(row["measured_at"]))
            for row in reversed(rows)
        ]

    # ------------------------------------------------------------------
    # Goal-adjustment proposals
    # ------------------------------------------------------------------

    def create_goal_adjustment(
        self,
        user_id: str,
        proposal: GoalAdjustmentProposal,
        *,
        current_goal: GoalState | None = None,
        week_performance_id: str | None = None,
    ) -> str:
        """Store a triggered proposal as ``pending``.

        Raises:
            PendingAdjustmentExistsError: The user already has a pending proposal.
        """
        if not proposal.should_trigger:
            raise RepositoryError("Only triggered proposals can be stored")

        aid = self._new_id()
        suggested = proposal.suggested_goal
        with self.transaction() as conn:
            if self.get_pending_goal_adjustment(user_id) is not None:
                raise PendingAdjustmentExistsError(
                    f"User {user_id} already has a pending goal adjustment"
                )
            try:
                conn.execute(
                    """INSERT INTO goal_adjustments (
                           id, user_id, week_performance_id, trigger_type, trigger_reason,
                           weeks_off_track, confidence, previous_target_min,
                           previous_target_max, previous_weekly_rate, suggested_target_min,
                           suggested_target_max, suggested_weekly_rate, reasoning,
                           adjustment_type, status, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?)""",
                    (
                        aid,
                        user_id,
                        week_performance_id,
                        proposal.trigger_type,
                        proposal.trigger_reason,
                        proposal.weeks_off_track,
                        proposal.confidence,
                        current_goal.target_weight_min if current_goal else None,
                        current_goal.target_weight_max if current_goal else None,
                        current_goal.goal_weekly_rate if current_goal else None,
                        suggested.target_weight_min,
                        suggested.target_weight_max,
                        suggested.weekly_rate,
                        suggested.reasoning,
                        suggested.adjustment_type,
                        self._now_iso(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if "goal_adjustments.user_id" in str(exc):
                    raise PendingAdjustmentExistsError(
                        f"User {user_id} already has a pending goal adjustment"
                    ) from exc
                raise RepositoryError(f"Could not save goal adjustment: {exc}") from exc

        logger.info(
            "Created goal adjustment %s for user %s (trigger=%s)",
            aid,
            user_id,
            proposal.trigger_type,
        )
        return aid

    def get_goal_adjustment(self, adjustment_id: str) -> StoredGoalAdjustment | None:
        with self._db.lock:
            row = self._db.connection.execute(
                "SELECT * FROM goal_adjustments WHERE id = ?", (adjustment_id,)
            ).fetchone()
        return self._row_to_adjustment(row) if row is not None else None

    def get_pending_goal_adjustment(self, user_id: str) -> StoredGoalAdjustment | None:
        with self._db.lock:
            row = self._db.connection.execute(
                "SELECT * FROM goal_adjustments WHERE user_id = ? AND status = 'pending'",
                (user_id,),
            ).fetchone()
        return self._row_to_adjustment(row) if row is not None else None

    def get_goal_adjustments(self, user_id: str, *, limit: int = 20) -> list[StoredGoalAdjustment]:
        """All proposals for a user, newest first."""
        with self._db.lock:
            rows = self._db.connection.execute(
                """SELECT * FROM goal_adjustments WHERE user_id = ?
                   ORDER BY created_at DESC LIMIT ?""",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_adjustment(row) for row in rows]

    def resolve_goal_adjustment(
        self,
        adjustment_id: str,
        response: AdjustmentResponse,
        *,
        current_weight: float,
        modified_goal: SuggestedGoal | None = None,
        now: datetime | None = None,
    ) -> GoalState | None:
        """Accept, decline or modify a pending proposal.

        Accepting or modifying replaces the user's goal, restarting it from
        ``current_weight`` at ``now``. Declining leaves the goal untouched.

        Returns:
            The new goal, or None when declined.

        Raises:
            RepositoryError: Unknown or already resolved proposal, missing
                ``modified_goal`` for a modification, or no goal to adjust.
        """
        if response not in ("accepted", "declined", "modified"):
            raise RepositoryError(f"Invalid response: {response!r}")
        if response == "modified" and modified_goal is None:
            raise RepositoryError("A modified response requires modified_goal")

        now = now or datetime.now(timezone.utc)
        new_goal: GoalState | None = None

        with self.transaction() as conn:
            adjustment = self.get_goal_adjustment(adjustment_id)
            if adjustment is None:
                raise RepositoryError(f"Goal adjustment not found: {adjustment_id}")
            if not adjustment.is_pending:
                raise RepositoryError(
                    f"Goal adjustment {adjustment_id} already resolved ({adjustment.status})"
                )

            if response != "declined":
                current = self.get_goal_state(adjustment.user_id)
                if current is None:
                    raise RepositoryError(f"No goal to adjust for user {adjustment.user_id}")
                chosen = modified_goal if response == "modified" else adjustment.suggested_goal
                new_goal = apply_goal_adjustment(current, chosen, current_weight, now=now)
                self.save_goal_state(adjustment.user_id, new_goal)

            conn.execute(
                """UPDATE goal_adjustments
                   SET status = ?, final_target_min = ?, final_target_max = ?,
                       final_weekly_rate = ?, resolved_at = ?
                   WHERE id = ? AND status = 'pending'""",
                (
                    response,
                    new_goal.target_weight_min if new_goal else None,
                    new_goal.target_weight_max if new_goal else None,
                    new_goal.goal_weekly_rate if new_goal else None,
                    now.isoformat(),
                    adjustment_id,
                ),
            )

        logger.info("Goal adjustment %s resolved: %s", adjustment_id, response)
        return new_goal

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_user_data(self, user_id: str) -> int:
        """Delete everything stored for a user.

        Returns:
            Number of week records deleted.
        """
        with self.transaction() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM week_performance WHERE user_id = ?", (user_id,)
            ).fetchone()[0]
            conn.execute("DELETE FROM goal_adjustments WHERE user_id = ?", (user_id,))
            conn.execute("DELETE FROM week_performance WHERE user_id = ?", (user_id,))
            conn.execute("DELETE FROM weigh_ins WHERE user_id = ?", (user_id,))
            conn.execute("DELETE FROM goal_states WHERE user_id = ?", (user_id,))
        logger.warning("Deleted all coaching data for user %s: %d weeks removed", user_id, count)
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _encrypt_context(self, value: Any) -> str | None:
        if value is None:
            return None
        if self._enc is None:
            raise RepositoryError("An encryption key is required to store user context")
        return self._enc.encrypt(value)

    def _decrypt_context(self, token: str | None) -> Any:
        if not token or self._enc is None:
            return None
        return self._enc.decrypt(token)

    def _row_to_record(self, row: Any) -> WeekPerformanceRecord:
        scores = None
        if row["scores_json"]:
            scores = WeekScores(**json.loads(row["scores_json"]))

        return WeekPerformanceRecord(
            id=row["id"],
            user_id=row["user_id"],
            week_start=date.fromisoformat(row["week_start"]),
            week_end=date.fromisoformat(row["week_end"]) if row["week_end"] else None,
            week_type=row["week_type"],
            confidence=row["confidence"],
            momentum_score=row["momentum_score"],
            scores=scores,
            is_bad_week=bool(row["is_bad_week"]),
            is_recovery_week=bool(row["is_recovery_week"]),
            recovery_from_week=row["recovery_from_week"],
            weight_change=row["weight_change"],
            weight_change_target=row["weight_change_target"],
            weight_status=row["weight_status"],
            workout_completion_rate=row["workout_completion_rate"],
            nutrition_consistency_rate=row["nutrition_consistency_rate"],
            avg_feeling=row["avg_feeling"],
            avg_extra_rest=row["avg_extra_rest"],
            reasons=_loads_list(row["reasons_json"]),
            highlights=_loads_list(row["highlights_json"]),
            issues=_loads_list(row["issues_json"]),
            bad_week_reasons=self._decrypt_context(row["bad_week_reasons_enc"]),
            user_notes=self._decrypt_context(row["user_notes_enc"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_adjustment(row: Any) -> StoredGoalAdjustment:
        return StoredGoalAdjustment(
            id=row["id"],
            user_id=row["user_id"],
            week_performance_id=row["week_performance_id"],
            trigger_type=row["trigger_type"],
            trigger_reason=row["trigger_reason"],
            weeks_off_track=row["weeks_off_track"],
            confidence=row["confidence"],
            suggested_goal=SuggestedGoal(
                target_weight_min=row["suggested_target_min"],
                target_weight_max=row["suggested_target_max"],
                weekly_rate=row["suggested_weekly_rate"],
                reasoning=row["reasoning"],
                adjustment_type=row["adjustment_type"],
            ),
            status=row["status"],
            previous_target_min=row["previous_target_min"],
            previous_target_max=row["previous_target_max"],
            previous_weekly_rate=row["previous_weekly_rate"],
            final_target_min=row["final_target_min"],
            final_target_max=row["final_target_max"],
            final_weekly_rate=row["final_weekly_rate"],
            resolved_at=row["resolved_at"],
            created_at=row["created_at"],
        )
