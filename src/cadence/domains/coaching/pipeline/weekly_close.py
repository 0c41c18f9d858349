"""Weekly close: run the decision engines for one user's finished week.

Flow for ``WeeklyCloseCoordinator.close_week``::

    aggregate  ->  classify + momentum  ->  record
    history (strictly before this week) + record  ->  patterns
    goal + weigh-ins  ->  progress  ->  goal-adjustment proposal
    record + patterns  ->  program decision (+ next week's workouts)
    record + proposal  ->  one transaction

Runs for the same user are serialised by a per-user lock; different users
close in parallel. Weeks run Saturday through Friday.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from cadence.core.audit.logger import DecisionAuditLogger
from cadence.core.privacy.policy import PrivacyMode, minimize_weekly_summary
from cadence.core.storage.models import AdjustmentResponse
from cadence.core.storage.repository import (
    CoachingRepository,
    DuplicateWeekError,
    RepositoryError,
)
from cadence.domains.coaching.connectors import WeeklyActivityProvider
from cadence.domains.coaching.domain_logic.coaching_models import (
    DetectedPattern,
    GoalAdjustmentProposal,
    GoalProgress,
    GoalState,
    ProgramAdjustmentDecision,
    SuggestedGoal,
    WeekClassification,
    WeeklyActivityAggregate,
    WeekPerformanceRecord,
    WeightStatus,
)
from cadence.domains.coaching.domain_logic.goal_adjustment import check_goal_adjustment_needed
from cadence.domains.coaching.domain_logic.goal_progress import (
    calculate_actual_weekly_rate,
    calculate_goal_progress,
    calculate_weeks_into_goal,
)
from cadence.domains.coaching.domain_logic.momentum import (
    calculate_momentum_score,
    momentum_input_from_aggregate,
)
from cadence.domains.coaching.domain_logic.narrative import build_weekly_summary
from cadence.domains.coaching.domain_logic.pattern_detector import detect_patterns
from cadence.domains.coaching.domain_logic.program_adjustment import (
    NEUTRAL_FEELING,
    AdjustmentContext,
    apply_adjustments_to_workout,
    average_feeling,
    decide_program_adjustment,
    generate_weekly_focus_message,
)
from cadence.domains.coaching.domain_logic.recovery_week import (
    RecoveryWeekProgram,
    evaluate_recovery_success,
    generate_recovery_week_program,
)
from cadence.domains.coaching.domain_logic.week_classifier import classify_week

logger = logging.getLogger(__name__)

BAD_WEEK_MOMENTUM_CAP = 30
RECOVERY_MOMENTUM_BONUS = 10
WEIGHT_STATUS_TOLERANCE_KG = 0.2

_SATURDAY = 5


class WeeklyCloseError(Exception):
    """Raised when a week cannot be closed (no data, provider failure)."""


@dataclass
class WeeklyCloseResult:
    record: WeekPerformanceRecord
    classification: WeekClassification
    patterns: list[DetectedPattern]
    decision: ProgramAdjustmentDecision
    focus_message: str
    summary: dict[str, Any]
    aggregate: WeeklyActivityAggregate | None = None
    progress: GoalProgress | None = None
    proposal: GoalAdjustmentProposal | None = None
    adjustment_id: str | None = None
    next_week_workouts: dict[str, dict[str, Any]] = field(default_factory=dict)
    recovery_program: RecoveryWeekProgram | None = None


def get_week_boundaries(day: date | datetime) -> tuple[date, date]:
    """Saturday-to-Friday week containing ``day``."""
    if isinstance(day, datetime):
        day = day.date()
    start = day - timedelta(days=(day.weekday() - _SATURDAY) % 7)
    return start, start + timedelta(days=6)


def get_weight_status(weight_change: float | None, target: float) -> WeightStatus | None:
    if weight_change is None:
        return None
    if abs(weight_change - target) <= WEIGHT_STATUS_TOLERANCE_KG:
        return "on_track"
    return "above_target" if weight_change > target else "below_target"


def collect_highlights_and_issues(
    aggregate: WeeklyActivityAggregate,
    weight_status: WeightStatus | None,
    avg_extra_rest: float | None,
) -> tuple[list[str], list[str]]:
    highlights: list[str] = []
    issues: list[str] = []

    if aggregate.workout_completion_rate >= 0.8:
        highlights.append("Excellent workout consistency")
    if aggregate.nutrition_days_hit_target >= 5:
        highlights.append("Great nutrition adherence")
    if weight_status == "on_track":
        highlights.append("Weight change on target")

    if aggregate.workout_completion_rate < 0.5:
        issues.append("Low workout completion rate")
    if aggregate.nutrition_days_hit_target < 3:
        issues.append("Inconsistent nutrition tracking")
    if avg_extra_rest and avg_extra_rest > 30:
        issues.append("Taking too much extra rest")

    return highlights, issues


@dataclass
class _UserLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class WeeklyCloseCoordinator:
    """Closes weeks for many users, one at a time per user.

    A user's lock exists only while a run for that user is in progress or
    waiting, so the lock table stays bounded by concurrent users.

    Usage::

        coordinator = WeeklyCloseCoordinator(repository, provider, audit)
        result = coordinator.close_week("user-1", date(2025, 3, 1))
    """

    def __init__(
        self,
        repository: CoachingRepository,
        provider: WeeklyActivityProvider | None = None,
        audit: DecisionAuditLogger | None = None,
        *,
        history_window_weeks: int = 12,
        weigh_in_limit: int = 30,
        privacy_mode: PrivacyMode = "strict",
    ) -> None:
        self._repository = repository
        self._provider = provider
        self._audit = audit
        self._history_window = history_window_weeks
        self._weigh_in_limit = weigh_in_limit
        self._privacy_mode = privacy_mode
        self._user_locks: dict[str, _UserLock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        """Hold ``user_id``'s lock; the entry is dropped once nobody holds or awaits it."""
        with self._registry_lock:
            entry = self._user_locks.get(user_id)
            if entry is None:
                entry = self._user_locks[user_id] = _UserLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._user_locks[user_id]

    @property
    def active_user_locks(self) -> int:
        """Users with a run in progress or waiting."""
        with self._registry_lock:
            return len(self._user_locks)

    @property
    def privacy_mode(self) -> PrivacyMode:
        return self._privacy_mode

    @property
    def history_window_weeks(self) -> int:
        return self._history_window

    # ------------------------------------------------------------------
    # Weekly close
    # ------------------------------------------------------------------

    def close_week(
        self,
        user_id: str,
        week_start: date | datetime,
        *,
        aggregate: WeeklyActivityAggregate | None = None,
        current_weight: float | None = None,
        previous_workouts: Mapping[str, Mapping[str, Any]] | None = None,
        primary_goal: str | None = None,
        privacy_mode: PrivacyMode | None = None,
        now: datetime | None = None,
    ) -> WeeklyCloseResult:
        """Classify and persist one week, and decide what comes next.

        Args:
            week_start: Any day of the week to close; normalised to its Saturday.
            aggregate: The week's facts. Fetched from the provider when omitted.
            current_weight: Latest body weight. Falls back to the aggregate's
                ``weight_end`` and then the latest weigh-in.
            previous_workouts: This week's program, keyed by day. When given,
                next week's workouts are derived from it.
            primary_goal: Goal name used for recovery-week messaging.

        Raises:
            DuplicateWeekError: The week was already closed for this user.
            WeeklyCloseError: No aggregate could be obtained.
        """
        start, end = get_week_boundaries(week_start)
        now = now or datetime.now(timezone.utc)

        with self._user_lock(user_id):
            started = time.perf_counter()
            try:
                result = self._close_locked(
                    user_id,
                    start,
                    end,
                    aggregate=aggregate,
                    current_weight=current_weight,
                    previous_workouts=previous_workouts,
                    primary_goal=primary_goal,
                    privacy_mode=privacy_mode or self._privacy_mode,
                    now=now,
                )
            except Exception as exc:
                self._audit_close(
                    user_id,
                    start,
                    aggregate,
                    duration_ms=(time.perf_counter() - started) * 1000,
                    status="failure",
                    error_type=type(exc).__name__,
                )
                raise

            self._audit_close(
                user_id,
                start,
                result.aggregate,
                week_type=result.record.week_type,
                patterns=[p.type for p in result.patterns],
                proposal_trigger=result.proposal.trigger_type if result.adjustment_id else None,
                program_action=result.decision.action,
                duration_ms=(time.perf_counter() - started) * 1000,
            )

        logger.info(
            "Closed week %s for user %s: %s (momentum %d, program %s)",
            start.isoformat(),
            user_id,
            result.record.week_type,
            result.record.momentum_score,
            result.decision.action,
        )
        return result

    def _close_locked(
        self,
        user_id: str,
        start: date,
        end: date,
        *,
        aggregate: WeeklyActivityAggregate | None,
        current_weight: float | None,
        previous_workouts: Mapping[str, Mapping[str, Any]] | None,
        primary_goal: str | None,
        privacy_mode: PrivacyMode,
        now: datetime,
    ) -> WeeklyCloseResult:
        if self._repository.get_week_record(user_id, start) is not None:
            raise DuplicateWeekError(f"Week {start.isoformat()} already recorded for user {user_id}")

        if aggregate is None:
            aggregate = self._fetch_aggregate(user_id, start, end)

        history = self._repository.get_week_history(
            user_id, before=start, limit=self._history_window
        )
        previous = history[0] if history else None

        # --- Classification and momentum ---
        is_recovery = previous is not None and previous.is_bad_week
        classification = classify_week(aggregate, is_recovery_week=is_recovery)

        failed_recovery = False
        if is_recovery:
            evaluation = evaluate_recovery_success(
                aggregate.workouts_completed, aggregate.nutrition_days_hit_target
            )
            failed_recovery = not evaluation.successful
            is_bad_week = failed_recovery
        else:
            is_bad_week = classification.week_type == "bad"

        momentum = calculate_momentum_score(momentum_input_from_aggregate(aggregate))
        if is_bad_week:
            momentum = min(momentum, BAD_WEEK_MOMENTUM_CAP)
        elif is_recovery:
            momentum = min(momentum + RECOVERY_MOMENTUM_BONUS, 100)

        weight_status = get_weight_status(aggregate.weight_change, aggregate.weight_change_target)
        feeling = average_feeling(aggregate.exercise_feelings)
        extra_rest = (
            sum(aggregate.extra_rest_seconds) / len(aggregate.extra_rest_seconds)
            if aggregate.extra_rest_seconds
            else None
        )
        highlights, issues = collect_highlights_and_issues(aggregate, weight_status, extra_rest)

        record = WeekPerformanceRecord(
            user_id=user_id,
            week_start=start,
            week_end=end,
            week_type=classification.week_type,
            confidence=classification.confidence,
            scores=classification.scores,
            reasons=list(classification.reasons),
            momentum_score=momentum,
            is_bad_week=is_bad_week,
            is_recovery_week=is_recovery,
            recovery_from_week=previous.id if is_recovery else None,
            weight_change=aggregate.weight_change,
            weight_change_target=aggregate.weight_change_target,
            weight_status=weight_status,
            workout_completion_rate=aggregate.workout_completion_rate,
            nutrition_consistency_rate=aggregate.nutrition_consistency_rate,
            avg_feeling=feeling,
            avg_extra_rest=extra_rest,
            highlights=highlights,
            issues=issues,
        )

        patterns = detect_patterns([record, *history])

        # --- Goal progress and adjustment ---
        goal = self._repository.get_goal_state(user_id)
        progress: GoalProgress | None = None
        proposal: GoalAdjustmentProposal | None = None
        if goal is not None:
            weigh_ins = self._repository.get_weigh_ins(
                user_id, until=now, limit=self._weigh_in_limit
            )
            weight = current_weight
            if weight is None:
                weight = aggregate.weight_end
            if weight is None and weigh_ins:
                weight = weigh_ins[-1].weight

            if weight is None:
                logger.info("No current weight for user %s; skipping goal progress", user_id)
            else:
                actual_rate = goal.actual_weekly_rate
                if actual_rate is None:
                    actual_rate = calculate_actual_weekly_rate(weigh_ins)
                progress = calculate_goal_progress(goal, weight, weigh_ins, now=now)
                proposal = check_goal_adjustment_needed(
                    goal,
                    progress,
                    patterns,
                    actual_rate,
                    calculate_weeks_into_goal(goal.goal_start_date, now=now),
                )

        # --- Program decision ---
        # A recovery week already answers the bad week before it; a failed
        # recovery week counts as bad itself.
        context = AdjustmentContext(
            week_type="bad" if failed_recovery else classification.week_type,
            previous_week_type=None if is_recovery or previous is None else previous.week_type,
            patterns=tuple(patterns),
            workout_completion_rate=aggregate.workout_completion_rate,
            nutrition_consistency_rate=aggregate.nutrition_consistency_rate,
            avg_extra_rest=extra_rest or 0.0,
            avg_feeling=feeling if feeling is not None else NEUTRAL_FEELING,
            consecutive_weeks=aggregate.program_week,
        )
        decision = decide_program_adjustment(context)

        next_week_workouts: dict[str, dict[str, Any]] = {}
        recovery_program: RecoveryWeekProgram | None = None
        if previous_workouts:
            if is_bad_week:
                recovery_program = generate_recovery_week_program(
                    previous_workouts, primary_goal or (goal.current_phase if goal else "")
                )
                next_week_workouts = recovery_program.workouts
            else:
                next_week_workouts = {
                    day: apply_adjustments_to_workout(dict(workout), decision.changes)
                    for day, workout in previous_workouts.items()
                }

        # --- Persist ---
        adjustment_id = self._persist(user_id, record, goal, proposal)

        summary = build_weekly_summary(record, patterns, progress, proposal, decision)
        return WeeklyCloseResult(
            record=record,
            classification=classification,
            patterns=patterns,
            decision=decision,
            focus_message=generate_weekly_focus_message(decision, classification.week_type),
            summary=minimize_weekly_summary(summary, privacy_mode),
            aggregate=aggregate,
            progress=progress,
            proposal=proposal,
            adjustment_id=adjustment_id,
            next_week_workouts=next_week_workouts,
            recovery_program=recovery_program,
        )

    def _fetch_aggregate(self, user_id: str, start: date, end: date) -> WeeklyActivityAggregate:
        if self._provider is None:
            raise WeeklyCloseError("No aggregate given and no activity provider configured")
        try:
            aggregate = self._provider.get_weekly_aggregate(user_id, start, end)
        except Exception as exc:
            raise WeeklyCloseError(
                f"Activity provider {self._provider.data_source!r} failed for user {user_id}: {exc}"
            ) from exc
        if aggregate is None:
            raise WeeklyCloseError(f"No activity data for user {user_id}, week {start.isoformat()}")
        return aggregate

    def _persist(
        self,
        user_id: str,
        record: WeekPerformanceRecord,
        goal: GoalState | None,
        proposal: GoalAdjustmentProposal | None,
    ) -> str | None:
        """Write the record and any triggered proposal atomically."""
        adjustment_id: str | None = None
        with self._repository.transaction():
            record_id = self._repository.save_week_record(record)
            if proposal is not None and proposal.should_trigger:
                if self._repository.get_pending_goal_adjustment(user_id) is not None:
                    logger.warning(
                        "Pending goal adjustment already exists for user %s; not creating another",
                        user_id,
                    )
                else:
                    adjustment_id = self._repository.create_goal_adjustment(
                        user_id,
                        proposal,
                        current_goal=goal,
                        week_performance_id=record_id,
                    )
        return adjustment_id

    # ------------------------------------------------------------------
    # User responses
    # ------------------------------------------------------------------

    def record_week_context(
        self,
        user_id: str,
        week_start: date | datetime,
        *,
        bad_week_reasons: list[str] | None = None,
        user_notes: str | None = None,
    ) -> WeekPerformanceRecord:
        """Attach the user's explanation to a closed week (once)."""
        start, _ = get_week_boundaries(week_start)
        with self._user_lock(user_id):
            record = self._repository.get_week_record(user_id, start)
            if record is None:
                raise WeeklyCloseError(f"Week {start.isoformat()} not closed for user {user_id}")
            try:
                self._repository.patch_week_context(
                    record.id, bad_week_reasons=bad_week_reasons, user_notes=user_notes
                )
            except Exception as exc:
                if self._audit is not None:
                    self._audit.log_context_patch(
                        user_id, record.id, status="failure", error_type=type(exc).__name__
                    )
                raise
            if self._audit is not None:
                self._audit.log_context_patch(user_id, record.id)
            return self._repository.get_week_record_by_id(record.id)

    def resolve_goal_adjustment(
        self,
        user_id: str,
        adjustment_id: str,
        response: AdjustmentResponse,
        *,
        current_weight: float,
        modified_goal: SuggestedGoal | None = None,
        now: datetime | None = None,
    ) -> GoalState | None:
        """Apply the user's answer to a pending proposal."""
        with self._user_lock(user_id):
            try:
                adjustment = self._repository.get_goal_adjustment(adjustment_id)
                if adjustment is None or adjustment.user_id != user_id:
                    raise RepositoryError(f"Goal adjustment not found: {adjustment_id}")
                new_goal = self._repository.resolve_goal_adjustment(
                    adjustment_id,
                    response,
                    current_weight=current_weight,
                    modified_goal=modified_goal,
                    now=now,
                )
            except Exception as exc:
                if self._audit is not None:
                    self._audit.log_goal_resolution(
                        user_id, adjustment_id, response,
                        status="failure", error_type=type(exc).__name__,
                    )
                raise
            if self._audit is not None:
                self._audit.log_goal_resolution(user_id, adjustment_id, response)
            return new_goal

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _audit_close(self, user_id: str, start: date, audited_input: Any, **fields: Any) -> None:
        if self._audit is None:
            return
        self._audit.log_weekly_close(user_id, start, audited_input, **fields)
