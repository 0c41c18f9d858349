"""Goal adjustment: decide whether to propose a revised long-term goal.

Rules are evaluated in priority order and the first whose guard matches
decides the outcome, even when that outcome is "no trigger" (goal drift with
no measurable weekly rate does not fall through to later rules).

    1. goal drift (high)               keep target, 75% of actual pace
    2. 3+ consecutive bad weeks        60% pace, target 60% of remaining distance
    3. recovery struggle               50% pace, target 40% of remaining distance
    4. slump (high)                    keep target, 70% pace
    5. progress behind / off track     keep target, actual pace
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import NamedTuple

from cadence.domains.coaching.domain_logic.coaching_models import (
    DetectedPattern,
    GoalAdjustmentProposal,
    GoalProgress,
    GoalState,
    SuggestedGoal,
    TriggerType,
)

MIN_WEEKS_INTO_GOAL = 3


@dataclass(frozen=True)
class _AdjustmentContext:
    goal: GoalState
    progress: GoalProgress
    patterns: Sequence[DetectedPattern]
    actual_rate: float | None
    weeks_into_goal: int

    def find(self, pattern_type: str, predicate: Callable[[DetectedPattern], bool] = lambda p: True):
        for pattern in self.patterns:
            if pattern.type == pattern_type and predicate(pattern):
                return pattern
        return None


class AdjustmentRule(NamedTuple):
    name: str
    guard: Callable[[_AdjustmentContext], DetectedPattern | bool | None]
    build: Callable[[_AdjustmentContext], GoalAdjustmentProposal]


def no_trigger(goal: GoalState, trigger_type: TriggerType = "ai_suggestion") -> GoalAdjustmentProposal:
    """Proposal that keeps the current goal unchanged."""
    return GoalAdjustmentProposal(
        should_trigger=False,
        trigger_type=trigger_type,
        trigger_reason="",
        weeks_off_track=0,
        suggested_goal=SuggestedGoal(
            target_weight_min=goal.target_weight_min,
            target_weight_max=goal.target_weight_max,
            weekly_rate=goal.goal_weekly_rate,
            reasoning="",
            adjustment_type="maintain_target_slower_pace",
        ),
        confidence=0.0,
    )


# ---------------------------------------------------------------------------
# Rule guards
# ---------------------------------------------------------------------------

def _goal_drift(ctx: _AdjustmentContext) -> DetectedPattern | None:
    return ctx.find("goal_drift", lambda p: p.severity == "high")


def _consecutive_bad(ctx: _AdjustmentContext) -> DetectedPattern | None:
    return ctx.find("consecutive_bad_weeks", lambda p: p.weeks_affected >= 3)


def _recovery_struggle(ctx: _AdjustmentContext) -> DetectedPattern | None:
    return ctx.find("recovery_struggle")


def _slump(ctx: _AdjustmentContext) -> DetectedPattern | None:
    return ctx.find("slump", lambda p: p.severity == "high")


def _off_track(ctx: _AdjustmentContext) -> bool:
    return ctx.progress.status in ("off_track", "behind")


# ---------------------------------------------------------------------------
# Proposal builders
# ---------------------------------------------------------------------------

def _drift_adjustment(ctx: _AdjustmentContext) -> GoalAdjustmentProposal:
    pattern = _goal_drift(ctx)
    if not ctx.actual_rate:
        return no_trigger(ctx.goal, "pattern_detected")

    goal = ctx.goal
    reasoning = (
        f"Your weight has been changing at {abs(ctx.actual_rate):.1f}kg/week instead of the "
        f"target {abs(goal.goal_weekly_rate):.1f}kg/week. Let's adjust the pace to match "
        "reality while keeping the same target."
    )
    return GoalAdjustmentProposal(
        should_trigger=True,
        trigger_type="pattern_detected",
        trigger_reason=pattern.description,
        weeks_off_track=pattern.weeks_affected,
        suggested_goal=SuggestedGoal(
            target_weight_min=goal.target_weight_min,
            target_weight_max=goal.target_weight_max,
            weekly_rate=ctx.actual_rate * 0.75,
            reasoning=reasoning,
            adjustment_type="maintain_target_slower_pace",
        ),
        confidence=0.85,
    )


def _consecutive_bad_adjustment(ctx: _AdjustmentContext) -> GoalAdjustmentProposal:
    pattern = _consecutive_bad(ctx)
    goal = ctx.goal
    current = ctx.progress.current_weight

    new_mid = current + (goal.target_mid - current) * 0.6
    half_range = (goal.target_weight_max - goal.target_weight_min) / 2
    reasoning = (
        f"You've had {pattern.weeks_affected} tough weeks in a row. The current goal might be "
        "too aggressive. Let's make it more achievable by reducing both the pace and bringing "
        "the target closer."
    )
    return GoalAdjustmentProposal(
        should_trigger=True,
        trigger_type="pattern_detected",
        trigger_reason=pattern.description,
        weeks_off_track=pattern.weeks_affected,
        suggested_goal=SuggestedGoal(
            target_weight_min=new_mid - half_range,
            target_weight_max=new_mid + half_range,
            weekly_rate=goal.goal_weekly_rate * 0.6,
            reasoning=reasoning,
            adjustment_type="easier",
        ),
        confidence=0.9,
    )


def _recovery_struggle_adjustment(ctx: _AdjustmentContext) -> GoalAdjustmentProposal:
    pattern = _recovery_struggle(ctx)
    goal = ctx.goal
    current = ctx.progress.current_weight

    remaining = goal.target_mid - current
    new_mid = current + remaining * 0.4
    half_range = abs(remaining * 0.1)
    reasoning = (
        "You're struggling even during recovery weeks. We need to significantly reduce the "
        "intensity. Let's cut the pace in half and set a closer, more achievable target."
    )
    return GoalAdjustmentProposal(
        should_trigger=True,
        trigger_type="pattern_detected",
        trigger_reason=pattern.description,
        weeks_off_track=pattern.weeks_affected,
        suggested_goal=SuggestedGoal(
            target_weight_min=new_mid - half_range,
            target_weight_max=new_mid + half_range,
            weekly_rate=goal.goal_weekly_rate * 0.5,
            reasoning=reasoning,
            adjustment_type="easier",
        ),
        confidence=0.95,
    )


def _slump_adjustment(ctx: _AdjustmentContext) -> GoalAdjustmentProposal:
    pattern = _slump(ctx)
    goal = ctx.goal
    return GoalAdjustmentProposal(
        should_trigger=True,
        trigger_type="pattern_detected",
        trigger_reason=pattern.description,
        weeks_off_track=pattern.weeks_affected,
        suggested_goal=SuggestedGoal(
            target_weight_min=goal.target_weight_min,
            target_weight_max=goal.target_weight_max,
            weekly_rate=goal.goal_weekly_rate * 0.7,
            reasoning=(
                "Your momentum has been declining over the past month. Let's slow the pace a "
                "bit to help you rebuild consistency and confidence."
            ),
            adjustment_type="maintain_target_slower_pace",
        ),
        confidence=0.75,
    )


def _off_track_adjustment(ctx: _AdjustmentContext) -> GoalAdjustmentProposal:
    if not ctx.actual_rate:
        return no_trigger(ctx.goal)

    goal = ctx.goal
    reasoning = (
        f"You've been off-track for a few weeks. Your actual pace is "
        f"{abs(ctx.actual_rate):.1f}kg/week. Let's adjust the goal to match your current reality."
    )
    return GoalAdjustmentProposal(
        should_trigger=True,
        trigger_type="ai_suggestion",
        trigger_reason=f"Off-track for {ctx.weeks_into_goal} weeks",
        weeks_off_track=ctx.weeks_into_goal,
        suggested_goal=SuggestedGoal(
            target_weight_min=goal.target_weight_min,
            target_weight_max=goal.target_weight_max,
            weekly_rate=ctx.actual_rate,
            reasoning=reasoning,
            adjustment_type="maintain_target_slower_pace",
        ),
        confidence=0.7,
    )


ADJUSTMENT_RULES: tuple[AdjustmentRule, ...] = (
    AdjustmentRule("goal_drift", _goal_drift, _drift_adjustment),
    AdjustmentRule("consecutive_bad_weeks", _consecutive_bad, _consecutive_bad_adjustment),
    AdjustmentRule("recovery_struggle", _recovery_struggle, _recovery_struggle_adjustment),
    AdjustmentRule("slump", _slump, _slump_adjustment),
    AdjustmentRule("off_track", _off_track, _off_track_adjustment),
)


def check_goal_adjustment_needed(
    current_goal: GoalState,
    progress: GoalProgress,
    patterns: Sequence[DetectedPattern],
    actual_weekly_rate: float | None,
    weeks_into_goal: int,
) -> GoalAdjustmentProposal:
    """Return the proposal of the first matching rule, or a no-trigger proposal."""
    if weeks_into_goal < MIN_WEEKS_INTO_GOAL:
        return no_trigger(current_goal)

    ctx = _AdjustmentContext(
        goal=current_goal,
        progress=progress,
        patterns=patterns,
        actual_rate=actual_weekly_rate,
        weeks_into_goal=weeks_into_goal,
    )
    for rule in ADJUSTMENT_RULES:
        if rule.guard(ctx):
            return rule.build(ctx)
    return no_trigger(current_goal)


def format_goal_adjustment_message(proposal: GoalAdjustmentProposal) -> str:
    if not proposal.should_trigger:
        return ""

    goal = proposal.suggested_goal
    direction = "gain" if goal.weekly_rate > 0 else "loss"
    return (
        f"After {proposal.weeks_off_track} weeks, we suggest adjusting your goal:\n\n"
        f"New target: {goal.target_weight_min:.1f}-{goal.target_weight_max:.1f}kg\n"
        f"New pace: {abs(goal.weekly_rate):.1f}kg/week {direction}\n\n"
        f"{goal.reasoning}"
    )


def apply_goal_adjustment(
    goal: GoalState,
    suggested: SuggestedGoal,
    current_weight: float,
    *,
    now: datetime | None = None,
) -> GoalState:
    """Resolve an accepted (or user-modified) proposal into a new goal.

    The goal restarts from the current weight and time.
    """
    return replace(
        goal,
        target_weight_min=min(suggested.target_weight_min, suggested.target_weight_max),
        target_weight_max=max(suggested.target_weight_min, suggested.target_weight_max),
        goal_weekly_rate=suggested.weekly_rate,
        goal_start_weight=current_weight,
        goal_start_date=now or datetime.now(timezone.utc),
        actual_weekly_rate=None,
    )
