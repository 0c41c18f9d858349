"""Program adjustment: how next week's training program should change.

Decision order:
    1. a bad week (this one or the previous one) -> recovery week
    2. pattern overrides (recovery struggle, 3+ bad weeks, high slump)
    3. progression by this week's type
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from cadence.domains.coaching.domain_logic.coaching_models import (
    FEELING_SCALE,
    DetectedPattern,
    ProgramAdjustmentDecision,
    ProgramChanges,
    WeekType,
)

DELOAD_EVERY_WEEKS = 4
NEUTRAL_FEELING = FEELING_SCALE["Good"]


@dataclass(frozen=True)
class AdjustmentContext:
    week_type: WeekType
    previous_week_type: WeekType | None = None
    patterns: Sequence[DetectedPattern] = field(default_factory=tuple)
    workout_completion_rate: float = 0.0
    nutrition_consistency_rate: float = 0.0
    avg_extra_rest: float = 0.0      # seconds
    avg_feeling: float = NEUTRAL_FEELING
    consecutive_weeks: int = 1       # weeks in the current program


class DecisionRule(NamedTuple):
    name: str
    guard: Callable[[AdjustmentContext], bool]
    decide: Callable[[AdjustmentContext], ProgramAdjustmentDecision]


def average_feeling(feelings: Iterable[str]) -> float | None:
    """Mean of Easy/Good/Hard ratings on the 1.0/0.75/0.5 scale.

    Unrecognised ratings are ignored; returns None when nothing was rated.
    """
    values = [FEELING_SCALE[f] for f in feelings if f in FEELING_SCALE]
    if not values:
        return None
    return sum(values) / len(values)


def _has_pattern(
    ctx: AdjustmentContext,
    pattern_type: str,
    predicate: Callable[[DetectedPattern], bool] = lambda p: True,
) -> bool:
    return any(p.type == pattern_type and predicate(p) for p in ctx.patterns)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

def _recovery_after_bad_week(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    return ProgramAdjustmentDecision(
        action="recovery",
        explanation=(
            "Last week was challenging. Creating a recovery week with reduced volume "
            "to help you get back on track."
        ),
        changes=ProgramChanges(
            volume_adjustment=-0.3,
            frequency_adjustment=-2,
            intensity_adjustment="maintain",
            weight_adjustment=0.0,
        ),
        focus_message=(
            "This week is about showing up. Lower volume, same intensity. Just rebuild the habit."
        ),
    )


def _recovery_struggle(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    return ProgramAdjustmentDecision(
        action="reduce",
        explanation="Recovery weeks aren't working. Need to reduce baseline difficulty.",
        changes=ProgramChanges(
            volume_adjustment=-0.5,
            frequency_adjustment=-3,
            intensity_adjustment="decrease",
            weight_adjustment=-0.1,
            extend_recovery=True,
        ),
        focus_message=(
            "Let's simplify everything. 3 workouts, lighter weights. Focus on feeling good."
        ),
    )


def _consecutive_bad_weeks(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    return ProgramAdjustmentDecision(
        action="reduce",
        explanation=(
            "Three tough weeks means the program is too aggressive. Scaling back significantly."
        ),
        changes=ProgramChanges(
            volume_adjustment=-0.4,
            frequency_adjustment=-2,
            intensity_adjustment="decrease",
            add_deload=True,
        ),
        focus_message=(
            "The program was too much. We're making it sustainable. "
            "Progress comes from consistency, not intensity."
        ),
    )


def _slump(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    return ProgramAdjustmentDecision(
        action="maintain",
        explanation="Momentum declining. Pausing progression to stabilize performance.",
        changes=ProgramChanges(
            weight_adjustment=0.0,
            volume_adjustment=-0.1,
            intensity_adjustment="maintain",
            add_deload=True,
        ),
        focus_message="Let's stabilize before pushing harder. Focus on consistency this week.",
    )


def _excellent_week(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    if ctx.consecutive_weeks > 0 and ctx.consecutive_weeks % DELOAD_EVERY_WEEKS == 0:
        return ProgramAdjustmentDecision(
            action="maintain",
            explanation="Excellent week! But it's time for a scheduled deload to allow recovery.",
            changes=ProgramChanges(
                volume_adjustment=-0.2,
                weight_adjustment=-0.1,
                intensity_adjustment="decrease",
                add_deload=True,
            ),
            focus_message=(
                "You earned a deload week. Light weights, lower volume. Recovery is when you grow."
            ),
        )

    if ctx.avg_feeling >= 0.8 and ctx.avg_extra_rest < 10:
        return ProgramAdjustmentDecision(
            action="progress",
            explanation=(
                "Crushing it! Weights felt easy and you're not taking extra rest. Time to level up."
            ),
            changes=ProgramChanges(
                weight_adjustment=0.05,
                volume_adjustment=0.05,
                intensity_adjustment="increase",
            ),
            focus_message="Level up! Adding 5% to your weights. You've earned this progression.",
        )

    return ProgramAdjustmentDecision(
        action="progress",
        explanation="Excellent performance. Standard progression applied.",
        changes=ProgramChanges(weight_adjustment=0.025, intensity_adjustment="maintain"),
        focus_message="Solid week! Small weight increases to keep building.",
    )


def _good_week(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    if ctx.avg_feeling < 0.6 or ctx.avg_extra_rest > 30:
        return ProgramAdjustmentDecision(
            action="maintain",
            explanation=(
                "Good performance, but workouts felt challenging. Maintaining current level."
            ),
            changes=ProgramChanges(weight_adjustment=0.0, intensity_adjustment="maintain"),
            focus_message="Good week! Sticking with current weights to build consistency.",
        )
    return ProgramAdjustmentDecision(
        action="progress",
        explanation="Good week with manageable difficulty. Small progression.",
        changes=ProgramChanges(weight_adjustment=0.025, intensity_adjustment="maintain"),
        focus_message="Nice work! Small weight bump to keep progressing.",
    )


def _inconsistent_week(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    if ctx.workout_completion_rate < 0.6:
        return ProgramAdjustmentDecision(
            action="maintain",
            explanation="Workouts were inconsistent. Maintaining weights to allow catching up.",
            changes=ProgramChanges(
                weight_adjustment=0.0,
                volume_adjustment=-0.1,
                intensity_adjustment="maintain",
            ),
            focus_message=(
                "Focus on hitting all your workouts this week. "
                "Same weights, let's build consistency."
            ),
        )
    return ProgramAdjustmentDecision(
        action="maintain",
        explanation="Decent performance but not quite there. Maintaining to build consistency.",
        changes=ProgramChanges(weight_adjustment=0.0, intensity_adjustment="maintain"),
        focus_message="Keep grinding. Same program, focus on completion.",
    )


def _post_recovery_week(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    # 4/6 workouts, 4/7 nutrition days
    successful = ctx.workout_completion_rate >= 0.66 and ctx.nutrition_consistency_rate >= 0.57

    if not successful and ctx.week_type == "bad":
        return ProgramAdjustmentDecision(
            action="recovery",
            explanation="Recovery week wasn't successful. Extending recovery another week.",
            changes=ProgramChanges(
                volume_adjustment=-0.3,
                frequency_adjustment=-2,
                intensity_adjustment="maintain",
                extend_recovery=True,
            ),
            focus_message="Let's try recovery again. No rush. We'll get through this.",
        )
    return ProgramAdjustmentDecision(
        action="maintain",
        explanation=(
            "Recovery successful! Returning to regular program but maintaining weights."
        ),
        changes=ProgramChanges(
            weight_adjustment=0.0,
            volume_adjustment=0.3,
            frequency_adjustment=2,
            intensity_adjustment="maintain",
        ),
        focus_message="Welcome back! Same weights, full volume. Let's build momentum.",
    )


def _default_maintain(ctx: AdjustmentContext) -> ProgramAdjustmentDecision:
    return ProgramAdjustmentDecision(
        action="maintain",
        explanation="Maintaining current program.",
        changes=ProgramChanges(weight_adjustment=0.0, intensity_adjustment="maintain"),
        focus_message="Keep up the good work!",
    )


DECISION_RULES: tuple[DecisionRule, ...] = (
    DecisionRule(
        "bad_week",
        lambda c: c.previous_week_type == "bad" or c.week_type == "bad",
        _recovery_after_bad_week,
    ),
    DecisionRule(
        "recovery_struggle",
        lambda c: _has_pattern(c, "recovery_struggle"),
        _recovery_struggle,
    ),
    DecisionRule(
        "consecutive_bad_weeks",
        lambda c: _has_pattern(c, "consecutive_bad_weeks", lambda p: p.weeks_affected >= 3),
        _consecutive_bad_weeks,
    ),
    DecisionRule(
        "slump",
        lambda c: _has_pattern(c, "slump", lambda p: p.severity == "high"),
        _slump,
    ),
    DecisionRule("excellent", lambda c: c.week_type == "excellent", _excellent_week),
    DecisionRule("good", lambda c: c.week_type == "good", _good_week),
    DecisionRule("inconsistent", lambda c: c.week_type == "inconsistent", _inconsistent_week),
    DecisionRule("recovery", lambda c: c.week_type == "recovery", _post_recovery_week),
    DecisionRule("default", lambda c: True, _default_maintain),
)


def decide_program_adjustment(context: AdjustmentContext) -> ProgramAdjustmentDecision:
    for rule in DECISION_RULES:
        if rule.guard(context):
            return rule.decide(context)
    raise AssertionError("default rule must always match")  # pragma: no cover


# ---------------------------------------------------------------------------
# Applying decisions
# ---------------------------------------------------------------------------

def _round_to_half(value: float) -> float:
    return math.floor(value * 2 + 0.5) / 2


def _scale_count(count: int, factor: float) -> int:
    return max(int(math.floor(count * factor + 0.5)), 1)


def apply_adjustments_to_workout(workout: dict[str, Any], changes: ProgramChanges) -> dict[str, Any]:
    """Return a copy of ``workout`` with weight and volume changes applied.

    Weights are rounded to the nearest 0.5; sets (or rounds, for timed
    exercises) are rounded and never drop below 1. The input is not modified.
    """
    adjusted = copy.deepcopy(workout)
    exercises = adjusted.get("exercises")
    if not exercises:
        return adjusted

    if changes.weight_adjustment:
        for exercise in exercises:
            if exercise.get("weight"):
                exercise["weight"] = _round_to_half(
                    exercise["weight"] * (1 + changes.weight_adjustment)
                )

    if changes.volume_adjustment:
        factor = 1 + changes.volume_adjustment
        for exercise in exercises:
            if exercise.get("sets"):
                exercise["sets"] = _scale_count(exercise["sets"], factor)
            elif exercise.get("rounds"):
                exercise["rounds"] = _scale_count(exercise["rounds"], factor)

    return adjusted


def generate_weekly_focus_message(decision: ProgramAdjustmentDecision, week_type: WeekType) -> str:
    return f"{decision.focus_message}\n\nLast week: {week_type}\nThis week: {decision.action}"
