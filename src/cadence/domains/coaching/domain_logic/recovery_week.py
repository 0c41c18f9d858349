"""Recovery-week planning after a bad week.

A recovery week lowers volume and frequency, pauses progression and keeps
the previous weights. Workouts are plain dicts shaped like the program
generator's output::

    {"name": ..., "type": "strength_upper", "exercises": [
        {"name": "Bench Press", "type": "reps", "sets": 4, "reps": 8, "weight": 60.0},
        {"name": "Rower", "type": "timed", "rounds": 5, "workTime": 40, "restTime": 20},
    ]}
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from cadence.domains.coaching.domain_logic.coaching_models import WeekType


COMPOUND_KEYWORDS = (
    "squat",
    "deadlift",
    "bench",
    "press",
    "row",
    "pull-up",
    "chin-up",
    "lunge",
    "clean",
    "snatch",
)

RECOVERY_DAYS = ("Monday", "Wednesday", "Friday", "Sunday")
RECOVERY_SET_FACTOR = 0.7
MIN_RECOVERY_SETS = 2
RECOVERY_NOTES = "Recovery week - reduced volume, same weights"

_GOAL_FOCUS: dict[str, str] = {
    "strength": "Maintain strength with lower volume. Focus on perfect form and showing up.",
    "cardio": "Keep moving, but don't chase PR's. Rebuild your aerobic base.",
    "weight_gain": "Hit your protein and keep lifting. Gains happen when you're consistent.",
    "weight_loss": "One meal logged per day. Show up for your workouts. That's enough.",
}
_DEFAULT_FOCUS = "Focus on consistency. Volume is lower to help you rebuild momentum."

NUTRITION_GUIDANCE = (
    "Log ONE meal per day minimum. We're not aiming for perfection, just staying connected "
    "to your nutrition. Pick your easiest meal (breakfast works great) and make it a habit."
)


@dataclass(frozen=True)
class RecoveryWeekConfig:
    target_workouts: int = 4
    target_nutrition_days: int = 4
    pause_progression: bool = True
    simplify_workouts: bool = True
    maintain_weights: bool = True
    focus_message: str = (
        "This week is about getting back on track. Lower volume, same intensity. Just show up."
    )


@dataclass(frozen=True)
class RecoveryEvaluation:
    successful: bool
    message: str
    next_step: str


@dataclass(frozen=True)
class RecoveryWeekProgram:
    workouts: dict[str, dict[str, Any]]
    weekly_focus: str
    nutrition_guidance: str
    recovery_notes: str


def get_recovery_week_config() -> RecoveryWeekConfig:
    return RecoveryWeekConfig()


def should_generate_recovery_week(
    week_type: WeekType,
    previous_week_type: WeekType | None = None,
) -> bool:
    """True after a bad week, or when a recovery week is followed by a bad one."""
    if previous_week_type == "bad":
        return True
    return week_type == "bad" and previous_week_type == "recovery"


def evaluate_recovery_success(workouts_completed: int, nutrition_days_hit_target: int) -> RecoveryEvaluation:
    config = get_recovery_week_config()
    workouts_ok = workouts_completed >= config.target_workouts
    nutrition_ok = nutrition_days_hit_target >= config.target_nutrition_days

    if workouts_ok and nutrition_ok:
        return RecoveryEvaluation(
            True,
            f"Great job! You completed {workouts_completed}/{config.target_workouts} workouts "
            f"and hit nutrition {nutrition_days_hit_target}/{config.target_nutrition_days} days.",
            "You're ready to return to your normal program with progression.",
        )
    if workouts_ok:
        return RecoveryEvaluation(
            False,
            "Good workout consistency, but nutrition needs attention.",
            "Continue with recovery goals for one more week, focusing on nutrition.",
        )
    if nutrition_ok:
        return RecoveryEvaluation(
            False,
            "Nutrition is on track, but workouts need more consistency.",
            "Continue with recovery goals for one more week, focusing on showing up.",
        )
    return RecoveryEvaluation(
        False,
        "This week was still challenging. That's okay.",
        "Let's extend recovery another week. We'll get through this together.",
    )


# ---------------------------------------------------------------------------
# Program generation
# ---------------------------------------------------------------------------

def is_compound_exercise(name: str) -> bool:
    lowered = name.lower()
    return any(keyword in lowered for keyword in COMPOUND_KEYWORDS)


def _workout_score(workout: Mapping[str, Any]) -> int:
    workout_type = workout.get("type") or ""
    score = 0
    if "strength" in workout_type:
        score += 10
    if "compound" in workout_type:
        score += 8
    if "full_body" in workout_type:
        score += 7
    exercises = workout.get("exercises") or []
    score += 2 * sum(1 for ex in exercises if is_compound_exercise(ex.get("name", "")))
    return score


def _reduce(count: int) -> int:
    return max(math.ceil(count * RECOVERY_SET_FACTOR), MIN_RECOVERY_SETS)


def _simplify_workout(workout: Mapping[str, Any]) -> dict[str, Any]:
    simplified = copy.deepcopy(dict(workout))
    exercises = simplified.get("exercises") or []

    kept = [ex for ex in exercises if is_compound_exercise(ex.get("name", ""))]
    if not kept:
        kept = exercises[:3]

    for exercise in kept:
        if exercise.get("sets"):
            exercise["sets"] = _reduce(exercise["sets"])
        if exercise.get("rounds"):
            exercise["rounds"] = _reduce(exercise["rounds"])

    simplified["exercises"] = kept
    simplified["notes"] = RECOVERY_NOTES
    return simplified


def generate_recovery_week_program(
    previous_workouts: Mapping[str, Mapping[str, Any]],
    primary_goal: str,
) -> RecoveryWeekProgram:
    """Build a reduced program from last week's workouts.

    Keeps the highest-scoring workouts (strength/compound/full-body types and
    compound exercises score higher; ties keep their input order), strips
    accessories and cuts sets to 70%. Weights are untouched.
    """
    config = get_recovery_week_config()
    ranked = sorted(previous_workouts.values(), key=_workout_score, reverse=True)
    selected = ranked[: config.target_workouts]

    workouts: dict[str, dict[str, Any]] = {}
    for index, workout in enumerate(selected):
        simplified = _simplify_workout(workout)
        simplified["dayOfWeek"] = RECOVERY_DAYS[index]
        simplified["isRecoveryWorkout"] = True
        workouts[f"workout_{index + 1}"] = simplified

    return RecoveryWeekProgram(
        workouts=workouts,
        weekly_focus=_GOAL_FOCUS.get(primary_goal, _DEFAULT_FOCUS),
        nutrition_guidance=NUTRITION_GUIDANCE,
        recovery_notes=config.focus_message,
    )
