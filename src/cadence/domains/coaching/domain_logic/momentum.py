"""Momentum score: a 0-100 weekly adherence score.

Scoring breakdown (each component only counts when there is real data):
    Workout completion   40 pts
    Nutrition tracking   30 pts
    Goal adherence       20 pts
    Consistency streak   10 pts
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from cadence.domains.coaching.domain_logic.coaching_models import (
    MomentumTier,
    WeeklyActivityAggregate,
)

WORKOUT_POINTS = 40
NUTRITION_POINTS = 30
GOAL_POINTS = 20
STREAK_POINTS = 10

# kg of weekly weight-change error before weight adherence hits zero
WEIGHT_TOLERANCE_KG = 2.0
STREAK_FULL_DAYS = 7


@dataclass(frozen=True)
class MomentumInput:
    workouts_completed: int
    workouts_scheduled: int
    meals_logged: int
    target_meals_per_day: int
    weekly_weight_change: float
    target_weight_change: float
    average_calorie_deviation: float   # 0-1 ratio
    current_streak: int                # days


@dataclass(frozen=True)
class MomentumTierInfo:
    tier: MomentumTier
    message: str


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def momentum_input_from_aggregate(aggregate: WeeklyActivityAggregate) -> MomentumInput:
    """Project a weekly aggregate onto the scorer's inputs."""
    return MomentumInput(
        workouts_completed=aggregate.workouts_completed,
        workouts_scheduled=aggregate.workouts_planned,
        meals_logged=aggregate.meals_logged,
        target_meals_per_day=aggregate.target_meals_per_day,
        weekly_weight_change=aggregate.weight_change or 0.0,
        target_weight_change=aggregate.weight_change_target,
        average_calorie_deviation=aggregate.avg_calorie_deviation,
        current_streak=aggregate.current_streak,
    )


def calculate_momentum_score(data: MomentumInput) -> int:
    """Return the momentum score as an integer in [0, 100]."""
    score = 0.0

    if data.workouts_completed > 0 and data.workouts_scheduled > 0:
        workout_rate = data.workouts_completed / data.workouts_scheduled
        score += min(workout_rate, 1.0) * WORKOUT_POINTS

    if data.meals_logged > 0:
        expected_meals = 7 * data.target_meals_per_day
        nutrition_rate = data.meals_logged / expected_meals if expected_meals > 0 else 0.0
        score += min(nutrition_rate, 1.0) * NUTRITION_POINTS

    if data.weekly_weight_change != 0 or data.meals_logged > 0:
        weight_diff = abs(data.weekly_weight_change - data.target_weight_change)
        weight_adherence = max(0.0, 1 - weight_diff / WEIGHT_TOLERANCE_KG)
        calorie_adherence = (
            max(0.0, 1 - data.average_calorie_deviation) if data.meals_logged > 0 else 0.0
        )
        score += (weight_adherence * 0.6 + calorie_adherence * 0.4) * GOAL_POINTS

    if data.current_streak >= 1:
        score += min(data.current_streak / STREAK_FULL_DAYS, 1.0) * STREAK_POINTS

    # Halves round up
    return int(math.floor(_clamp(score, 0, 100) + 0.5))


def get_momentum_tier(score: int) -> MomentumTierInfo:
    """Map a score to its display tier."""
    if score >= 85:
        return MomentumTierInfo("fire", "On fire! Incredible consistency")
    if score >= 70:
        return MomentumTierInfo("strong", "Going strong! Keep it up")
    if score >= 50:
        return MomentumTierInfo("good", "Good progress! Stay consistent")
    if score >= 30:
        return MomentumTierInfo("building", "Building momentum...")
    return MomentumTierInfo("start", "Let's get started!")


def calculate_streak(
    activity_dates: Iterable[date | datetime],
    *,
    today: date | None = None,
) -> int:
    """Count consecutive active calendar days ending today or yesterday.

    Several activities on the same day count once. A streak whose most recent
    day is older than yesterday is broken and returns 0.
    """
    days = {d.date() if isinstance(d, datetime) else d for d in activity_dates}
    if not days:
        return 0

    today = today or date.today()
    most_recent = max(days)
    if most_recent not in (today, today - timedelta(days=1)):
        return 0

    streak = 0
    cursor = most_recent
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def get_recommended_action(data: MomentumInput) -> str:
    """Point at the weakest area of the week."""
    workout_rate = (
        data.workouts_completed / data.workouts_scheduled if data.workouts_scheduled > 0 else 0.0
    )
    expected_meals = 7 * data.target_meals_per_day
    nutrition_rate = data.meals_logged / expected_meals if expected_meals > 0 else 0.0

    if workout_rate < 0.5 and workout_rate < nutrition_rate:
        return "Focus on completing your scheduled workouts"
    if nutrition_rate < 0.5:
        return "Try to log your meals more consistently"
    if data.current_streak < 3:
        return "Build a consistent daily habit"
    return "Keep up the great work!"
