"""Goal progress tracking: pace, percent-to-goal, projection and status.

The actual weekly rate is the least-squares slope of body weight against
weeks since the first weigh-in. Status compares that rate with the goal rate;
without a usable rate it falls back to comparing achieved change with the
change expected by now.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from cadence.domains.coaching.domain_logic.coaching_models import (
    GoalProgress,
    GoalState,
    GoalStatus,
    WeighIn,
)

_WEEK = timedelta(weeks=1)

ON_TRACK_VARIANCE = 0.1
BEHIND_VARIANCE = 0.3
# Within this many weeks of the expected change counts as on track
ON_TRACK_WEEKS = 2


@dataclass(frozen=True)
class GoalProgressDisplay:
    title: str
    subtitle: str


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_goal_reached(
    current_weight: float,
    target_weight_min: float,
    target_weight_max: float,
    is_gaining_weight: bool,
) -> bool:
    if is_gaining_weight:
        return current_weight >= target_weight_min
    return current_weight <= target_weight_max


def calculate_actual_weekly_rate(weigh_ins: Sequence[WeighIn]) -> float | None:
    """Slope of weight vs. weeks since first weigh-in (kg/week).

    Returns None with fewer than two weigh-ins or when every weigh-in
    shares the same timestamp.
    """
    if len(weigh_ins) < 2:
        return None

    ordered = sorted(weigh_ins, key=lambda w: _as_utc(w.measured_at))
    first = _as_utc(ordered[0].measured_at)
    xs = [(_as_utc(w.measured_at) - first) / _WEEK for w in ordered]
    ys = [w.weight for w in ordered]

    mean_x = sum(xs) / len(xs)
    mean_y = sum(ys) / len(ys)
    numerator = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    denominator = sum((x - mean_x) ** 2 for x in xs)

    if denominator == 0:
        return None
    return numerator / denominator


def _status_from_ratio(variance_ratio: float, ahead: bool) -> GoalStatus:
    if variance_ratio < ON_TRACK_VARIANCE:
        return "on_track"
    if ahead:
        return "ahead"
    if variance_ratio < BEHIND_VARIANCE:
        return "behind"
    return "off_track"


def calculate_goal_progress(
    goal: GoalState,
    current_weight: float,
    weigh_ins: Sequence[WeighIn] = (),
    *,
    now: datetime | None = None,
) -> GoalProgress:
    """Project progress towards the goal's target range.

    ``goal.actual_weekly_rate`` is used when set; otherwise it is derived from
    ``weigh_ins``.
    """
    now = _as_utc(now or datetime.now(timezone.utc))

    actual_rate = goal.actual_weekly_rate
    if actual_rate is None:
        actual_rate = calculate_actual_weekly_rate(weigh_ins)
    goal_rate = goal.goal_weekly_rate

    target = goal.target_mid
    total_change = target - goal.goal_start_weight
    current_change = current_weight - goal.goal_start_weight
    remaining_change = target - current_weight

    progress_percent = (
        min(abs(current_change / total_change) * 100, 100.0) if total_change != 0 else 0.0
    )
    weeks_elapsed = max((now - _as_utc(goal.goal_start_date)) / _WEEK, 0.0)

    projection_rate = actual_rate if actual_rate else goal_rate
    weeks_remaining: float | None = None
    estimated_completion: datetime | None = None
    if projection_rate:
        weeks_remaining = abs(remaining_change / projection_rate)
        estimated_completion = now + weeks_remaining * _WEEK

    expected_change = goal_rate * weeks_elapsed
    variance = current_change - expected_change
    is_on_track = abs(variance) <= abs(goal_rate * ON_TRACK_WEEKS)

    gaining = total_change > 0
    losing = total_change < 0

    status: GoalStatus
    if is_goal_reached(current_weight, goal.target_weight_min, goal.target_weight_max, gaining):
        status = "goal_reached"
    elif actual_rate is not None and goal_rate != 0:
        rate_variance = abs((actual_rate - goal_rate) / goal_rate)
        ahead = (gaining and actual_rate > goal_rate) or (losing and actual_rate < goal_rate)
        status = _status_from_ratio(rate_variance, ahead)
    elif expected_change != 0:
        ahead = (gaining and variance > 0) or (losing and variance < 0)
        status = _status_from_ratio(abs(variance / expected_change), ahead)
    else:
        # Nothing expected yet (goal just started or zero rate)
        if variance == 0:
            status = "on_track"
        elif (gaining and variance > 0) or (losing and variance < 0):
            status = "ahead"
        else:
            status = "off_track"

    return GoalProgress(
        current_weight=current_weight,
        total_change=total_change,
        current_change=current_change,
        progress_percent=progress_percent,
        remaining_change=remaining_change,
        weeks_elapsed=weeks_elapsed,
        weeks_remaining=weeks_remaining,
        estimated_completion=estimated_completion,
        is_on_track=is_on_track,
        status=status,
        days_to_goal=_round_half_up(weeks_remaining * 7) if weeks_remaining is not None else None,
    )


def calculate_weeks_into_goal(goal_start_date: datetime, *, now: datetime | None = None) -> int:
    """Whole weeks since the goal started."""
    now = _as_utc(now or datetime.now(timezone.utc))
    return math.floor((now - _as_utc(goal_start_date)) / _WEEK)


def progress_warrants_adjustment(progress: GoalProgress, consecutive_weeks_off_track: int) -> bool:
    return (
        progress.status == "off_track"
        and progress.weeks_elapsed >= 3
        and consecutive_weeks_off_track >= 3
    )


def get_goal_status_message(progress: GoalProgress) -> str:
    pct = _round_half_up(progress.progress_percent)
    if progress.status == "goal_reached":
        return "You've reached your goal! Time to set a new challenge or maintain your progress."
    if progress.status == "ahead":
        return f"You're {pct}% of the way there and ahead of schedule! Keep up the great work."
    if progress.status == "on_track":
        return f"You're {pct}% complete and right on track. Consistency is key!"
    if progress.status == "behind":
        return (
            f"You're {pct}% complete but a bit behind schedule. "
            "Let's focus on getting back on track."
        )
    if progress.weeks_elapsed < 4:
        return "It's still early. Let's focus on building consistency before making any major changes."
    return "Your progress has slowed. Would you like to adjust your goal to be more sustainable?"


def format_goal_progress(progress: GoalProgress) -> GoalProgressDisplay:
    """Short title/subtitle pair for a progress widget."""
    if progress.status == "goal_reached":
        return GoalProgressDisplay("Goal Reached!", "Congratulations on achieving your target")

    title = f"{_round_half_up(progress.progress_percent)}% Complete"
    days = progress.days_to_goal
    if progress.status == "ahead":
        subtitle = f"Ahead of schedule · ~{days} days to goal" if days else "Ahead of schedule"
    elif progress.status == "on_track":
        subtitle = f"On track · ~{days} days to goal" if days else "On track"
    elif progress.status == "behind":
        subtitle = f"Slightly behind · ~{days} days to goal" if days else "Slightly behind schedule"
    else:
        subtitle = "Off track · Let's adjust your plan"
    return GoalProgressDisplay(title, subtitle)
