"""Multi-week pattern detection over classified week history.

Detectors run independently and may co-occur. Each one either returns a
``DetectedPattern`` or ``None`` when its signature (or the data it needs) is
absent. History is always read most-recent-first.

Detected signatures:
    consecutive_bad_weeks  leading run of bad, non-recovery weeks
    slump                  momentum falling across the last four weeks
    *_streak               leading run of good/excellent weeks
    yo_yo                  alternating good and struggling weeks
    goal_drift             weekly weight change repeatedly off target
    recovery_struggle      recovery weeks that still went badly
    consistent_performer   positive signal, only when nothing else fired
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from cadence.domains.coaching.domain_logic.coaching_models import (
    GOOD_WEEK_TYPES,
    STRUGGLING_WEEK_TYPES,
    DetectedPattern,
    Severity,
    WeekPerformanceRecord,
)

logger = logging.getLogger(__name__)

MIN_HISTORY_WEEKS = 2
SLUMP_WINDOW = 4
YO_YO_WINDOW = 6
GOAL_DRIFT_WINDOW = 4
# Fraction of the weekly target a week may miss by before it counts as off-target
GOAL_DRIFT_TOLERANCE = 0.3
LOW_MOMENTUM = 40

_GOAL_ADJUSTMENT_PATTERNS = frozenset({"goal_drift", "consecutive_bad_weeks", "slump"})


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------

def detect_consecutive_bad_weeks(history: Sequence[WeekPerformanceRecord]) -> DetectedPattern | None:
    count = 0
    for week in history:
        if week.is_bad_week and not week.is_recovery_week:
            count += 1
        else:
            break

    if count < 2:
        return None

    severity: Severity
    if count == 2:
        severity = "medium"
        recommendation = (
            "Two tough weeks in a row. Let's create a recovery plan to help you bounce back."
        )
    elif count == 3:
        severity = "high"
        recommendation = (
            "Three weeks is a pattern. We should look at your goals and see if they need adjusting."
        )
    else:
        severity = "high"
        recommendation = (
            "Extended slump detected. Let's reassess your goals together "
            "and find a sustainable path forward."
        )

    return DetectedPattern(
        type="consecutive_bad_weeks",
        severity=severity,
        description=f"{count} consecutive challenging weeks",
        recommendation=recommendation,
        intervention_required=True,
        weeks_affected=count,
    )


def detect_slump(history: Sequence[WeekPerformanceRecord]) -> DetectedPattern | None:
    if len(history) < SLUMP_WINDOW:
        return None

    scores = [w.momentum_score for w in history[:SLUMP_WINDOW]]
    # Most-recent-first: an older week scoring higher than the newer one is a decline
    declines = sum(1 for newer, older in zip(scores, scores[1:]) if newer < older)
    if declines < SLUMP_WINDOW - 1:
        return None

    avg_score = sum(scores) / len(scores)
    low = avg_score < LOW_MOMENTUM
    return DetectedPattern(
        type="slump",
        severity="high" if low else "medium",
        description="Momentum declining over the past month",
        recommendation=(
            "Performance is trending down. Let's identify what's changed and make adjustments."
        ),
        intervention_required=low,
        weeks_affected=SLUMP_WINDOW,
    )


def detect_streak(history: Sequence[WeekPerformanceRecord]) -> DetectedPattern | None:
    count = 0
    streak_type: str | None = None
    for week in history:
        if week.week_type not in GOOD_WEEK_TYPES:
            break
        count += 1
        if streak_type is None:
            streak_type = week.week_type

    if count < 3:
        return None

    return DetectedPattern(
        type="excellent_streak" if streak_type == "excellent" else "good_streak",
        severity="low",
        description=f"{count} weeks of {streak_type} performance",
        recommendation="You're crushing it! Keep this momentum going.",
        intervention_required=False,
        weeks_affected=count,
    )


def detect_yo_yo(history: Sequence[WeekPerformanceRecord]) -> DetectedPattern | None:
    if len(history) < 4:
        return None

    recent = history[:YO_YO_WINDOW]
    alternations = 0
    for current, previous in zip(recent, recent[1:]):
        current_good = current.week_type in GOOD_WEEK_TYPES
        previous_good = previous.week_type in GOOD_WEEK_TYPES
        current_bad = current.week_type in STRUGGLING_WEEK_TYPES
        previous_bad = previous.week_type in STRUGGLING_WEEK_TYPES
        if (current_good and previous_bad) or (current_bad and previous_good):
            alternations += 1

    if alternations < 3:
        return None

    return DetectedPattern(
        type="yo_yo",
        severity="medium",
        description="Performance alternating between good and challenging weeks",
        recommendation=(
            "You're capable of great weeks, but consistency is missing. "
            "Let's identify what's different on good vs. bad weeks."
        ),
        intervention_required=True,
        weeks_affected=YO_YO_WINDOW,
    )


def detect_goal_drift(history: Sequence[WeekPerformanceRecord]) -> DetectedPattern | None:
    if len(history) < 3:
        return None

    with_data = [w for w in history[:GOAL_DRIFT_WINDOW] if w.weight_change is not None]
    if len(with_data) < 3:
        return None

    off_target = 0
    total_deviation = 0.0
    for week in with_data:
        if week.weight_change_target == 0:
            continue
        deviation = abs(week.weight_change - week.weight_change_target)
        if deviation / abs(week.weight_change_target) > GOAL_DRIFT_TOLERANCE:
            off_target += 1
            total_deviation += deviation

    if off_target < 3:
        return None

    avg_deviation = total_deviation / off_target
    return DetectedPattern(
        type="goal_drift",
        severity="high",
        description="Consistently missing weight change targets",
        recommendation=(
            f"Your weight isn't changing as expected (off by ~{avg_deviation:.1f}kg/week). "
            "Let's adjust your goal to be more realistic."
        ),
        intervention_required=True,
        weeks_affected=off_target,
    )


def detect_recovery_struggle(history: Sequence[WeekPerformanceRecord]) -> DetectedPattern | None:
    recovery_weeks = [w for w in history if w.is_recovery_week][:2]
    struggling = [
        w for w in recovery_weeks if w.week_type == "bad" or w.momentum_score < LOW_MOMENTUM
    ]
    if len(struggling) < 2:
        return None

    return DetectedPattern(
        type="recovery_struggle",
        severity="high",
        description="Struggling even with reduced recovery goals",
        recommendation=(
            "Recovery weeks aren't working. Something bigger might be going on. "
            "Let's talk about what support you need."
        ),
        intervention_required=True,
        weeks_affected=len(struggling),
    )


def detect_consistent_performance(history: Sequence[WeekPerformanceRecord]) -> DetectedPattern | None:
    recent = history[:4]
    good_weeks = [w for w in recent if w.week_type in GOOD_WEEK_TYPES]
    if len(good_weeks) < 3:
        return None

    avg_momentum = sum(w.momentum_score for w in recent) / len(recent)
    return DetectedPattern(
        type="consistent_performer",
        severity="low",
        description="Steady, reliable performance over the past month",
        recommendation=(
            f"Momentum averaging {int(avg_momentum + 0.5)}/100. "
            "You're building sustainable habits. Well done!"
        ),
        intervention_required=False,
        weeks_affected=4,
    )


_DETECTORS: tuple[Callable[[Sequence[WeekPerformanceRecord]], DetectedPattern | None], ...] = (
    detect_consecutive_bad_weeks,
    detect_slump,
    detect_streak,
    detect_yo_yo,
    detect_goal_drift,
    detect_recovery_struggle,
)


def detect_patterns(history: Sequence[WeekPerformanceRecord]) -> list[DetectedPattern]:
    """Scan week history for behavioural patterns.

    Args:
        history: Classified weeks, any order; re-sorted most-recent-first.

    Returns:
        Every pattern found, possibly empty. Fewer than two weeks of
        history never yields a pattern.
    """
    if len(history) < MIN_HISTORY_WEEKS:
        return []

    ordered = sorted(history, key=lambda w: w.week_start, reverse=True)

    patterns = [p for p in (detector(ordered) for detector in _DETECTORS) if p is not None]

    if not patterns and len(ordered) >= 4:
        consistent = detect_consistent_performance(ordered)
        if consistent is not None:
            patterns.append(consistent)

    if patterns:
        logger.debug("Detected patterns: %s", [p.type for p in patterns])
    return patterns


# ---------------------------------------------------------------------------
# Pattern helpers
# ---------------------------------------------------------------------------

def prioritize_interventions(patterns: Sequence[DetectedPattern]) -> list[DetectedPattern]:
    """Patterns needing intervention, high severity first, then most weeks affected."""
    needing = [p for p in patterns if p.intervention_required]
    return sorted(
        needing,
        key=lambda p: (0 if p.severity == "high" else 1, -p.weeks_affected),
    )


def should_suggest_goal_adjustment(patterns: Sequence[DetectedPattern]) -> bool:
    return any(
        p.type in _GOAL_ADJUSTMENT_PATTERNS and p.severity == "high" for p in patterns
    )


def is_urgent_intervention(patterns: Sequence[DetectedPattern]) -> bool:
    return any(
        p.intervention_required
        and (
            p.type == "recovery_struggle"
            or (p.type == "consecutive_bad_weeks" and p.weeks_affected >= 3)
        )
        for p in patterns
    )
