"""Week classification: one categorical verdict per week.

Standard weeks are scored on workout completion, nutrition adherence and
weight progress, then run through an ordered rule list. The first rule whose
predicate matches decides the week type; the order is part of the contract
(a workout rate below 50% is a bad week no matter how good the rest looks).

Recovery weeks skip the rule list and are scored against reduced targets.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

from cadence.domains.coaching.domain_logic.coaching_models import (
    WeekClassification,
    WeeklyActivityAggregate,
    WeekScores,
    WeekType,
)

RECOVERY_WORKOUT_TARGET = 4
RECOVERY_NUTRITION_TARGET = 4

_WEEK_TYPE_LABELS: dict[str, str] = {
    "excellent": "Excellent Week",
    "good": "Good Week",
    "inconsistent": "Inconsistent Week",
    "bad": "Bad Week",
    "recovery": "Recovery Week",
}


@dataclass(frozen=True)
class _WeekMetrics:
    workout_rate: float
    nutrition_rate: float
    weight_score: float | None
    missed_days: int


class _Verdict(NamedTuple):
    week_type: WeekType
    confidence: float
    reasons: tuple[str, ...]


class ClassificationRule(NamedTuple):
    name: str
    predicate: Callable[[_WeekMetrics], bool]
    verdict: Callable[[_WeekMetrics], _Verdict]


def _pct(rate: float) -> int:
    """Round half up, as shown to users."""
    return int(math.floor(rate * 100 + 0.5))


def _weight_at_least(metrics: _WeekMetrics, floor: float) -> bool:
    return metrics.weight_score is None or metrics.weight_score >= floor


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------

def _low_workouts(m: _WeekMetrics) -> _Verdict:
    reasons = [f"Only completed {_pct(m.workout_rate)}% of workouts"]
    confidence = 0.9
    if m.missed_days >= 3:
        reasons.append(f"Missed {m.missed_days} planned workout days")
        confidence = 0.95
    return _Verdict("bad", confidence, tuple(reasons))


def _low_nutrition(m: _WeekMetrics) -> _Verdict:
    return _Verdict(
        "bad", 0.9, (f"Only hit nutrition targets {_pct(m.nutrition_rate)}% of days",)
    )


def _excellent(m: _WeekMetrics) -> _Verdict:
    reasons = [
        f"Outstanding workout completion ({_pct(m.workout_rate)}%)",
        f"Excellent nutrition adherence ({_pct(m.nutrition_rate)}%)",
    ]
    if m.weight_score is not None:
        reasons.append("Weight progress on track")
    return _Verdict("excellent", 0.95, tuple(reasons))


def _good(m: _WeekMetrics) -> _Verdict:
    reasons = [
        f"Strong workout completion ({_pct(m.workout_rate)}%)",
        f"Good nutrition adherence ({_pct(m.nutrition_rate)}%)",
    ]
    if m.weight_score is not None:
        reasons.append("Weight progress reasonable")
    return _Verdict("good", 0.85, tuple(reasons))


def _inconsistent(m: _WeekMetrics) -> _Verdict:
    reasons = [
        f"Moderate workout completion ({_pct(m.workout_rate)}%)",
        f"Moderate nutrition adherence ({_pct(m.nutrition_rate)}%)",
    ]
    if m.weight_score is not None and m.weight_score < 60:
        reasons.append("Weight progress below target")
    return _Verdict("inconsistent", 0.8, tuple(reasons))


def _fallback(m: _WeekMetrics) -> _Verdict:
    return _Verdict("bad", 0.75, ("Performance below minimum thresholds",))


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("low_workouts", lambda m: m.workout_rate < 0.5, _low_workouts),
    ClassificationRule("low_nutrition", lambda m: m.nutrition_rate < 0.5, _low_nutrition),
    ClassificationRule(
        "excellent",
        lambda m: m.workout_rate >= 0.9 and m.nutrition_rate >= 0.85 and _weight_at_least(m, 80),
        _excellent,
    ),
    ClassificationRule(
        "good",
        lambda m: m.workout_rate >= 0.7 and m.nutrition_rate >= 0.7 and _weight_at_least(m, 60),
        _good,
    ),
    ClassificationRule(
        "inconsistent",
        lambda m: m.workout_rate >= 0.5 and m.nutrition_rate >= 0.5,
        _inconsistent,
    ),
    ClassificationRule("fallback", lambda m: True, _fallback),
)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def calculate_weight_progress_score(
    weight_change: float | None,
    weight_change_target: float,
) -> float | None:
    """Score weekly weight change against its target on a 0-100 scale.

    Returns None when there is no weigh-in data or no target to compare with.
    """
    if weight_change is None or weight_change_target == 0:
        return None

    ratio = weight_change / weight_change_target

    if 0.9 <= ratio <= 1.1:
        return 100.0
    if 0.8 <= ratio <= 1.2:
        return 80.0
    if 0.7 <= ratio <= 1.3:
        return 60.0
    if ratio < 0.7:
        return max(ratio * 100, 0.0)
    if ratio > 1.3:
        excess = ratio - 1.0
        return max(60 - excess * 100, 20.0)
    return 50.0


def classify_week(
    aggregate: WeeklyActivityAggregate,
    is_recovery_week: bool = False,
) -> WeekClassification:
    """Classify one week. Pure: the same aggregate always yields the same result."""
    if is_recovery_week:
        return _classify_recovery_week(aggregate)

    workout_rate = aggregate.workout_completion_rate
    nutrition_rate = aggregate.nutrition_consistency_rate
    weight_score = calculate_weight_progress_score(
        aggregate.weight_change, aggregate.weight_change_target
    )

    workout_score = workout_rate * 100
    nutrition_score = nutrition_rate * 100
    if weight_score is not None:
        overall = workout_score * 0.4 + nutrition_score * 0.4 + weight_score * 0.2
    else:
        overall = workout_score * 0.5 + nutrition_score * 0.5

    scores = WeekScores(
        workout=workout_score,
        nutrition=nutrition_score,
        weight=weight_score,
        overall=overall,
    )
    metrics = _WeekMetrics(
        workout_rate=workout_rate,
        nutrition_rate=nutrition_rate,
        weight_score=weight_score,
        missed_days=len(aggregate.missed_days),
    )

    for rule in CLASSIFICATION_RULES:
        if rule.predicate(metrics):
            verdict = rule.verdict(metrics)
            return WeekClassification(
                week_type=verdict.week_type,
                confidence=verdict.confidence,
                reasons=verdict.reasons,
                scores=scores,
            )

    raise AssertionError("fallback rule must always match")  # pragma: no cover


def _classify_recovery_week(aggregate: WeeklyActivityAggregate) -> WeekClassification:
    completed = aggregate.workouts_completed
    days_hit = aggregate.nutrition_days_hit_target

    workout_score = min(completed / RECOVERY_WORKOUT_TARGET, 1.0) * 100
    nutrition_score = min(days_hit / RECOVERY_NUTRITION_TARGET, 1.0) * 100
    overall = (workout_score + nutrition_score) / 2

    reasons = ["Recovery week with adjusted goals"]
    if completed >= RECOVERY_WORKOUT_TARGET:
        reasons.append(
            f"Completed {completed} workouts (recovery target: {RECOVERY_WORKOUT_TARGET})"
        )
    else:
        reasons.append(f"Completed {completed}/{RECOVERY_WORKOUT_TARGET} recovery workouts")
    if days_hit >= RECOVERY_NUTRITION_TARGET:
        reasons.append(
            f"Hit nutrition targets {days_hit} days (recovery target: {RECOVERY_NUTRITION_TARGET})"
        )

    return WeekClassification(
        week_type="recovery",
        confidence=0.9 if overall >= 75 else 0.7,
        reasons=tuple(reasons),
        scores=WeekScores(
            workout=workout_score,
            nutrition=nutrition_score,
            weight=None,
            overall=overall,
        ),
    )


def get_week_type_label(week_type: WeekType) -> str:
    return _WEEK_TYPE_LABELS[week_type]
