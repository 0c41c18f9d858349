"""Tests for the week classifier: ordered rules and recovery scoring."""

from __future__ import annotations

import pytest

from cadence.domains.coaching.domain_logic.coaching_models import WeeklyActivityAggregate
from cadence.domains.coaching.domain_logic.week_classifier import (
    CLASSIFICATION_RULES,
    calculate_weight_progress_score,
    classify_week,
    get_week_type_label,
)


def _aggregate(**overrides) -> WeeklyActivityAggregate:
    defaults = dict(
        workouts_planned=5,
        workouts_completed=5,
        nutrition_days_hit_target=7,
        weight_change_target=0.0,
        weight_change=None,
    )
    defaults.update(overrides)
    return WeeklyActivityAggregate(**defaults)


class TestWeightProgressScore:
    @pytest.mark.parametrize(
        "change,expected",
        [
            (-1.0, 100.0),
            (-0.85, 80.0),
            (-1.25, 60.0),
            (-0.5, 50.0),
            (0.5, 0.0),
            (-3.0, 20.0),
        ],
    )
    def test_ratio_bands(self, change, expected):
        assert calculate_weight_progress_score(change, -1.0) == pytest.approx(expected)

    def test_no_weigh_ins_returns_none(self):
        assert calculate_weight_progress_score(None, -0.5) is None

    def test_zero_target_returns_none(self):
        assert calculate_weight_progress_score(-0.3, 0.0) is None


class TestClassifyWeek:
    def test_low_workout_rate_forces_bad_week(self):
        result = classify_week(
            _aggregate(workouts_completed=2, weight_change=-0.5, weight_change_target=-0.5)
        )
        assert result.week_type == "bad"
        assert result.confidence == 0.9
        assert result.reasons == ("Only completed 40% of workouts",)
        assert result.scores.nutrition == 100.0
        assert result.scores.weight == 100.0

    def test_missed_days_raise_bad_week_confidence(self):
        result = classify_week(
            _aggregate(workouts_completed=2, missed_days=("Mon", "Wed", "Fri"))
        )
        assert result.week_type == "bad"
        assert result.confidence == 0.95
        assert "Missed 3 planned workout days" in result.reasons

    def test_low_nutrition_is_bad_week(self):
        result = classify_week(_aggregate(nutrition_days_hit_target=3))
        assert result.week_type == "bad"
        assert result.reasons == ("Only hit nutrition targets 43% of days",)

    def test_excellent_week(self):
        result = classify_week(
            _aggregate(nutrition_days_hit_target=6, weight_change=-0.5, weight_change_target=-0.5)
        )
        assert result.week_type == "excellent"
        assert result.confidence == 0.95
        assert result.reasons[-1] == "Weight progress on track"

    def test_weak_weight_score_demotes_excellent_to_good(self):
        # ratio 0.75 -> weight score 60
        result = classify_week(
            _aggregate(nutrition_days_hit_target=6, weight_change=-0.75, weight_change_target=-1.0)
        )
        assert result.scores.weight == 60.0
        assert result.week_type == "good"
        assert result.reasons[-1] == "Weight progress reasonable"

    def test_good_week_without_weight_data(self):
        result = classify_week(_aggregate(workouts_completed=4, nutrition_days_hit_target=5))
        assert result.week_type == "good"
        assert result.confidence == 0.85
        assert len(result.reasons) == 2

    def test_inconsistent_week(self):
        result = classify_week(
            _aggregate(
                workouts_completed=3,
                nutrition_days_hit_target=4,
                weight_change=-0.2,
                weight_change_target=-0.5,
            )
        )
        assert result.week_type == "inconsistent"
        assert result.confidence == 0.8
        assert "Weight progress below target" in result.reasons

    def test_zero_target_uses_even_weighting(self):
        result = classify_week(_aggregate(workouts_completed=4, weight_change=-0.4))
        assert result.scores.weight is None
        assert result.scores.overall == pytest.approx(90.0)

    def test_weighted_overall_with_weight_score(self):
        result = classify_week(
            _aggregate(workouts_completed=4, weight_change=-0.5, weight_change_target=-0.5)
        )
        # 80*0.4 + 100*0.4 + 100*0.2
        assert result.scores.overall == pytest.approx(92.0)

    def test_no_planned_workouts_is_bad_week(self):
        result = classify_week(_aggregate(workouts_planned=0, workouts_completed=0))
        assert result.week_type == "bad"

    def test_classification_is_deterministic(self):
        aggregate = _aggregate(workouts_completed=4, nutrition_days_hit_target=5, weight_change=-0.3)
        assert classify_week(aggregate) == classify_week(aggregate)

    def test_rule_order_starts_with_hard_floors(self):
        names = [rule.name for rule in CLASSIFICATION_RULES]
        assert names[:2] == ["low_workouts", "low_nutrition"]
        assert names[-1] == "fallback"


class TestRecoveryWeek:
    def test_recovery_targets_met(self):
        result = classify_week(
            _aggregate(workouts_completed=4, nutrition_days_hit_target=4), is_recovery_week=True
        )
        assert result.week_type == "recovery"
        assert result.scores.overall == 100.0
        assert result.scores.weight is None
        assert result.confidence == 0.9
        assert result.reasons == (
            "Recovery week with adjusted goals",
            "Completed 4 workouts (recovery target: 4)",
            "Hit nutrition targets 4 days (recovery target: 4)",
        )

    def test_recovery_targets_missed(self):
        result = classify_week(
            _aggregate(workouts_completed=2, nutrition_days_hit_target=2), is_recovery_week=True
        )
        assert result.week_type == "recovery"
        assert result.scores.overall == 50.0
        assert result.confidence == 0.7
        assert "Completed 2/4 recovery workouts" in result.reasons

    def test_recovery_ignores_low_workout_rule(self):
        result = classify_week(
            _aggregate(workouts_planned=7, workouts_completed=1, nutrition_days_hit_target=1),
            is_recovery_week=True,
        )
        assert result.week_type == "recovery"


class TestWeekTypeLabel:
    def test_labels(self):
        assert get_week_type_label("bad") == "Bad Week"
        assert get_week_type_label("recovery") == "Recovery Week"
