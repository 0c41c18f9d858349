"""Tests for the momentum score: weekly adherence scoring and tiers."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from cadence.domains.coaching.domain_logic.coaching_models import WeeklyActivityAggregate
from cadence.domains.coaching.domain_logic.momentum import (
    MomentumInput,
    calculate_momentum_score,
    calculate_streak,
    get_momentum_tier,
    get_recommended_action,
    momentum_input_from_aggregate,
)


def _momentum(**overrides) -> MomentumInput:
    defaults = dict(
        workouts_completed=0,
        workouts_scheduled=5,
        meals_logged=0,
        target_meals_per_day=3,
        weekly_weight_change=0.0,
        target_weight_change=0.0,
        average_calorie_deviation=0.0,
        current_streak=0,
    )
    defaults.update(overrides)
    return MomentumInput(**defaults)


class TestCalculateMomentumScore:
    def test_reference_week_scores_87(self):
        data = _momentum(
            workouts_completed=4,
            workouts_scheduled=5,
            meals_logged=18,
            weekly_weight_change=-0.5,
            target_weight_change=-0.5,
            average_calorie_deviation=0.1,
            current_streak=7,
        )
        # 32 + 25.71 + 19.2 + 10 = 86.91
        assert calculate_momentum_score(data) == 87
        assert get_momentum_tier(87).tier == "fire"

    def test_empty_week_scores_zero(self):
        assert calculate_momentum_score(_momentum()) == 0

    def test_workouts_only(self):
        assert calculate_momentum_score(_momentum(workouts_completed=5)) == 40

    def test_workout_rate_capped_at_full_points(self):
        assert calculate_momentum_score(_momentum(workouts_completed=7)) == 40

    def test_no_scheduled_workouts_gives_no_workout_points(self):
        data = _momentum(workouts_completed=3, workouts_scheduled=0)
        assert calculate_momentum_score(data) == 0

    def test_weight_change_without_meals_uses_weight_adherence_only(self):
        # diff 0.5kg -> adherence 0.75; no meals -> calorie adherence 0
        data = _momentum(weekly_weight_change=-1.0, target_weight_change=-0.5)
        assert calculate_momentum_score(data) == 9

    def test_weight_far_off_target_floors_at_zero(self):
        data = _momentum(weekly_weight_change=3.0, target_weight_change=-0.5)
        assert calculate_momentum_score(data) == 0

    def test_partial_streak(self):
        assert calculate_momentum_score(_momentum(current_streak=3)) == 4

    @pytest.mark.parametrize("completed,expected", [(5, 13), (3, 8)])
    def test_half_points_round_up(self, completed, expected):
        # 5/16 x 40 = 12.5, 3/16 x 40 = 7.5
        data = _momentum(workouts_completed=completed, workouts_scheduled=16)
        assert calculate_momentum_score(data) == expected

    def test_result_is_int_within_bounds(self):
        data = _momentum(
            workouts_completed=10,
            meals_logged=100,
            weekly_weight_change=-0.5,
            target_weight_change=-0.5,
            current_streak=30,
        )
        score = calculate_momentum_score(data)
        assert isinstance(score, int)
        assert score == 100


class TestGetMomentumTier:
    @pytest.mark.parametrize(
        "score,tier",
        [
            (100, "fire"),
            (85, "fire"),
            (84, "strong"),
            (70, "strong"),
            (69, "good"),
            (50, "good"),
            (49, "building"),
            (30, "building"),
            (29, "start"),
            (0, "start"),
        ],
    )
    def test_tier_boundaries(self, score, tier):
        assert get_momentum_tier(score).tier == tier

    def test_tier_has_message(self):
        assert get_momentum_tier(90).message == "On fire! Incredible consistency"


class TestCalculateStreak:
    TODAY = date(2026, 3, 10)

    def test_empty_returns_zero(self):
        assert calculate_streak([], today=self.TODAY) == 0

    def test_counts_consecutive_days_ending_today(self):
        days = [date(2026, 3, 10), date(2026, 3, 9), date(2026, 3, 8)]
        assert calculate_streak(days, today=self.TODAY) == 3

    def test_same_day_counts_once(self):
        days = [date(2026, 3, 10), date(2026, 3, 10), date(2026, 3, 9)]
        assert calculate_streak(days, today=self.TODAY) == 2

    def test_streak_ending_yesterday_survives(self):
        days = [date(2026, 3, 9), date(2026, 3, 8)]
        assert calculate_streak(days, today=self.TODAY) == 2

    def test_stale_streak_is_broken(self):
        days = [date(2026, 3, 8), date(2026, 3, 7)]
        assert calculate_streak(days, today=self.TODAY) == 0

    def test_gap_stops_count(self):
        days = [date(2026, 3, 10), date(2026, 3, 8), date(2026, 3, 7)]
        assert calculate_streak(days, today=self.TODAY) == 1

    def test_accepts_datetimes(self):
        days = [datetime(2026, 3, 10, 7, 30), datetime(2026, 3, 9, 19, 0)]
        assert calculate_streak(days, today=self.TODAY) == 2


class TestRecommendedAction:
    def test_weak_workouts(self):
        data = _momentum(workouts_completed=1, meals_logged=15)
        assert get_recommended_action(data) == "Focus on completing your scheduled workouts"

    def test_weak_nutrition(self):
        data = _momentum(workouts_completed=5, meals_logged=5)
        assert get_recommended_action(data) == "Try to log your meals more consistently"

    def test_short_streak(self):
        data = _momentum(workouts_completed=5, meals_logged=21, current_streak=1)
        assert get_recommended_action(data) == "Build a consistent daily habit"

    def test_all_good(self):
        data = _momentum(workouts_completed=5, meals_logged=21, current_streak=5)
        assert get_recommended_action(data) == "Keep up the great work!"


class TestMomentumInputFromAggregate:
    def test_projects_fields(self):
        aggregate = WeeklyActivityAggregate(
            workouts_planned=5,
            workouts_completed=4,
            nutrition_days_hit_target=6,
            weight_change_target=-0.5,
            meals_logged=18,
            avg_calorie_deviation=0.1,
            current_streak=7,
        )
        data = momentum_input_from_aggregate(aggregate)
        assert data.workouts_scheduled == 5
        assert data.workouts_completed == 4
        assert data.meals_logged == 18
        assert data.target_meals_per_day == 3
        assert data.target_weight_change == -0.5
        assert data.current_streak == 7

    def test_missing_weight_change_becomes_zero(self):
        aggregate = WeeklyActivityAggregate(
            workouts_planned=3, workouts_completed=3, nutrition_days_hit_target=5
        )
        assert momentum_input_from_aggregate(aggregate).weekly_weight_change == 0.0
