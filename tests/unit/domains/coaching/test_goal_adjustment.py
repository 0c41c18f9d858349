"""Tests for goal adjustment proposals: rule priority and suggested goals."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from cadence.domains.coaching.domain_logic.coaching_models import (
    DetectedPattern,
    GoalProgress,
    GoalState,
    SuggestedGoal,
)
from cadence.domains.coaching.domain_logic.goal_adjustment import (
    ADJUSTMENT_RULES,
    apply_goal_adjustment,
    check_goal_adjustment_needed,
    format_goal_adjustment_message,
    no_trigger,
)

_GOAL = GoalState(
    goal_start_weight=90.0,
    goal_start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
    target_weight_min=80.0,
    target_weight_max=82.0,
    goal_weekly_rate=-0.5,
)


def _progress(status: str = "on_track", current_weight: float = 85.0) -> GoalProgress:
    return GoalProgress(
        current_weight=current_weight,
        total_change=-9.0,
        current_change=current_weight - 90.0,
        progress_percent=55.6,
        remaining_change=81.0 - current_weight,
        weeks_elapsed=6.0,
        weeks_remaining=8.0,
        estimated_completion=None,
        is_on_track=status == "on_track",
        status=status,
        days_to_goal=56,
    )


def _pattern(type_: str, severity: str = "high", weeks: int = 3) -> DetectedPattern:
    return DetectedPattern(
        type=type_,
        severity=severity,
        description=f"{type_} description",
        recommendation="",
        intervention_required=True,
        weeks_affected=weeks,
    )


def _check(patterns=(), *, status="on_track", actual_rate=None, weeks=6):
    return check_goal_adjustment_needed(_GOAL, _progress(status), list(patterns), actual_rate, weeks)


class TestCheckGoalAdjustmentNeeded:
    def test_too_early_never_triggers(self):
        proposal = _check([_pattern("goal_drift")], actual_rate=-0.2, weeks=2)
        assert proposal.should_trigger is False

    def test_no_signal_no_trigger(self):
        proposal = _check()
        assert proposal.should_trigger is False
        assert proposal.suggested_goal.weekly_rate == -0.5

    def test_goal_drift_scales_actual_pace(self):
        proposal = _check([_pattern("goal_drift")], actual_rate=-0.2)
        assert proposal.should_trigger is True
        assert proposal.trigger_type == "pattern_detected"
        assert proposal.trigger_reason == "goal_drift description"
        assert proposal.confidence == 0.85
        assert proposal.weeks_off_track == 3
        assert proposal.suggested_goal.weekly_rate == pytest.approx(-0.15)
        assert proposal.suggested_goal.target_weight_min == 80.0
        assert proposal.suggested_goal.adjustment_type == "maintain_target_slower_pace"

    def test_goal_drift_without_rate_stops_evaluation(self):
        proposal = _check(
            [_pattern("goal_drift"), _pattern("consecutive_bad_weeks", weeks=4)],
            actual_rate=None,
        )
        assert proposal.should_trigger is False
        assert proposal.trigger_type == "pattern_detected"

    def test_goal_drift_takes_priority(self):
        proposal = _check(
            [_pattern("consecutive_bad_weeks", weeks=4), _pattern("goal_drift")],
            actual_rate=-0.2,
        )
        assert proposal.confidence == 0.85

    def test_consecutive_bad_weeks_brings_target_closer(self):
        proposal = _check([_pattern("consecutive_bad_weeks", weeks=3)])
        goal = proposal.suggested_goal
        assert proposal.should_trigger is True
        assert proposal.confidence == 0.9
        assert goal.adjustment_type == "easier"
        assert goal.target_weight_min == pytest.approx(81.6)
        assert goal.target_weight_max == pytest.approx(83.6)
        assert goal.weekly_rate == pytest.approx(-0.3)

    def test_two_bad_weeks_are_not_enough(self):
        proposal = _check([_pattern("consecutive_bad_weeks", "medium", weeks=2)])
        assert proposal.should_trigger is False

    def test_recovery_struggle_halves_pace(self):
        proposal = _check([_pattern("recovery_struggle", weeks=2)])
        goal = proposal.suggested_goal
        assert proposal.confidence == 0.95
        assert goal.target_weight_min == pytest.approx(83.0)
        assert goal.target_weight_max == pytest.approx(83.8)
        assert goal.weekly_rate == pytest.approx(-0.25)

    def test_high_slump_slows_pace(self):
        proposal = _check([_pattern("slump", weeks=4)])
        assert proposal.confidence == 0.75
        assert proposal.suggested_goal.weekly_rate == pytest.approx(-0.35)

    def test_medium_slump_ignored(self):
        assert _check([_pattern("slump", "medium", weeks=4)]).should_trigger is False

    def test_off_track_matches_actual_pace(self):
        proposal = _check(status="off_track", actual_rate=-0.2, weeks=5)
        assert proposal.should_trigger is True
        assert proposal.trigger_type == "ai_suggestion"
        assert proposal.trigger_reason == "Off-track for 5 weeks"
        assert proposal.weeks_off_track == 5
        assert proposal.suggested_goal.weekly_rate == -0.2
        assert proposal.confidence == 0.7

    def test_behind_without_rate_no_trigger(self):
        assert _check(status="behind", actual_rate=None).should_trigger is False

    def test_rule_order(self):
        assert [rule.name for rule in ADJUSTMENT_RULES] == [
            "goal_drift",
            "consecutive_bad_weeks",
            "recovery_struggle",
            "slump",
            "off_track",
        ]


class TestFormatGoalAdjustmentMessage:
    def test_triggered_message(self):
        proposal = _check([_pattern("consecutive_bad_weeks", weeks=3)])
        message = format_goal_adjustment_message(proposal)
        assert message.startswith(
            "After 3 weeks, we suggest adjusting your goal:\n\n"
            "New target: 81.6-83.6kg\n"
            "New pace: 0.3kg/week loss\n\n"
        )
        assert message.endswith(proposal.suggested_goal.reasoning)

    def test_no_trigger_is_empty(self):
        assert format_goal_adjustment_message(no_trigger(_GOAL)) == ""


class TestApplyGoalAdjustment:
    def test_restarts_goal_from_current_weight(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        suggested = SuggestedGoal(81.6, 83.6, -0.3, "", "easier")
        goal = apply_goal_adjustment(
            replace(_GOAL, actual_weekly_rate=-0.2), suggested, 85.0, now=now
        )
        assert goal.goal_start_weight == 85.0
        assert goal.goal_start_date == now
        assert goal.goal_weekly_rate == -0.3
        assert goal.target_weight_min == 81.6
        assert goal.target_weight_max == 83.6
        assert goal.actual_weekly_rate is None
        assert goal.current_phase == _GOAL.current_phase

    def test_inverted_range_is_normalised(self):
        suggested = SuggestedGoal(84.0, 82.0, -0.4, "", "easier")
        goal = apply_goal_adjustment(_GOAL, suggested, 86.0)
        assert goal.target_weight_min == 82.0
        assert goal.target_weight_max == 84.0
