"""Tests for weekly summary minimisation by privacy mode."""

from __future__ import annotations

import pytest

from cadence.core.privacy.policy import PRIVACY_MODES, minimize_weekly_summary


def _summary() -> dict:
    return {
        "metrics": {
            "momentum_score": 62,
            "workout_completion_rate": 0.666666,
            "nutrition_consistency_rate": 0.714285,
            "weight_change": -0.34,
        },
        "classification": {"week_type": "inconsistent", "confidence": 0.8, "reasons": ["x"]},
        "patterns": {"detected": [], "interventions": []},
        "progress": {
            "status": "behind",
            "progress_percent": 41.234,
            "remaining_change": -5.3,
            "message": "You're 41% complete but a bit behind schedule.",
        },
        "goal_adjustment": None,
        "program": {"action": "maintain", "changes": {"weight_adjustment": 0.0}},
        "user_context": {
            "bad_week_reasons": ["sick", "travel"],
            "user_notes": "Flu from Tuesday",
        },
    }


class TestMinimizeWeeklySummary:
    def test_modes(self):
        assert PRIVACY_MODES == ("strict", "standard", "explicit")

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError, match="Unknown privacy mode"):
            minimize_weekly_summary(_summary(), "open")

    def test_strict_drops_user_context(self):
        result = minimize_weekly_summary(_summary(), "strict")
        assert "user_context" not in result
        assert "Flu" not in str(result)

    def test_strict_drops_remaining_distance(self):
        result = minimize_weekly_summary(_summary(), "strict")
        assert "remaining_change" not in result["progress"]
        assert result["progress"]["status"] == "behind"

    def test_strict_rounds_to_one_decimal(self):
        result = minimize_weekly_summary(_summary(), "strict")
        assert result["metrics"]["workout_completion_rate"] == 0.7
        assert result["progress"]["progress_percent"] == 41.2
        assert result["metrics"]["momentum_score"] == 62

    def test_strict_without_progress(self):
        summary = _summary()
        summary["progress"] = None
        assert minimize_weekly_summary(summary, "strict")["progress"] is None

    def test_standard_keeps_reasons_not_notes(self):
        result = minimize_weekly_summary(_summary(), "standard")
        assert result["user_context"] == {"bad_week_reasons": ["sick", "travel"]}
        assert result["progress"]["remaining_change"] == -5.3
        assert result["metrics"]["nutrition_consistency_rate"] == 0.71

    def test_standard_without_user_context(self):
        summary = _summary()
        del summary["user_context"]
        result = minimize_weekly_summary(summary, "standard")
        assert result["user_context"] == {"bad_week_reasons": []}

    def test_explicit_keeps_everything(self):
        summary = _summary()
        result = minimize_weekly_summary(summary, "explicit")
        assert result == summary
        assert result is not summary

    def test_input_not_mutated(self):
        summary = _summary()
        minimize_weekly_summary(summary, "strict")
        assert summary == _summary()
