"""Structured weekly summary handed to whatever turns decisions into prose.

The summary is plain JSON-compatible data. It never contains generated text
beyond the fixed rule messages; privacy minimisation happens in
``cadence.core.privacy.policy``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

from cadence.domains.coaching.domain_logic.coaching_models import (
    DetectedPattern,
    GoalAdjustmentProposal,
    GoalProgress,
    ProgramAdjustmentDecision,
    WeekPerformanceRecord,
)
from cadence.domains.coaching.domain_logic.goal_adjustment import format_goal_adjustment_message
from cadence.domains.coaching.domain_logic.goal_progress import get_goal_status_message
from cadence.domains.coaching.domain_logic.momentum import get_momentum_tier
from cadence.domains.coaching.domain_logic.pattern_detector import prioritize_interventions
from cadence.domains.coaching.domain_logic.week_classifier import get_week_type_label


def _metrics(record: WeekPerformanceRecord) -> dict[str, Any]:
    tier = get_momentum_tier(record.momentum_score)
    return {
        "week_start": record.week_start.isoformat(),
        "week_end": record.week_end.isoformat() if record.week_end else None,
        "momentum_score": record.momentum_score,
        "momentum_tier": tier.tier,
        "workout_completion_rate": record.workout_completion_rate,
        "nutrition_consistency_rate": record.nutrition_consistency_rate,
        "weight_change": record.weight_change,
        "weight_change_target": record.weight_change_target,
        "weight_status": record.weight_status,
        "avg_feeling": record.avg_feeling,
        "avg_extra_rest_seconds": record.avg_extra_rest,
    }


def _progress(progress: GoalProgress | None) -> dict[str, Any] | None:
    if progress is None:
        return None
    return {
        "status": progress.status,
        "progress_percent": progress.progress_percent,
        "remaining_change": progress.remaining_change,
        "weeks_elapsed": progress.weeks_elapsed,
        "days_to_goal": progress.days_to_goal,
        "is_on_track": progress.is_on_track,
        "message": get_goal_status_message(progress),
    }


def build_weekly_summary(
    record: WeekPerformanceRecord,
    patterns: Sequence[DetectedPattern],
    progress: GoalProgress | None,
    proposal: GoalAdjustmentProposal | None,
    decision: ProgramAdjustmentDecision,
) -> dict[str, Any]:
    """Collect one week's decisions into a nested dict.

    Keys: ``metrics``, ``classification``, ``patterns``, ``progress``,
    ``goal_adjustment``, ``program`` and ``user_context`` (free text the user
    supplied about a bad week, if any).
    """
    goal_adjustment: dict[str, Any] | None = None
    if proposal is not None and proposal.should_trigger:
        goal_adjustment = {
            "trigger_type": proposal.trigger_type,
            "trigger_reason": proposal.trigger_reason,
            "weeks_off_track": proposal.weeks_off_track,
            "confidence": proposal.confidence,
            "suggested_goal": asdict(proposal.suggested_goal),
            "message": format_goal_adjustment_message(proposal),
        }

    return {
        "metrics": _metrics(record),
        "classification": {
            "week_type": record.week_type,
            "label": get_week_type_label(record.week_type),
            "confidence": record.confidence,
            "reasons": list(record.reasons),
            "is_bad_week": record.is_bad_week,
            "is_recovery_week": record.is_recovery_week,
            "highlights": list(record.highlights),
            "issues": list(record.issues),
        },
        "patterns": {
            "detected": [p.to_dict() for p in patterns],
            "interventions": [p.type for p in prioritize_interventions(patterns)],
        },
        "progress": _progress(progress),
        "goal_adjustment": goal_adjustment,
        "program": {
            "action": decision.action,
            "explanation": decision.explanation,
            "changes": decision.changes.to_dict(),
            "focus_message": decision.focus_message,
        },
        "user_context": {
            "bad_week_reasons": list(record.bad_week_reasons or []),
            "user_notes": record.user_notes,
        },
    }
