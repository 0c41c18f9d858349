"""Stored-row models for the coaching persistence layer.

Week records, goal states and weigh-ins are stored as the domain dataclasses
themselves; only goal-adjustment proposals carry extra lifecycle state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from cadence.domains.coaching.domain_logic.coaching_models import SuggestedGoal, TriggerType

AdjustmentStatus = Literal["pending", "accepted", "declined", "modified"]
AdjustmentResponse = Literal["accepted", "declined", "modified"]


@dataclass
class StoredGoalAdjustment:
    """A goal-adjustment proposal and its resolution.

    At most one proposal per user is ``pending`` at any time. ``final_*``
    fields are set when the proposal is accepted or modified.
    """

    id: str
    user_id: str
    trigger_type: TriggerType
    trigger_reason: str
    weeks_off_track: int
    confidence: float
    suggested_goal: SuggestedGoal
    status: AdjustmentStatus = "pending"
    week_performance_id: str | None = None
    previous_target_min: float | None = None
    previous_target_max: float | None = None
    previous_weekly_rate: float | None = None
    final_target_min: float | None = None
    final_target_max: float | None = None
    final_weekly_rate: float | None = None
    resolved_at: str | None = None
    created_at: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"
