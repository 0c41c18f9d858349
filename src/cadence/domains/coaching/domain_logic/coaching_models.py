"""Coaching domain models shared by the weekly decision engines.

Every engine in ``domain_logic`` is a pure function over these types. Enums are
``Literal`` aliases so callers can match on plain strings (they round-trip
through SQLite and JSON unchanged).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Discriminants
# ---------------------------------------------------------------------------

WeekType = Literal["excellent", "good", "inconsistent", "bad", "recovery"]
Severity = Literal["low", "medium", "high"]
PatternType = Literal[
    "consecutive_bad_weeks",
    "slump",
    "excellent_streak",
    "good_streak",
    "yo_yo",
    "goal_drift",
    "consistent_performer",
    "recovery_struggle",
]
GoalStatus = Literal["ahead", "on_track", "behind", "off_track", "goal_reached"]
GoalPhase = Literal["weight_gain", "weight_loss", "strength", "cardio"]
WeightStatus = Literal["on_track", "above_target", "below_target"]
MomentumTier = Literal["fire", "strong", "good", "building", "start"]
ProgramAction = Literal["progress", "maintain", "reduce", "recovery"]
IntensityChange = Literal["increase", "maintain", "decrease"]
AdjustmentType = Literal["easier", "harder", "maintain_target_slower_pace"]
TriggerType = Literal["ai_suggestion", "pattern_detected", "user_initiated"]
Feeling = Literal["Easy", "Good", "Hard"]

GOOD_WEEK_TYPES: frozenset[str] = frozenset({"good", "excellent"})
STRUGGLING_WEEK_TYPES: frozenset[str] = frozenset({"bad", "inconsistent"})

# Easy=1.0, Good=0.75, Hard=0.5
FEELING_SCALE: dict[str, float] = {"Easy": 1.0, "Good": 0.75, "Hard": 0.5}


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WeeklyActivityAggregate:
    """One week of raw facts, built by an external aggregator."""

    workouts_planned: int
    workouts_completed: int
    nutrition_days_hit_target: int           # 0-7
    weight_change_target: float = 0.0        # kg/week, negative for loss
    weight_change: float | None = None       # kg over the week, None if no weigh-ins
    missed_days: tuple[str, ...] = ()
    exercise_feelings: tuple[str, ...] = ()  # "Easy" | "Good" | "Hard"
    extra_rest_seconds: tuple[float, ...] = ()
    meals_logged: int = 0
    target_meals_per_day: int = 3
    avg_calorie_deviation: float = 0.0       # 0-1 ratio from target
    avg_protein_deviation: float = 0.0
    current_streak: int = 0                  # days
    week_start: date | None = None
    week_end: date | None = None
    weight_start: float | None = None
    weight_end: float | None = None
    avg_calories: int | None = None
    avg_protein: int | None = None
    program_week: int = 1                    # consecutive weeks in the current program

    @property
    def workout_completion_rate(self) -> float:
        if self.workouts_planned <= 0:
            return 0.0
        return self.workouts_completed / self.workouts_planned

    @property
    def nutrition_consistency_rate(self) -> float:
        return self.nutrition_days_hit_target / 7


@dataclass(frozen=True)
class WeighIn:
    """A single body-weight measurement."""

    weight: float
    measured_at: datetime


# ---------------------------------------------------------------------------
# Classification / history
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WeekScores:
    """Component scores on a 0-100 scale."""

    workout: float
    nutrition: float
    weight: float | None
    overall: float


@dataclass(frozen=True)
class WeekClassification:
    week_type: WeekType
    confidence: float
    reasons: tuple[str, ...]
    scores: WeekScores


@dataclass
class WeekPerformanceRecord:
    """Persisted result of classifying one week (append-only per user/week)."""

    week_start: date
    week_type: WeekType
    momentum_score: int
    confidence: float = 0.0
    scores: WeekScores | None = None
    is_bad_week: bool = False
    is_recovery_week: bool = False
    weight_change: float | None = None
    weight_change_target: float = 0.0
    workout_completion_rate: float = 0.0
    nutrition_consistency_rate: float = 0.0
    week_end: date | None = None
    user_id: str = ""
    id: str = ""
    reasons: list[str] = field(default_factory=list)
    weight_status: WeightStatus | None = None
    avg_feeling: float | None = None
    avg_extra_rest: float | None = None
    highlights: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    recovery_from_week: str | None = None
    # User-supplied context; may be patched once after creation
    bad_week_reasons: list[str] | None = None
    user_notes: str | None = None
    created_at: str = ""


@dataclass(frozen=True)
class DetectedPattern:
    type: PatternType
    severity: Severity
    description: str
    recommendation: str
    intervention_required: bool
    weeks_affected: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GoalState:
    """Long-term weight target for one user."""

    goal_start_weight: float
    goal_start_date: datetime
    target_weight_min: float
    target_weight_max: float
    goal_weekly_rate: float                  # kg/week, positive gain, negative loss
    actual_weekly_rate: float | None = None  # derived from weigh-ins
    current_phase: GoalPhase = "weight_loss"

    @property
    def target_mid(self) -> float:
        return (self.target_weight_min + self.target_weight_max) / 2


@dataclass(frozen=True)
class GoalProgress:
    current_weight: float
    total_change: float
    current_change: float
    progress_percent: float                  # clamped to [0, 100]
    remaining_change: float
    weeks_elapsed: float
    weeks_remaining: float | None
    estimated_completion: datetime | None
    is_on_track: bool
    status: GoalStatus
    days_to_goal: int | None


@dataclass(frozen=True)
class SuggestedGoal:
    target_weight_min: float
    target_weight_max: float
    weekly_rate: float
    reasoning: str
    adjustment_type: AdjustmentType


@dataclass(frozen=True)
class GoalAdjustmentProposal:
    should_trigger: bool
    trigger_type: TriggerType
    trigger_reason: str
    weeks_off_track: int
    suggested_goal: SuggestedGoal
    confidence: float


# ---------------------------------------------------------------------------
# Program adjustment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProgramChanges:
    """Relative changes for next week's program.

    ``None`` means the decision does not touch that dimension.
    """

    weight_adjustment: float | None = None   # 0.05 = +5%
    volume_adjustment: float | None = None   # applied to sets / rounds
    frequency_adjustment: int | None = None  # workout days per week
    intensity_adjustment: IntensityChange | None = None
    add_deload: bool = False
    extend_recovery: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProgramAdjustmentDecision:
    action: ProgramAction
    explanation: str
    changes: ProgramChanges
    focus_message: str
