"""Kernel boundary types: Pydantic v2 models.

Inputs (day entries, goals) come from the persistence collaborator;
outputs (achievement and goal results) go to presentation.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ContractViolation(ValueError):
    """Caller handed the kernel inputs that break its contract."""


class TimePeriod(str, Enum):
    day = "day"
    week = "week"
    month = "month"
    year = "year"
    anytime = "anytime"


class Tracking(str, Enum):
    series = "series"  # numbers are additive contributions
    trend = "trend"  # numbers are readings of one quantity


class GoalType(str, Enum):
    milestone = "milestone"
    target = "target"
    goal = "goal"


class Metric(str, Enum):
    count = "count"
    total = "total"
    mean = "mean"
    median = "median"
    min = "min"
    max = "max"
    first = "first"
    last = "last"
    range = "range"
    change = "change"
    change_percent = "change_percent"


class Source(str, Enum):
    stats = "stats"
    deltas = "deltas"
    percents = "percents"


class Condition(str, Enum):
    above = "above"
    below = "below"


class NotificationChannel(str, Enum):
    prominent = "prominent"
    toast = "toast"


class DayEntry(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    date: str  # YYYY-MM-DD
    dataset_id: str
    numbers: list[float] = Field(default_factory=list)

    @field_validator("date")
    @classmethod
    def _valid_day_key(cls, value: str) -> str:
        try:
            parsed = date.fromisoformat(value)
        except ValueError:
            raise ValueError(f"Invalid day key: {value!r}")
        if parsed.isoformat() != value:
            raise ValueError(f"Day key must be YYYY-MM-DD: {value!r}")
        return value


class GoalTarget(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    metric: Metric
    source: Source = Source.stats
    condition: Condition
    value: float


class Badge(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str = ""
    icon: str | None = None
    color: str | None = None


class Goal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    dataset_id: str
    created_at: int = 0  # epoch millis
    type: GoalType = GoalType.goal
    title: str = ""
    description: str = ""
    badge: Badge = Field(default_factory=Badge)
    target: GoalTarget
    time_period: TimePeriod
    count: int = Field(default=1, ge=1)
    consecutive: bool = False


class AchievementResult(BaseModel):
    """One completion of a goal, or the occurrence still in progress."""

    model_config = ConfigDict(frozen=True)

    id: str
    goal_id: str
    dataset_id: str
    progress: int = 0
    started_at: str | None = None
    completed_at: str | None = None
    provisional: bool = False


class GoalResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    goal: Goal
    achievements: list[AchievementResult] = Field(default_factory=list)
    completed_count: int = 0  # final completions only
    current_progress: int = 0
    first_completed_at: str | None = None
    last_completed_at: str | None = None


class NewAchievement(BaseModel):
    model_config = ConfigDict(frozen=True)

    goal: Goal
    achievement: AchievementResult
    first_completion: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def channel(self) -> NotificationChannel:
        if self.first_completion:
            return NotificationChannel.prominent
        return NotificationChannel.toast


# ---------------------------------------------------------------------------
# HTTP response shapes
# ---------------------------------------------------------------------------


class AggregateOut(BaseModel):
    date_key: str | None
    period: TimePeriod
    numbers: list[float]
    stats: dict[str, Any]
    deltas: dict[str, Any]
    percents: dict[str, Any]
    cumulatives: dict[str, Any]
    cumulative_deltas: dict[str, Any]
    cumulative_percents: dict[str, Any]
    extremes: dict[str, Any] | None = None


class AggregatesResponse(BaseModel):
    dataset_id: str
    tracking: Tracking
    period: TimePeriod
    aggregates: dict[str, AggregateOut] = Field(default_factory=dict)


class AchievementsResponse(BaseModel):
    dataset_id: str
    evaluated_on: str
    milestones: list[GoalResult] = Field(default_factory=list)
    targets: list[GoalResult] = Field(default_factory=list)
    goals: list[GoalResult] = Field(default_factory=list)
    new: list[NewAchievement] = Field(default_factory=list)
