"""Request / response schemas shared by the goal and activity routers."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from goaltrack.models.goal import GoalPriority, GoalStatus, GoalType


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]

# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


class CreateGoalRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=255)
    type: GoalType
    description: str | None = Field(default=None, max_length=4096)
    status: GoalStatus | None = None
    target_date: datetime | None = None
    parent_goal_id: uuid.UUID | None = None
    estimated_hours: int | None = Field(default=None, ge=0, le=100_000, strict=True)
    category: str | None = Field(default=None, max_length=100)
    priority: GoalPriority | None = None


class UpdateGoalRequest(BaseModel):
    """Partial update; only fields present in the request body are applied.

    Routes pass ``model_dump(exclude_unset=True)`` to the service so that an
    omitted field is left alone while an explicit null clears it.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4096)
    status: GoalStatus | None = None
    target_date: datetime | None = None
    completed_date: datetime | None = None
    parent_goal_id: uuid.UUID | None = None
    estimated_hours: int | None = Field(default=None, ge=0, le=100_000, strict=True)
    category: str | None = Field(default=None, max_length=100)
    priority: GoalPriority | None = None


class GoalResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    parent_goal_id: uuid.UUID | None
    title: str
    description: str | None
    type: GoalType
    status: GoalStatus
    progress: int
    time_spent: int
    estimated_hours: int | None
    category: str | None
    priority: GoalPriority
    target_date: UtcDatetime | None
    completed_date: UtcDatetime | None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    model_config = {"from_attributes": True}


class GoalsSummaryResponse(BaseModel):
    total: int
    completed: int
    in_progress: int
    time_spent: int
    by_type: dict[str, int]

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


class CreateActivityRequest(BaseModel):
    """Log time and/or progress against a goal.

    A negative minutes_spent removes that much time from the goal.
    """

    model_config = ConfigDict(extra="forbid")

    goal_id: uuid.UUID | None = Field(
        default=None,
        description="Optional; must match the goal in the URL when given",
    )
    minutes_spent: int = Field(default=0, strict=True)
    progress_increment: int = Field(default=0, ge=-100, le=100, strict=True)
    description: str | None = Field(default=None, max_length=4096)
    date: datetime | None = None


class UpdateActivityRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    minutes_spent: int | None = Field(default=None, strict=True)
    progress_increment: int | None = Field(default=None, ge=-100, le=100, strict=True)
    description: str | None = Field(default=None, max_length=4096)
    date: datetime | None = None


class ActivityResponse(BaseModel):
    id: uuid.UUID
    goal_id: uuid.UUID
    date: UtcDatetime
    description: str | None
    minutes_spent: int
    removes_time: bool
    progress_increment: int
    created_at: UtcDatetime

    model_config = {"from_attributes": True}


class DailyActivityPointResponse(BaseModel):
    date: date
    minutes: int
    hours: float
    progress: int
    count: int

    model_config = {"from_attributes": True}


class StreakDayResponse(BaseModel):
    date: date
    active: bool
    in_longest_streak: bool

    model_config = {"from_attributes": True}


class StreakReportResponse(BaseModel):
    current_streak: int
    longest_streak: int
    longest_start: date | None
    longest_end: date | None
    days: list[StreakDayResponse]

    model_config = {"from_attributes": True}
