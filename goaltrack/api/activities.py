"""Activity API endpoints.

GET    /api/v1/activities             - All activities across the user's goals
GET    /api/v1/activities/daily       - Minutes/progress per day (chart feed)
GET    /api/v1/activities/streaks     - Consecutive active-day streaks
PATCH  /api/v1/activities/{id}        - Partial update, goal recomputed
DELETE /api/v1/activities/{id}        - Delete, goal recomputed
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.api.goals import check_activity_limits
from goaltrack.api.schemas import (
    ActivityResponse,
    DailyActivityPointResponse,
    StreakReportResponse,
    UpdateActivityRequest,
)
from goaltrack.auth.dependencies import get_current_user
from goaltrack.config import Settings, get_settings
from goaltrack.database import get_db_session
from goaltrack.models.user import User
from goaltrack.services.activity_service import ActivityService
from goaltrack.services.reporting import ReportingService

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/activities", tags=["activities"])


def _activity_not_found(activity_id: uuid.UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Activity {activity_id} not found",
    )


@router.get("", response_model=list[ActivityResponse])
async def list_activities(
    goal_id: uuid.UUID | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[ActivityResponse]:
    """Activities across all of the user's goals, most recent first."""
    activities = await ActivityService(db).get_activities_by_user(
        current_user.id, goal_id=goal_id
    )
    return [ActivityResponse.model_validate(a) for a in activities]


@router.get("/daily", response_model=list[DailyActivityPointResponse])
async def daily_activity(
    days: int | None = Query(default=None, ge=1, le=366),
    goal_id: uuid.UUID | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> list[DailyActivityPointResponse]:
    series = await ReportingService(db).daily_activity_series(
        current_user.id,
        days or settings.default_series_days,
        goal_id=goal_id,
    )
    return [DailyActivityPointResponse.model_validate(p) for p in series]


@router.get("/streaks", response_model=StreakReportResponse)
async def activity_streaks(
    days: int | None = Query(default=None, ge=1, le=366),
    goal_id: uuid.UUID | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> StreakReportResponse:
    report = await ReportingService(db).activity_streaks(
        current_user.id,
        days or settings.default_streak_days,
        goal_id=goal_id,
    )
    return StreakReportResponse.model_validate(report)


@router.patch("/{activity_id}", response_model=ActivityResponse)
async def update_activity(
    activity_id: uuid.UUID,
    request: UpdateActivityRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> ActivityResponse:
    changes = request.model_dump(exclude_unset=True)
    check_activity_limits(
        settings, changes.get("minutes_spent"), changes.get("progress_increment")
    )

    try:
        activity = await ActivityService(db).update_activity(
            activity_id, current_user.id, changes
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    if activity is None:
        raise _activity_not_found(activity_id)

    log.info("activities.updated", activity_id=str(activity_id), fields=sorted(changes))

    return ActivityResponse.model_validate(activity)


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
    activity_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    deleted = await ActivityService(db).delete_activity(activity_id, current_user.id)
    if not deleted:
        raise _activity_not_found(activity_id)

    log.info("activities.deleted", activity_id=str(activity_id))

    return Response(status_code=status.HTTP_204_NO_CONTENT)
