"""Goals API endpoints.

GET    /api/v1/goals                      - List the user's goals (optional ?type=)
GET    /api/v1/goals/summary              - Counts and total time across goals
GET    /api/v1/goals/time-by-type         - Minutes per goal type
GET    /api/v1/goals/{id}                 - One goal
GET    /api/v1/goals/{id}/children        - Direct sub-goals
POST   /api/v1/goals                      - Create a goal
PATCH  /api/v1/goals/{id}                 - Partial update
DELETE /api/v1/goals/{id}                 - Delete goal, sub-goals and activities
GET    /api/v1/goals/{id}/activities      - Activity log of a goal
POST   /api/v1/goals/{id}/activities      - Log an activity

All endpoints are scoped to the authenticated user; another user's goal is
reported as 404.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.api.schemas import (
    ActivityResponse,
    CreateActivityRequest,
    CreateGoalRequest,
    GoalResponse,
    GoalsSummaryResponse,
    UpdateGoalRequest,
)
from goaltrack.auth.dependencies import get_current_user
from goaltrack.config import Settings, get_settings
from goaltrack.database import get_db_session
from goaltrack.models.goal import GoalType
from goaltrack.models.user import User
from goaltrack.services.activity_service import ActivityService
from goaltrack.services.goal_service import (
    GoalHierarchyError,
    GoalNotFoundError,
    GoalService,
)
from goaltrack.services.reporting import ReportingService

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/goals", tags=["goals"])


def _goal_not_found(goal_id: uuid.UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Goal {goal_id} not found",
    )


def check_activity_limits(
    settings: Settings,
    minutes_spent: int | None,
    progress_increment: int | None,
) -> None:
    """Reject activity deltas outside the configured per-activity bounds."""
    if minutes_spent is not None and abs(minutes_spent) > settings.max_activity_minutes:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"minutes_spent must be within ±{settings.max_activity_minutes}",
        )
    if (
        progress_increment is not None
        and abs(progress_increment) > settings.max_progress_increment
    ):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"progress_increment must be within ±{settings.max_progress_increment}",
        )


# ---------------------------------------------------------------------------
# Collection and reports (declared before /{goal_id} so they match first)
# ---------------------------------------------------------------------------


@router.get("", response_model=list[GoalResponse])
async def list_goals(
    goal_type: GoalType | None = Query(default=None, alias="type"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[GoalResponse]:
    """List the user's goals, most recent first."""
    service = GoalService(db)
    if goal_type is None:
        goals = await service.get_goals_by_user(current_user.id)
    else:
        goals = await service.get_goals_by_type(current_user.id, goal_type)

    log.info("goals.list", count=len(goals), type=goal_type)

    return [GoalResponse.model_validate(g) for g in goals]


@router.get("/summary", response_model=GoalsSummaryResponse)
async def goals_summary(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> GoalsSummaryResponse:
    summary = await GoalService(db).get_goals_summary(current_user.id)
    return GoalsSummaryResponse.model_validate(summary)


@router.get("/time-by-type", response_model=dict[str, int])
async def time_by_type(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> dict[str, int]:
    return await ReportingService(db).time_by_type(current_user.id)


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
async def create_goal(
    request: CreateGoalRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> GoalResponse:
    """Create a new goal for the authenticated user.

    Goals start as not_started with zero progress and time.
    """
    service = GoalService(db)
    try:
        goal = await service.create_goal(
            user_id=current_user.id,
            title=request.title,
            goal_type=request.type,
            description=request.description,
            status=request.status,
            target_date=request.target_date,
            parent_goal_id=request.parent_goal_id,
            estimated_hours=request.estimated_hours,
            category=request.category,
            priority=request.priority,
        )
    except GoalHierarchyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    log.info("goals.created", goal_id=str(goal.id))

    return GoalResponse.model_validate(goal)


# ---------------------------------------------------------------------------
# Single goal
# ---------------------------------------------------------------------------


@router.get("/{goal_id}", response_model=GoalResponse)
async def get_goal(
    goal_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> GoalResponse:
    goal = await GoalService(db).get_goal(goal_id, current_user.id)
    if goal is None:
        raise _goal_not_found(goal_id)
    return GoalResponse.model_validate(goal)


@router.get("/{goal_id}/children", response_model=list[GoalResponse])
async def list_child_goals(
    goal_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[GoalResponse]:
    service = GoalService(db)
    if await service.get_goal(goal_id, current_user.id) is None:
        raise _goal_not_found(goal_id)
    children = await service.get_goals_by_parent(goal_id, current_user.id)
    return [GoalResponse.model_validate(g) for g in children]


@router.patch("/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: uuid.UUID,
    request: UpdateGoalRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> GoalResponse:
    """Apply only the fields present in the body; null clears a field."""
    changes = request.model_dump(exclude_unset=True)
    service = GoalService(db)
    try:
        goal = await service.update_goal(goal_id, current_user.id, changes)
    except GoalHierarchyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    if goal is None:
        raise _goal_not_found(goal_id)

    log.info("goals.updated", goal_id=str(goal_id), fields=sorted(changes))

    return GoalResponse.model_validate(goal)


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_goal(
    goal_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    """Delete a goal together with all sub-goals and their activities."""
    deleted = await GoalService(db).delete_goal(goal_id, current_user.id)
    if not deleted:
        raise _goal_not_found(goal_id)

    log.info("goals.deleted", goal_id=str(goal_id))

    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Activities of a goal
# ---------------------------------------------------------------------------


@router.get("/{goal_id}/activities", response_model=list[ActivityResponse])
async def list_goal_activities(
    goal_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[ActivityResponse]:
    if await GoalService(db).get_goal(goal_id, current_user.id) is None:
        raise _goal_not_found(goal_id)
    activities = await ActivityService(db).get_activities_by_goal(goal_id)
    return [ActivityResponse.model_validate(a) for a in activities]


@router.post(
    "/{goal_id}/activities",
    response_model=ActivityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_goal_activity(
    goal_id: uuid.UUID,
    request: CreateActivityRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> ActivityResponse:
    """Log time and/or progress against a goal.

    The goal's time_spent, progress and status are recomputed from its full
    activity log in the same transaction.
    """
    if request.goal_id is not None and request.goal_id != goal_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="goal_id in body does not match the URL",
        )
    check_activity_limits(settings, request.minutes_spent, request.progress_increment)

    try:
        activity = await ActivityService(db).create_activity(
            goal_id,
            current_user.id,
            minutes_spent=request.minutes_spent,
            progress_increment=request.progress_increment,
            description=request.description,
            date=request.date,
        )
    except GoalNotFoundError:
        raise _goal_not_found(goal_id)

    log.info("goals.activity_logged", goal_id=str(goal_id), activity_id=str(activity.id))

    return ActivityResponse.model_validate(activity)
