"""Activity service - the goal activity log and its aggregate bookkeeping.

Every create/update/delete follows the same sequence inside the caller's
transaction:

1. lock the owning goal row (SELECT ... FOR UPDATE; a no-op on SQLite)
2. write the activity change and flush
3. re-read the goal's full activity log and fold it with compute_aggregates()
4. reconcile status/completed_date and write the goal

Because the aggregates are recomputed from the log rather than adjusted by a
delta, concurrent submissions serialize on the goal lock and the cached
totals always equal the sum of the rows.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.models.goal import Goal
from goaltrack.models.goal_activity import GoalActivity
from goaltrack.services.aggregation import (
    GoalAggregates,
    compute_aggregates,
    reconcile_status,
)
from goaltrack.services.goal_service import GoalNotFoundError, coerce_datetime

log = structlog.get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"minutes_spent", "progress_increment", "description", "date"})
_NON_NULLABLE_FIELDS = frozenset({"minutes_spent", "progress_increment", "date"})


class ActivityService:
    """Service for the goal activity log."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_activity(
        self, activity_id: uuid.UUID, user_id: uuid.UUID
    ) -> GoalActivity | None:
        """Return an activity whose goal belongs to user_id, or None."""
        stmt = (
            select(GoalActivity)
            .join(Goal, Goal.id == GoalActivity.goal_id)
            .where(GoalActivity.id == activity_id, Goal.user_id == user_id)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_activities_by_goal(self, goal_id: uuid.UUID) -> list[GoalActivity]:
        """Return a goal's activities, most recent date first."""
        stmt = (
            select(GoalActivity)
            .where(GoalActivity.goal_id == goal_id)
            .order_by(GoalActivity.date.desc(), GoalActivity.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_activities_by_user(
        self,
        user_id: uuid.UUID,
        *,
        since: datetime | None = None,
        goal_id: uuid.UUID | None = None,
    ) -> list[GoalActivity]:
        """Return activities across all of a user's goals, most recent date first."""
        stmt = (
            select(GoalActivity)
            .join(Goal, Goal.id == GoalActivity.goal_id)
            .where(Goal.user_id == user_id)
        )
        if since is not None:
            stmt = stmt.where(GoalActivity.date >= since)
        if goal_id is not None:
            stmt = stmt.where(GoalActivity.goal_id == goal_id)
        stmt = stmt.order_by(GoalActivity.date.desc(), GoalActivity.created_at.desc())
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    async def create_activity(
        self,
        goal_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        minutes_spent: int = 0,
        progress_increment: int = 0,
        description: str | None = None,
        date: datetime | str | None = None,
    ) -> GoalActivity:
        """Log an activity against a goal and refresh the goal's aggregates.

        A negative ``minutes_spent`` takes that much time off the goal.  The
        row always stores the magnitude; the direction goes in removes_time.

        Raises:
            GoalNotFoundError: If the goal does not exist for this user
        """
        goal = await self._lock_goal(goal_id, user_id)
        if goal is None:
            raise GoalNotFoundError(f"Goal {goal_id} not found")

        activity = GoalActivity(
            goal_id=goal.id,
            description=description,
            minutes_spent=abs(minutes_spent),
            removes_time=minutes_spent < 0,
            progress_increment=progress_increment,
            date=coerce_datetime(date) or datetime.now(UTC),
        )
        self._db.add(activity)
        await self._db.flush()

        aggregates = await self._recompute_goal(goal)

        log.info(
            "activity_service.create_activity",
            goal_id=str(goal.id),
            activity_id=str(activity.id),
            minutes=activity.signed_minutes,
            progress_increment=progress_increment,
            goal_progress=aggregates.progress,
            goal_time_spent=aggregates.time_spent,
        )

        return activity

    async def update_activity(
        self,
        activity_id: uuid.UUID,
        user_id: uuid.UUID,
        changes: Mapping[str, Any],
    ) -> GoalActivity | None:
        """Apply a partial update to an activity and refresh the goal.

        ``minutes_spent`` follows the same sign convention as create.
        Returns None if the activity does not exist.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        nulled = {k for k in _NON_NULLABLE_FIELDS if k in changes and changes[k] is None}
        if nulled:
            raise ValueError(f"Fields cannot be cleared: {sorted(nulled)}")

        activity = await self.get_activity(activity_id, user_id)
        if activity is None:
            return None

        goal = await self._lock_goal(activity.goal_id, user_id)
        if goal is None:
            return None

        for name, value in changes.items():
            if name == "minutes_spent":
                activity.minutes_spent = abs(value)
                activity.removes_time = value < 0
            elif name == "progress_increment":
                activity.progress_increment = value
            elif name == "date":
                activity.date = coerce_datetime(value)
            else:
                setattr(activity, name, value)
        await self._db.flush()

        aggregates = await self._recompute_goal(goal)

        log.info(
            "activity_service.update_activity",
            goal_id=str(goal.id),
            activity_id=str(activity_id),
            fields=sorted(changes),
            goal_progress=aggregates.progress,
            goal_time_spent=aggregates.time_spent,
        )

        return activity

    async def delete_activity(self, activity_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """Remove an activity and refresh the goal.

        Returns:
            True if the activity existed and was deleted
        """
        activity = await self.get_activity(activity_id, user_id)
        if activity is None:
            return False

        goal = await self._lock_goal(activity.goal_id, user_id)
        await self._db.delete(activity)
        await self._db.flush()

        if goal is not None:
            aggregates = await self._recompute_goal(goal)
            log.info(
                "activity_service.delete_activity",
                goal_id=str(goal.id),
                activity_id=str(activity_id),
                goal_progress=aggregates.progress,
                goal_time_spent=aggregates.time_spent,
            )

        return True

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _lock_goal(self, goal_id: uuid.UUID, user_id: uuid.UUID) -> Goal | None:
        stmt = (
            select(Goal)
            .where(Goal.id == goal_id, Goal.user_id == user_id)
            .with_for_update()
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def _recompute_goal(self, goal: Goal) -> GoalAggregates:
        """Derive goal aggregates from the complete activity log and persist them."""
        activities = await self.get_activities_by_goal(goal.id)
        aggregates = compute_aggregates(activities)

        now = datetime.now(UTC)
        status, completed_date = reconcile_status(
            goal.status, goal.completed_date, aggregates, now
        )
        if status != goal.status:
            log.info(
                "activity_service.goal_status_changed",
                goal_id=str(goal.id),
                old_status=goal.status,
                new_status=status,
            )

        goal.time_spent = aggregates.time_spent
        goal.progress = aggregates.progress
        goal.status = str(status)
        goal.completed_date = completed_date
        goal.updated_at = now
        await self._db.flush()

        return aggregates
