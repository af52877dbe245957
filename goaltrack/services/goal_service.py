"""Goal service - CRUD and hierarchy operations for user goals.

All operations are scoped to the owning user.  Goals form a tree through
parent_goal_id; writes that would make a goal its own ancestor are
rejected, and deletes cascade depth-first through the subtree.

progress and time_spent are never written here: they are derived from the
activity log by ActivityService.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.models.goal import Goal, GoalPriority, GoalStatus, GoalType
from goaltrack.models.goal_activity import GoalActivity
from goaltrack.services.aggregation import transition_completed_date

log = structlog.get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "target_date",
        "completed_date",
        "parent_goal_id",
        "estimated_hours",
        "category",
        "priority",
    }
)
_NON_NULLABLE_FIELDS = frozenset({"title", "status", "priority"})
_DATE_FIELDS = frozenset({"target_date", "completed_date"})


class GoalNotFoundError(Exception):
    """Raised when a requested goal does not exist or is not accessible."""


class GoalHierarchyError(Exception):
    """Raised when a parent assignment would break the goal tree."""


@dataclass
class GoalsSummary:
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    time_spent: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


def coerce_datetime(value: datetime | date | str | None) -> datetime | None:
    """Normalise a date-ish value to a timezone-aware datetime (UTC if naive)."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class GoalService:
    """Service for managing user goals."""

    def __init__(self, db: AsyncSession) -> None:
        """Initialise goal service with database session.

        Args:
            db: Async database session
        """
        self._db = db

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_goal(self, goal_id: uuid.UUID, user_id: uuid.UUID) -> Goal | None:
        """Return a goal owned by user_id, or None."""
        stmt = select(Goal).where(Goal.id == goal_id, Goal.user_id == user_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_goals_by_user(self, user_id: uuid.UUID) -> list[Goal]:
        """Return all goals for a user, most recent first."""
        stmt = (
            select(Goal)
            .where(Goal.user_id == user_id)
            .order_by(Goal.created_at.desc())
        )
        result = await self._db.execute(stmt)
        goals = list(result.scalars().all())

        log.debug("goal_service.get_goals_by_user", user_id=str(user_id), count=len(goals))
        return goals

    async def get_goals_by_type(self, user_id: uuid.UUID, goal_type: GoalType) -> list[Goal]:
        """Return a user's goals of one type, most recent first."""
        stmt = (
            select(Goal)
            .where(Goal.user_id == user_id, Goal.type == GoalType(goal_type).value)
            .order_by(Goal.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_goals_by_parent(self, parent_id: uuid.UUID, user_id: uuid.UUID) -> list[Goal]:
        """Return the direct children of a goal, most recent first."""
        stmt = (
            select(Goal)
            .where(Goal.parent_goal_id == parent_id, Goal.user_id == user_id)
            .order_by(Goal.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_goals_summary(self, user_id: uuid.UUID) -> GoalsSummary:
        """Aggregate counts and time over all of a user's goals.

        Recomputed from a full scan on every call.
        """
        summary = GoalsSummary()
        for goal in await self.get_goals_by_user(user_id):
            summary.total += 1
            if goal.status == GoalStatus.COMPLETED:
                summary.completed += 1
            elif goal.status == GoalStatus.IN_PROGRESS:
                summary.in_progress += 1
            summary.time_spent += goal.time_spent or 0
            summary.by_type[goal.type] = summary.by_type.get(goal.type, 0) + 1
        return summary

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    async def create_goal(
        self,
        user_id: uuid.UUID,
        title: str,
        goal_type: GoalType,
        *,
        description: str | None = None,
        status: GoalStatus | None = None,
        target_date: datetime | date | str | None = None,
        parent_goal_id: uuid.UUID | None = None,
        estimated_hours: int | None = None,
        category: str | None = None,
        priority: GoalPriority | None = None,
    ) -> Goal:
        """Create a new goal for a user.

        Raises:
            GoalHierarchyError: If parent_goal_id does not name one of the user's goals
        """
        if not title or not title.strip():
            raise ValueError("Goal title must not be empty")

        if parent_goal_id is not None:
            await self._validate_parent(user_id, parent_goal_id)

        now = datetime.now(UTC)
        goal_status = GoalStatus(status or GoalStatus.NOT_STARTED)
        goal = Goal(
            user_id=user_id,
            title=title,
            type=GoalType(goal_type).value,
            description=description,
            status=goal_status.value,
            target_date=coerce_datetime(target_date),
            parent_goal_id=parent_goal_id,
            estimated_hours=estimated_hours,
            category=category,
            priority=GoalPriority(priority or GoalPriority.MEDIUM).value,
            completed_date=now if goal_status == GoalStatus.COMPLETED else None,
            created_at=now,
            updated_at=now,
        )
        self._db.add(goal)
        await self._db.flush()

        log.info(
            "goal_service.create_goal",
            user_id=str(user_id),
            goal_id=str(goal.id),
            type=goal.type,
            parent_goal_id=str(parent_goal_id) if parent_goal_id else None,
        )

        return goal

    async def update_goal(
        self,
        goal_id: uuid.UUID,
        user_id: uuid.UUID,
        changes: Mapping[str, Any],
    ) -> Goal | None:
        """Apply a partial update.

        ``changes`` holds only the fields the caller explicitly provided.  A
        key mapped to None clears a nullable field; an absent key leaves the
        field untouched.  Returns None if the goal does not exist.

        Raises:
            ValueError: For unknown fields or None on a required field
            GoalHierarchyError: If the new parent would create a cycle
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        nulled = {k for k in _NON_NULLABLE_FIELDS if k in changes and changes[k] is None}
        if nulled:
            raise ValueError(f"Fields cannot be cleared: {sorted(nulled)}")

        goal = await self.get_goal(goal_id, user_id)
        if goal is None:
            return None

        if changes.get("parent_goal_id") is not None:
            await self._validate_parent(user_id, changes["parent_goal_id"], goal_id=goal.id)

        now = datetime.now(UTC)
        new_status = GoalStatus(changes.get("status", goal.status))
        if "completed_date" in changes:
            new_completed = coerce_datetime(changes["completed_date"])
        elif "status" in changes:
            new_completed = transition_completed_date(
                goal.status, new_status, goal.completed_date, now
            )
        else:
            new_completed = goal.completed_date
        if (new_status == GoalStatus.COMPLETED) != (new_completed is not None):
            raise ValueError("completed_date must be set exactly when status is completed")

        for name, value in changes.items():
            if name in _DATE_FIELDS:
                value = coerce_datetime(value)
            elif name == "status":
                value = GoalStatus(value).value
            elif name == "priority":
                value = GoalPriority(value).value
            setattr(goal, name, value)
        goal.completed_date = new_completed

        goal.updated_at = now
        await self._db.flush()

        log.info(
            "goal_service.update_goal",
            goal_id=str(goal_id),
            fields=sorted(changes),
        )

        return goal

    async def delete_goal(self, goal_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """Delete a goal, its descendants and all of their activities.

        Returns:
            True if the goal existed and was deleted
        """
        goal = await self.get_goal(goal_id, user_id)
        if goal is None:
            return False

        deleted = await self._delete_subtree(goal.id)

        log.info(
            "goal_service.delete_goal",
            goal_id=str(goal_id),
            deleted_goals=deleted,
        )

        return True

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _delete_subtree(self, goal_id: uuid.UUID) -> int:
        """Depth-first delete: children, then activities, then the goal itself."""
        result = await self._db.execute(select(Goal.id).where(Goal.parent_goal_id == goal_id))
        child_ids = list(result.scalars().all())

        deleted = 0
        for child_id in child_ids:
            deleted += await self._delete_subtree(child_id)

        await self._db.execute(
            delete(GoalActivity)
            .where(GoalActivity.goal_id == goal_id)
            .execution_options(synchronize_session="fetch")
        )
        await self._db.execute(
            delete(Goal).where(Goal.id == goal_id).execution_options(synchronize_session="fetch")
        )
        return deleted + 1

    async def _validate_parent(
        self,
        user_id: uuid.UUID,
        parent_id: uuid.UUID,
        goal_id: uuid.UUID | None = None,
    ) -> None:
        """Ensure parent_id is one of the user's goals and not a descendant of goal_id."""
        if goal_id is not None and parent_id == goal_id:
            raise GoalHierarchyError(f"Goal {goal_id} cannot be its own parent")

        parent = await self.get_goal(parent_id, user_id)
        if parent is None:
            raise GoalHierarchyError(f"Parent goal {parent_id} not found")

        if goal_id is None:
            return

        # Walk up from the proposed parent; meeting goal_id means a cycle.
        seen: set[uuid.UUID] = {parent.id}
        ancestor_id = parent.parent_goal_id
        while ancestor_id is not None:
            if ancestor_id == goal_id:
                raise GoalHierarchyError(
                    f"Goal {parent_id} is a descendant of {goal_id}; cannot re-parent"
                )
            if ancestor_id in seen:
                break
            seen.add(ancestor_id)
            result = await self._db.execute(
                select(Goal.parent_goal_id).where(Goal.id == ancestor_id)
            )
            ancestor_id = result.scalar_one_or_none()
