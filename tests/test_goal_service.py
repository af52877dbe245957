"""Tests for GoalService.

Covers CRUD, patch semantics, hierarchy validation, recursive delete and the
per-user summary.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select

from goaltrack.models.goal import Goal, GoalPriority, GoalStatus, GoalType
from goaltrack.models.goal_activity import GoalActivity
from goaltrack.services.activity_service import ActivityService
from goaltrack.services.goal_service import (
    GoalHierarchyError,
    GoalService,
    coerce_datetime,
)


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    return db


class TestCreateGoal:
    async def test_create_goal_defaults(self, mock_db):
        user_id = uuid.uuid4()
        service = GoalService(mock_db)
        goal = await service.create_goal(user_id, "Read 12 books", GoalType.YEARLY)

        assert goal.user_id == user_id
        assert goal.title == "Read 12 books"
        assert goal.type == "yearly"
        assert goal.status == GoalStatus.NOT_STARTED
        assert goal.progress == 0
        assert goal.time_spent == 0
        assert goal.priority == GoalPriority.MEDIUM
        assert goal.completed_date is None
        assert isinstance(goal.id, uuid.UUID)

    async def test_create_goal_adds_to_db(self, mock_db):
        service = GoalService(mock_db)
        await service.create_goal(uuid.uuid4(), "Run a 10k", GoalType.MONTHLY)
        mock_db.add.assert_called_once()
        mock_db.flush.assert_called_once()

    async def test_create_goal_rejects_blank_title(self, mock_db):
        service = GoalService(mock_db)
        with pytest.raises(ValueError):
            await service.create_goal(uuid.uuid4(), "   ", GoalType.DAILY)
        mock_db.add.assert_not_called()

    async def test_create_goal_rejects_unknown_type(self, mock_db):
        service = GoalService(mock_db)
        with pytest.raises(ValueError):
            await service.create_goal(uuid.uuid4(), "Meditate", "hourly")

    async def test_create_completed_goal_stamps_completed_date(self, mock_db):
        service = GoalService(mock_db)
        goal = await service.create_goal(
            uuid.uuid4(), "Already done", GoalType.DAILY, status=GoalStatus.COMPLETED
        )
        assert goal.completed_date is not None

    async def test_create_goal_with_unknown_parent_raises(self, db_session, user):
        service = GoalService(db_session)
        with pytest.raises(GoalHierarchyError):
            await service.create_goal(
                user.id, "Orphan", GoalType.WEEKLY, parent_goal_id=uuid.uuid4()
            )

    async def test_create_goal_with_other_users_parent_raises(self, db_session, user, other_user):
        service = GoalService(db_session)
        foreign = await service.create_goal(other_user.id, "Not yours", GoalType.YEARLY)
        with pytest.raises(GoalHierarchyError):
            await service.create_goal(
                user.id, "Child", GoalType.MONTHLY, parent_goal_id=foreign.id
            )


class TestQueries:
    async def test_goals_ordered_most_recent_first(self, db_session, user):
        service = GoalService(db_session)
        base = datetime(2026, 1, 1, tzinfo=UTC)
        titles = ["first", "second", "third"]
        for offset, title in enumerate(titles):
            goal = await service.create_goal(user.id, title, GoalType.DAILY)
            goal.created_at = base + timedelta(days=offset)
        await db_session.flush()

        goals = await service.get_goals_by_user(user.id)
        assert [g.title for g in goals] == ["third", "second", "first"]

    async def test_goals_scoped_to_user(self, db_session, user, other_user):
        service = GoalService(db_session)
        await service.create_goal(user.id, "mine", GoalType.DAILY)
        theirs = await service.create_goal(other_user.id, "theirs", GoalType.DAILY)

        goals = await service.get_goals_by_user(user.id)
        assert [g.title for g in goals] == ["mine"]
        assert await service.get_goal(theirs.id, user.id) is None

    async def test_get_goals_by_type(self, db_session, user):
        service = GoalService(db_session)
        await service.create_goal(user.id, "d", GoalType.DAILY)
        await service.create_goal(user.id, "w", GoalType.WEEKLY)

        weekly = await service.get_goals_by_type(user.id, GoalType.WEEKLY)
        assert [g.title for g in weekly] == ["w"]

    async def test_get_goals_by_parent(self, db_session, user):
        service = GoalService(db_session)
        parent = await service.create_goal(user.id, "year", GoalType.YEARLY)
        await service.create_goal(user.id, "jan", GoalType.MONTHLY, parent_goal_id=parent.id)
        await service.create_goal(user.id, "unrelated", GoalType.MONTHLY)

        children = await service.get_goals_by_parent(parent.id, user.id)
        assert [g.title for g in children] == ["jan"]


class TestSummary:
    async def test_summary_counts_and_time(self, db_session, user):
        goals = GoalService(db_session)
        activities = ActivityService(db_session)

        daily = await goals.create_goal(user.id, "Stretch", GoalType.DAILY)
        weekly = await goals.create_goal(user.id, "Write", GoalType.WEEKLY)
        await activities.create_activity(daily.id, user.id, minutes_spent=60, progress_increment=100)
        await activities.create_activity(weekly.id, user.id, minutes_spent=30, progress_increment=10)

        summary = await goals.get_goals_summary(user.id)
        assert summary.total == 2
        assert summary.completed == 1
        assert summary.in_progress == 1
        assert summary.time_spent == 90
        assert summary.by_type == {"daily": 1, "weekly": 1}

    async def test_summary_empty(self, db_session, user):
        summary = await GoalService(db_session).get_goals_summary(user.id)
        assert summary.total == 0
        assert summary.time_spent == 0
        assert summary.by_type == {}


class TestUpdateGoal:
    async def test_absent_fields_untouched(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(
            user.id, "Learn Spanish", GoalType.YEARLY, description="Duolingo daily"
        )

        updated = await service.update_goal(goal.id, user.id, {"title": "Learn Portuguese"})
        assert updated is not None
        assert updated.title == "Learn Portuguese"
        assert updated.description == "Duolingo daily"

    async def test_explicit_null_clears_field(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(
            user.id, "Garden", GoalType.MONTHLY, description="Plant tomatoes", category="home"
        )

        updated = await service.update_goal(goal.id, user.id, {"description": None})
        assert updated.description is None
        assert updated.category == "home"

    async def test_null_on_required_field_rejected(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Swim", GoalType.WEEKLY)
        with pytest.raises(ValueError):
            await service.update_goal(goal.id, user.id, {"title": None})

    @pytest.mark.parametrize("field", ["progress", "time_spent", "type", "user_id"])
    async def test_derived_and_immutable_fields_rejected(self, db_session, user, field):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Cook", GoalType.DAILY)
        with pytest.raises(ValueError):
            await service.update_goal(goal.id, user.id, {field: 1})

    async def test_status_completed_sets_date_and_reopen_clears(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Ship", GoalType.WEEKLY)

        done = await service.update_goal(goal.id, user.id, {"status": "completed"})
        assert done.status == GoalStatus.COMPLETED
        assert done.completed_date is not None

        reopened = await service.update_goal(goal.id, user.id, {"status": "in_progress"})
        assert reopened.status == GoalStatus.IN_PROGRESS
        assert reopened.completed_date is None

    async def test_explicit_completed_date_wins(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Backfill", GoalType.DAILY)
        when = datetime(2026, 2, 1, 9, 30, tzinfo=UTC)

        updated = await service.update_goal(
            goal.id, user.id, {"status": "completed", "completed_date": when}
        )
        assert updated.completed_date == when

    async def test_completed_with_null_date_rejected(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Backfill", GoalType.DAILY)

        with pytest.raises(ValueError):
            await service.update_goal(
                goal.id, user.id, {"status": "completed", "completed_date": None}
            )
        assert goal.status == GoalStatus.NOT_STARTED
        assert goal.completed_date is None

    async def test_date_on_unfinished_goal_rejected(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Backfill", GoalType.DAILY)
        when = datetime(2026, 1, 1, tzinfo=UTC)

        with pytest.raises(ValueError):
            await service.update_goal(
                goal.id, user.id, {"status": "not_started", "completed_date": when}
            )
        with pytest.raises(ValueError):
            await service.update_goal(goal.id, user.id, {"completed_date": when})
        assert goal.completed_date is None

    async def test_clearing_date_of_completed_goal_rejected(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Ship", GoalType.WEEKLY)
        await service.update_goal(goal.id, user.id, {"status": "completed"})

        with pytest.raises(ValueError):
            await service.update_goal(goal.id, user.id, {"completed_date": None})
        assert goal.completed_date is not None

    async def test_invalid_status_rejected(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Paint", GoalType.DAILY)
        with pytest.raises(ValueError):
            await service.update_goal(goal.id, user.id, {"status": "paused"})

    async def test_missing_goal_returns_none(self, db_session, user):
        service = GoalService(db_session)
        assert await service.update_goal(uuid.uuid4(), user.id, {"title": "x"}) is None

    async def test_date_strings_are_coerced(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "Marathon", GoalType.YEARLY)

        updated = await service.update_goal(goal.id, user.id, {"target_date": "2026-11-01"})
        assert updated.target_date == datetime(2026, 11, 1, tzinfo=UTC)


class TestHierarchy:
    async def _chain(self, service: GoalService, user_id: uuid.UUID) -> tuple[Goal, Goal, Goal]:
        root = await service.create_goal(user_id, "life", GoalType.LIFE)
        middle = await service.create_goal(
            user_id, "year", GoalType.YEARLY, parent_goal_id=root.id
        )
        leaf = await service.create_goal(
            user_id, "month", GoalType.MONTHLY, parent_goal_id=middle.id
        )
        return root, middle, leaf

    async def test_self_parent_rejected(self, db_session, user):
        service = GoalService(db_session)
        goal = await service.create_goal(user.id, "loop", GoalType.DAILY)
        with pytest.raises(GoalHierarchyError):
            await service.update_goal(goal.id, user.id, {"parent_goal_id": goal.id})

    async def test_descendant_as_parent_rejected(self, db_session, user):
        service = GoalService(db_session)
        root, _, leaf = await self._chain(service, user.id)
        with pytest.raises(GoalHierarchyError):
            await service.update_goal(root.id, user.id, {"parent_goal_id": leaf.id})

    async def test_reparent_to_sibling_allowed(self, db_session, user):
        service = GoalService(db_session)
        root, middle, leaf = await self._chain(service, user.id)
        other = await service.create_goal(user.id, "other", GoalType.YEARLY, parent_goal_id=root.id)

        updated = await service.update_goal(leaf.id, user.id, {"parent_goal_id": other.id})
        assert updated.parent_goal_id == other.id
        assert middle.id != other.id

    async def test_detach_with_null_parent(self, db_session, user):
        service = GoalService(db_session)
        _, middle, _ = await self._chain(service, user.id)

        updated = await service.update_goal(middle.id, user.id, {"parent_goal_id": None})
        assert updated.parent_goal_id is None


class TestDeleteGoal:
    async def test_delete_cascades_through_subtree(self, db_session, user):
        service = GoalService(db_session)
        activities = ActivityService(db_session)
        root = await service.create_goal(user.id, "root", GoalType.YEARLY)
        child = await service.create_goal(user.id, "child", GoalType.MONTHLY, parent_goal_id=root.id)
        grandchild = await service.create_goal(
            user.id, "grandchild", GoalType.WEEKLY, parent_goal_id=child.id
        )
        keep = await service.create_goal(user.id, "keep", GoalType.DAILY)
        await activities.create_activity(grandchild.id, user.id, minutes_spent=20)
        await activities.create_activity(root.id, user.id, minutes_spent=10)
        await activities.create_activity(keep.id, user.id, minutes_spent=5)

        assert await service.delete_goal(root.id, user.id) is True

        remaining = await service.get_goals_by_user(user.id)
        assert [g.title for g in remaining] == ["keep"]
        count = await db_session.execute(select(func.count()).select_from(GoalActivity))
        assert count.scalar_one() == 1

    async def test_delete_missing_goal_returns_false(self, db_session, user):
        assert await GoalService(db_session).delete_goal(uuid.uuid4(), user.id) is False

    async def test_delete_other_users_goal_returns_false(self, db_session, user, other_user):
        service = GoalService(db_session)
        theirs = await service.create_goal(other_user.id, "theirs", GoalType.DAILY)
        assert await service.delete_goal(theirs.id, user.id) is False
        assert await service.get_goal(theirs.id, other_user.id) is not None


class TestCoerceDatetime:
    def test_none(self):
        assert coerce_datetime(None) is None

    def test_naive_becomes_utc(self):
        assert coerce_datetime(datetime(2026, 5, 1, 8, 0)).tzinfo is UTC

    def test_aware_kept(self):
        value = datetime(2026, 5, 1, 8, 0, tzinfo=UTC)
        assert coerce_datetime(value) == value

    def test_iso_string(self):
        assert coerce_datetime("2026-05-01T08:00:00+00:00") == datetime(2026, 5, 1, 8, tzinfo=UTC)

    def test_offset_converted_to_utc(self):
        converted = coerce_datetime("2026-05-01T23:00:00-05:00")
        assert converted.tzinfo is UTC
        assert converted == datetime(2026, 5, 2, 4, 0, tzinfo=UTC)
