"""Read-only dashboard reports built from goals and the activity log.

Nothing here writes: these are the chart feeds for the goals dashboard
(time tracked per day, activity streaks, time per goal type).  Calendar days
are UTC days.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.models.goal import Goal
from goaltrack.models.goal_activity import GoalActivity
from goaltrack.services.activity_service import ActivityService

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DailyActivityPoint:
    date: date
    minutes: int
    hours: float
    progress: int
    count: int


@dataclass(frozen=True)
class StreakDay:
    date: date
    active: bool
    in_longest_streak: bool = False


@dataclass
class StreakReport:
    current_streak: int = 0
    longest_streak: int = 0
    longest_start: date | None = None
    longest_end: date | None = None
    days: list[StreakDay] = field(default_factory=list)


def activity_day(activity: GoalActivity) -> date:
    """UTC calendar day of an activity (SQLite hands back naive datetimes)."""
    when = activity.date
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return when.astimezone(UTC).date()


def window(days: int, today: date | None = None) -> list[date]:
    """The last ``days`` calendar days ending today, oldest first."""
    if days < 1:
        raise ValueError("days must be >= 1")
    end = today or datetime.now(UTC).date()
    return [end - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def build_daily_series(
    activities: list[GoalActivity], days: list[date]
) -> list[DailyActivityPoint]:
    minutes: dict[date, int] = defaultdict(int)
    progress: dict[date, int] = defaultdict(int)
    counts: dict[date, int] = defaultdict(int)
    for activity in activities:
        day = activity_day(activity)
        minutes[day] += activity.signed_minutes
        progress[day] += activity.progress_increment or 0
        counts[day] += 1

    points = []
    for day in days:
        # A day dominated by time removals shows as zero, not negative
        day_minutes = max(0, minutes[day])
        points.append(
            DailyActivityPoint(
                date=day,
                minutes=day_minutes,
                hours=round(day_minutes / 60, 1),
                progress=progress[day],
                count=counts[day],
            )
        )
    return points


def build_streaks(activities: list[GoalActivity], days: list[date]) -> StreakReport:
    active_days = {activity_day(a) for a in activities}
    report = StreakReport()

    run = 0
    run_start: date | None = None
    flags: list[bool] = []
    for day in days:
        active = day in active_days
        flags.append(active)
        if not active:
            run = 0
            run_start = None
            continue
        run += 1
        if run_start is None:
            run_start = day
        if run > report.longest_streak:
            report.longest_streak = run
            report.longest_start = run_start
            report.longest_end = day

    # Only the run still open on the last day counts as "current"
    report.current_streak = run

    for day, active in zip(days, flags):
        in_longest = (
            report.longest_start is not None
            and report.longest_end is not None
            and report.longest_start <= day <= report.longest_end
        )
        report.days.append(StreakDay(date=day, active=active, in_longest_streak=in_longest))
    return report


class ReportingService:
    """Dashboard aggregates over a user's goals and activities."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self._activities = ActivityService(db)

    async def _window_activities(
        self,
        user_id: uuid.UUID,
        days: list[date],
        goal_id: uuid.UUID | None,
    ) -> list[GoalActivity]:
        since = datetime.combine(days[0], time.min, tzinfo=UTC)
        activities = await self._activities.get_activities_by_user(
            user_id, since=since, goal_id=goal_id
        )
        first, last = days[0], days[-1]
        return [a for a in activities if first <= activity_day(a) <= last]

    async def daily_activity_series(
        self,
        user_id: uuid.UUID,
        days: int = 14,
        *,
        goal_id: uuid.UUID | None = None,
        today: date | None = None,
    ) -> list[DailyActivityPoint]:
        """Minutes, progress and activity count per day, oldest day first."""
        span = window(days, today)
        activities = await self._window_activities(user_id, span, goal_id)
        series = build_daily_series(activities, span)

        log.debug(
            "reporting.daily_activity_series",
            user_id=str(user_id),
            days=days,
            activities=len(activities),
        )
        return series

    async def activity_streaks(
        self,
        user_id: uuid.UUID,
        days: int = 30,
        *,
        goal_id: uuid.UUID | None = None,
        today: date | None = None,
    ) -> StreakReport:
        """Consecutive-day activity streaks within the window."""
        span = window(days, today)
        activities = await self._window_activities(user_id, span, goal_id)
        return build_streaks(activities, span)

    async def time_by_type(self, user_id: uuid.UUID) -> dict[str, int]:
        """Total minutes per goal type."""
        stmt = (
            select(Goal.type, func.coalesce(func.sum(Goal.time_spent), 0))
            .where(Goal.user_id == user_id)
            .group_by(Goal.type)
        )
        result = await self._db.execute(stmt)
        return {goal_type: int(total) for goal_type, total in result.all()}
