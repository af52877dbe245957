"""Goal aggregate derivation.

A goal's ``time_spent`` and ``progress`` are a pure function of its current
activity log.  Every activity mutation re-reads the whole log and folds it
through compute_aggregates() inside the same transaction as the write, so
the cached values cannot drift from the rows they summarize.

Rules:
- time_spent = max(0, sum of signed minutes), where removal rows count negative
- progress   = sum of progress increments clamped to [0, 100]
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from goaltrack.models.goal import GoalStatus

PROGRESS_MIN = 0
PROGRESS_MAX = 100


class ActivityLike(Protocol):
    minutes_spent: int
    removes_time: bool
    progress_increment: int


@dataclass(frozen=True)
class GoalAggregates:
    time_spent: int
    progress: int
    activity_count: int


def clamp_progress(value: int) -> int:
    return max(PROGRESS_MIN, min(PROGRESS_MAX, value))


def compute_aggregates(activities: Iterable[ActivityLike]) -> GoalAggregates:
    """Fold an activity log into goal aggregates."""
    minutes = 0
    progress = 0
    count = 0
    for activity in activities:
        magnitude = abs(activity.minutes_spent or 0)
        minutes += -magnitude if activity.removes_time else magnitude
        progress += activity.progress_increment or 0
        count += 1
    return GoalAggregates(
        time_spent=max(0, minutes),
        progress=clamp_progress(progress),
        activity_count=count,
    )


def reconcile_status(
    status: str,
    completed_date: datetime | None,
    aggregates: GoalAggregates,
    now: datetime,
) -> tuple[str, datetime | None]:
    """Return the (status, completed_date) implied by freshly computed aggregates.

    A goal at 100% is completed; a completed goal that falls below 100% goes
    back to in_progress.  The first logged activity moves a not_started goal
    to in_progress.  Abandoned goals stay abandoned unless they reach 100%.
    """
    if aggregates.progress >= PROGRESS_MAX:
        if status == GoalStatus.COMPLETED and completed_date is not None:
            return GoalStatus.COMPLETED, completed_date
        return GoalStatus.COMPLETED, now

    if status == GoalStatus.COMPLETED:
        return GoalStatus.IN_PROGRESS, None

    if status == GoalStatus.NOT_STARTED and aggregates.activity_count > 0:
        return GoalStatus.IN_PROGRESS, completed_date

    return status, completed_date


def transition_completed_date(
    old_status: str,
    new_status: str,
    completed_date: datetime | None,
    now: datetime,
) -> datetime | None:
    """completed_date for an explicit status edit."""
    if new_status == GoalStatus.COMPLETED and old_status != GoalStatus.COMPLETED:
        return now
    if new_status != GoalStatus.COMPLETED and old_status == GoalStatus.COMPLETED:
        return None
    return completed_date
