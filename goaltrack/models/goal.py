"""Goal persistence model.

Goals form a per-user tree through ``parent_goal_id`` (a yearly goal holding
monthly sub-goals, and so on).  ``progress`` and ``time_spent`` are cached
aggregates of the goal's activity log and are only written by
ActivityService; see goaltrack.services.aggregation.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from goaltrack.database import Base


class GoalType(StrEnum):
    LIFE = "life"
    YEARLY = "yearly"
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"


class GoalStatus(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class GoalPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Goal(Base):
    """User goal with cached progress/time aggregates.

    Lifecycle::

        not_started -> in_progress -> completed
                    -> abandoned      |
                       in_progress <--+  (progress dropped below 100)

    ``completed_date`` is set exactly when the goal enters ``completed``
    and cleared when it leaves it.
    """

    __tablename__ = "goals"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        comment="Goal primary key",
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="User who owns this goal",
    )

    parent_goal_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("goals.id"),
        nullable=True,
        comment="Parent goal in the hierarchy (never a cycle)",
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="life | yearly | monthly | weekly | daily",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=GoalStatus.NOT_STARTED,
        server_default=GoalStatus.NOT_STARTED.value,
        comment="not_started | in_progress | completed | abandoned",
    )

    progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Percentage 0-100 derived from the activity log",
    )

    time_spent: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Minutes derived from the activity log, never negative",
    )

    estimated_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=GoalPriority.MEDIUM,
        server_default=GoalPriority.MEDIUM.value,
    )

    target_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="UTC timestamp when the goal entered completed",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_goals_progress_range"),
        CheckConstraint("time_spent >= 0", name="ck_goals_time_spent_nonneg"),
        Index("idx_goals_user_created", "user_id", "created_at"),
        Index("idx_goals_user_type", "user_id", "type"),
        Index("idx_goals_parent", "parent_goal_id"),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize with Python-level defaults.

        SQLAlchemy mapped_column(default=...) only fires on INSERT, not at
        Python __init__ time.  Setting them here makes new objects usable
        before any flush.
        """
        now = datetime.now(UTC)
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("status", GoalStatus.NOT_STARTED)
        kwargs.setdefault("progress", 0)
        kwargs.setdefault("time_spent", 0)
        kwargs.setdefault("priority", GoalPriority.MEDIUM)
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return (
            f"<Goal id={self.id} "
            f"user={self.user_id} "
            f"type={self.type!r} "
            f"status={self.status!r} "
            f"progress={self.progress}>"
        )
