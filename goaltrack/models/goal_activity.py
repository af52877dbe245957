"""Goal activity log model.

Each row is one logged work session against a goal.  ``minutes_spent`` is
always stored as a magnitude; a caller that submits negative minutes is
asking to take time off the goal, which is recorded in ``removes_time``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column

from goaltrack.database import Base


class GoalActivity(Base):
    __tablename__ = "goal_activities"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    goal_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning goal, immutable after creation",
    )

    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        comment="When the activity happened",
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    minutes_spent: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    removes_time: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        comment="True when minutes_spent is subtracted from the goal total",
    )

    progress_increment: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint("minutes_spent >= 0", name="ck_goal_activities_minutes_nonneg"),
        Index("idx_goal_activities_goal_date", "goal_id", "date"),
    )

    def __init__(self, **kwargs: Any) -> None:
        now = datetime.now(UTC)
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("date", now)
        kwargs.setdefault("minutes_spent", 0)
        kwargs.setdefault("removes_time", False)
        kwargs.setdefault("progress_increment", 0)
        kwargs.setdefault("created_at", now)
        super().__init__(**kwargs)

    @property
    def signed_minutes(self) -> int:
        """Minutes as they count toward the goal total."""
        return -self.minutes_spent if self.removes_time else self.minutes_spent

    def __repr__(self) -> str:
        return (
            f"<GoalActivity id={self.id} "
            f"goal={self.goal_id} "
            f"minutes={self.signed_minutes} "
            f"progress={self.progress_increment}>"
        )
