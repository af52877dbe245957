"""goaltrack tables.

Importing this package registers users, goals and goal_activities on
Base.metadata; alembic/env.py depends on that.
"""

from goaltrack.models.user import User
from goaltrack.models.goal import Goal, GoalPriority, GoalStatus, GoalType
from goaltrack.models.goal_activity import GoalActivity

__all__ = [
    "Goal",
    "GoalActivity",
    "GoalPriority",
    "GoalStatus",
    "GoalType",
    "User",
]
