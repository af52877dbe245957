"""Create users, goals and goal_activities tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

Table: users
  - id             UUID PK
  - external_id    VARCHAR(512)  identity provider 'sub' (unique)
  - email, display_name, is_active, created_at, updated_at, last_login_at

Table: goals
  - id              UUID PK
  - user_id         UUID FK users.id (cascade)
  - parent_goal_id  UUID FK goals.id (nullable, tree)
  - title, description
  - type            VARCHAR(20)  life|yearly|monthly|weekly|daily
  - status          VARCHAR(20)  not_started|in_progress|completed|abandoned
  - progress        INTEGER 0-100 (derived from activities)
  - time_spent      INTEGER minutes >= 0 (derived from activities)
  - estimated_hours, category, priority
  - target_date, completed_date, created_at, updated_at

Table: goal_activities
  - id                  UUID PK
  - goal_id             UUID FK goals.id (cascade)
  - date                TIMESTAMP WITH TIME ZONE
  - description         TEXT
  - minutes_spent       INTEGER >= 0 (magnitude)
  - removes_time        BOOLEAN (submitted as negative minutes)
  - progress_increment  INTEGER
  - created_at          TIMESTAMP WITH TIME ZONE

Notes:
  - type/status/priority stored as VARCHAR to avoid PostgreSQL enum
    migration pain.
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create users, goals and goal_activities with indexes."""

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(512), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "goals",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "parent_goal_id",
            sa.Uuid(),
            sa.ForeignKey("goals.id"),
            nullable=True,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="not_started"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("estimated_hours", sa.Integer(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("target_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_goals_progress_range"),
        sa.CheckConstraint("time_spent >= 0", name="ck_goals_time_spent_nonneg"),
    )
    op.create_index("idx_goals_user_created", "goals", ["user_id", "created_at"])
    op.create_index("idx_goals_user_type", "goals", ["user_id", "type"])
    op.create_index("idx_goals_parent", "goals", ["parent_goal_id"])

    op.create_table(
        "goal_activities",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "goal_id",
            sa.Uuid(),
            sa.ForeignKey("goals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("minutes_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("removes_time", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("progress_increment", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("minutes_spent >= 0", name="ck_goal_activities_minutes_nonneg"),
    )
    op.create_index(
        "idx_goal_activities_goal_date", "goal_activities", ["goal_id", "date"]
    )


def downgrade() -> None:
    """Drop all goal tracking tables."""

    op.drop_index("idx_goal_activities_goal_date", table_name="goal_activities")
    op.drop_table("goal_activities")
    op.drop_index("idx_goals_parent", table_name="goals")
    op.drop_index("idx_goals_user_type", table_name="goals")
    op.drop_index("idx_goals_user_created", table_name="goals")
    op.drop_table("goals")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_external_id", table_name="users")
    op.drop_table("users")
