"""Baseline schema: users, clubs, communities, tasks, planning, activity.

Revision ID: 001_baseline
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TS = sa.DateTime(timezone=True)


def _pk() -> sa.Column:
    return sa.Column("id", ID, primary_key=True, autoincrement=True)


def _fk(name: str, target: str, ondelete: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.BigInteger(), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable)


def _user(name: str) -> sa.Column:
    return _fk(name, "users.id", "SET NULL", nullable=True)


def _flag(name: str) -> sa.Column:
    return sa.Column(name, sa.Boolean(), nullable=True, server_default=sa.false())


def upgrade() -> None:
    op.create_table(
        "users",
        _pk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="user"),
        _flag("is_blocked"),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("bio", sa.String(500), nullable=True),
        sa.Column("preferences", JSON, nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.Column("last_login", TS, nullable=True),
    )

    op.create_table(
        "user_notifications",
        _pk(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(500), nullable=True),
        _flag("read"),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_user_notifications_user_id", "user_notifications", ["user_id"])

    # --- clubs ---------------------------------------------------------------
    op.create_table(
        "clubs",
        _pk(),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        _user("created_by"),
        _user("reviewed_by"),
        sa.Column("reviewed_at", TS, nullable=True),
        sa.Column("review_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_clubs_name", "clubs", ["name"])

    op.create_table(
        "club_members",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("joined_at", TS, nullable=False),
        sa.UniqueConstraint("club_id", "user_id", name="uq_club_member"),
    )
    op.create_index("ix_club_members_club_id", "club_members", ["club_id"])
    op.create_index("ix_club_members_user_id", "club_members", ["user_id"])

    op.create_table(
        "club_join_requests",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("message", sa.String(500), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        _user("handled_by"),
        sa.Column("handled_at", TS, nullable=True),
    )
    op.create_index("ix_club_join_requests_club_id", "club_join_requests", ["club_id"])
    op.create_index(
        "uq_join_request_pending",
        "club_join_requests",
        ["club_id", "user_id"],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "club_logs",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        sa.Column("action", sa.String(64), nullable=False),
        _user("user_id"),
        sa.Column("details", JSON, nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_club_logs_club_id", "club_logs", ["club_id"])

    op.create_table(
        "club_topics",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_club_topics_club_id", "club_topics", ["club_id"])

    op.create_table(
        "topic_replies",
        _pk(),
        _fk("topic_id", "club_topics.id", "CASCADE"),
        sa.Column("content", sa.Text(), nullable=False),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_topic_replies_topic_id", "topic_replies", ["topic_id"])

    op.create_table(
        "club_goals",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_date", TS, nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_club_goals_club_id", "club_goals", ["club_id"])

    op.create_table(
        "knowledge_base_entries",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("tags", JSON, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_knowledge_base_entries_club_id", "knowledge_base_entries", ["club_id"])

    # --- communities ---------------------------------------------------------
    op.create_table(
        "communities",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        _flag("is_archived"),
        _user("created_by"),
        _user("approval_requested_by"),
        _user("approval_actioned_by"),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_communities_club_id", "communities", ["club_id"])

    op.create_table(
        "community_members",
        _pk(),
        _fk("community_id", "communities.id", "CASCADE"),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("joined_at", TS, nullable=False),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_member"),
    )
    op.create_index("ix_community_members_community_id", "community_members", ["community_id"])
    op.create_index("ix_community_members_user_id", "community_members", ["user_id"])

    op.create_table(
        "community_tasks",
        _pk(),
        _fk("community_id", "communities.id", "CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", TS, nullable=True),
        _flag("completed"),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_community_tasks_community_id", "community_tasks", ["community_id"])

    op.create_table(
        "community_messages",
        _pk(),
        _fk("community_id", "communities.id", "CASCADE"),
        _user("user_id"),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_community_messages_community_id", "community_messages", ["community_id"])

    op.create_table(
        "polls",
        _pk(),
        _fk("community_id", "communities.id", "CASCADE"),
        sa.Column("question", sa.String(300), nullable=False),
        _flag("is_closed"),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_polls_community_id", "polls", ["community_id"])

    op.create_table(
        "poll_options",
        _pk(),
        _fk("poll_id", "polls.id", "CASCADE"),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("text", sa.String(200), nullable=False),
        sa.UniqueConstraint("poll_id", "position", name="uq_poll_option_position"),
    )
    op.create_index("ix_poll_options_poll_id", "poll_options", ["poll_id"])

    op.create_table(
        "poll_votes",
        _pk(),
        _fk("poll_id", "polls.id", "CASCADE"),
        _fk("option_id", "poll_options.id", "CASCADE"),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("created_at", TS, nullable=False),
        sa.UniqueConstraint("poll_id", "user_id", name="uq_poll_vote_user"),
    )
    op.create_index("ix_poll_votes_poll_id", "poll_votes", ["poll_id"])

    # --- tasks ---------------------------------------------------------------
    op.create_table(
        "tasks",
        _pk(),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("priority", sa.String(16), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("due_date", TS, nullable=True),
        sa.Column("start_date", TS, nullable=True),
        sa.Column("completed_date", TS, nullable=True),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=False),
        sa.Column("tags", JSON, nullable=False),
        _fk("club_id", "clubs.id", "CASCADE", nullable=True),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.CheckConstraint(
            "(type = 'club' AND club_id IS NOT NULL) OR (type = 'personal' AND club_id IS NULL)",
            name="ck_tasks_club_scope",
        ),
    )
    op.create_index("ix_tasks_club_id", "tasks", ["club_id"])
    op.create_index("ix_tasks_created_by", "tasks", ["created_by"])

    op.create_table(
        "task_assignees",
        sa.Column("task_id", sa.BigInteger(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "task_checklist_items",
        _pk(),
        _fk("task_id", "tasks.id", "CASCADE"),
        sa.Column("text", sa.String(300), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        _flag("completed"),
        sa.Column("completed_at", TS, nullable=True),
        _user("completed_by"),
    )
    op.create_index("ix_task_checklist_items_task_id", "task_checklist_items", ["task_id"])

    op.create_table(
        "task_comments",
        _pk(),
        _fk("task_id", "tasks.id", "CASCADE"),
        sa.Column("text", sa.Text(), nullable=False),
        _user("author_id"),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_task_comments_task_id", "task_comments", ["task_id"])

    op.create_table(
        "task_time_logs",
        _pk(),
        _fk("task_id", "tasks.id", "CASCADE"),
        _user("user_id"),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("hours", sa.Float(), nullable=False),
        sa.Column("logged_at", TS, nullable=False),
    )
    op.create_index("ix_task_time_logs_task_id", "task_time_logs", ["task_id"])

    # --- planning ------------------------------------------------------------
    op.create_table(
        "goals",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("format", sa.String(8), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("priority", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("smart_criteria", JSON, nullable=False),
        sa.Column("tags", JSON, nullable=False),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("start_date", TS, nullable=True),
        sa.Column("due_date", TS, nullable=True),
        sa.Column("completed_at", TS, nullable=True),
        _user("owner_id"),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_goals_club_id", "goals", ["club_id"])

    op.create_table(
        "objectives",
        _pk(),
        _fk("goal_id", "goals.id", "CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("success_criteria", sa.Text(), nullable=True),
        sa.Column("metric_type", sa.String(32), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("start_date", TS, nullable=True),
        sa.Column("due_date", TS, nullable=True),
        sa.Column("completed_at", TS, nullable=True),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_objectives_goal_id", "objectives", ["goal_id"])

    op.create_table(
        "key_results",
        _pk(),
        _fk("objective_id", "objectives.id", "CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(32), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("due_date", TS, nullable=True),
        _user("owner_id"),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_key_results_objective_id", "key_results", ["objective_id"])

    op.create_table(
        "enhanced_tasks",
        _pk(),
        _fk("club_id", "clubs.id", "CASCADE"),
        _fk("goal_id", "goals.id", "SET NULL", nullable=True),
        _fk("objective_id", "objectives.id", "SET NULL", nullable=True),
        _fk("parent_id", "enhanced_tasks.id", "SET NULL", nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("priority", sa.String(16), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("start_date", TS, nullable=True),
        sa.Column("due_date", TS, nullable=True),
        sa.Column("completed_at", TS, nullable=True),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=False),
        sa.Column("labels", JSON, nullable=False),
        sa.Column("recurrence", JSON, nullable=True),
        sa.Column("automation_rules", JSON, nullable=False),
        _user("owner_id"),
        _user("created_by"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_enhanced_tasks_club_id", "enhanced_tasks", ["club_id"])
    op.create_index("ix_enhanced_tasks_goal_id", "enhanced_tasks", ["goal_id"])
    op.create_index("ix_enhanced_tasks_objective_id", "enhanced_tasks", ["objective_id"])

    op.create_table(
        "enhanced_task_assignees",
        sa.Column(
            "task_id", sa.BigInteger(), sa.ForeignKey("enhanced_tasks.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "enhanced_task_dependencies",
        _pk(),
        _fk("task_id", "enhanced_tasks.id", "CASCADE"),
        _fk("depends_on_id", "enhanced_tasks.id", "CASCADE"),
        sa.Column("type", sa.String(24), nullable=False),
        sa.Column("lag_days", sa.Integer(), nullable=False),
        sa.UniqueConstraint("task_id", "depends_on_id", name="uq_task_dependency"),
    )
    op.create_index("ix_enhanced_task_dependencies_task_id", "enhanced_task_dependencies", ["task_id"])

    op.create_table(
        "enhanced_task_checklist_items",
        _pk(),
        _fk("task_id", "enhanced_tasks.id", "CASCADE"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        _flag("completed"),
        sa.Column("completed_at", TS, nullable=True),
        _user("assigned_to"),
        sa.Column("due_date", TS, nullable=True),
    )
    op.create_index("ix_enhanced_task_checklist_items_task_id", "enhanced_task_checklist_items", ["task_id"])

    op.create_table(
        "enhanced_task_comments",
        _pk(),
        _fk("task_id", "enhanced_tasks.id", "CASCADE"),
        sa.Column("content", sa.String(2000), nullable=False),
        _user("author_id"),
        sa.Column("mentions", JSON, nullable=False),
        _flag("edited"),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_enhanced_task_comments_task_id", "enhanced_task_comments", ["task_id"])

    op.create_table(
        "enhanced_task_time_entries",
        _pk(),
        _fk("task_id", "enhanced_tasks.id", "CASCADE"),
        _user("user_id"),
        sa.Column("start_time", TS, nullable=False),
        sa.Column("end_time", TS, nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
    )
    op.create_index("ix_enhanced_task_time_entries_task_id", "enhanced_task_time_entries", ["task_id"])

    # --- activity ------------------------------------------------------------
    op.create_table(
        "activity_logs",
        _pk(),
        sa.Column("action_category", sa.String(16), nullable=False),
        sa.Column("action_verb", sa.String(64), nullable=False),
        sa.Column("action_object", sa.String(32), nullable=False),
        sa.Column("actor_id", sa.BigInteger(), nullable=True),
        sa.Column("entity_type", sa.String(16), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_name", sa.String(200), nullable=True),
        sa.Column("club_id", sa.BigInteger(), nullable=True),
        sa.Column("goal_id", sa.BigInteger(), nullable=True),
        sa.Column("objective_id", sa.BigInteger(), nullable=True),
        sa.Column("task_id", sa.BigInteger(), nullable=True),
        sa.Column("changes", JSON, nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("metadata", JSON, nullable=False),
        sa.Column("visibility", sa.String(8), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("timestamp", TS, nullable=False),
        sa.Column("day", sa.String(10), nullable=False),
        sa.Column("week", sa.String(8), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
    )
    for column in ("actor_id", "club_id", "day", "week", "month"):
        op.create_index(f"ix_activity_logs_{column}", "activity_logs", [column])


def downgrade() -> None:
    for table in (
        "activity_logs",
        "enhanced_task_time_entries",
        "enhanced_task_comments",
        "enhanced_task_checklist_items",
        "enhanced_task_dependencies",
        "enhanced_task_assignees",
        "enhanced_tasks",
        "key_results",
        "objectives",
        "goals",
        "task_time_logs",
        "task_comments",
        "task_checklist_items",
        "task_assignees",
        "tasks",
        "poll_votes",
        "poll_options",
        "polls",
        "community_messages",
        "community_tasks",
        "community_members",
        "communities",
        "knowledge_base_entries",
        "club_goals",
        "topic_replies",
        "club_topics",
        "club_logs",
        "club_join_requests",
        "club_members",
        "clubs",
        "user_notifications",
        "users",
    ):
        op.drop_table(table)
