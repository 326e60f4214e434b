"""Initial gamification schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()
    )


def upgrade() -> None:
    """Users, community content, XP ledger, badges, notifications, audit."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("xp", sa.Integer, nullable=True),
        sa.Column("level", sa.Integer, nullable=True),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_users_xp_desc", "users", ["xp"])

    # --- community content ---
    op.create_table(
        "posts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        _created_at(),
    )
    op.create_index("ix_posts_user_time", "posts", ["user_id", "created_at"])

    op.create_table(
        "post_likes",
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "post_id", sa.BigInteger,
            sa.ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at(),
    )

    op.create_table(
        "post_comments",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "post_id", sa.BigInteger,
            sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "parent_id", sa.BigInteger,
            sa.ForeignKey("post_comments.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("body", sa.Text, nullable=False),
        _created_at(),
    )
    op.create_index("ix_post_comments_post_time", "post_comments", ["post_id", "created_at"])
    op.create_index("ix_post_comments_user", "post_comments", ["user_id"])

    # --- xp_log (append-only ledger) ---
    op.create_table(
        "xp_log",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("delta", sa.Integer, nullable=False),
        sa.Column("reference_id", sa.String(100), nullable=True),
        sa.Column("reverted", sa.Boolean, nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_xp_log_user_time", "xp_log", ["user_id", "created_at"])
    # One active award per (user, action, reference); NULL reference folds to ''.
    op.create_index(
        "ix_xp_log_active_award", "xp_log",
        ["user_id", "action", sa.text("coalesce(reference_id, '')")],
        unique=True,
        postgresql_where=sa.text("reverted = false"),
        sqlite_where=sa.text("reverted = 0"),
    )

    # --- badges ---
    op.create_table(
        "badge_definitions",
        sa.Column("key", sa.String(50), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("icon", sa.String(16), nullable=False),
        sa.Column("category", sa.String(30), nullable=False),
    )
    op.create_table(
        "user_badges",
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "badge_key", sa.String(50),
            sa.ForeignKey("badge_definitions.key", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at("earned_at"),
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("meta", postgresql.JSONB, nullable=True),
        sa.Column("link", sa.String(500), nullable=True),
        sa.Column("icon", sa.String(16), nullable=True),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("dedupe_key", sa.String(100), nullable=True),
        _created_at(),
        sa.UniqueConstraint("user_id", "dedupe_key", name="uq_notifications_user_dedupe"),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])
    op.create_index("ix_notifications_user_time", "notifications", ["user_id", "created_at"])

    # --- admin_log ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger, nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        _created_at("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )

    # --- rate_limit_events ---
    op.create_table(
        "rate_limit_events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("subject", sa.String(64), nullable=False),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_rate_limit_subject_ts", "rate_limit_events",
        ["subject", sa.text("timestamp DESC")],
    )
    op.create_index("ix_rate_limit_ts", "rate_limit_events", ["timestamp"])


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_index("ix_rate_limit_ts", table_name="rate_limit_events")
    op.drop_index("ix_rate_limit_subject_ts", table_name="rate_limit_events")
    op.drop_table("rate_limit_events")

    op.drop_index("ix_admin_log_target", table_name="admin_log")
    op.drop_index("ix_admin_log_actor_time", table_name="admin_log")
    op.drop_table("admin_log")

    op.drop_index("ix_notifications_user_time", table_name="notifications")
    op.drop_index("ix_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")

    op.drop_table("user_badges")
    op.drop_table("badge_definitions")

    op.drop_index("ix_xp_log_active_award", table_name="xp_log")
    op.drop_index("ix_xp_log_user_time", table_name="xp_log")
    op.drop_table("xp_log")

    op.drop_index("ix_post_comments_user", table_name="post_comments")
    op.drop_index("ix_post_comments_post_time", table_name="post_comments")
    op.drop_table("post_comments")
    op.drop_table("post_likes")

    op.drop_index("ix_posts_user_time", table_name="posts")
    op.drop_table("posts")

    op.drop_index("ix_users_xp_desc", table_name="users")
    op.drop_table("users")
