"""
gamehunt.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- users              — Community members with derived xp / level
- posts              — Community posts (game discoveries, discussions)
- post_likes         — One like per user per post
- post_comments      — Comments and replies (``parent_id`` set ⇒ reply)
- xp_log             — Append-only XP ledger, soft-reverted, never deleted
- badge_definitions  — Static badge catalog, seeded once
- user_badges        — Earned badges (existence == claimed)
- notifications      — Per-user XP / level / badge messages
- admin_log          — Append-only audit trail of admin mutations
- rate_limit_events  — Durable sliding-window counters for mutation throttling
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Game Hunt ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class XpAction(enum.StrEnum):
    """Every action that can write to the XP ledger."""
    POST_CREATED = "POST_CREATED"
    POST_LIKED = "POST_LIKED"
    POST_UNLIKED = "POST_UNLIKED"
    POST_SHARED = "POST_SHARED"
    COMMENT_CREATED = "COMMENT_CREATED"
    COMMENT_DELETED = "COMMENT_DELETED"
    REPLY_CREATED = "REPLY_CREATED"
    REPLY_DELETED = "REPLY_DELETED"
    LOGIN_DAILY = "LOGIN_DAILY"
    BADGE_UNLOCKED = "BADGE_UNLOCKED"
    MANUAL_AWARD = "MANUAL_AWARD"


class NotificationType(enum.StrEnum):
    """Kinds of notification a user can receive."""
    WELCOME = "welcome"
    MILESTONE = "milestone"
    PROGRESS = "progress"
    ACHIEVEMENT = "achievement"
    REMINDER = "reminder"
    XP = "xp"
    LEVEL_UP = "level_up"
    BADGE_UNLOCKED = "badge_unlocked"
    BADGE_CLAIMED = "badge_claimed"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    MANUAL_AWARD = "MANUAL_AWARD"
    MANUAL_REVOKE = "MANUAL_REVOKE"
    RECALCULATE = "RECALCULATE"
    RECONCILE = "RECONCILE"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    # Derived from xp_log; only the XP aggregator writes these two.
    xp: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    posts: Mapped[list[Post]] = relationship(
        back_populates="author", cascade="all, delete-orphan"
    )
    xp_entries: Mapped[list[XpLogEntry]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    notifications: Mapped[list[Notification]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_xp_desc", "xp"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Community content
# ---------------------------------------------------------------------------
class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    author: Mapped[User] = relationship(back_populates="posts")
    likes: Mapped[list[PostLike]] = relationship(
        back_populates="post", cascade="all, delete-orphan"
    )
    comments: Mapped[list[PostComment]] = relationship(
        back_populates="post", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_posts_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id} user={self.user_id} title={self.title!r}>"


class PostLike(Base):
    __tablename__ = "post_likes"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    post: Mapped[Post] = relationship(back_populates="likes")

    def __repr__(self) -> str:
        return f"<PostLike user={self.user_id} post={self.post_id}>"


class PostComment(Base):
    __tablename__ = "post_comments"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("post_comments.id", ondelete="CASCADE"), nullable=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    post: Mapped[Post] = relationship(back_populates="comments")

    __table_args__ = (
        Index("ix_post_comments_post_time", "post_id", "created_at"),
        Index("ix_post_comments_user", "user_id"),
    )

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    def __repr__(self) -> str:
        return f"<PostComment id={self.id} post={self.post_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# XpLogEntry — append-only XP ledger
# ---------------------------------------------------------------------------
class XpLogEntry(Base):
    __tablename__ = "xp_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reverted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="xp_entries")

    __table_args__ = (
        Index("ix_xp_log_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<XpLogEntry id={self.id} user={self.user_id} action={self.action} "
            f"delta={self.delta} reverted={self.reverted}>"
        )


# At most one active award per (user, action, reference).  A NULL reference
# is folded to '' so it participates in the key.
Index(
    "ix_xp_log_active_award",
    XpLogEntry.user_id,
    XpLogEntry.action,
    func.coalesce(XpLogEntry.reference_id, ""),
    unique=True,
    postgresql_where=XpLogEntry.reverted.is_(False),
    sqlite_where=XpLogEntry.reverted.is_(False),
)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
class BadgeDefinition(Base):
    __tablename__ = "badge_definitions"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)

    def __repr__(self) -> str:
        return f"<BadgeDefinition key={self.key!r}>"


class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    badge_key: Mapped[str] = mapped_column(
        String(50), ForeignKey("badge_definitions.key", ondelete="CASCADE"),
        primary_key=True,
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="badges")
    definition: Mapped[BadgeDefinition] = relationship()

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_key}>"


# ---------------------------------------------------------------------------
# Notification — best-effort side channel
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set for at-most-once notifications (welcome, level_up:<n>, badge:<key>)
    dedupe_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="notifications")

    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_key", name="uq_notifications_user_dedupe"),
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# RateLimitEvent — durable mutation events for request throttling
# ---------------------------------------------------------------------------
class RateLimitEvent(Base):
    __tablename__ = "rate_limit_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_rate_limit_subject_ts", "subject", timestamp.desc()),
        Index("ix_rate_limit_ts", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitEvent subject={self.subject!r} ts={self.timestamp}>"
