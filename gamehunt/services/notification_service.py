"""
gamehunt.services.notification_service — User Notifications
============================================================

Best-effort side channel for XP, level and badge events.

Two write paths:

* :func:`notify` inserts one row inside the caller's session.  Rows that
  carry a ``dedupe_key`` are at-most-once per user: an existence check runs
  first and the ``uq_notifications_user_dedupe`` constraint (behind a
  SAVEPOINT) settles any race.
* :func:`dispatch` delivers a batch of :class:`NotificationEvent` objects in
  its own session **after** the triggering transaction committed.  A failure
  here is logged and swallowed; it never undoes the XP or badge change.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gamehunt.constants import notification_icon
from gamehunt.database.engine import get_session
from gamehunt.database.models import Notification, NotificationType

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Types delivered at most once per user even without an explicit key.
_ONCE_PER_USER: frozenset[str] = frozenset({NotificationType.WELCOME})


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------
def welcome(username: str | None, site_name: str = "Mobile Game Hunt") -> str:
    return f"Welcome to {site_name}, {username or 'Hunter'}! Your journey starts now \U0001f680"


def xp_gained(amount: int) -> str:
    return f"\u26a1 +{amount} XP gained!"


def level_reached(level: int) -> str:
    return f"\U0001f3c6 Level {level} reached! Keep going!"


def badge_unlocked(title: str) -> str:
    return f"\U0001f396\ufe0f {title} badge unlocked! Click to claim your reward!"


def badge_claimed(title: str, xp: int) -> str:
    return f"\U0001f389 {title} unlocked! +{xp} XP added"


def milestone_reached(action: str) -> str:
    return f"\U0001f3af {action} milestone reached! Great progress!"


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class NotificationEvent:
    """A notification queued for delivery after commit."""

    user_id: int
    message: str
    type: str
    title: str | None = None
    link: str | None = None
    icon: str | None = None
    metadata: dict[str, Any] | None = None
    dedupe_key: str | None = None


def notify(
    session: Session,
    user_id: int,
    message: str,
    type: str = NotificationType.XP,
    metadata: dict[str, Any] | None = None,
    title: str | None = None,
    link: str | None = None,
    icon: str | None = None,
    dedupe_key: str | None = None,
) -> Notification | None:
    """Insert a notification for *user_id* in the caller's transaction.

    ``welcome`` notifications are keyed automatically.  Returns the new row,
    or ``None`` when a row with the same ``dedupe_key`` already exists.
    """
    if dedupe_key is None and type in _ONCE_PER_USER:
        dedupe_key = str(type)

    if dedupe_key is not None:
        existing = session.scalar(
            select(Notification.id).where(
                Notification.user_id == user_id,
                Notification.dedupe_key == dedupe_key,
            )
        )
        if existing is not None:
            logger.debug("Notification %s already sent to user %d", dedupe_key, user_id)
            return None

    row = Notification(
        user_id=user_id,
        type=str(type),
        title=title,
        message=message,
        meta=metadata or {},
        link=link,
        icon=icon or notification_icon(type),
        dedupe_key=dedupe_key,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(row)
            session.flush()
    except IntegrityError:
        # Concurrent insert with the same dedupe_key won the race.
        logger.debug("Notification %s raced for user %d", dedupe_key, user_id)
        return None
    return row


def dispatch(engine: Engine, events: Iterable[NotificationEvent]) -> int:
    """Deliver *events* in a fresh transaction.  Never raises.

    Returns the number of notifications actually inserted.
    """
    events = list(events)
    if not events:
        return 0

    sent = 0
    try:
        with get_session(engine) as session:
            for event in events:
                row = notify(
                    session,
                    event.user_id,
                    event.message,
                    event.type,
                    metadata=event.metadata,
                    title=event.title,
                    link=event.link,
                    icon=event.icon,
                    dedupe_key=event.dedupe_key,
                )
                if row is not None:
                    sent += 1
    except Exception:
        logger.exception("Failed to dispatch %d notification(s)", len(events))
        return 0
    return sent


# ---------------------------------------------------------------------------
# Read / mark-as-read
# ---------------------------------------------------------------------------
def _notification_to_dict(n: Notification) -> dict:
    created = n.created_at
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "metadata": n.meta or {},
        "link": n.link,
        "icon": n.icon,
        "read": n.read,
        "created_at": created.isoformat() if isinstance(created, datetime) else None,
    }


def get_user_notifications(
    engine: Engine,
    user_id: int,
    limit: int = 10,
    unread_only: bool = False,
) -> list[dict]:
    """Newest-first notifications for *user_id*."""
    with Session(engine) as session:
        q = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            q = q.where(Notification.read.is_(False))
        q = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        return [_notification_to_dict(n) for n in session.scalars(q).all()]


def get_unread_count(engine: Engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        ) or 0


def mark_as_read(engine: Engine, user_id: int, notification_id: int) -> bool:
    """Mark one of the user's notifications read.

    Returns ``False`` if it does not exist or belongs to someone else.
    """
    with get_session(engine) as session:
        n = session.get(Notification, notification_id)
        if n is None or n.user_id != user_id:
            return False
        n.read = True
        return True


def mark_many_as_read(engine: Engine, user_id: int, notification_ids: Iterable[int]) -> int:
    """Mark the given unread notifications of *user_id* read.  Ids owned by
    other users are ignored.  Returns the number of rows changed."""
    ids = list(notification_ids)
    if not ids:
        return 0
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(
                Notification.id.in_(ids),
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
            .values(read=True)
        )
        return result.rowcount or 0


def mark_all_as_read(engine: Engine, user_id: int) -> int:
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
        )
        return result.rowcount or 0
