"""
gamehunt.services.badge_service — Badge Evaluation & Queries
=============================================================

Loads a user's aggregate stats, runs them through the pure rule registry
in :mod:`gamehunt.engine.badges` and persists whatever is newly earned.

Each award writes two rows in one SAVEPOINT:

* a ``user_badges`` row (PK ``(user_id, badge_key)`` makes it unique), and
* a zero-delta ``BADGE_UNLOCKED`` ledger entry referencing the badge key,
  kept for audit only.  Badges carry no direct XP.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from gamehunt.database.engine import get_session
from gamehunt.database.models import (
    NotificationType,
    Post,
    PostComment,
    PostLike,
    User,
    UserBadge,
    XpAction,
    XpLogEntry,
)
from gamehunt.engine.badges import BADGE_CATALOG, BadgeStats, eligible_badges
from gamehunt.services import notification_service
from gamehunt.services.notification_service import NotificationEvent

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

BADGE_LINK = "/profile#badges"


def _count(session: Session, model: type, user_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(model).where(model.user_id == user_id)
    ) or 0


def load_badge_stats(session: Session, user: User) -> BadgeStats:
    """Snapshot the counters every badge rule needs."""
    owned = session.scalars(
        select(UserBadge.badge_key).where(UserBadge.user_id == user.id)
    ).all()
    return BadgeStats(
        total_xp=user.xp,
        level=user.level,
        post_count=_count(session, Post, user.id),
        likes_given=_count(session, PostLike, user.id),
        comment_count=_count(session, PostComment, user.id),
        owned=frozenset(owned),
    )


def award_eligible_badges(session: Session, user: User) -> list[str]:
    """Grant every badge *user* newly qualifies for, inside *session*.

    Returns the keys actually inserted, in catalog order.  A badge that
    another transaction granted concurrently is skipped silently.
    """
    stats = load_badge_stats(session, user)
    awarded: list[str] = []

    for key in eligible_badges(stats):
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(UserBadge(user_id=user.id, badge_key=key))
                session.add(XpLogEntry(
                    user_id=user.id,
                    action=XpAction.BADGE_UNLOCKED.value,
                    delta=0,
                    reference_id=key,
                ))
                session.flush()
        except IntegrityError:
            logger.debug("Badge %s already granted to user %d", key, user.id)
            continue
        awarded.append(key)
        logger.info("User %d earned badge %s", user.id, key)

    return awarded


def badge_notification_events(user_id: int, keys: list[str]) -> list[NotificationEvent]:
    """One ``badge_unlocked`` notification per key, keyed per badge."""
    events = []
    for key in keys:
        definition = BADGE_CATALOG.get(key)
        name = definition.name if definition else key
        events.append(NotificationEvent(
            user_id=user_id,
            message=notification_service.badge_unlocked(name),
            type=NotificationType.BADGE_UNLOCKED,
            title="Badge Unlocked!",
            link=BADGE_LINK,
            icon=definition.icon if definition else None,
            metadata={"badge_key": key},
            dedupe_key=f"badge:{key}",
        ))
    return events


def check_and_award_badges(engine: Engine, user_id: int) -> list[str]:
    """Evaluate and grant badges for one user in its own transaction.

    Returns the newly awarded keys (empty for an unknown user).
    """
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return []
        awarded = award_eligible_badges(session, user)

    notification_service.dispatch(engine, badge_notification_events(user_id, awarded))
    return awarded


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_badge_catalog() -> list[dict]:
    """Every known badge, in catalog order."""
    return [
        {
            "key": badge.key,
            "name": badge.name,
            "description": badge.description,
            "icon": badge.icon,
            "category": badge.category,
        }
        for badge in BADGE_CATALOG.values()
    ]


def get_user_badges(engine: Engine, user_id: int) -> list[dict]:
    """Badges earned by *user_id*, newest first, joined with their definition."""
    with Session(engine) as session:
        rows = session.scalars(
            select(UserBadge)
            .options(joinedload(UserBadge.definition))
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.earned_at.desc(), UserBadge.badge_key)
        ).all()
        return [
            {
                "key": ub.badge_key,
                "name": ub.definition.name,
                "description": ub.definition.description,
                "icon": ub.definition.icon,
                "category": ub.definition.category,
                "earned_at": (
                    ub.earned_at.isoformat() if isinstance(ub.earned_at, datetime) else None
                ),
            }
            for ub in rows
        ]
