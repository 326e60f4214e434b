"""
gamehunt.services.xp_service — XP Ledger & Aggregator
======================================================

The ledger (``xp_log``) is the source of truth.  ``users.xp`` and
``users.level`` are a fold over it and are rewritten only here, by
:func:`recalculate_in_session`, after every ledger mutation.

Idempotency: at most one *active* (non-reverted) entry may exist per
``(user_id, action, reference_id)``.  :func:`add_xp` checks first, then
inserts inside a SAVEPOINT so the partial unique index
``ix_xp_log_active_award`` settles concurrent duplicates; an
``IntegrityError`` is reported as the same soft failure.

Notifications (XP gained, level-ups, badges) are dispatched after the
transaction commits and can never undo it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gamehunt.constants import (
    XP_DESCRIPTIONS,
    XP_VALUES,
    calculate_level,
    get_xp_progress,
    notification_icon,
)
from gamehunt.database.engine import get_session
from gamehunt.database.models import NotificationType, User, XpAction, XpLogEntry
from gamehunt.services import badge_service, notification_service
from gamehunt.services.notification_service import NotificationEvent

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MSG_USER_NOT_FOUND = "User not found"
MSG_ALREADY_AWARDED = "XP already awarded for this action"
MSG_NOTHING_TO_REMOVE = "No XP found to remove for this action"

LEVEL_UP_LINK = "/profile#badges"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class XpChange:
    """Outcome of a ledger mutation.  Business failures are soft."""

    success: bool
    xp_delta: int = 0
    message: str | None = None

    def to_dict(self) -> dict:
        return {"success": self.success, "xp_delta": self.xp_delta, "message": self.message}


@dataclass(slots=True)
class Recalculation:
    """Before/after snapshot of one aggregate recomputation."""

    user_id: int
    old_xp: int
    xp: int
    old_level: int
    level: int
    badges_awarded: list[str] = field(default_factory=list)

    @property
    def levels_gained(self) -> list[int]:
        return list(range(self.old_level + 1, self.level + 1))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "old_xp": self.old_xp,
            "xp": self.xp,
            "old_level": self.old_level,
            "level": self.level,
            "badges_awarded": list(self.badges_awarded),
        }


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def get_or_create_user(session: Session, user_id: int, username: str) -> User:
    """Fetch or insert a User row."""
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, username=username, xp=0, level=1)
        session.add(user)
        session.flush()
    elif username and user.username != username:
        user.username = username
    return user


def ensure_user(engine: Engine, user_id: int, username: str) -> bool:
    """Make sure *user_id* exists.  New users get a one-time welcome.

    Returns ``True`` if the user was created by this call.
    """
    with get_session(engine) as session:
        created = session.get(User, user_id) is None
        if created:
            try:
                with session.begin_nested():   # SAVEPOINT
                    get_or_create_user(session, user_id, username)
            except IntegrityError:
                # A concurrent first request registered the user already.
                created = False
        if not created:
            get_or_create_user(session, user_id, username)

    if created:
        logger.info("Registered new user %d (%s)", user_id, username)
        notification_service.dispatch(engine, [NotificationEvent(
            user_id=user_id,
            message=notification_service.welcome(username),
            type=NotificationType.WELCOME,
            title="Welcome!",
        )])
    return created


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------
def _reference_matches(reference_id: str | None):
    if reference_id is None:
        return XpLogEntry.reference_id.is_(None)
    return XpLogEntry.reference_id == reference_id


def _find_active_entry(
    session: Session, user_id: int, action: str, reference_id: str | None
) -> XpLogEntry | None:
    return session.scalar(
        select(XpLogEntry).where(
            XpLogEntry.user_id == user_id,
            XpLogEntry.action == action,
            _reference_matches(reference_id),
            XpLogEntry.reverted.is_(False),
        )
    )


def recalculate_in_session(session: Session, user: User) -> Recalculation:
    """Re-derive ``xp``/``level`` from the ledger and evaluate badges.

    Runs inside the caller's transaction.  Badge evaluation is isolated in
    a SAVEPOINT; if it fails the error is logged and the XP update stands.
    """
    total = session.scalar(
        select(func.coalesce(func.sum(XpLogEntry.delta), 0)).where(
            XpLogEntry.user_id == user.id,
            XpLogEntry.reverted.is_(False),
        )
    )
    old_xp, old_level = user.xp, user.level
    user.xp = max(0, int(total or 0))
    user.level = calculate_level(user.xp)
    session.flush()

    badges: list[str] = []
    try:
        with session.begin_nested():   # SAVEPOINT
            badges = badge_service.award_eligible_badges(session, user)
    except Exception:
        logger.exception("Badge evaluation failed for user %d", user.id)
        badges = []

    if user.level != old_level:
        logger.info("User %d level %d → %d", user.id, old_level, user.level)

    return Recalculation(
        user_id=user.id,
        old_xp=old_xp,
        xp=user.xp,
        old_level=old_level,
        level=user.level,
        badges_awarded=badges,
    )


def recalc_notification_events(recalc: Recalculation) -> list[NotificationEvent]:
    events = [
        NotificationEvent(
            user_id=recalc.user_id,
            message=notification_service.level_reached(level),
            type=NotificationType.LEVEL_UP,
            title="Level Up!",
            link=LEVEL_UP_LINK,
            icon=notification_icon(NotificationType.LEVEL_UP),
            metadata={"level": level},
            dedupe_key=f"level_up:{level}",
        )
        for level in recalc.levels_gained
    ]
    events.extend(
        badge_service.badge_notification_events(recalc.user_id, recalc.badges_awarded)
    )
    return events


def recalculate_user_xp(engine: Engine, user_id: int) -> Recalculation | None:
    """Recompute one user's aggregate in its own transaction.

    Returns ``None`` for an unknown user.
    """
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        recalc = recalculate_in_session(session, user)

    notification_service.dispatch(engine, recalc_notification_events(recalc))
    return recalc


# ---------------------------------------------------------------------------
# Ledger mutations
# ---------------------------------------------------------------------------
def add_xp(
    engine: Engine,
    user_id: int,
    action: XpAction | str,
    reference_id: str | None = None,
    custom_amount: int | None = None,
) -> XpChange:
    """Append a ledger entry for *action* and recompute the user.

    The delta is the action's table value unless *custom_amount* is given.
    A zero table value without a custom amount is a successful no-op.
    """
    action = XpAction(action)
    reference_id = reference_id or None
    delta = custom_amount if custom_amount is not None else XP_VALUES[action]

    if delta == 0 and custom_amount is None:
        return XpChange(success=True, xp_delta=0)

    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return XpChange(success=False, message=MSG_USER_NOT_FOUND)

        if _find_active_entry(session, user_id, action.value, reference_id) is not None:
            return XpChange(success=False, message=MSG_ALREADY_AWARDED)

        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(XpLogEntry(
                    user_id=user_id,
                    action=action.value,
                    delta=delta,
                    reference_id=reference_id,
                ))
                session.flush()
        except IntegrityError:
            # Lost a race against an identical award; the index caught it.
            session.rollback()
            return XpChange(success=False, message=MSG_ALREADY_AWARDED)

        recalc = recalculate_in_session(session, user)
        session.commit()

    logger.debug("User %d %s ref=%s %+d XP", user_id, action.value, reference_id, delta)

    events: list[NotificationEvent] = []
    if delta > 0 and action is not XpAction.BADGE_UNLOCKED:
        events.append(NotificationEvent(
            user_id=user_id,
            message=notification_service.xp_gained(delta),
            type=NotificationType.XP,
            metadata={"action": action.value, "reference_id": reference_id, "xp_delta": delta},
        ))
    events.extend(recalc_notification_events(recalc))
    notification_service.dispatch(engine, events)

    return XpChange(success=True, xp_delta=delta)


def remove_xp(
    engine: Engine,
    user_id: int,
    action: XpAction | str,
    reference_id: str | None = None,
) -> XpChange:
    """Soft-revert the active entry for ``(user_id, action, reference_id)``.

    ``xp_delta`` is the negated delta of the reverted entry.
    """
    action = XpAction(action)
    reference_id = reference_id or None

    with Session(engine) as session:
        entry = _find_active_entry(session, user_id, action.value, reference_id)
        if entry is None:
            return XpChange(success=False, message=MSG_NOTHING_TO_REMOVE)

        entry.reverted = True
        reverted_delta = entry.delta
        session.flush()

        user = session.get(User, user_id)
        recalc = recalculate_in_session(session, user)
        session.commit()

    logger.debug(
        "User %d reverted %s ref=%s (%+d XP)",
        user_id, action.value, reference_id, -reverted_delta,
    )
    notification_service.dispatch(engine, recalc_notification_events(recalc))
    return XpChange(success=True, xp_delta=-reverted_delta)


# ---------------------------------------------------------------------------
# Community action helpers
# ---------------------------------------------------------------------------
def handle_like_action(engine: Engine, user_id: int, post_id: int, is_liked: bool) -> XpChange:
    """Liking awards POST_LIKED for the post; unliking reverts that award."""
    if is_liked:
        return add_xp(engine, user_id, XpAction.POST_LIKED, str(post_id))
    return remove_xp(engine, user_id, XpAction.POST_LIKED, str(post_id))


def handle_post_creation(engine: Engine, user_id: int, post_id: int) -> XpChange:
    return add_xp(engine, user_id, XpAction.POST_CREATED, str(post_id))


def handle_post_deletion(engine: Engine, user_id: int, post_id: int) -> XpChange:
    return remove_xp(engine, user_id, XpAction.POST_CREATED, str(post_id))


def handle_share_action(engine: Engine, user_id: int, post_id: int) -> XpChange:
    return add_xp(engine, user_id, XpAction.POST_SHARED, str(post_id))


def handle_comment_creation(
    engine: Engine, user_id: int, comment_id: int, is_reply: bool = False
) -> XpChange:
    action = XpAction.REPLY_CREATED if is_reply else XpAction.COMMENT_CREATED
    return add_xp(engine, user_id, action, str(comment_id))


def handle_comment_deletion(
    engine: Engine, user_id: int, comment_id: int, is_reply: bool = False
) -> XpChange:
    action = XpAction.REPLY_CREATED if is_reply else XpAction.COMMENT_CREATED
    return remove_xp(engine, user_id, action, str(comment_id))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if isinstance(value, datetime) else None


def get_user_xp_info(engine: Engine, user_id: int) -> dict | None:
    """XP, level and progress-bar data for one user, or ``None``."""
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        return {
            "user_id": user.id,
            "username": user.username,
            "xp": user.xp,
            "level": user.level,
            **get_xp_progress(user.xp, user.level).to_dict(),
        }


def get_user_xp_history(
    engine: Engine, user_id: int, limit: int = 20, offset: int = 0
) -> list[dict]:
    """Ledger entries for *user_id*, newest first (reverted ones included)."""
    with Session(engine) as session:
        rows = session.scalars(
            select(XpLogEntry)
            .where(XpLogEntry.user_id == user_id)
            .order_by(XpLogEntry.created_at.desc(), XpLogEntry.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        return [
            {
                "id": e.id,
                "action": e.action,
                "description": XP_DESCRIPTIONS.get(e.action, e.action),
                "xp_delta": e.delta,
                "reference_id": e.reference_id,
                "reverted": e.reverted,
                "created_at": _isoformat(e.created_at),
            }
            for e in rows
        ]


def get_xp_leaderboard(engine: Engine, limit: int = 10) -> list[dict]:
    """Top users by XP; earlier sign-ups win ties."""
    with Session(engine) as session:
        users = session.scalars(
            select(User)
            .order_by(User.xp.desc(), User.created_at.asc(), User.id.asc())
            .limit(limit)
        ).all()
        return [
            {
                "rank": rank,
                "user_id": u.id,
                "username": u.username,
                "xp": u.xp,
                "level": u.level,
            }
            for rank, u in enumerate(users, start=1)
        ]
