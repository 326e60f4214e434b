"""
gamehunt.services.admin_service — Audited Admin XP Mutations
=============================================================

Every admin write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change (ledger row / revert) and re-run the aggregator
  4. Write admin_log with before/after JSONB
  5. Commit
  6. Dispatch notifications

Manual awards go through the ledger like everything else, as a
``MANUAL_AWARD`` entry with a unique ``admin-<hex>`` reference, so
reconciliation treats them exactly like organic XP.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gamehunt.database.models import (
    AdminActionType,
    AdminLog,
    NotificationType,
    User,
    XpAction,
    XpLogEntry,
)
from gamehunt.services import notification_service, reconciliation_service, xp_service
from gamehunt.services.notification_service import NotificationEvent

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def _row_to_dict(obj: Any) -> dict | None:
    """Column values of *obj* as JSON-safe data, for audit snapshots."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Stage an audit row; it commits or rolls back with the caller's change."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=str(action_type),
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# XP mutations
# ---------------------------------------------------------------------------

def award_xp(
    engine: Engine,
    *,
    user_id: int,
    amount: int,
    reason: str = "",
    actor_id: int,
) -> dict:
    """Grant (or, with a negative amount, deduct) XP through the ledger.

    Raises ``ValueError`` for an unknown user or a zero amount.
    """
    if amount == 0:
        raise ValueError("Amount must be non-zero")

    reference_id = f"admin-{uuid.uuid4().hex}"
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            raise ValueError(f"User not found: {user_id}")
        before = _row_to_dict(user)

        entry = XpLogEntry(
            user_id=user_id,
            action=XpAction.MANUAL_AWARD.value,
            delta=amount,
            reference_id=reference_id,
        )
        session.add(entry)
        session.flush()

        recalc = xp_service.recalculate_in_session(session, user)
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.MANUAL_AWARD,
            target_table="users",
            target_id=str(user_id),
            before=before,
            after=_row_to_dict(user),
            reason=reason or None,
        )
        session.commit()
        entry_id = entry.id

    logger.info("Admin %d awarded %+d XP to user %d: %s", actor_id, amount, user_id, reason)

    events = []
    if amount > 0:
        events.append(NotificationEvent(
            user_id=user_id,
            message=notification_service.xp_gained(amount),
            type=NotificationType.XP,
            metadata={"action": XpAction.MANUAL_AWARD.value, "reason": reason},
        ))
    events.extend(xp_service.recalc_notification_events(recalc))
    notification_service.dispatch(engine, events)

    return {"entry_id": entry_id, "reference_id": reference_id, **recalc.to_dict()}


def revoke_xp(
    engine: Engine,
    *,
    user_id: int,
    entry_id: int,
    reason: str = "",
    actor_id: int,
) -> dict:
    """Soft-revert one ledger entry of *user_id*.

    Raises ``ValueError`` if the entry does not exist, belongs to another
    user, or is already reverted.
    """
    with Session(engine, expire_on_commit=False) as session:
        entry = session.get(XpLogEntry, entry_id)
        if entry is None or entry.user_id != user_id:
            raise ValueError(f"XP entry not found: {entry_id}")
        if entry.reverted:
            raise ValueError(f"XP entry already reverted: {entry_id}")

        before = _row_to_dict(entry)
        entry.reverted = True
        session.flush()

        user = session.get(User, user_id)
        recalc = xp_service.recalculate_in_session(session, user)
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.MANUAL_REVOKE,
            target_table="xp_log",
            target_id=str(entry_id),
            before=before,
            after=_row_to_dict(entry),
            reason=reason or None,
        )
        session.commit()
        delta = entry.delta

    logger.info("Admin %d reverted XP entry %d (%+d) of user %d", actor_id, entry_id, delta, user_id)
    notification_service.dispatch(engine, xp_service.recalc_notification_events(recalc))
    return {"entry_id": entry_id, "xp_delta": -delta, **recalc.to_dict()}


def recalculate(engine: Engine, *, user_id: int, actor_id: int) -> dict:
    """Recompute one user's aggregate and audit the result."""
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            raise ValueError(f"User not found: {user_id}")
        before = _row_to_dict(user)

        recalc = xp_service.recalculate_in_session(session, user)
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.RECALCULATE,
            target_table="users",
            target_id=str(user_id),
            before=before,
            after=_row_to_dict(user),
        )
        session.commit()

    notification_service.dispatch(engine, xp_service.recalc_notification_events(recalc))
    return recalc.to_dict()


def reconcile(engine: Engine, *, actor_id: int) -> dict:
    """Run a full reconciliation pass and audit its summary."""
    report = reconciliation_service.reconcile_user_xp(engine)

    with Session(engine) as session:
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.RECONCILE,
            target_table="users",
            target_id=None,
            before=None,
            after={
                "checked": report["checked"],
                "corrected": report["corrected"],
                "corrections": report["corrections"],
            },
        )
        session.commit()

    return report


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

def get_audit_log(engine: Engine, *, page: int = 1, page_size: int = 25) -> dict:
    """Paginated admin audit log, newest first."""
    with Session(engine) as session:
        total = session.scalar(select(func.count()).select_from(AdminLog)) or 0
        rows = session.scalars(
            select(AdminLog)
            .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()

        return {
            "total": total,
            "page": page,
            "page_size": page_size,
            "entries": [
                {
                    "id": r.id,
                    "actor_id": str(r.actor_id),
                    "action_type": r.action_type,
                    "target_table": r.target_table,
                    "target_id": r.target_id,
                    "before_snapshot": r.before_snapshot,
                    "after_snapshot": r.after_snapshot,
                    "reason": r.reason,
                    "timestamp": r.timestamp.isoformat() if r.timestamp else None,
                }
                for r in rows
            ],
        }
