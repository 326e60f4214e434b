"""
gamehunt.services.reconciliation_service — XP Aggregate Reconciliation
=======================================================================

Admin job that validates ``users.xp`` / ``users.level`` against the
``xp_log`` ledger and corrects drift if found.

How it works:
    1. ``SUM(delta)`` over non-reverted ledger rows, grouped by user.
    2. Compare against the stored ``xp`` (floored at zero) and ``level``.
    3. On mismatch, re-run the aggregator for that user, which rewrites
       both columns and re-evaluates badges.
    4. Log all corrections for audit.

Users without drift still get a badge pass so rules added after the fact
are granted retroactively.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from gamehunt.constants import calculate_level
from gamehunt.database.engine import get_session
from gamehunt.database.models import User, XpLogEntry
from gamehunt.services import badge_service, notification_service, xp_service

logger = logging.getLogger(__name__)


def reconcile_user_xp(engine: Engine) -> dict:
    """Re-derive every user's aggregate from the ledger and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...],
    "badges_awarded": {...}, "timestamp": ...}``.
    """
    corrections: list[dict] = []
    badges_awarded: dict[int, list[str]] = {}
    events = []

    with get_session(engine) as session:
        truth_rows = session.execute(
            select(XpLogEntry.user_id, func.sum(XpLogEntry.delta).label("total"))
            .where(XpLogEntry.reverted.is_(False))
            .group_by(XpLogEntry.user_id)
        ).all()
        truth_map: dict[int, int] = {row.user_id: int(row.total or 0) for row in truth_rows}

        users = session.scalars(select(User).order_by(User.id)).all()
        checked = 0

        for user in users:
            checked += 1
            actual_xp = max(0, truth_map.get(user.id, 0))
            actual_level = calculate_level(actual_xp)

            if user.xp != actual_xp or user.level != actual_level:
                corrections.append({
                    "user_id": user.id,
                    "stored_xp": user.xp,
                    "actual_xp": actual_xp,
                    "stored_level": user.level,
                    "actual_level": actual_level,
                    "diff": actual_xp - user.xp,
                })
                recalc = xp_service.recalculate_in_session(session, user)
                awarded = recalc.badges_awarded
                events.extend(xp_service.recalc_notification_events(recalc))
            else:
                try:
                    with session.begin_nested():   # SAVEPOINT
                        awarded = badge_service.award_eligible_badges(session, user)
                except Exception:
                    logger.exception("Badge evaluation failed for user %d", user.id)
                    awarded = []
                events.extend(badge_service.badge_notification_events(user.id, awarded))

            if awarded:
                badges_awarded[user.id] = awarded

    if corrections:
        logger.warning(
            "XP reconciliation: corrected %d/%d users: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("XP reconciliation: all %d users match", checked)

    notification_service.dispatch(engine, events)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "badges_awarded": badges_awarded,
        "timestamp": datetime.now(UTC).isoformat(),
    }
