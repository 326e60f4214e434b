"""
gamehunt.database.seed — Badge Catalog Seeder
==============================================

Writes the static badge catalog into ``badge_definitions`` so user badges
can reference it.  Idempotent — only inserts keys that don't already exist;
existing definitions are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from gamehunt.database.models import BadgeDefinition
from gamehunt.engine.badges import BADGE_CATALOG

logger = logging.getLogger(__name__)


def ensure_badge_definitions(engine: Engine) -> int:
    """Insert catalog badges that are missing from the table.

    Returns the number of rows inserted.
    """
    session = Session(engine)
    inserted = 0
    try:
        for key, badge in BADGE_CATALOG.items():
            if session.get(BadgeDefinition, key) is None:
                session.add(BadgeDefinition(
                    key=badge.key,
                    name=badge.name,
                    description=badge.description,
                    icon=badge.icon,
                    category=badge.category,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d badge definitions.", inserted)
    return inserted
