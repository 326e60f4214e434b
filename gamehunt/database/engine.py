"""
gamehunt.database.engine — Engine, Sessions & the Thread Bridge
================================================================

Everything below the API is synchronous SQLAlchemy.  Services open their
own unit of work with :func:`get_session`; anything running on the event
loop hands blocking calls to :func:`run_db`.

Usage::

    from gamehunt.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()
    init_db(engine)

    info = await run_db(xp_service.get_user_xp_info, engine, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from gamehunt.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Server databases get a bounded, self-healing pool; SQLite keeps its defaults.
_SERVER_POOL: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def create_db_engine(url: str | None = None) -> Engine:
    """Return an :class:`Engine` for *url*, or for ``DATABASE_URL``.

    Set ``SQL_ECHO=1`` to log every statement.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is given.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example to .env and point it at your PostgreSQL database."
        )

    parsed = make_url(url)
    options: dict[str, Any] = {"echo": _truthy(os.getenv("SQL_ECHO"))}
    if parsed.get_backend_name() != "sqlite":
        options.update(_SERVER_POOL)

    engine = create_engine(parsed, **options)
    logger.info(
        "Database engine ready (%s on %s)",
        parsed.get_backend_name(), parsed.host or parsed.database,
    )
    return engine


def init_db(engine: Engine) -> None:
    """Create missing tables, then make sure every catalog badge exists.

    Production schemas come from ``alembic upgrade head``; this is the
    fallback for development and tests.  Both steps are idempotent.
    """
    from gamehunt.database.seed import ensure_badge_definitions

    Base.metadata.create_all(engine)
    ensure_badge_definitions(engine)
    logger.info("Schema and badge catalog in place")


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """One unit of work: commit when the block exits cleanly, roll back
    and re-raise when it doesn't."""
    with Session(engine) as session:
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        session.commit()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a blocking *func* on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
