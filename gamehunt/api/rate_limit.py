"""
gamehunt.api.rate_limit — Per-User Mutation Rate Limiting
==========================================================

Sliding-window limiter keyed by the JWT ``sub`` of the caller.  Every write
endpoint (community actions, notification updates, admin XP tools) depends
on :func:`rate_limited_user` or :func:`rate_limited_admin`; reads are never
counted.

State lives in ``rate_limit_events`` so it survives restarts and is shared
by every API worker.  One :meth:`RateLimiter.hit` prunes, counts and records
in a single transaction.

Counted responses carry ``X-RateLimit-Limit`` and ``X-RateLimit-Remaining``.
A rejected request gets HTTP 429, the same headers plus ``Retry-After``,
and a JSON body
``{"error": "rate_limit_exceeded", "message": ..., "retry_after": n}``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from gamehunt.api.deps import get_current_admin, get_current_user
from gamehunt.database.engine import run_db
from gamehunt.database.models import RateLimitEvent

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 30
DEFAULT_WINDOW_SECONDS = 60

_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class RateLimiter:
    """At most *max_requests* recorded hits per subject in any
    *window_seconds* span."""

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        engine: Engine,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.window_seconds)

    def _open_window(self, session: Session, subject: str, now: datetime) -> list[datetime]:
        """Drop expired events for *subject*; return the live timestamps, oldest first."""
        session.execute(
            delete(RateLimitEvent).where(
                RateLimitEvent.subject == subject,
                RateLimitEvent.timestamp < now - self.window,
            )
        )
        return list(session.scalars(
            select(RateLimitEvent.timestamp)
            .where(RateLimitEvent.subject == subject)
            .order_by(RateLimitEvent.timestamp.asc())
        ).all())

    def _blocked(self, oldest: datetime, now: datetime) -> RateLimitDecision:
        wait = (_as_utc(oldest) + self.window - now).total_seconds()
        return RateLimitDecision(
            allowed=False,
            limit=self.max_requests,
            remaining=0,
            retry_after=max(1, math.ceil(wait)),
        )

    def hit(self, subject: str) -> RateLimitDecision:
        """Count one request for *subject* if the window has room.

        A rejected hit is not recorded, so retrying early never pushes
        the reset further out.
        """
        now = datetime.now(UTC)
        with Session(self.engine) as session:
            live = self._open_window(session, subject, now)
            if len(live) >= self.max_requests:
                session.commit()
                return self._blocked(live[0], now)

            session.add(RateLimitEvent(subject=subject, timestamp=now))
            session.commit()

        return RateLimitDecision(
            allowed=True, limit=self.max_requests, remaining=self.max_requests - len(live) - 1
        )


# ---------------------------------------------------------------------------
# Process-wide limiter, configured by the app lifespan
# ---------------------------------------------------------------------------
_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    if _limiter is None:
        raise RuntimeError("Rate limiter not configured; call configure_rate_limiter() first")
    return _limiter


def configure_rate_limiter(
    *,
    engine: Engine,
    max_requests: int = DEFAULT_RATE_LIMIT,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> RateLimiter:
    global _limiter
    _limiter = RateLimiter(max_requests, window_seconds, engine=engine)
    logger.info("Rate limit: %d mutations per %ds per user", max_requests, window_seconds)
    return _limiter


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------
def _quota_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }


async def _enforce(request: Request, response: Response, subject: str) -> None:
    if request.method not in _MUTATION_METHODS:
        return

    limiter = get_rate_limiter()
    decision = await run_db(limiter.hit, subject)
    if decision.allowed:
        response.headers.update(_quota_headers(decision))
        return

    logger.warning(
        "Rate limit exceeded for %s: %d mutations per %ds",
        subject, limiter.max_requests, limiter.window_seconds,
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "error": "rate_limit_exceeded",
            "message": (
                f"Rate limit exceeded: {limiter.max_requests}"
                f" mutations per {limiter.window_seconds} seconds."
            ),
            "retry_after": decision.retry_after,
        },
        headers={"Retry-After": str(decision.retry_after), **_quota_headers(decision)},
    )


async def rate_limited_user(
    request: Request,
    response: Response,
    user: dict = Depends(get_current_user),
) -> dict:
    """Authenticated member whose mutations count against their window."""
    await _enforce(request, response, str(user["sub"]))
    return user


async def rate_limited_admin(
    request: Request,
    response: Response,
    admin: dict = Depends(get_current_admin),
) -> dict:
    await _enforce(request, response, str(admin["sub"]))
    return admin
