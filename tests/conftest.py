"""
tests/conftest.py — Shared Test Fixtures
=========================================

Every test gets a fresh in-memory SQLite database with the badge catalog
seeded.  The API fixtures talk to that same database through dependency
overrides.
"""

from __future__ import annotations

import os

# gamehunt.api.deps validates the secret at import, so set it first.
os.environ.setdefault("JWT_SECRET", "pytest-only-signing-key-" + "k" * 48)

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine  # noqa: E402
from sqlalchemy.dialects.postgresql import JSONB  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from gamehunt.database.models import Base  # noqa: E402
from gamehunt.database.seed import ensure_badge_definitions  # noqa: E402


# ---------------------------------------------------------------------------
# PostgreSQL column types rendered for SQLite
# ---------------------------------------------------------------------------
@compiles(JSONB, "sqlite")
def _jsonb_on_sqlite(type_, compiler, **kw):
    return "TEXT"


@compiles(BigInteger, "sqlite")
def _bigint_on_sqlite(type_, compiler, **kw):
    # only INTEGER PRIMARY KEY autoincrements in SQLite
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """Seeded in-memory database.

    StaticPool hands every thread the one connection, so work sent through
    ``run_db`` sees the same tables as the test body.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    ensure_badge_definitions(engine)
    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
def make_token(sub: str = "1001", username: str = "Hunter", *, is_admin: bool = False) -> str:
    """Create a JWT the API accepts.  Usable from any test module."""
    import jwt

    from gamehunt.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    return make_token(sub, username, is_admin=True)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


@pytest.fixture
def user_token():
    return make_token()


# ---------------------------------------------------------------------------
# API client wired to the SQLite engine
# ---------------------------------------------------------------------------
@pytest.fixture
def client(db_engine):
    """FastAPI TestClient using the test engine, a fixed config and a
    generous rate limiter.  The lifespan hook is not run."""
    from fastapi.testclient import TestClient

    import gamehunt.api.rate_limit as rl_mod
    from gamehunt.api.deps import get_config, get_engine
    from gamehunt.api.main import app
    from gamehunt.config import GameHuntConfig

    original_limiter = rl_mod._limiter
    rl_mod._limiter = rl_mod.RateLimiter(max_requests=1000, window_seconds=60, engine=db_engine)

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: GameHuntConfig(
        site_name="Test Hunt", leaderboard_default_limit=5,
    )

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
    rl_mod._limiter = original_limiter
