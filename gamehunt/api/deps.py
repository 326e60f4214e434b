"""
gamehunt.api.deps — FastAPI dependency injection
=================================================

Tokens are HS256 JWTs issued by the surrounding site.  ``sub`` carries the
numeric user id, ``username`` the display name and ``is_admin`` gates the
admin surface.  The first authenticated request of a new user registers
them (and triggers their welcome notification).
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from gamehunt.config import GameHuntConfig, load_config
from gamehunt.database.engine import create_db_engine
from gamehunt.services import xp_service

JWT_ALGORITHM = "HS256"

# Placeholders that ship in docs and examples; never valid in a deployment.
_PLACEHOLDER_SECRETS = frozenset({
    "gamehunt-dev-secret-change-me",
    "change-me",
    "changeme",
    "secret",
    "dev",
})

_SECRET_MIN_CHARS = 32


def _load_jwt_secret() -> str:
    """Read ``JWT_SECRET`` and refuse to continue with an unusable one.

    Raises RuntimeError for an unset or blank secret, a known placeholder,
    or anything shorter than 32 characters.  Called once at import.
    """
    secret = os.environ.get("JWT_SECRET", "").strip()

    if not secret:
        problem = "JWT_SECRET is not set"
    elif secret.lower() in _PLACEHOLDER_SECRETS:
        problem = f"JWT_SECRET is a known weak default ({secret!r})"
    elif len(secret) < _SECRET_MIN_CHARS:
        problem = (
            f"JWT_SECRET is too short: {len(secret)} characters,"
            f" need at least {_SECRET_MIN_CHARS}"
        )
    else:
        return secret

    raise RuntimeError(
        f"{problem}.  Generate one with: "
        "python -c \"import secrets; print(secrets.token_urlsafe(64))\""
    )


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> GameHuntConfig:
    return load_config()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status.HTTP_401_UNAUTHORIZED,
        detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_bearer(authorization: str | None) -> dict:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not token:
        raise _unauthorized("Missing token")

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        payload["user_id"] = int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        raise _unauthorized("Invalid token") from None
    return payload


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> dict:
    """Validate the bearer token and make sure the user row exists.

    Returns the claims with an added integer ``user_id``.  401 otherwise.
    """
    payload = _decode_bearer(authorization)
    username = payload.get("username") or f"user-{payload['user_id']}"
    xp_service.ensure_user(engine, payload["user_id"], username)
    return payload


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """401 without a valid token, 403 unless the token carries ``is_admin``."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload
