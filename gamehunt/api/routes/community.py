"""
gamehunt.api.routes.community — Posts, likes, shares and comments
==================================================================

Every route here is a mutation: authenticated and rate limited.  The XP
outcome of each action is included in the response under ``xp`` (``None``
when the action earned nothing or the XP hook failed).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from gamehunt.api.deps import get_engine
from gamehunt.api.rate_limit import rate_limited_user
from gamehunt.services import community_service

router = APIRouter(tags=["community"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    body: str = ""


class CommentCreate(BaseModel):
    body: str = Field(min_length=1)
    parent_id: int | None = None


def _call(fn, *args, **kwargs) -> dict:
    """Map service errors to HTTP: missing → 404, not owner → 403."""
    try:
        return fn(*args, **kwargs)
    except PermissionError as exc:
        raise HTTPException(status.HTTP_403_FORBIDDEN, str(exc))
    except ValueError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc))


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
@router.post("/posts", status_code=status.HTTP_201_CREATED)
def create_post(
    body: PostCreate,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    return community_service.create_post(engine, user["user_id"], body.title, body.body)


@router.delete("/posts/{post_id}")
def delete_post(
    post_id: int,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    return _call(community_service.delete_post, engine, user["user_id"], post_id)


# ---------------------------------------------------------------------------
# Likes & shares
# ---------------------------------------------------------------------------
@router.post("/posts/{post_id}/like")
def like_post(
    post_id: int,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    return _call(community_service.like_post, engine, user["user_id"], post_id)


@router.delete("/posts/{post_id}/like")
def unlike_post(
    post_id: int,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    return _call(community_service.unlike_post, engine, user["user_id"], post_id)


@router.post("/posts/{post_id}/share")
def share_post(
    post_id: int,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    return _call(community_service.share_post, engine, user["user_id"], post_id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
@router.post("/posts/{post_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    post_id: int,
    body: CommentCreate,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    """Comment on a post, or reply to a comment via ``parent_id``."""
    return _call(
        community_service.add_comment,
        engine, user["user_id"], post_id, body.body, parent_id=body.parent_id,
    )


@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: int,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    return _call(community_service.delete_comment, engine, user["user_id"], comment_id)
