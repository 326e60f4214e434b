"""
gamehunt.services.community_service — Posts, Likes, Comments & Shares
======================================================================

The community actions that feed the XP ledger.

Every action follows the same two-step shape:

1. Apply and **commit** the primary change (insert post, like, …).
2. Run the matching XP hook from :mod:`gamehunt.services.xp_service`.

Step 2 is wrapped by :func:`_apply_xp`: any exception is logged and the
action still succeeds.  XP is a side effect, never a precondition.

Raises ``ValueError`` for unknown posts/comments and ``PermissionError``
when a user tries to delete content they do not own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gamehunt.database.models import Post, PostComment, PostLike
from gamehunt.services import xp_service
from gamehunt.services.xp_service import XpChange

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _apply_xp(hook: Callable[..., XpChange], *args, **kwargs) -> dict | None:
    """Run an XP hook after the primary commit.  Never raises."""
    try:
        return hook(*args, **kwargs).to_dict()
    except Exception:
        logger.exception(
            "XP hook %s failed for args=%r",
            getattr(hook, "__name__", hook), args[1:],
        )
        return None


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if isinstance(value, datetime) else None


def _post_to_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "user_id": post.user_id,
        "title": post.title,
        "body": post.body,
        "created_at": _isoformat(post.created_at),
    }


def _comment_to_dict(comment: PostComment) -> dict:
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "user_id": comment.user_id,
        "parent_id": comment.parent_id,
        "body": comment.body,
        "is_reply": comment.is_reply,
        "created_at": _isoformat(comment.created_at),
    }


def _like_count(session: Session, post_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(PostLike).where(PostLike.post_id == post_id)
    ) or 0


def _reply_subtree(session: Session, comment_id: int) -> list[PostComment]:
    """Every reply below *comment_id*, at any depth."""
    found: list[PostComment] = []
    frontier = [comment_id]
    while frontier:
        children = session.scalars(
            select(PostComment).where(PostComment.parent_id.in_(frontier))
        ).all()
        found.extend(children)
        frontier = [c.id for c in children]
    return found


def _revert_removed(
    engine: Engine,
    comments: list[tuple[int, int, bool]],
    likes: list[tuple[int, int]],
) -> int:
    """Take back XP earned by comments and likes deleted along with their
    parent.  Returns how many awards were reverted."""
    reverted = 0
    for author_id, comment_id, is_reply in comments:
        xp = _apply_xp(
            xp_service.handle_comment_deletion,
            engine, author_id, comment_id, is_reply=is_reply,
        )
        reverted += bool(xp and xp["success"])
    for liker_id, post_id in likes:
        xp = _apply_xp(xp_service.handle_like_action, engine, liker_id, post_id, False)
        reverted += bool(xp and xp["success"])
    return reverted


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
def create_post(engine: Engine, user_id: int, title: str, body: str = "") -> dict:
    with Session(engine, expire_on_commit=False) as session:
        post = Post(user_id=user_id, title=title, body=body)
        session.add(post)
        session.commit()
        session.refresh(post)
        result = _post_to_dict(post)

    logger.info("User %d created post %d", user_id, result["id"])
    result["xp"] = _apply_xp(xp_service.handle_post_creation, engine, user_id, result["id"])
    return result


def delete_post(engine: Engine, user_id: int, post_id: int) -> dict:
    """Delete a post with its comments and likes.

    Everyone who earned XP from those comments and likes loses it, like the
    author loses ``POST_CREATED``.
    """
    with Session(engine) as session:
        post = session.get(Post, post_id)
        if post is None:
            raise ValueError(f"Post not found: {post_id}")
        if post.user_id != user_id:
            raise PermissionError("You can only delete your own posts")

        comments = [
            (c.user_id, c.id, c.is_reply)
            for c in session.scalars(
                select(PostComment).where(PostComment.post_id == post_id)
            ).all()
        ]
        likes = [
            (liker_id, post_id)
            for liker_id in session.scalars(
                select(PostLike.user_id).where(PostLike.post_id == post_id)
            ).all()
        ]
        session.execute(delete(PostComment).where(PostComment.post_id == post_id))
        session.execute(delete(PostLike).where(PostLike.post_id == post_id))
        session.delete(post)
        session.commit()

    logger.info(
        "User %d deleted post %d (%d comments, %d likes)",
        user_id, post_id, len(comments), len(likes),
    )
    xp = _apply_xp(xp_service.handle_post_deletion, engine, user_id, post_id)
    return {
        "deleted": True,
        "post_id": post_id,
        "xp": xp,
        "reverted_awards": _revert_removed(engine, comments, likes),
    }



# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
def like_post(engine: Engine, user_id: int, post_id: int) -> dict:
    """Like *post_id*.  Liking an already-liked post reports the current state."""
    with Session(engine) as session:
        if session.get(Post, post_id) is None:
            raise ValueError(f"Post not found: {post_id}")

        created = True
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(PostLike(user_id=user_id, post_id=post_id))
                session.flush()
        except IntegrityError:
            created = False
        session.commit()
        like_count = _like_count(session, post_id)

    xp = None
    if created:
        xp = _apply_xp(xp_service.handle_like_action, engine, user_id, post_id, True)
    return {"post_id": post_id, "liked": True, "like_count": like_count, "xp": xp}


def unlike_post(engine: Engine, user_id: int, post_id: int) -> dict:
    """Remove a like.  Unliking a post that is not liked reports the current state."""
    with Session(engine) as session:
        if session.get(Post, post_id) is None:
            raise ValueError(f"Post not found: {post_id}")

        like = session.get(PostLike, (user_id, post_id))
        removed = like is not None
        if removed:
            session.delete(like)
            session.commit()
        like_count = _like_count(session, post_id)

    xp = None
    if removed:
        xp = _apply_xp(xp_service.handle_like_action, engine, user_id, post_id, False)
    return {"post_id": post_id, "liked": False, "like_count": like_count, "xp": xp}


# ---------------------------------------------------------------------------
# Shares
# ---------------------------------------------------------------------------
def share_post(engine: Engine, user_id: int, post_id: int) -> dict:
    """Record a share.  Only the first share of a post by a user earns XP."""
    with Session(engine) as session:
        if session.get(Post, post_id) is None:
            raise ValueError(f"Post not found: {post_id}")

    return {
        "post_id": post_id,
        "shared": True,
        "xp": _apply_xp(xp_service.handle_share_action, engine, user_id, post_id),
    }


# ---------------------------------------------------------------------------
# Comments & replies
# ---------------------------------------------------------------------------
def add_comment(
    engine: Engine,
    user_id: int,
    post_id: int,
    body: str,
    parent_id: int | None = None,
) -> dict:
    """Comment on a post, or reply to a comment when *parent_id* is given."""
    with Session(engine, expire_on_commit=False) as session:
        if session.get(Post, post_id) is None:
            raise ValueError(f"Post not found: {post_id}")
        if parent_id is not None:
            parent = session.get(PostComment, parent_id)
            if parent is None or parent.post_id != post_id:
                raise ValueError(f"Comment not found: {parent_id}")

        comment = PostComment(
            post_id=post_id, user_id=user_id, parent_id=parent_id, body=body
        )
        session.add(comment)
        session.commit()
        session.refresh(comment)
        result = _comment_to_dict(comment)

    result["xp"] = _apply_xp(
        xp_service.handle_comment_creation,
        engine, user_id, result["id"], is_reply=result["is_reply"],
    )
    return result


def delete_comment(engine: Engine, user_id: int, comment_id: int) -> dict:
    """Delete a comment and every reply beneath it, reverting their XP."""
    with Session(engine) as session:
        comment = session.get(PostComment, comment_id)
        if comment is None:
            raise ValueError(f"Comment not found: {comment_id}")
        if comment.user_id != user_id:
            raise PermissionError("You can only delete your own comments")
        is_reply = comment.is_reply

        replies = [(r.user_id, r.id, r.is_reply) for r in _reply_subtree(session, comment_id)]
        if replies:
            session.execute(
                delete(PostComment).where(PostComment.id.in_([r[1] for r in replies]))
            )
        session.delete(comment)
        session.commit()

    xp = _apply_xp(
        xp_service.handle_comment_deletion,
        engine, user_id, comment_id, is_reply=is_reply,
    )
    return {
        "deleted": True,
        "comment_id": comment_id,
        "xp": xp,
        "reverted_awards": _revert_removed(engine, replies, []),
    }
