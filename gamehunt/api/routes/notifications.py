"""
gamehunt.api.routes.notifications — Notification inbox
=======================================================
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from gamehunt.api.deps import get_current_user, get_engine
from gamehunt.api.rate_limit import rate_limited_user
from gamehunt.services import notification_service

router = APIRouter(tags=["notifications"])


class BulkAction(BaseModel):
    action: Literal["markAllAsRead"]


class MarkManyBody(BaseModel):
    notification_ids: list[int]


@router.get("/notifications")
def list_notifications(
    limit: int = Query(10, ge=1, le=100),
    unread_only: bool = Query(False),
    include_unread_count: bool = Query(False),
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """Newest-first notifications, optionally with the unread total."""
    result: dict = {
        "notifications": notification_service.get_user_notifications(
            engine, user["user_id"], limit=limit, unread_only=unread_only
        ),
    }
    if include_unread_count:
        result["unread_count"] = notification_service.get_unread_count(
            engine, user["user_id"]
        )
    return result


@router.put("/notifications")
def bulk_update_notifications(
    body: BulkAction,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    updated = notification_service.mark_all_as_read(engine, user["user_id"])
    return {"updated": updated}


@router.patch("/notifications/mark-multiple-read")
def mark_multiple_read(
    body: MarkManyBody,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    """Mark the given ids read.  Ids belonging to other users are ignored."""
    updated = notification_service.mark_many_as_read(
        engine, user["user_id"], body.notification_ids
    )
    return {"updated": updated}


@router.patch("/notifications/{notification_id}/read")
def mark_read(
    notification_id: int,
    user: dict = Depends(rate_limited_user),
    engine: Engine = Depends(get_engine),
):
    if not notification_service.mark_as_read(engine, user["user_id"], notification_id):
        raise HTTPException(404, f"Notification not found: {notification_id}")
    return {"id": notification_id, "read": True}
