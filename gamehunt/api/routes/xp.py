"""
gamehunt.api.routes.xp — XP info, history and leaderboard
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import Engine

from gamehunt.api.deps import get_config, get_current_user, get_engine
from gamehunt.config import GameHuntConfig
from gamehunt.services import xp_service

router = APIRouter(tags=["xp"])


@router.get("/xp/me")
def my_xp(
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """XP, level and progress towards the next level for the caller."""
    info = xp_service.get_user_xp_info(engine, user["user_id"])
    if info is None:
        raise HTTPException(404, "User not found")
    return info


@router.get("/xp/history")
def my_xp_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """The caller's ledger, newest first."""
    return {
        "entries": xp_service.get_user_xp_history(
            engine, user["user_id"], limit=limit, offset=offset
        ),
        "limit": limit,
        "offset": offset,
    }


@router.get("/users/{user_id}/xp")
def user_xp(user_id: int, engine: Engine = Depends(get_engine)):
    info = xp_service.get_user_xp_info(engine, user_id)
    if info is None:
        raise HTTPException(404, "User not found")
    return info


@router.get("/leaderboard/xp")
def xp_leaderboard(
    limit: int | None = Query(None, ge=1, le=100),
    engine: Engine = Depends(get_engine),
    cfg: GameHuntConfig = Depends(get_config),
):
    """Top users by XP.  Ties go to whoever joined first."""
    return xp_service.get_xp_leaderboard(
        engine, limit=limit or cfg.leaderboard_default_limit
    )
