"""
gamehunt.api.routes.badges — Badge catalog and earned badges
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from gamehunt.api.deps import get_current_user, get_engine
from gamehunt.services import badge_service

router = APIRouter(tags=["badges"])


@router.get("/badges")
def badge_catalog():
    return badge_service.get_badge_catalog()


@router.get("/badges/me")
def my_badges(
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return badge_service.get_user_badges(engine, user["user_id"])


@router.get("/users/{user_id}/badges")
def user_badges(user_id: int, engine: Engine = Depends(get_engine)):
    return badge_service.get_user_badges(engine, user_id)
