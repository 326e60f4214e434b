"""
gamehunt.api.routes.admin — Admin XP endpoints (JWT‑protected)
===============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from gamehunt.api.deps import get_current_admin, get_engine
from gamehunt.api.rate_limit import rate_limited_admin
from gamehunt.services import admin_service

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ManualAward(BaseModel):
    user_id: int
    amount: int
    reason: str = ""


class ManualRevoke(BaseModel):
    user_id: int
    entry_id: int
    reason: str = ""


# ---------------------------------------------------------------------------
# XP mutations
# ---------------------------------------------------------------------------
@router.post("/xp/award")
def award_xp(
    body: ManualAward,
    admin: dict = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    """Grant (or deduct, with a negative amount) XP through the ledger."""
    if body.amount == 0:
        raise HTTPException(400, "Amount must be non-zero")
    try:
        return admin_service.award_xp(
            engine,
            user_id=body.user_id,
            amount=body.amount,
            reason=body.reason,
            actor_id=admin["user_id"],
        )
    except ValueError as exc:
        raise HTTPException(404, str(exc))


@router.post("/xp/revoke")
def revoke_xp(
    body: ManualRevoke,
    admin: dict = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    """Soft-revert a single ledger entry."""
    try:
        return admin_service.revoke_xp(
            engine,
            user_id=body.user_id,
            entry_id=body.entry_id,
            reason=body.reason,
            actor_id=admin["user_id"],
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))


@router.post("/users/{user_id}/recalculate")
def recalculate_user(
    user_id: int,
    admin: dict = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    try:
        return admin_service.recalculate(engine, user_id=user_id, actor_id=admin["user_id"])
    except ValueError as exc:
        raise HTTPException(404, str(exc))


@router.post("/reconcile")
def reconcile(
    admin: dict = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    """Re-derive every user's XP from the ledger and fix drift."""
    return admin_service.reconcile(engine, actor_id=admin["user_id"])


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Paginated admin audit log."""
    return admin_service.get_audit_log(engine, page=page, page_size=page_size)
