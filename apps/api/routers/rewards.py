"""Rewards router: points balance, referral codes and referral tracking."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user, get_auth_context
from routers.rate_limit import rate_limit
from services.rewards import (
    get_or_create_referral_code,
    get_points_summary,
    get_referral_summary,
    track_referral,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class TrackReferralRequest(BaseModel):
    referralCode: Optional[str] = Field(default=None, max_length=64)


@router.get("/points")
async def points_summary(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await get_points_summary(auth.user_id, db)
    except Exception:
        logger.exception("Failed to load points for user=%s", auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to load points.")


@router.get("/referral")
async def referral_summary(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        await ensure_user(db, auth)
        return await get_referral_summary(auth.user_id, db)
    except Exception:
        logger.exception("Failed to load referral summary for user=%s", auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to load referral details.")


@router.post("/referral/generate")
async def generate_referral_code(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        await ensure_user(db, auth)
        code = await get_or_create_referral_code(auth.user_id, db)
    except Exception:
        logger.exception("Failed to generate referral code for user=%s", auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to generate referral code.")
    return {"referralCode": code}


@router.post("/track")
async def track_signup_referral(
    request: TrackReferralRequest,
    _rate_limit: None = Depends(rate_limit("rewards_track", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Record the referral code a new user signed up with and credit the signup bonus."""
    try:
        await ensure_user(db, auth)
        outcome = await track_referral(auth.user_id, request.referralCode, db)
    except Exception:
        logger.exception("Failed to track referral for user=%s", auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to track referral.")

    if outcome.already_tracked:
        return {"success": True, "message": "Referral already tracked"}
    return {"success": True}
