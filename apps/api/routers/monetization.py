"""DJ-only monetization endpoints: revenue split preview and earnings."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_dj
from services.revenue import get_dj_earnings, split_revenue

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/split")
async def preview_split(
    amount_minor: int = Query(ge=0, le=10_000_000_00),
    auth: AuthContext = Depends(require_dj),
    db: AsyncSession = Depends(get_db),
):
    """Show how a sale of ``amount_minor`` would be divided for the calling DJ."""
    split = await split_revenue(auth.user_id, amount_minor, db)
    return split.as_dict()


@router.get("/earnings")
async def earnings_summary(
    auth: AuthContext = Depends(require_dj),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await get_dj_earnings(auth.user_id, db)
    except Exception:
        logger.exception("Failed to load earnings for dj=%s", auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to load earnings.")
