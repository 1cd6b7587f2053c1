"""Revenue split between a DJ and the platform."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Union

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import insert_ignore
from models.monetization import EarningsEntry, MonetizationSettings
from models.purchase import Purchase

logger = logging.getLogger(__name__)

Percent = Union[int, Decimal]


@dataclass(frozen=True)
class RevenueSplit:
    dj_amount: int
    platform_amount: int
    dj_share_pct: Decimal

    def as_dict(self) -> Dict[str, Any]:
        pct = self.dj_share_pct
        return {
            "djAmount": self.dj_amount,
            "platformAmount": self.platform_amount,
            "djSharePct": int(pct) if pct == pct.to_integral_value() else float(pct),
        }


def _default_share_pct() -> Decimal:
    return Decimal(settings.DEFAULT_REVENUE_SHARE_PCT)


def _normalize_pct(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        pct = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not pct.is_finite() or pct < 0 or pct > 100:
        return None
    return pct


def compute_split(total_minor: int, pct: Percent) -> RevenueSplit:
    """Split ``total_minor`` (integer minor units) so both parts sum exactly."""
    if isinstance(total_minor, bool) or not isinstance(total_minor, int):
        raise ValueError("total_minor must be an integer amount in minor units")
    if total_minor < 0:
        raise ValueError("total_minor must be >= 0")
    share = _normalize_pct(pct)
    if share is None:
        raise ValueError("pct must be between 0 and 100")

    dj_amount = int((Decimal(total_minor) * share / Decimal(100)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return RevenueSplit(
        dj_amount=dj_amount,
        platform_amount=total_minor - dj_amount,
        dj_share_pct=share,
    )


async def get_revenue_share_pct(dj_id: str, db: AsyncSession) -> Decimal:
    """Return the DJ's configured share, degrading to the default on any failure.

    The lookup runs in a savepoint so a failed query leaves the caller's
    transaction usable (PostgreSQL aborts the whole transaction otherwise).
    """
    try:
        async with db.begin_nested():
            result = await db.execute(
                select(MonetizationSettings.revenue_share_pct).where(MonetizationSettings.dj_id == dj_id)
            )
            configured = result.scalar_one_or_none()
    except Exception:
        logger.exception("Failed to fetch monetization settings for dj=%s, using default share", dj_id)
        return _default_share_pct()

    pct = _normalize_pct(configured)
    if pct is None:
        if configured is not None:
            logger.warning("Ignoring invalid revenue_share_pct=%r for dj=%s", configured, dj_id)
        return _default_share_pct()
    return pct


async def split_revenue(dj_id: str, total_minor: int, db: AsyncSession) -> RevenueSplit:
    pct = await get_revenue_share_pct(dj_id, db)
    return compute_split(total_minor, pct)


async def record_revenue(purchase: Purchase, db: AsyncSession) -> RevenueSplit:
    """Book the split for a purchase in the earnings ledger, once per purchase.

    Does not commit; the purchase completion flow owns the transaction.
    """
    split = await split_revenue(purchase.dj_id, int(purchase.amount_minor or 0), db)
    stmt = insert_ignore(
        db,
        EarningsEntry,
        {
            "dj_id": purchase.dj_id,
            "purchase_id": purchase.id,
            "gross_minor": int(purchase.amount_minor or 0),
            "dj_amount_minor": split.dj_amount,
            "platform_amount_minor": split.platform_amount,
            "dj_share_pct": split.dj_share_pct,
        },
        index_elements=["purchase_id"],
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        logger.info("Earnings already booked for purchase=%s", purchase.id)
    return split


async def get_dj_earnings(dj_id: str, db: AsyncSession, *, limit: int = 30) -> Dict[str, Any]:
    totals = await db.execute(
        select(
            func.coalesce(func.sum(EarningsEntry.gross_minor), 0),
            func.coalesce(func.sum(EarningsEntry.dj_amount_minor), 0),
        ).where(EarningsEntry.dj_id == dj_id)
    )
    total_gross, total_dj = totals.one()
    result = await db.execute(
        select(EarningsEntry)
        .where(EarningsEntry.dj_id == dj_id)
        .order_by(EarningsEntry.created_at.desc())
        .limit(limit)
    )
    entries = result.scalars().all()
    return {
        "djId": dj_id,
        "totalGross": int(total_gross or 0),
        "totalDjAmount": int(total_dj or 0),
        "entries": [
            {
                "purchaseId": entry.purchase_id,
                "grossAmount": entry.gross_minor,
                "djAmount": entry.dj_amount_minor,
                "platformAmount": entry.platform_amount_minor,
                "djSharePct": float(entry.dj_share_pct),
                "createdAt": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }
