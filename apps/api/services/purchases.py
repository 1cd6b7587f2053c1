"""Checkout completion for one-time purchases.

Called by the payment verification flow once a payment is confirmed. The
purchase row, the DJ earnings entry, purchase points and referral bookkeeping
are committed in one transaction so a failure leaves none of them behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import insert_ignore
from models.enums import ContentType
from models.purchase import Purchase
from services.entitlement import get_content_owner
from services.revenue import RevenueSplit, record_revenue
from services.rewards import award_purchase_points, check_referral_milestones, mark_referral_verified

logger = logging.getLogger(__name__)


class ContentNotFoundError(LookupError):
    """Raised when a purchase targets content that does not exist."""


@dataclass(frozen=True)
class PurchaseOutcome:
    purchase: Purchase
    created: bool
    split: Optional[RevenueSplit] = None
    points_awarded: int = 0


async def complete_purchase(
    user_id: str,
    content_type: Union[str, ContentType],
    content_id: str,
    amount_minor: int,
    db: AsyncSession,
    *,
    payment_reference: Optional[str] = None,
) -> PurchaseOutcome:
    """Record a purchase exactly once and run the post-purchase ledgers."""
    kind = ContentType(content_type)
    if int(amount_minor) < 0:
        raise ValueError("amount_minor must be >= 0")

    dj_id = await get_content_owner(kind, content_id, db)
    if dj_id is None:
        raise ContentNotFoundError(f"{kind.value} {content_id} not found")

    result = await db.execute(
        insert_ignore(
            db,
            Purchase,
            {
                "user_id": user_id,
                "content_type": kind.value,
                "content_id": content_id,
                "dj_id": dj_id,
                "amount_minor": int(amount_minor),
                "payment_reference": payment_reference,
            },
            index_elements=["user_id", "content_type", "content_id"],
        )
    )
    created = result.rowcount == 1

    lookup = await db.execute(
        select(Purchase).where(
            Purchase.user_id == user_id,
            Purchase.content_type == kind.value,
            Purchase.content_id == content_id,
        )
    )
    purchase = lookup.scalar_one()
    if not created:
        await db.commit()
        logger.info("Purchase already recorded user=%s %s=%s", user_id, kind.value, content_id)
        return PurchaseOutcome(purchase=purchase, created=False)

    try:
        split = await record_revenue(purchase, db)
        points = await award_purchase_points(purchase, db)
        await mark_referral_verified(user_id, db)
        await check_referral_milestones(dj_id, db)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Purchase complete user=%s %s=%s amount=%s dj_amount=%s points=%s",
        user_id,
        kind.value,
        content_id,
        purchase.amount_minor,
        split.dj_amount,
        points,
    )
    return PurchaseOutcome(purchase=purchase, created=True, split=split, points_awarded=points)
