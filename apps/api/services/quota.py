"""Atomic subscription quota accounting."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.enums import ContentType
from models.subscription import DJSubscription


class ConsumeResult(str, Enum):
    OK = "ok"
    QUOTA_EXHAUSTED = "quota_exhausted"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


_COUNTERS = {
    ContentType.TRACK: (DJSubscription.tracks_used, DJSubscription.track_quota),
    ContentType.ZIP: (DJSubscription.zips_used, DJSubscription.zip_quota),
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def try_consume(
    subscription_id: str,
    content_type: Union[str, ContentType],
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> ConsumeResult:
    """Charge one unit of quota if, and only if, the subscription still has one.

    The check and the increment are a single conditional UPDATE, so concurrent
    callers can never push ``used`` past ``quota``. The caller owns the
    transaction; nothing is committed here.
    """
    used_column, quota_column = _COUNTERS[ContentType(content_type)]
    current = now or datetime.now(timezone.utc)

    result = await db.execute(
        update(DJSubscription)
        .where(
            DJSubscription.id == subscription_id,
            used_column < quota_column,
            DJSubscription.expires_at > current,
        )
        .values({used_column.key: used_column + 1})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return ConsumeResult.OK

    expiry = await db.execute(select(DJSubscription.expires_at).where(DJSubscription.id == subscription_id))
    expires_at = _as_utc(expiry.scalar_one_or_none())
    if expires_at is None:
        return ConsumeResult.NOT_FOUND
    if expires_at <= current:
        return ConsumeResult.EXPIRED
    return ConsumeResult.QUOTA_EXHAUSTED


async def quota_status(subscription_id: str, db: AsyncSession) -> Optional[Dict[str, Any]]:
    result = await db.execute(select(DJSubscription).where(DJSubscription.id == subscription_id))
    subscription = result.scalar_one_or_none()
    if not subscription:
        return None
    expires_at = _as_utc(subscription.expires_at)
    return {
        "subscription_id": subscription.id,
        "plan": subscription.plan,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "expired": bool(expires_at and expires_at <= datetime.now(timezone.utc)),
        "tracks_used": subscription.tracks_used,
        "track_quota": subscription.track_quota,
        "tracks_remaining": max(subscription.track_quota - subscription.tracks_used, 0),
        "zips_used": subscription.zips_used,
        "zip_quota": subscription.zip_quota,
        "zips_remaining": max(subscription.zip_quota - subscription.zips_used, 0),
    }
