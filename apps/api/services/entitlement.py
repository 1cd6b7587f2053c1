"""Entitlement resolution: purchase first, then metered subscription.

A purchase always wins and is never charged against quota. Without one, the
content's owning DJ is looked up and the caller's live subscription to that DJ
is charged one unit through ``services.quota.try_consume``, trying live
subscriptions in expiry order until one has quota left. Resolving and
charging are the same step; there is no read-only variant that grants access.

Storage errors propagate to the caller so that an unreachable store can only
ever produce a denial at the HTTP boundary, never a silent allow.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.content import AlbumPack, Track
from models.enums import AccessSource, ContentType
from models.purchase import Purchase
from models.subscription import DJSubscription
from services.quota import ConsumeResult, try_consume


class DenyReason(str, Enum):
    CONTENT_NOT_FOUND = "content_not_found"
    NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"
    QUOTA_EXHAUSTED = "quota_exhausted"
    SUBSCRIPTION_EXPIRED = "subscription_expired"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    via: Optional[AccessSource] = None
    reason: Optional[DenyReason] = None
    subscription_id: Optional[str] = None

    @classmethod
    def allow(cls, via: AccessSource, subscription_id: Optional[str] = None) -> "AccessDecision":
        return cls(allowed=True, via=via, subscription_id=subscription_id)

    @classmethod
    def deny(cls, reason: DenyReason, subscription_id: Optional[str] = None) -> "AccessDecision":
        return cls(allowed=False, reason=reason, subscription_id=subscription_id)

    def as_dict(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "via": self.via.value if self.via else None}


_CONTENT_MODELS = {
    ContentType.TRACK: Track,
    ContentType.ZIP: AlbumPack,
}

_CONSUME_DENIALS = {
    ConsumeResult.QUOTA_EXHAUSTED: DenyReason.QUOTA_EXHAUSTED,
    ConsumeResult.EXPIRED: DenyReason.SUBSCRIPTION_EXPIRED,
    ConsumeResult.NOT_FOUND: DenyReason.NO_ACTIVE_SUBSCRIPTION,
}


async def has_purchase(user_id: str, content_type: ContentType, content_id: str, db: AsyncSession) -> bool:
    result = await db.execute(
        select(Purchase.id)
        .where(
            Purchase.user_id == user_id,
            Purchase.content_type == content_type.value,
            Purchase.content_id == content_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_content_owner(content_type: ContentType, content_id: str, db: AsyncSession) -> Optional[str]:
    model = _CONTENT_MODELS[content_type]
    result = await db.execute(select(model.dj_id).where(model.id == content_id))
    return result.scalar_one_or_none()


async def find_active_subscriptions(
    user_id: str,
    dj_id: str,
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> List[DJSubscription]:
    """Live subscriptions to one DJ, the one expiring soonest first."""
    current = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(DJSubscription)
        .where(
            DJSubscription.user_id == user_id,
            DJSubscription.dj_id == dj_id,
            DJSubscription.expires_at > current,
        )
        .order_by(DJSubscription.expires_at.asc(), DJSubscription.id)
    )
    return list(result.scalars().all())


async def resolve_entitlement(
    user_id: str,
    content_type: Union[str, ContentType],
    content_id: str,
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> AccessDecision:
    """Decide whether ``user_id`` may access the content, charging quota if needed.

    The quota charge is flushed but not committed; the caller commits it
    together with whatever the grant is used for (e.g. a download token).
    """
    kind = ContentType(content_type)
    current = now or datetime.now(timezone.utc)

    if await has_purchase(user_id, kind, content_id, db):
        return AccessDecision.allow(AccessSource.PURCHASE)

    dj_id = await get_content_owner(kind, content_id, db)
    if dj_id is None:
        return AccessDecision.deny(DenyReason.CONTENT_NOT_FOUND)

    subscriptions = await find_active_subscriptions(user_id, dj_id, db, now=current)
    if not subscriptions:
        return AccessDecision.deny(DenyReason.NO_ACTIVE_SUBSCRIPTION)

    # Soonest-expiring quota is spent first; a renewal only pays once it runs out.
    denial = None
    for subscription in subscriptions:
        outcome = await try_consume(subscription.id, kind, db, now=current)
        if outcome is ConsumeResult.OK:
            return AccessDecision.allow(AccessSource.SUBSCRIPTION, subscription_id=subscription.id)
        reason = _CONSUME_DENIALS[outcome]
        if denial is None or reason is DenyReason.QUOTA_EXHAUSTED:
            denial = AccessDecision.deny(reason, subscription_id=subscription.id)
    return denial
