"""Subscription plan catalogue and subscription activation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from models.enums import SubscriptionPlan
from models.subscription import DJSubscription

logger = logging.getLogger(__name__)


class UnknownPlanError(ValueError):
    """Raised when a subscription is requested for a plan not in the catalogue."""


@dataclass(frozen=True)
class PlanQuota:
    track_quota: int
    zip_quota: int
    fan_upload_quota: int
    duration_days: int


SUBSCRIPTION_PLANS: Dict[SubscriptionPlan, PlanQuota] = {
    SubscriptionPlan.BASIC: PlanQuota(track_quota=5, zip_quota=0, fan_upload_quota=0, duration_days=30),
    SubscriptionPlan.PRO: PlanQuota(track_quota=20, zip_quota=1, fan_upload_quota=0, duration_days=30),
    SubscriptionPlan.SUPER: PlanQuota(track_quota=50, zip_quota=2, fan_upload_quota=10, duration_days=30),
}


def get_plan(plan: Union[str, SubscriptionPlan]) -> PlanQuota:
    try:
        return SUBSCRIPTION_PLANS[SubscriptionPlan(plan)]
    except (KeyError, ValueError) as exc:
        raise UnknownPlanError(f"Unknown subscription plan: {plan!r}") from exc


async def activate_subscription(
    user_id: str,
    dj_id: str,
    plan: Union[str, SubscriptionPlan],
    db: AsyncSession,
    *,
    payment_reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DJSubscription:
    """Create a subscription with quotas copied from the plan catalogue."""
    plan_config = get_plan(plan)
    started_at = now or datetime.now(timezone.utc)
    subscription = DJSubscription(
        id=str(uuid.uuid4()),
        user_id=user_id,
        dj_id=dj_id,
        plan=SubscriptionPlan(plan).value,
        track_quota=plan_config.track_quota,
        zip_quota=plan_config.zip_quota,
        fan_upload_quota=plan_config.fan_upload_quota,
        tracks_used=0,
        zips_used=0,
        payment_reference=payment_reference,
        expires_at=started_at + timedelta(days=plan_config.duration_days),
    )
    db.add(subscription)
    await db.commit()
    logger.info(
        "Subscription activated user=%s dj=%s plan=%s expires_at=%s",
        user_id,
        dj_id,
        subscription.plan,
        subscription.expires_at.isoformat(),
    )
    return subscription
