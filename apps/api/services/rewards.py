"""Referral codes, referral tracking and the append-only points ledger.

Every crediting event is one row in ``points_history``; balances are always
the sum of those rows. Credits that must happen at most once carry an
idempotency key and are written with INSERT ... ON CONFLICT DO NOTHING, so a
retry or a concurrent duplicate request simply writes nothing.
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from sqlalchemy import Integer, String, case, func, literal, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import dialect_insert, insert_ignore
from models.enums import PointsReason, ReferralStatus
from models.points import PointsHistoryEntry
from models.purchase import Purchase
from models.referral import Referral, ReferralCode
from models.user import User

logger = logging.getLogger(__name__)

REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_MILESTONES = (
    (1, 100, "Referral Bonus: DJ's First Sale"),
    (10, 500, "Referral Bonus: DJ's 10th Sale"),
    (50, 2500, "Referral Bonus: DJ's 50th Sale"),
)
TIER_THRESHOLDS = (
    ("platinum", 100),
    ("gold", 20),
    ("silver", 5),
    ("bronze", 0),
)
HISTORY_LIMIT = 50
ENGAGEMENT_KINDS = ("follow", "review")


class ReferralCodeAllocationError(RuntimeError):
    """Raised when no unique referral code could be allocated."""


@dataclass(frozen=True)
class ReferralOutcome:
    referral_created: bool
    already_tracked: bool
    bonus_awarded: bool
    referrer_id: Optional[str] = None


def make_referral_code(user_id: str) -> str:
    suffix = "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(4))
    return f"{settings.REFERRAL_CODE_PREFIX}-{user_id[:4]}-{suffix}"


def referral_tier(verified_count: int) -> str:
    for tier, threshold in TIER_THRESHOLDS:
        if verified_count >= threshold:
            return tier
    return "bronze"


# --- points ledger ---------------------------------------------------------


async def award_points(
    user_id: str,
    amount: int,
    reason: Union[str, PointsReason],
    db: AsyncSession,
    *,
    description: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> bool:
    """Append a credit to the ledger. Returns False when nothing was written.

    Does not commit.
    """
    points = int(amount)
    if points <= 0:
        return False

    values = {
        "user_id": user_id,
        "delta": points,
        "reason": PointsReason(reason).value,
        "description": description,
        "idempotency_key": idempotency_key,
    }
    if idempotency_key:
        result = await db.execute(
            insert_ignore(db, PointsHistoryEntry, values, index_elements=["idempotency_key"])
        )
        return result.rowcount == 1

    db.add(PointsHistoryEntry(**values))
    await db.flush()
    return True


async def award_signup_bonus(user_id: str, db: AsyncSession) -> bool:
    return await award_points(
        user_id,
        settings.SIGNUP_BONUS_POINTS,
        PointsReason.SIGNUP_BONUS,
        db,
        description="Welcome to MixMint!",
        idempotency_key=f"signup_bonus:{user_id}",
    )


async def award_purchase_points(purchase: Purchase, db: AsyncSession) -> int:
    unit = max(int(settings.PURCHASE_POINTS_UNIT_MINOR), 1)
    points = int(purchase.amount_minor or 0) // unit
    if points <= 0:
        return 0
    awarded = await award_points(
        purchase.user_id,
        points,
        PointsReason.PURCHASE_REWARD,
        db,
        description=f"Points earned for purchase {purchase.id[:8]}",
        idempotency_key=f"purchase_reward:{purchase.id}",
    )
    return points if awarded else 0


async def get_points_balance(user_id: str, db: AsyncSession) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(PointsHistoryEntry.delta), 0)).where(PointsHistoryEntry.user_id == user_id)
    )
    return int(result.scalar() or 0)


async def award_engagement_points(user_id: str, target_id: str, kind: str, db: AsyncSession) -> bool:
    """Credit a follow or review once per user and target. Does not commit."""
    if kind not in ENGAGEMENT_KINDS:
        raise ValueError(f"Unknown engagement kind {kind!r}")
    if kind == "follow":
        points = settings.FOLLOW_REWARD_POINTS
        reason = PointsReason.FOLLOW_REWARD
        description = f"Followed DJ {target_id[:8]}..."
    else:
        points = settings.REVIEW_REWARD_POINTS
        reason = PointsReason.REVIEW_REWARD
        description = f"Reviewed item {target_id[:8]}..."
    return await award_points(
        user_id,
        points,
        reason,
        db,
        description=description,
        idempotency_key=f"{reason.value}:{user_id}:{target_id}",
    )


def max_redeemable_points(balance: int, price_minor: int) -> int:
    """Points usable against ``price_minor``: the balance, capped at a share of the price."""
    cap_pct = min(max(int(settings.POINTS_REDEMPTION_CAP_PCT), 0), 100)
    cap = max(int(price_minor), 0) * cap_pct // 100
    return max(min(int(balance), cap), 0)


async def redeem_points(
    user_id: str,
    amount: int,
    db: AsyncSession,
    *,
    description: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> bool:
    """Debit ``amount`` points unless that would take the balance below zero.

    The debit is a single INSERT ... SELECT guarded by the current balance, and
    the user's row is locked first so concurrent redemptions for one user run
    one after another on PostgreSQL. SQLite serializes writers on its own.
    Returns False when nothing was debited. Does not commit.
    """
    points = int(amount)
    if points <= 0:
        return False

    user = await db.execute(select(User.id).where(User.id == user_id).with_for_update())
    if user.scalar_one_or_none() is None:
        return False

    balance = (
        select(func.coalesce(func.sum(PointsHistoryEntry.delta), 0))
        .where(PointsHistoryEntry.user_id == user_id)
        .scalar_subquery()
    )
    debit = select(
        literal(str(uuid.uuid4()), String),
        literal(user_id, String),
        literal(-points, Integer),
        literal(PointsReason.REDEMPTION.value, String),
        literal(description, String),
        literal(idempotency_key, String),
    ).where(balance >= points)
    stmt = dialect_insert(db, PointsHistoryEntry).from_select(
        ["id", "user_id", "delta", "reason", "description", "idempotency_key"],
        debit,
    )
    if idempotency_key:
        stmt = stmt.on_conflict_do_nothing(index_elements=["idempotency_key"])

    result = await db.execute(stmt)
    if result.rowcount != 1:
        logger.info("Points redemption refused user=%s amount=%s", user_id, points)
        return False
    return True


async def get_points_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    totals = await db.execute(
        select(
            func.coalesce(func.sum(PointsHistoryEntry.delta), 0),
            func.coalesce(
                func.sum(case((PointsHistoryEntry.delta > 0, PointsHistoryEntry.delta), else_=0)),
                0,
            ),
        ).where(PointsHistoryEntry.user_id == user_id)
    )
    balance, total_earned = totals.one()
    result = await db.execute(
        select(PointsHistoryEntry)
        .where(PointsHistoryEntry.user_id == user_id)
        .order_by(PointsHistoryEntry.created_at.desc())
        .limit(HISTORY_LIMIT)
    )
    entries = result.scalars().all()
    return {
        "balance": int(balance or 0),
        "totalEarned": int(total_earned or 0),
        "history": [
            {
                "id": entry.id,
                "delta": entry.delta,
                "reason": entry.reason,
                "description": entry.description,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }


# --- referral codes --------------------------------------------------------


async def get_referral_code(user_id: str, db: AsyncSession) -> Optional[str]:
    result = await db.execute(select(ReferralCode.code).where(ReferralCode.user_id == user_id))
    return result.scalar_one_or_none()


async def resolve_referral_code(code: str, db: AsyncSession) -> Optional[str]:
    result = await db.execute(select(ReferralCode.user_id).where(ReferralCode.code == code))
    return result.scalar_one_or_none()


async def get_or_create_referral_code(user_id: str, db: AsyncSession) -> str:
    """Return the user's code, allocating one on first request.

    ``referral_codes`` is the only place a code lives. Allocation is a
    conflict-guarded insert: a conflict on ``user_id`` means another request
    already allocated this user's code, a conflict on ``code`` is a random
    collision and is retried with a fresh suffix.
    """
    existing = await get_referral_code(user_id, db)
    if existing:
        return existing

    attempts = max(int(settings.REFERRAL_CODE_MAX_ATTEMPTS), 1)
    for attempt in range(1, attempts + 1):
        code = make_referral_code(user_id)
        result = await db.execute(insert_ignore(db, ReferralCode, {"user_id": user_id, "code": code}))
        if result.rowcount == 1:
            await db.commit()
            return code

        existing = await get_referral_code(user_id, db)
        if existing:
            return existing
        logger.warning("Referral code collision user=%s attempt=%s/%s", user_id, attempt, attempts)

    raise ReferralCodeAllocationError(f"Could not allocate a unique referral code for user {user_id}")


# --- referral tracking -----------------------------------------------------


async def track_referral(
    referred_user_id: str,
    referral_code: Optional[str],
    db: AsyncSession,
) -> ReferralOutcome:
    """Record who referred a new user and credit the one-time signup bonus.

    Safe to call any number of times for the same user: at most one referral
    row and at most one signup bonus ever exist. Unknown codes and
    self-referrals are ignored, but the signup bonus is still credited.
    """
    existing = await db.execute(select(Referral.id).where(Referral.referred_id == referred_user_id))
    if existing.scalar_one_or_none():
        awarded = await award_signup_bonus(referred_user_id, db)
        await db.commit()
        return ReferralOutcome(referral_created=False, already_tracked=True, bonus_awarded=awarded)

    code = str(referral_code or "").strip()
    referrer_id = await resolve_referral_code(code, db) if code else None
    if referrer_id == referred_user_id:
        logger.info("Ignoring self-referral user=%s", referred_user_id)
        referrer_id = None

    created = False
    if referrer_id:
        result = await db.execute(
            insert_ignore(
                db,
                Referral,
                {
                    "referrer_id": referrer_id,
                    "referred_id": referred_user_id,
                    "referral_code": code,
                    "status": ReferralStatus.PENDING.value,
                },
                index_elements=["referred_id"],
            )
        )
        created = result.rowcount == 1

    awarded = await award_signup_bonus(referred_user_id, db)
    await db.commit()

    if created:
        logger.info("Referral tracked referrer=%s referred=%s", referrer_id, referred_user_id)
    return ReferralOutcome(
        referral_created=created,
        already_tracked=bool(referrer_id) and not created,
        bonus_awarded=awarded,
        referrer_id=referrer_id if created else None,
    )


async def mark_referral_verified(
    referred_user_id: str,
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """Move a pending referral to verified. Does not commit."""
    result = await db.execute(
        update(Referral)
        .where(
            Referral.referred_id == referred_user_id,
            Referral.status == ReferralStatus.PENDING.value,
        )
        .values(status=ReferralStatus.VERIFIED.value, verified_at=now or datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def check_referral_milestones(seller_dj_id: str, db: AsyncSession) -> int:
    """Credit the referrer of a DJ for each sales milestone reached. Does not commit.

    Returns the number of points newly credited.
    """
    referral = await db.execute(select(Referral.referrer_id).where(Referral.referred_id == seller_dj_id))
    referrer_id = referral.scalar_one_or_none()
    if not referrer_id:
        return 0

    sales = await db.execute(select(func.count(Purchase.id)).where(Purchase.dj_id == seller_dj_id))
    sale_count = int(sales.scalar() or 0)

    credited = 0
    for threshold, points, description in REFERRAL_MILESTONES:
        if sale_count < threshold:
            break
        awarded = await award_points(
            referrer_id,
            points,
            PointsReason.REFERRAL_MILESTONE,
            db,
            description=f"{description} (DJ: {seller_dj_id[:8]}...)",
            idempotency_key=f"referral_milestone:{seller_dj_id}:{threshold}",
        )
        if awarded:
            credited += points
    return credited


async def get_referral_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    code = await get_or_create_referral_code(user_id, db)
    result = await db.execute(
        select(
            func.count(Referral.id),
            func.coalesce(
                func.sum(case((Referral.status == ReferralStatus.VERIFIED.value, 1), else_=0)),
                0,
            ),
        ).where(Referral.referrer_id == user_id)
    )
    total_invites, successful = result.one()
    successful = int(successful or 0)
    return {
        "code": code,
        "stats": {
            "totalInvites": int(total_invites or 0),
            "successfulReferrals": successful,
        },
        "tier": referral_tier(successful),
        "link": f"{settings.SITE_URL.rstrip('/')}/?ref={code}",
    }
