from decimal import Decimal
import pytest
from sqlalchemy import text
from sqlalchemy.future import select

from conftest import DJ_ID, FAN_ID, TRACK_ID
from models.monetization import EarningsEntry, MonetizationSettings
from models.purchase import Purchase
from services.revenue import (
    compute_split,
    get_dj_earnings,
    get_revenue_share_pct,
    record_revenue,
    split_revenue,
)


def test_default_share_split_of_round_amount():
    split = compute_split(10000, 80)
    assert split.dj_amount == 8000
    assert split.platform_amount == 2000
    assert split.as_dict() == {"djAmount": 8000, "platformAmount": 2000, "djSharePct": 80}


@pytest.mark.parametrize("total", [0, 1, 3, 99, 101, 333, 12345, 99999])
@pytest.mark.parametrize("pct", [0, 33, Decimal("33.33"), 50, 80, Decimal("87.5"), 100])
def test_split_parts_always_sum_to_total(total, pct):
    split = compute_split(total, pct)
    assert split.dj_amount + split.platform_amount == total
    assert 0 <= split.dj_amount <= total


def test_half_unit_rounds_up_for_the_dj():
    split = compute_split(5, 50)
    assert split.dj_amount == 3
    assert split.platform_amount == 2


@pytest.mark.parametrize(
    "total,pct",
    [(-1, 80), (100, -1), (100, 101), (10.5, 80), (True, 80), (100, "not-a-number")],
)
def test_invalid_split_inputs_are_rejected(total, pct):
    with pytest.raises(ValueError):
        compute_split(total, pct)


@pytest.mark.asyncio
async def test_share_falls_back_to_default_when_lookup_fails(catalog):
    async with catalog() as db:
        await db.execute(text("DROP TABLE monetization_settings"))
        await db.commit()

    async with catalog() as db:
        pct = await get_revenue_share_pct(DJ_ID, db)
        split = await split_revenue(DJ_ID, 10000, db)

    assert pct == Decimal(80)
    assert (split.dj_amount, split.platform_amount) == (8000, 2000)


@pytest.mark.asyncio
async def test_share_uses_default_without_settings_row(catalog):
    async with catalog() as db:
        assert await get_revenue_share_pct(DJ_ID, db) == Decimal(80)


@pytest.mark.asyncio
async def test_share_uses_configured_percentage(catalog):
    async with catalog() as db:
        db.add(MonetizationSettings(dj_id=DJ_ID, revenue_share_pct=Decimal("70")))
        await db.commit()

    async with catalog() as db:
        split = await split_revenue(DJ_ID, 10000, db)
    assert split.dj_amount == 7000
    assert split.platform_amount == 3000


@pytest.mark.asyncio
async def test_out_of_range_configured_share_is_ignored(catalog):
    async with catalog() as db:
        db.add(MonetizationSettings(dj_id=DJ_ID, revenue_share_pct=Decimal("150")))
        await db.commit()

    async with catalog() as db:
        assert await get_revenue_share_pct(DJ_ID, db) == Decimal(80)


@pytest.mark.asyncio
async def test_record_revenue_books_each_purchase_once(catalog):
    async with catalog() as db:
        purchase = Purchase(
            id="purchase-rev-1",
            user_id=FAN_ID,
            content_type="track",
            content_id=TRACK_ID,
            dj_id=DJ_ID,
            amount_minor=2500,
        )
        db.add(purchase)
        await db.flush()

        first = await record_revenue(purchase, db)
        second = await record_revenue(purchase, db)
        await db.commit()

        assert first == second
        rows = (await db.execute(select(EarningsEntry).where(EarningsEntry.purchase_id == purchase.id))).scalars().all()
        assert len(rows) == 1
        assert rows[0].dj_amount_minor == 2000
        assert rows[0].platform_amount_minor == 500

        earnings = await get_dj_earnings(DJ_ID, db)
    assert earnings["totalGross"] == 2500
    assert earnings["totalDjAmount"] == 2000
    assert earnings["entries"][0]["purchaseId"] == "purchase-rev-1"
