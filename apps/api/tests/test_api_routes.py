from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import func, text
from sqlalchemy.future import select

from config import settings
from conftest import DJ_ID, FAN_ID, TRACK_ID, ZIP_ID, days_from_now
from database import get_db
from main import app
from models.download_token import DownloadToken
from models.purchase import Purchase
from models.referral import Referral, ReferralCode
from models.subscription import DJSubscription
from models.user import User
from services.content_store import LocalContentStore, get_content_store
from services.session_token import mint_session_token


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


FAN_AUTH_HEADER = _bearer(mint_session_token(FAN_ID, email="fan@example.com"))
DJ_AUTH_HEADER = _bearer(mint_session_token(DJ_ID, email="dj@example.com"))
NEW_USER_ID = "signup-user-0001"
NEW_USER_AUTH_HEADER = _bearer(mint_session_token(NEW_USER_ID))


@pytest_asyncio.fixture
async def api_client(catalog, tmp_path):
    content_root = tmp_path / "content"
    (content_root / "tracks").mkdir(parents=True)
    (content_root / "tracks" / "night-drive.mp3").write_bytes(b"ID3-fake-audio")

    async def override_get_db():
        async with catalog() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_content_store] = lambda: LocalContentStore(str(content_root))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, catalog

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_content_store, None)


async def _purchase(maker, content_type="track", content_id=TRACK_ID):
    async with maker() as db:
        db.add(Purchase(user_id=FAN_ID, content_type=content_type, content_id=content_id, dj_id=DJ_ID, amount_minor=1000))
        await db.commit()


@pytest.mark.asyncio
async def test_download_token_requires_session(api_client):
    client, _ = api_client
    response = await client.post("/download-token", json={"content_id": TRACK_ID, "content_type": "track"})
    assert response.status_code == 401
    assert response.json() == {"error": "Missing Bearer session token."}


@pytest.mark.asyncio
async def test_download_token_rejects_bad_content_type(api_client):
    client, _ = api_client
    response = await client.post(
        "/download-token",
        json={"content_id": TRACK_ID, "content_type": "video"},
        headers=FAN_AUTH_HEADER,
    )
    assert response.status_code == 400
    assert "content_type" in response.json()["error"]


@pytest.mark.asyncio
async def test_download_token_without_entitlement_is_forbidden(api_client):
    client, _ = api_client
    response = await client.post(
        "/download-token",
        json={"content_id": TRACK_ID, "content_type": "track"},
        headers=FAN_AUTH_HEADER,
    )
    assert response.status_code == 403
    assert response.json() == {"error": "Access denied. Purchase this content or subscribe to the DJ."}


@pytest.mark.asyncio
async def test_purchased_track_downloads_once(api_client):
    client, maker = api_client
    await _purchase(maker)

    token_resp = await client.post(
        "/download-token",
        json={"content_id": TRACK_ID, "content_type": "track"},
        headers=FAN_AUTH_HEADER,
    )
    assert token_resp.status_code == 200
    payload = token_resp.json()
    assert set(payload) == {"token", "expires_at"}

    download = await client.get(f"/download?token={payload['token']}")
    assert download.status_code == 200
    assert download.content == b"ID3-fake-audio"
    assert download.headers["content-type"] == "audio/mpeg"
    assert "Night" in download.headers["content-disposition"]

    again = await client.get(f"/download?token={payload['token']}")
    assert again.status_code == 404
    assert again.json() == {"error": "Download token already used or expired."}


@pytest.mark.asyncio
async def test_download_requires_token(api_client):
    client, _ = api_client
    response = await client.get("/download")
    assert response.status_code == 400
    assert response.json() == {"error": "Token required."}


@pytest.mark.asyncio
async def test_download_from_other_ip_is_forbidden(api_client):
    client, maker = api_client
    await _purchase(maker)
    token_resp = await client.post(
        "/download-token",
        json={"content_id": TRACK_ID, "content_type": "track"},
        headers={**FAN_AUTH_HEADER, "X-Forwarded-For": "10.0.0.1"},
    )
    token = token_resp.json()["token"]

    response = await client.get(f"/download?token={token}", headers={"X-Forwarded-For": "203.0.113.9"})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_missing_content_file_is_not_found(api_client):
    client, maker = api_client
    await _purchase(maker, content_type="zip", content_id=ZIP_ID)
    token_resp = await client.post(
        "/download-token",
        json={"content_id": ZIP_ID, "content_type": "zip"},
        headers=FAN_AUTH_HEADER,
    )
    response = await client.get(f"/download?token={token_resp.json()['token']}")
    assert response.status_code == 404
    assert response.json() == {"error": "Content file not found."}


@pytest.mark.asyncio
async def test_concurrent_link_limit_returns_429(api_client):
    client, maker = api_client
    await _purchase(maker)
    body = {"content_id": TRACK_ID, "content_type": "track"}

    for _ in range(3):
        assert (await client.post("/download-token", json=body, headers=FAN_AUTH_HEADER)).status_code == 200

    response = await client.post("/download-token", json=body, headers=FAN_AUTH_HEADER)
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_subscription_quota_is_enforced_over_http(api_client):
    client, maker = api_client
    async with maker() as db:
        db.add(
            DJSubscription(
                user_id=FAN_ID,
                dj_id=DJ_ID,
                plan="basic",
                track_quota=5,
                zip_quota=0,
                fan_upload_quota=0,
                tracks_used=5,
                zips_used=0,
                expires_at=days_from_now(10),
            )
        )
        await db.commit()

    response = await client.post(
        "/download-token",
        json={"content_id": TRACK_ID, "content_type": "track"},
        headers=FAN_AUTH_HEADER,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_rate_limit_returns_429_when_enabled(api_client):
    client, _ = api_client
    app.state.disable_rate_limits = False
    body = {"referralCode": None}

    statuses = []
    with patch("routers.rate_limit.settings.REDIS_URL", "redis://127.0.0.1:1/0"):
        for _ in range(21):
            response = await client.post("/rewards/track", json=body, headers=NEW_USER_AUTH_HEADER)
            statuses.append(response.status_code)

    assert statuses[:20] == [200] * 20
    assert statuses[20] == 429


@pytest.mark.asyncio
async def test_points_require_session(api_client):
    client, _ = api_client
    response = await client.get("/rewards/points")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_track_referral_flow(api_client):
    client, maker = api_client
    async with maker() as db:
        db.add(ReferralCode(user_id=DJ_ID, code="MIX-dj-0-XY34"))
        await db.commit()

    first = await client.post("/rewards/track", json={"referralCode": "MIX-dj-0-XY34"}, headers=NEW_USER_AUTH_HEADER)
    assert first.status_code == 200
    assert first.json() == {"success": True}

    second = await client.post("/rewards/track", json={"referralCode": "MIX-dj-0-XY34"}, headers=NEW_USER_AUTH_HEADER)
    assert second.json() == {"success": True, "message": "Referral already tracked"}

    points = await client.get("/rewards/points", headers=NEW_USER_AUTH_HEADER)
    assert points.status_code == 200
    assert points.json()["balance"] == 50
    assert points.json()["totalEarned"] == 50
    assert [entry["reason"] for entry in points.json()["history"]] == ["signup_bonus"]

    async with maker() as db:
        user = (await db.execute(select(User).where(User.id == NEW_USER_ID))).scalar_one_or_none()
        referral = (await db.execute(select(Referral).where(Referral.referred_id == NEW_USER_ID))).scalar_one()
    assert user is not None
    assert referral.referrer_id == DJ_ID


@pytest.mark.asyncio
async def test_referral_code_generation_is_stable(api_client):
    client, _ = api_client
    first = await client.post("/rewards/referral/generate", headers=FAN_AUTH_HEADER)
    second = await client.post("/rewards/referral/generate", headers=FAN_AUTH_HEADER)
    assert first.status_code == 200
    assert first.json()["referralCode"] == second.json()["referralCode"]

    summary = await client.get("/rewards/referral", headers=FAN_AUTH_HEADER)
    assert summary.status_code == 200
    payload = summary.json()
    assert payload["code"] == first.json()["referralCode"]
    assert payload["tier"] == "bronze"
    assert payload["stats"] == {"totalInvites": 0, "successfulReferrals": 0}
    assert payload["link"].endswith(f"/?ref={payload['code']}")


@pytest.mark.asyncio
async def test_split_preview_is_dj_only(api_client):
    client, _ = api_client
    forbidden = await client.get("/monetization/split?amount_minor=10000", headers=FAN_AUTH_HEADER)
    assert forbidden.status_code == 403

    allowed = await client.get("/monetization/split?amount_minor=10000", headers=DJ_AUTH_HEADER)
    assert allowed.status_code == 200
    assert allowed.json() == {"djAmount": 8000, "platformAmount": 2000, "djSharePct": 80}


@pytest.mark.asyncio
async def test_earnings_summary_for_dj(api_client):
    client, _ = api_client
    response = await client.get("/monetization/earnings", headers=DJ_AUTH_HEADER)
    assert response.status_code == 200
    assert response.json()["totalGross"] == 0
    assert response.json()["entries"] == []


@pytest.mark.asyncio
async def test_health_liveness(api_client):
    client, _ = api_client
    response = await client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"alive": True}


@pytest.mark.asyncio
async def test_store_failure_during_issuance_fails_closed(api_client):
    client, maker = api_client
    async with maker() as db:
        await db.execute(text("DROP TABLE dj_subscriptions"))
        await db.commit()

    response = await client.post(
        "/download-token",
        json={"content_id": TRACK_ID, "content_type": "track"},
        headers=FAN_AUTH_HEADER,
    )
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to issue download token."}

    async with maker() as db:
        assert (await db.execute(select(func.count(DownloadToken.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_dj_role_claim_is_enough_without_stored_account(api_client):
    client, _ = api_client
    header = _bearer(mint_session_token("dj-claim-0001", role="dj"))

    split = await client.get("/monetization/split?amount_minor=10000", headers=header)
    assert split.status_code == 200
    assert split.json()["djAmount"] == 8000


@pytest.mark.asyncio
async def test_role_claim_overrides_stored_role(api_client):
    client, _ = api_client
    header = _bearer(mint_session_token(DJ_ID, role="fan"))

    response = await client.get("/monetization/split?amount_minor=10000", headers=header)
    assert response.status_code == 403
    assert response.json() == {"error": "DJ account required."}


@pytest.mark.asyncio
async def test_session_without_role_falls_back_to_stored_role(api_client):
    client, _ = api_client
    stranger = _bearer(mint_session_token("unknown-0001"))

    assert (await client.get("/monetization/earnings", headers=DJ_AUTH_HEADER)).status_code == 200
    assert (await client.get("/monetization/earnings", headers=stranger)).status_code == 403


def _signed(claims: dict) -> dict:
    return _bearer(jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM))


@pytest.mark.asyncio
async def test_unknown_role_claim_is_unauthorized(api_client):
    client, _ = api_client
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    header = _signed({"sub": DJ_ID, "type": "mixmint_session", "role": "superuser", "exp": int(expires.timestamp())})

    response = await client.get("/monetization/split?amount_minor=100", headers=header)
    assert response.status_code == 401
    assert response.json() == {"error": "Session token carries an unknown role."}


@pytest.mark.asyncio
async def test_expired_or_foreign_sessions_are_unauthorized(api_client):
    client, _ = api_client
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    future = datetime.now(timezone.utc) + timedelta(hours=1)
    expired = _signed({"sub": FAN_ID, "type": "mixmint_session", "exp": int(past.timestamp())})
    foreign = _signed({"sub": FAN_ID, "type": "password_reset", "exp": int(future.timestamp())})

    first = await client.get("/rewards/points", headers=expired)
    second = await client.get("/rewards/points", headers=foreign)
    assert (first.status_code, first.json()) == (401, {"error": "Invalid or expired session token."})
    assert (second.status_code, second.json()) == (401, {"error": "Invalid session token type."})


@pytest.mark.asyncio
async def test_first_use_provisions_account_with_claimed_role(api_client):
    client, maker = api_client
    header = _bearer(mint_session_token("new-dj-0001", email="newdj@example.com", role="dj"))

    response = await client.post("/rewards/track", json={"referralCode": None}, headers=header)
    assert response.status_code == 200

    async with maker() as db:
        user = (await db.execute(select(User).where(User.id == "new-dj-0001"))).scalar_one()
    assert user.role == "dj"
    assert user.email == "newdj@example.com"
