from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from main import app
from models.content import AlbumPack, Track
from models.enums import UserRole
from models.user import User
from routers import rate_limit


DJ_ID = "dj-0001"
FAN_ID = "fan-0001"
TRACK_ID = "track-0001"
ZIP_ID = "zip-0001"


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """File-backed sqlite store shared by every session a test opens.

    The suspicious-activity sink writes through its own session factory, so
    it is pointed at the same database.
    """
    db_path = tmp_path / "mixmint.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"timeout": 30},
    )
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    with patch("services.suspicious_activity.async_session_maker", maker):
        yield maker

    await engine.dispose()


@pytest_asyncio.fixture
async def catalog(session_maker):
    """One DJ with one track and one album pack, plus one fan."""
    async with session_maker() as db:
        db.add_all(
            [
                User(id=DJ_ID, email="dj@example.com", role=UserRole.DJ.value),
                User(id=FAN_ID, email="fan@example.com", role=UserRole.FAN.value),
            ]
        )
        await db.flush()
        db.add_all(
            [
                Track(id=TRACK_ID, dj_id=DJ_ID, title="Night Drive", file_key="tracks/night-drive.mp3"),
                AlbumPack(id=ZIP_ID, dj_id=DJ_ID, title="Summer Sessions", file_key="packs/summer.zip"),
            ]
        )
        await db.commit()
    return session_maker


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_from_now(days: int) -> datetime:
    return utcnow() + timedelta(days=days)
