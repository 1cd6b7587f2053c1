"""
Async database engine, session factory and shared helpers.
"""

from typing import Any, AsyncGenerator, Dict, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings


def _async_database_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


engine = create_async_engine(
    _async_database_url(settings.DATABASE_URL),
    future=True,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def dialect_insert(db: AsyncSession, model: Any):
    """Return the session dialect's INSERT construct, which supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"ON CONFLICT inserts are not supported for dialect {dialect!r}")
    return insert(model)


def insert_ignore(
    db: AsyncSession,
    model: Any,
    values: Dict[str, Any],
    index_elements: Optional[Sequence[str]] = None,
):
    """Build an INSERT ... ON CONFLICT DO NOTHING for the session's dialect.

    Executing the statement yields ``rowcount == 1`` when the row was written
    and ``0`` when a unique constraint already held it, which makes it usable
    as a single atomic guard for exactly-once writes.
    """
    stmt = dialect_insert(db, model).values(**values)
    if index_elements:
        return stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    return stmt.on_conflict_do_nothing()
