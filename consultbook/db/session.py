# consultbook/db/session.py

from typing import Any, Dict

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from consultbook.core.config import settings


def engine_options(url: str) -> Dict[str, Any]:
    """Pool arguments for the configured backend.

    SQLite (tests, local runs through DATABASE_URL) has no server-side pool;
    an in-memory database must share one connection or every session sees an
    empty schema. Postgres gets a sized, pre-pinged pool.
    """
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": settings.DB_POOL_RECYCLE_SECONDS,
    }


# One engine per process
engine = create_async_engine(settings.async_db_uri, **engine_options(settings.async_db_uri))

# Short-lived sessions per request; objects stay usable after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


class Base(DeclarativeBase):
    pass


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session
