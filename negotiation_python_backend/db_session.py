"""
Async database engine for the shared usage ledger.

Postgres (asyncpg) is the production target and is migrated with alembic.
A SQLite URL (aiosqlite) is accepted for local runs; its schema is created
at startup by ``init_usage_ledger``.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from negotiation_python_backend.config import DATABASE_URL
from negotiation_python_backend.models import Base

logger = logging.getLogger(__name__)


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str = DATABASE_URL) -> AsyncEngine:
    """Engine for ``url``; SQLite writers wait on each other instead of failing with "database is locked"."""
    if is_sqlite_url(url):
        return create_async_engine(url, connect_args={"timeout": 30})
    return create_async_engine(url, pool_pre_ping=True)


async_engine = build_engine()

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_usage_ledger(engine: AsyncEngine = async_engine, url: str = DATABASE_URL) -> bool:
    """
    Create the ledger table on SQLite. Returns True when it did.

    Postgres schemas belong to alembic and are left alone.
    """
    if not is_sqlite_url(url):
        return False
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("[DB] SQLite usage ledger ready")
    return True


async def dispose_engine(engine: AsyncEngine = async_engine) -> None:
    logger.info("[DB] Disposing database engine...")
    await engine.dispose()
