"""
Async engine and session factory.

PostgreSQL (asyncpg) gets a sized connection pool. SQLite (aiosqlite) is
used for local development and tests; SQLite has no pool sizing knobs, so
those options are only applied to server databases.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from geomatch.core.config import Settings, get_settings
from geomatch.db.base import Base


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    settings = settings or get_settings()
    url = settings.DATABASE_URL

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False, connect_args={"timeout": 30})

    return create_async_engine(
        url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet. Alembic owns schema changes."""
    # Import models so they register on Base.metadata
    from geomatch import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
