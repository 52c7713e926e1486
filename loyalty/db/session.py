"""
Async SQLAlchemy engine and sessions.

Production runs on PostgreSQL through asyncpg; the test suite and local
experiments use SQLite through aiosqlite.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from loyalty.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine without client-side pooling.

    Connections are pooled by PgBouncer in front of PostgreSQL, which does
    not support asyncpg's prepared statement cache.
    """
    connect_args = {}
    if database_url.startswith("postgresql+asyncpg"):
        connect_args["statement_cache_size"] = 0

    return create_async_engine(
        database_url,
        poolclass=NullPool,
        echo=echo,
        connect_args=connect_args,
    )


engine = build_engine(settings.database_url, echo=settings.database_echo)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session committed on success and rolled back on error.

    Usage (scheduler jobs, startup, scripts):
        async with get_db_context() as db:
            await db.execute(...)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_db_context() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """
    FastAPI dependency returning the session factory.

    Used by routes that open several sessions of their own (recalculation runs).
    """
    return AsyncSessionLocal
