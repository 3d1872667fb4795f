"""
Async SQLAlchemy engine and sessions for the hosted Postgres store.

The engine is built on first use so that importing the API (tests, CLI
tooling) never opens a pool.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import config


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    return create_async_engine(
        config.database_url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: committed on success, rolled back on any error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def readonly_session() -> AsyncIterator[AsyncSession]:
    """
    Independent session inside a ``READ ONLY`` transaction.

    Used for model-generated SQL; the transaction is always rolled back.
    """
    async with get_session_factory()() as session:
        try:
            await session.execute(text("SET TRANSACTION READ ONLY"))
            yield session
        finally:
            await session.rollback()
