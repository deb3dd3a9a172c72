"""Engine, sessions and schema bootstrap for the portal database"""

import logging
import os
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from curbside.config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_CREDENTIALS = "user:password@localhost"


def engine_options(database_url: str) -> dict[str, Any]:
    """Pool options for the configured backend.

    SQLite (local runs and tests) gets a single-threaded connection; the
    PostgreSQL pool is sized for one API worker serving the portal and the
    operator dashboard.
    """
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": 20,
        "max_overflow": 40,
    }


def masked_url(database_url: str) -> str:
    """Database URL without credentials, safe to log"""
    return database_url.split("@")[-1]


def is_configured(database_url: str) -> bool:
    return PLACEHOLDER_CREDENTIALS not in database_url or "DATABASE_URL" in os.environ


engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.app_debug and settings.log_level == "DEBUG",
    **engine_options(settings.database_url),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def create_schema(target: AsyncEngine = engine) -> list[str]:
    """Create every portal table that does not exist yet; returns table names"""
    # Registers the models on Base.metadata
    from curbside.db import models  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return sorted(Base.metadata.tables)


async def ping(session: AsyncSession) -> bool:
    result = await session.execute(text("SELECT 1"))
    return result.scalar() == 1


async def init_db() -> None:
    """Create tables on startup; the API still starts if the database is down"""
    if not is_configured(settings.database_url):
        logger.warning("Database not configured - skipping table creation")
        return

    logger.info(f"Connecting to database at {masked_url(settings.database_url)}")
    try:
        tables = await create_schema()
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        logger.warning("Running without database connection")
        return
    logger.info(f"Database ready ({len(tables)} tables)")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One unit of work outside a request: commit on success, roll back on error"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; endpoints commit their own unit of work"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
