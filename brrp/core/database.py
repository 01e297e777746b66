"""
Async database setup using SQLModel with aiosqlite.
"""

import logging
from sqlmodel import SQLModel
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from typing import AsyncGenerator
from brrp.models import *

from brrp.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
)


AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    class_=AsyncSession
)


async def init_db() -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables ready")


async def ping_db(session: AsyncSession) -> bool:
    """Return True if the database answers a trivial query."""
    result = await session.execute(text("SELECT 1"))
    return result.scalar() == 1


async def rollback_and_reload(session: AsyncSession) -> None:
    """
    Roll back the session, then reload every instance that is still persistent.

    Instances written in the rolled-back transaction are dropped; everything
    else the caller holds stays readable after a failed write.
    """
    held = list(session.identity_map.values())
    await session.rollback()
    for instance in held:
        if inspect(instance).persistent:
            await session.refresh(instance)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session."""
    async with AsyncSessionLocal() as session:
        yield session


def is_unique_violation(error: IntegrityError, column: str) -> bool:
    """True if ``error`` was raised by the unique constraint on ``column``."""
    return column in str(error.orig)
