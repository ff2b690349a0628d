"""
Async engine and session management for the listing store.
"""
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from partscout.core.config import get_settings
from partscout.models.database import Base

settings = get_settings()

engine = create_async_engine(
    str(settings.database_url),
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
    echo=settings.app_debug,
)

# Rows stay loaded after commit
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Create missing tables (migrations remain the source of truth in production)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()


async def ping_db() -> str:
    """Return ``"healthy"`` or ``"unhealthy: <reason>"``."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return f"unhealthy: {e}"
    return "healthy"


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency returning the session factory for background work."""
    return async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency yielding one session per request."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
