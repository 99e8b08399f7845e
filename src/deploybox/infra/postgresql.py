"""Database session management."""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from deploybox.app.config import get_settings
from deploybox.core.logging_schema import LogEvent

# Registers the instances table on SQLModel.metadata
from deploybox.core.models import Instance  # noqa: F401

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(url: str) -> AsyncEngine:
    """Create an async engine. Pool sizing applies to server databases only."""
    settings = get_settings()
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.database.echo)

    return create_async_engine(
        url,
        echo=settings.database.echo,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


async def init_db() -> None:
    global _engine, _session_factory

    settings = get_settings()
    url = str(settings.database.url)

    _engine = create_engine(url)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info(
            "Database connected",
            extra={
                "event": LogEvent.DB_CONNECTED,
                "pool_size": settings.database.pool_size,
                "max_overflow": settings.database.max_overflow,
            },
        )
    except Exception as e:
        logger.error(
            "Database connection failed",
            extra={
                "event": LogEvent.DB_ERROR,
                "error_type": type(e).__name__,
                "error": str(e),
            },
        )
        raise


async def close_db() -> None:
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get session factory for creating new sessions.

    Each registry call opens its own session from this factory.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    return _session_factory
