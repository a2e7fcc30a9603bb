"""Async engine and session factory construction."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shopsync.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    kwargs: dict = {"echo": settings.DB_ECHO}
    if not settings.DATABASE_URL.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    return create_async_engine(settings.DATABASE_URL, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; rows stay usable after commit since sessions are short-lived."""
    return async_sessionmaker(engine, expire_on_commit=False)
