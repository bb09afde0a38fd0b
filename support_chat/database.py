"""Database configuration and session management."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


# Lazy initialization of engine and session maker
# This allows imports without requiring settings to be configured
_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine
    if _engine is None:
        # Import here to avoid circular dependencies
        from support_chat.config import get_settings

        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_pre_ping=True,  # Test connections before use
            echo=False,  # Set to True for SQL query logging
        )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session maker."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_maker


async def create_db_and_tables(engine: AsyncEngine | None = None) -> None:
    """Create all database tables.

    Note: In production, use Alembic migrations instead.
    """
    # Models must be imported so their tables are registered on Base.metadata
    import support_chat.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close the global engine and drop cached factories."""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_maker = None
