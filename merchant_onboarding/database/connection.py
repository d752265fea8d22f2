"""
Engine and session factory shared by the repositories.

Every repository call opens one short-lived session in its own transaction,
so a pool sized to the number of concurrent requests of one worker is enough.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from merchant_onboarding.config import Settings, get_settings
from merchant_onboarding.database.models import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(settings: Settings, pooled: bool = True) -> AsyncEngine:
    """
    Create an engine for the configured database.

    Args:
        settings: Application settings
        pooled: Keep a connection pool; without one every session opens
            and closes its own connection

    Returns:
        AsyncEngine: SQLAlchemy async engine instance
    """
    if not pooled:
        return create_async_engine(
            settings.database_url, echo=settings.database_echo, poolclass=NullPool
        )

    return create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Repositories return pydantic copies, so loaded rows never need a refresh.
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def create_tables(engine: AsyncEngine, reset: bool = False) -> None:
    """Create the onboarding tables, dropping them first when ``reset`` is set."""
    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def get_session_factory(settings: Optional[Settings] = None) -> async_sessionmaker[AsyncSession]:
    """
    Get or lazily create the process-wide session factory.

    Returns:
        async_sessionmaker: Factory bound to the shared engine
    """
    global _engine, _session_factory
    if _session_factory is None:
        _engine = build_engine(settings or get_settings())
        _session_factory = build_session_factory(_engine)
    return _session_factory


async def init_db() -> None:
    """Create all tables that don't exist yet on the shared engine."""
    get_session_factory()
    await create_tables(_engine)


async def close_db() -> None:
    """Dispose of the shared engine; the next session factory call recreates it."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
