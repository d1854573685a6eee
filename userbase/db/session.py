"""
Database Session Management - Async SQLAlchemy session factory.

Writes go to the primary; public read-only lookups may use a replica.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from userbase.config import settings
from userbase.observability.tracing import instrument_sqlalchemy

_engines: dict[str, AsyncEngine] = {}
_factories: dict[str, async_sessionmaker[AsyncSession]] = {}


def _create_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
        echo=settings.log_level == "DEBUG",
    )
    instrument_sqlalchemy(engine)
    return engine


def get_engine(role: str = "write") -> AsyncEngine:
    """Get or create the engine for a role ("write" or "read")."""
    if role not in _engines:
        url = settings.database_url if role == "write" else settings.read_database_url
        _engines[role] = _create_engine(url)
    return _engines[role]


def get_session_factory(role: str = "write") -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory for a role."""
    if role not in _factories:
        _factories[role] = async_sessionmaker(
            get_engine(role),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _factories[role]


async def get_write_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for write database session.

    Usage:
        @router.post("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_write_db)):
            ...
    """
    async with get_session_factory("write")() as session:
        yield session


async def get_read_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for read database session (replica when configured)."""
    async with get_session_factory("read")() as session:
        yield session


async def close_engines() -> None:
    """Close all database engines (for graceful shutdown)."""
    for engine in _engines.values():
        await engine.dispose()
    _engines.clear()
    _factories.clear()
