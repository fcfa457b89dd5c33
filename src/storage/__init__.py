"""Database connection and session management.

Provides the async SQLAlchemy engine and session factory that every
credential, challenge, rate-limit, audit and account store runs on.

The engine and factory are created lazily on first use and guarded by a
reentrant lock: ``get_session_factory()`` calls ``get_engine()`` while
holding it.
"""

import threading
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.settings import Settings, get_settings

# Zero-argument callable returning an async context manager that yields a
# session. Stores take one of these so tests can bind them to any engine.
SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_init_lock = threading.RLock()


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Return the process-wide engine, creating it from ``settings`` on first call."""
    global _engine

    if _engine is None:
        with _init_lock:
            if _engine is None:
                settings = settings or get_settings()
                _engine = create_async_engine(
                    str(settings.database_url),
                    pool_size=settings.database_pool_size,
                    max_overflow=settings.database_max_overflow,
                    pool_timeout=settings.database_pool_timeout,
                    pool_recycle=settings.database_pool_recycle,
                    pool_pre_ping=True,
                    echo=settings.debug,
                )

    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Return the shared sessionmaker; sessions keep attributes loaded after commit."""
    global _session_factory

    if _session_factory is None:
        with _init_lock:
            if _session_factory is None:
                engine = get_engine(settings)
                _session_factory = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a plain session that is always closed, never committed."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
    finally:
        await session.close()


@asynccontextmanager
async def get_committing_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a session that commits on successful exit.

    Each store operation opens one of these, so a challenge delete or a
    rate-limit increment is durable as soon as the store call returns,
    independently of whatever the request does afterwards. On exception
    the session is closed without committing.
    """
    async with get_session() as session:
        yield session
        await session.commit()


def committing_session_factory(
    factory: async_sessionmaker[AsyncSession],
) -> SessionFactory:
    """Wrap a sessionmaker into a committing :data:`SessionFactory`."""

    @asynccontextmanager
    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session
            await session.commit()

    return _session


async def init_db() -> None:
    """Initialize the connection pool and verify connectivity."""
    engine = get_engine()
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def ping_db() -> None:
    """Run a trivial query; raises when the database is unreachable."""
    async with get_session() as session:
        await session.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine at application shutdown."""
    global _engine, _session_factory

    with _init_lock:
        if _engine is not None:
            await _engine.dispose()
            _engine = None
            _session_factory = None


__all__ = [
    "SessionFactory",
    "close_db",
    "committing_session_factory",
    "get_committing_session",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "ping_db",
]
