"""SQLAlchemy async engine and session management.

Provides a factory for async engines (``sqlite+aiosqlite`` locally,
``postgresql+asyncpg`` in production), an async context manager for
scoped sessions, and lifecycle helpers for schema creation and
shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from risk_register.core.config import DatabaseConfig

from .models import Base

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level engine (set via ``init_engine``)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_engine(
    url: str,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
    use_null_pool: bool = False,
) -> AsyncEngine:
    """Create and return a new SQLAlchemy :class:`AsyncEngine`.

    Args:
        url: Async database URL, e.g. ``sqlite+aiosqlite:///risks.db``.
        pool_size: Persistent connections to keep in the pool.
            Ignored for SQLite, which picks its own pool class.
        max_overflow: Additional connections beyond *pool_size*.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        echo: If ``True``, log all emitted SQL statements.
        use_null_pool: If ``True``, disable connection pooling entirely.
            Useful in short-lived processes (tests, CLI).

    Returns:
        A configured :class:`AsyncEngine` instance.
    """
    pool_kwargs: dict[str, Any] = {}
    if use_null_pool:
        pool_kwargs["poolclass"] = NullPool
    elif not _is_sqlite(url):
        pool_kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        )

    engine = create_async_engine(url, echo=echo, **pool_kwargs)
    logger.info("Created async engine for %s", url.split("@")[-1])
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_engine(
    config: DatabaseConfig,
    *,
    use_null_pool: bool = False,
) -> AsyncEngine:
    """Initialise the module-level engine and session factory.

    Subsequent calls to :func:`get_session` use the engine created here.
    When ``config.create_tables`` is set the schema is created as well.
    """
    global _engine, _session_factory  # noqa: PLW0603

    _engine = create_engine(
        config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        echo=config.echo,
        use_null_pool=use_null_pool,
    )
    _session_factory = create_session_factory(_engine)

    if config.create_tables:
        await create_all(_engine)

    return _engine


async def create_all(engine: AsyncEngine | None = None) -> None:
    """Create all tables defined in the ORM metadata.

    Raises:
        RuntimeError: If no engine is passed and none is initialised.
    """
    eng = engine or _engine
    if eng is None:
        raise RuntimeError(
            "No engine available. Call init_engine() first or pass an engine."
        )

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created / verified.")


async def dispose() -> None:
    """Dispose of the module-level engine and release pooled connections."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        await _engine.dispose()
        logger.info("Engine disposed.")
        _engine = None
        _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error.

    Usage::

        async with get_session() as session:
            repo = SqlRiskRepository(session, bus)
            ...

    Raises:
        RuntimeError: If :func:`init_engine` has not been called.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Session factory not initialised. Call init_engine() first."
        )

    session = _session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


def get_engine() -> AsyncEngine:
    """Return the module-level engine.

    Raises:
        RuntimeError: If :func:`init_engine` has not been called.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialised. Call init_engine() first.")
    return _engine
