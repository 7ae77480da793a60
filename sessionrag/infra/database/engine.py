"""
sessionrag.infra.database.engine – Async SQLAlchemy 2.0 engine, session factory, init_db.

Postgres URLs are rewritten to the asyncpg driver; ``sqlite+aiosqlite://``
gets a StaticPool so an in-memory database is shared across sessions.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

# Registers all ORM models with Base.metadata before create_all()
import sessionrag.infra.database.models  # noqa: F401
from sessionrag.infra.database.models.base import Base

if TYPE_CHECKING:
    from sessionrag.config import DatabaseConfig

logger = logging.getLogger(__name__)


def _make_async_url(url: str) -> str:
    """Convert postgresql:// or postgres:// to postgresql+asyncpg://."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix) and "+asyncpg" not in url:
            return url.replace(prefix, "postgresql+asyncpg://", 1)
    return url


def build_engine(
    config: Optional["DatabaseConfig"] = None,
    *,
    echo: Optional[bool] = None,
) -> AsyncEngine:
    """
    Create the async SQLAlchemy engine for the chunk table.

    Args:
        config: DatabaseConfig (url, pool_size, echo). If None, loaded from env.
        echo: Override SQL echo (default: use config.echo).
    """
    if config is None:
        from sessionrag.config import load_database_config
        config = load_database_config()

    do_echo = echo if echo is not None else config.echo
    if config.is_sqlite:
        engine = create_async_engine(
            config.url,
            echo=do_echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        logger.info("AsyncEngine created for SQLite (StaticPool)")
        return engine

    engine = create_async_engine(
        _make_async_url(config.url),
        echo=do_echo,
        pool_size=config.pool_size,
        pool_pre_ping=True,
        connect_args={"server_settings": {"application_name": "sessionrag", "jit": "off"}},
    )
    logger.info("AsyncEngine created: pool_size=%d", config.pool_size)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory bound to engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine, *, drop_all: bool = False) -> None:
    """Create the ORM tables. For dev/test only; use migrations in production."""
    async with engine.begin() as conn:
        if drop_all:
            logger.warning("Dropping all ORM tables (drop_all=True)")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Chunk table initialised")


async def close_engine(engine: AsyncEngine) -> None:
    """Dispose the connection pool. Call on app shutdown."""
    await engine.dispose()
    logger.info("AsyncEngine disposed")
