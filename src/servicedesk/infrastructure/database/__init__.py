"""
Database Infrastructure
=======================

Async SQLAlchemy engine and per-operation sessions for the ticket, team,
user and survey repositories.

PostgreSQL (asyncpg) in deployments, SQLite (aiosqlite) in tests. Jobs are
never stored here; the scheduler keeps them in memory.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from servicedesk.config import settings
from servicedesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by every bounded context's models."""


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None

# Modules whose import registers tables on Base.metadata
MODEL_MODULES = (
    "servicedesk.tickets.infrastructure.models",
    "servicedesk.surveys.infrastructure.models",
)


def _engine_options(url: str) -> dict:
    options = {"echo": settings.debug}
    if url.startswith("sqlite"):
        # Single-file SQLite has no connection pool to size
        return options
    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )
    return options


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session maker. Called once at startup.

    Args:
        database_url: Overrides ``settings.database_url``
    """
    global _engine, _session_maker

    # asyncpg takes ``ssl=`` where libpq URLs say ``sslmode=``
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    _engine = create_async_engine(url, **_engine_options(url))
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info("Database engine initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


async def close_database() -> None:
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work: commit on success, roll back on error.

    Repositories open a session per call, so the tick loop and request
    handlers never share a session.
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create missing tables (development and tests; production uses migrations)."""
    import importlib

    for module in MODEL_MODULES:
        importlib.import_module(module)

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_database() -> str:
    """Health probe: ``disabled``, ``connected`` or ``unreachable``."""
    if _engine is None:
        return "disabled"
    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database health check failed", extra={"error": f"{type(e).__name__}: {e}"})
        return "unreachable"
    return "connected"
