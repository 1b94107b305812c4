"""Database session management.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite, WAL mode) for tests
and single-node development.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

# Register tables on SQLModel.metadata
from devspaces.core import models  # noqa: F401
from devspaces.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _set_sqlite_pragmas(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def _create_engine(database_url: str, echo: bool) -> AsyncEngine:
    if _is_sqlite(database_url):
        engine = create_async_engine(database_url, echo=echo)
        if ":memory:" not in database_url:
            event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
        connect_args={
            "command_timeout": 30,
            "server_settings": {
                "statement_timeout": "30s",
                "lock_timeout": "10s",
                "application_name": "devspaces",
            },
        },
    )


async def init_db(
    database_url: str, echo: bool = False, create_tables: bool = True
) -> AsyncEngine:
    """Initialize database connection and optionally create tables.

    Args:
        database_url: Database connection URL
        echo: Enable SQL query logging
        create_tables: Create missing tables from SQLModel metadata
    """
    global _engine, _session_factory

    _engine = _create_engine(database_url, echo)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(SQLModel.metadata.create_all)
    except Exception as e:
        logger.error(
            "Database connection failed",
            extra={
                "event": "db_error",
                "error_type": type(e).__name__,
                "error": str(e),
            },
        )
        raise

    logger.info(
        "Database connected",
        extra={
            "event": LogEvent.DB_CONNECTED,
            "database": database_url.split("@")[-1],
        },
    )
    return _engine


async def close_db() -> None:
    """Close database connection."""
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connection closed")


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get session factory for creating independent sessions."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        yield session
