"""
SQLAlchemy async database client for the habit notification service.

Provides async connection management using SQLAlchemy Core with asyncpg.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .tables import metadata  # noqa: F401 - exported for Alembic

# Module-level engine (created on first use)
_engine: AsyncEngine | None = None

_POSTGRES_SCHEMES = (
    "postgresql+asyncpg://",
    "postgresql+psycopg2://",
    "postgresql://",
    "postgres://",
)


def with_driver(database_url: str, driver: str | None) -> str:
    """
    Point a Postgres URL at a specific driver.

    DATABASE_URL may come in any of the forms hosting providers hand out
    (postgres://, postgresql://, or with a driver already set).

    Args:
        database_url: Any Postgres URL
        driver: "asyncpg" for the app, None for the plain (psycopg2) URL

    Raises:
        ValueError: If the URL isn't a Postgres URL
    """
    for scheme in _POSTGRES_SCHEMES:
        if database_url.startswith(scheme):
            rest = database_url[len(scheme):]
            prefix = f"postgresql+{driver}://" if driver else "postgresql://"
            return prefix + rest
    raise ValueError("DATABASE_URL must be a postgres:// or postgresql:// URL")


def _get_database_url() -> str:
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable must be set")
    return with_driver(database_url, "asyncpg")


def get_engine() -> AsyncEngine:
    """Get or create the async SQLAlchemy engine singleton."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            _get_database_url(),
            echo=os.environ.get("SQL_ECHO", "").lower() == "true",
            # One scan pass reads in bulk; hooks hold a connection briefly
            pool_size=5,
            max_overflow=5,
            pool_timeout=10,
            pool_recycle=1800,
        )
    return _engine


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """
    Get an async database connection from the pool.

    Usage:
        async with get_connection() as conn:
            result = await conn.execute(select(users))
    """
    async with get_engine().connect() as conn:
        yield conn


@asynccontextmanager
async def get_transaction() -> AsyncGenerator[AsyncConnection, None]:
    """
    Get a connection inside a transaction.
    Commits on success, rolls back on exception.
    """
    async with get_engine().begin() as conn:
        yield conn


async def close_engine() -> None:
    """Close the engine and all connections. Call on shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def is_configured() -> bool:
    """Check if database credentials are configured."""
    return bool(os.environ.get("DATABASE_URL"))


def get_sync_database_url() -> str:
    """Get the psycopg2 URL Alembic uses for (synchronous) migrations."""
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL must be set for migrations")
    return with_driver(database_url, None)
