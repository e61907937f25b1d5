"""Database configuration and session management.

This module constructs an asynchronous SQLAlchemy engine and session
factory for the application from ``settings.DATABASE_URL``.  Plain
``sqlite://`` URLs are upgraded to the ``aiosqlite`` driver and
Postgres URLs are normalised to ``psycopg`` so the same value can be
shared with other tools.  The worker builds its own engine per message
via :func:`build_engine` because each Dramatiq message runs in a fresh
event loop.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine.url import make_url, URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from receipt_api.core.config import settings

logger = logging.getLogger(__name__)


def normalise_database_url(raw_url: str) -> URL:
    """Return ``raw_url`` with an async driver selected."""
    url_obj = make_url(raw_url)
    driver = url_obj.drivername or ""
    if driver == "sqlite":
        url_obj = url_obj.set(drivername="sqlite+aiosqlite")
    elif driver in {"postgresql", "postgres", "postgresql+psycopg2", "postgresql+asyncpg"}:
        url_obj = url_obj.set(drivername="postgresql+psycopg")
    return url_obj


def _ensure_sqlite_directory(url_obj: URL) -> None:
    # SQLite will not create missing parent directories on its own
    if url_obj.drivername.startswith("sqlite") and url_obj.database and url_obj.database != ":memory:":
        Path(url_obj.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def build_engine(raw_url: str | None = None, *, pooled: bool = True) -> AsyncEngine:
    """Create an async engine for ``raw_url`` (defaults to settings)."""
    url_obj = normalise_database_url(raw_url or settings.DATABASE_URL)
    _ensure_sqlite_directory(url_obj)
    engine_kwargs: dict[str, Any] = dict(echo=False)
    if pooled:
        engine_kwargs["pool_pre_ping"] = True
    else:
        engine_kwargs["poolclass"] = NullPool
    return create_async_engine(url_obj, **engine_kwargs)


engine = build_engine()
logger.info("Database engine configured: %s", engine.url.render_as_string(hide_password=True))

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Declarative base
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a database session.

    This function is intended for FastAPI dependency injection.  Each
    session is scoped to the request and closed after use.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create all tables defined on the declarative ``Base``.

    Called during application startup; there is no migration tooling so
    this is the only place the schema is materialised.
    """
    target = bind or engine
    async with target.begin() as conn:
        # Import all models to ensure metadata is populated
        from receipt_api.models import tables  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


def get_db_debug_info() -> Dict[str, Any]:
    """Return non-sensitive information about the current DB engine."""
    url_obj = engine.url
    return {
        "environment": settings.ENVIRONMENT,
        "drivername": url_obj.drivername,
        "host": url_obj.host,
        "database": url_obj.database,
        "url": url_obj.render_as_string(hide_password=True),
    }
