"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

Cascading deletes are enforced by the database. SQLite only honours
foreign keys when asked per connection, so build_engine() turns them on.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from quarry.config import settings
from quarry.db.models import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine for `url`.

    Postgres gets a sized connection pool; SQLite gets foreign keys.
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo, **kwargs)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    # Connection pool: min 5, max 20 connections.
    kwargs.setdefault("pool_size", 5)
    kwargs.setdefault("max_overflow", 15)
    return create_async_engine(url, echo=echo, **kwargs)


engine = build_engine(settings.database_url, echo=settings.debug)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create any missing tables. Existing tables are left alone."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
