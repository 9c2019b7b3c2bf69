# database.py - Async SQLAlchemy engine and session factory
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker


def create_engine_from_settings(settings) -> AsyncEngine:
    """Create the async engine with connection pooling for the configured database."""
    url = settings.database_url
    options = {
        "echo": settings.sql_echo,
        "pool_pre_ping": True,
    }
    if url.startswith("sqlite"):
        # SQLite does not use a sized connection pool
        engine = create_async_engine(url, **options)
        _enable_sqlite_foreign_keys(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=0,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=3600,
        **options,
    )


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """SQLite only enforces foreign keys (and ON DELETE actions) when asked per connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet"""
    from models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connection pool"""
    await engine.dispose()
