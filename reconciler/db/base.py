"""
Database base configuration and async session management
"""

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from reconciler.core.config import settings

# Base class for models (must be defined first)
Base = declarative_base()

# Engine and session factory - only created when DATABASE_URL is set
# This prevents errors when Alembic imports Base without a database connection
_engine = None
_AsyncSessionLocal = None


def normalize_database_url(database_url: str) -> str:
    """Convert a plain postgresql:// URL to the asyncpg driver"""
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def _get_database_url():
    """Get database URL, converting to async format if needed"""
    return normalize_database_url(settings.DATABASE_URL or "postgresql+asyncpg://localhost/reconciler")


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    SQLite has no row-level locks, so SELECT ... FOR UPDATE is a no-op there.
    Every transaction takes the database write lock up front instead.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL"""
    database_url = normalize_database_url(database_url)
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 30},
        )
        _use_immediate_transactions(engine)
        return engine
    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        echo=echo,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory with the settings every service expects"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


def get_engine():
    """Get or create the async database engine (lazy initialization)"""
    global _engine
    if _engine is None:
        _engine = create_engine_for_url(_get_database_url(), echo=settings.DEBUG)
    return _engine


def get_session_factory():
    """Get or create the async session factory (lazy initialization)"""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = create_session_factory(get_engine())
    return _AsyncSessionLocal


async def get_session_factory_dependency() -> async_sessionmaker:
    """
    Dependency returning the session factory.
    Job services open their own transactions, so they take the factory rather than a session.
    """
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL not configured")
    return get_session_factory()


async def get_db(session_factory: async_sessionmaker = Depends(get_session_factory_dependency)):
    """
    Async dependency to get database session.
    Use this in FastAPI route dependencies.
    
    Example:
        @router.get("/orders/{order_id}/jobs")
        async def list_jobs(order_id: int, db: AsyncSession = Depends(get_db)):
            return await job_store.load_all_by_order(db, order_id)
    """
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def dispose_engine() -> None:
    """Close the pooled connections of the lazily created engine, if any"""
    global _engine, _AsyncSessionLocal
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _AsyncSessionLocal = None
