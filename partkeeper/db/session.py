"""Database engine management."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from partkeeper.config import settings
from partkeeper.core.logging import get_logger
from partkeeper.storage.postgres import PostgresPartitionStore

logger = get_logger(__name__)

# Create async engine with configurable connection pooling
engine = create_async_engine(
    settings.async_database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_timeout=settings.db_pool_timeout,
    pool_recycle=settings.db_pool_recycle,
    pool_pre_ping=True,  # Verify connections before using them
)

_store = PostgresPartitionStore(engine, lock_timeout_ms=settings.db_lock_timeout_ms)


def get_partition_store() -> PostgresPartitionStore:
    """Dependency that returns the shared partition store."""
    return _store


async def init_db() -> None:
    """Initialize database connection."""
    logger.info("Initializing database connection", url=settings.async_database_url.split("@")[-1])
    # Test connection
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection established")


async def close_db() -> None:
    """Close database connection pool."""
    logger.info("Closing database connection pool")
    await engine.dispose()
    logger.info("Database connection pool closed")
