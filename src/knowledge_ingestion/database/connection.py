"""Database engine management."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("database")

_engine: Optional[AsyncEngine] = None


def get_database_url() -> str:
    """Get the database URL, converting to async format if needed."""
    db_url = get_settings().database.url

    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif db_url.startswith("postgresql+psycopg2://"):
        db_url = db_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)

    return db_url


def create_engine() -> AsyncEngine:
    """Create and configure the SQLAlchemy async engine."""
    settings = get_settings()
    db_url = get_database_url()

    if settings.database.is_sqlite:
        engine = create_async_engine(db_url, echo=settings.database.echo)
    else:
        engine = create_async_engine(
            db_url,
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_pre_ping=True,
            echo=settings.database.echo,
        )

    logger.info(f"Database engine created: dialect={engine.dialect.name}")
    return engine


def get_engine() -> AsyncEngine:
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


async def check_connection() -> bool:
    """Return True when the database answers a trivial query."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


async def close_engine() -> None:
    """Dispose of the global engine."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database engine disposed")
