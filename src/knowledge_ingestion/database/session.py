"""SQLAlchemy async session management."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_ingestion.database.connection import close_engine, get_engine
from knowledge_ingestion.database.models import Base
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("database.session")

SessionFactory = async_sessionmaker[AsyncSession]

_session_factory: Optional[SessionFactory] = None


def get_session_factory() -> SessionFactory:
    """Get or create the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Session factory created")
    return _session_factory


@asynccontextmanager
async def get_session_context(
    session_factory: Optional[SessionFactory] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session scope for use outside of FastAPI dependencies.

    Commits on success and rolls back on any exception.

    Usage:
        async with get_session_context() as session:
            repo = NotificationsRepository(session)
            ...
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables that do not exist yet."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


async def close_db() -> None:
    """Close database connections."""
    global _session_factory
    _session_factory = None
    await close_engine()
