"""Base repository class with common CRUD operations."""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_ingestion.database.models import Base
from knowledge_ingestion.utils.errors import DatabaseError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("repositories")

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        try:
            result = await self.session.execute(select(self.model).where(self.model.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model.__name__} by ID {id}: {e}")
            raise DatabaseError(f"Failed to retrieve {self.model.__name__}") from e

    async def create(self, **kwargs) -> ModelType:
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            await self.session.refresh(instance)
            logger.debug(f"Created {self.model.__name__} with ID: {instance.id}")
            return instance
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model.__name__}: {e}")
            await self.session.rollback()
            raise DatabaseError(f"Failed to create {self.model.__name__}") from e

    async def update(self, id: str, **kwargs) -> Optional[ModelType]:
        """Update a record by ID; returns None if it does not exist."""
        try:
            instance = await self.get_by_id(id)
            if not instance:
                return None

            for field, value in kwargs.items():
                if hasattr(instance, field):
                    setattr(instance, field, value)

            await self.session.flush()
            await self.session.refresh(instance)
            logger.debug(f"Updated {self.model.__name__} with ID: {id}")
            return instance
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self.model.__name__} with ID {id}: {e}")
            await self.session.rollback()
            raise DatabaseError(f"Failed to update {self.model.__name__}") from e

    async def delete(self, id: str) -> bool:
        """Delete a record by ID; returns False if it does not exist."""
        try:
            instance = await self.get_by_id(id)
            if not instance:
                return False

            await self.session.delete(instance)
            await self.session.flush()
            logger.debug(f"Deleted {self.model.__name__} with ID: {id}")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {self.model.__name__} with ID {id}: {e}")
            await self.session.rollback()
            raise DatabaseError(f"Failed to delete {self.model.__name__}") from e
