"""File change event repository."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_ingestion.database.models import FileChangeEvent
from knowledge_ingestion.repositories.base import BaseRepository
from knowledge_ingestion.utils.errors import DatabaseError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("repositories.file_changes")


class FileChangesRepository(BaseRepository[FileChangeEvent]):
    def __init__(self, session: AsyncSession):
        super().__init__(FileChangeEvent, session)

    async def list_since(
        self,
        tenant_id: str,
        since: Optional[datetime] = None,
        knowledge_base_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[FileChangeEvent]:
        """Newest first, optionally restricted to one knowledge base."""
        try:
            query = select(FileChangeEvent).where(FileChangeEvent.tenant_id == tenant_id)
            if knowledge_base_id is not None:
                query = query.where(FileChangeEvent.knowledge_base_id == knowledge_base_id)
            if since is not None:
                query = query.where(FileChangeEvent.created_at > since)
            query = query.order_by(FileChangeEvent.created_at.desc()).limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing file changes for tenant {tenant_id}: {e}")
            raise DatabaseError("Failed to retrieve file changes") from e
