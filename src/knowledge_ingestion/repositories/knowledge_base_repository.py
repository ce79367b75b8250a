"""Knowledge base repository."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_ingestion.database.models import KnowledgeBase
from knowledge_ingestion.repositories.base import BaseRepository
from knowledge_ingestion.utils.errors import DatabaseError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("repositories.knowledge_bases")


class KnowledgeBaseRepository(BaseRepository[KnowledgeBase]):
    """Repository for knowledge base records."""

    def __init__(self, session: AsyncSession):
        super().__init__(KnowledgeBase, session)

    async def get_by_public_id(self, knowledge_base_id: str) -> Optional[KnowledgeBase]:
        """Look up by the public `kb_...` identifier, regardless of tenant."""
        try:
            result = await self.session.execute(
                select(KnowledgeBase).where(KnowledgeBase.knowledge_base_id == knowledge_base_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting knowledge base {knowledge_base_id}: {e}")
            raise DatabaseError("Failed to retrieve knowledge base") from e

    async def list_for_tenant(self, tenant_id: str) -> List[KnowledgeBase]:
        try:
            result = await self.session.execute(
                select(KnowledgeBase)
                .where(KnowledgeBase.tenant_id == tenant_id)
                .order_by(KnowledgeBase.created_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing knowledge bases for tenant {tenant_id}: {e}")
            raise DatabaseError("Failed to retrieve knowledge bases") from e
