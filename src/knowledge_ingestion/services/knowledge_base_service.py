"""Knowledge base management."""

import secrets
from typing import List, Optional

from knowledge_ingestion.database.models import KnowledgeBase
from knowledge_ingestion.database.session import SessionFactory, get_session_context
from knowledge_ingestion.repositories.knowledge_base_repository import KnowledgeBaseRepository
from knowledge_ingestion.utils.errors import NotFoundError, PermissionDeniedError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("knowledge_base_service")

KNOWLEDGE_BASE_ID_PREFIX = "kb_"


def generate_knowledge_base_id() -> str:
    return f"{KNOWLEDGE_BASE_ID_PREFIX}{secrets.token_hex(8)}"


def namespace_for(tenant_id: str, knowledge_base_id: str) -> str:
    return f"{tenant_id}_{knowledge_base_id}"


class KnowledgeBaseService:
    """CRUD over knowledge bases, always scoped to the calling tenant."""

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory

    async def create(self, tenant_id: str, name: str, description: Optional[str] = None) -> KnowledgeBase:
        knowledge_base_id = generate_knowledge_base_id()
        async with get_session_context(self._session_factory) as session:
            kb = await KnowledgeBaseRepository(session).create(
                knowledge_base_id=knowledge_base_id,
                tenant_id=tenant_id,
                name=name,
                description=description,
                namespace=namespace_for(tenant_id, knowledge_base_id),
            )
        logger.info(f"Created knowledge base {knowledge_base_id} for tenant {tenant_id}")
        return kb

    async def get(self, tenant_id: str, knowledge_base_id: str) -> Optional[KnowledgeBase]:
        """
        Return the knowledge base, or None if it does not exist.

        Raises:
            PermissionDeniedError: If it belongs to another tenant
        """
        async with get_session_context(self._session_factory) as session:
            kb = await KnowledgeBaseRepository(session).get_by_public_id(knowledge_base_id)
        if kb is None:
            return None
        if kb.tenant_id != tenant_id:
            raise PermissionDeniedError(
                "Knowledge base belongs to another tenant",
                details={"knowledge_base_id": knowledge_base_id},
            )
        return kb

    async def list(self, tenant_id: str) -> List[KnowledgeBase]:
        async with get_session_context(self._session_factory) as session:
            return await KnowledgeBaseRepository(session).list_for_tenant(tenant_id)

    async def update(
        self,
        tenant_id: str,
        knowledge_base_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> KnowledgeBase:
        """Rename or re-describe a knowledge base. The namespace never changes."""
        async with get_session_context(self._session_factory) as session:
            repo = KnowledgeBaseRepository(session)
            kb = await self._get_owned(repo, tenant_id, knowledge_base_id)
            changes = {}
            if name is not None:
                changes["name"] = name
            if description is not None:
                changes["description"] = description
            if not changes:
                return kb
            return await repo.update(kb.id, **changes)

    async def delete(self, tenant_id: str, knowledge_base_id: str) -> None:
        async with get_session_context(self._session_factory) as session:
            repo = KnowledgeBaseRepository(session)
            kb = await self._get_owned(repo, tenant_id, knowledge_base_id)
            await repo.delete(kb.id)
        logger.info(f"Deleted knowledge base {knowledge_base_id} for tenant {tenant_id}")

    @staticmethod
    async def _get_owned(
        repo: KnowledgeBaseRepository, tenant_id: str, knowledge_base_id: str
    ) -> KnowledgeBase:
        kb = await repo.get_by_public_id(knowledge_base_id)
        if kb is None:
            raise NotFoundError("Knowledge base", resource_id=knowledge_base_id)
        if kb.tenant_id != tenant_id:
            raise PermissionDeniedError(
                "Knowledge base belongs to another tenant",
                details={"knowledge_base_id": knowledge_base_id},
            )
        return kb
