"""Map (tenant, knowledge base) pairs to isolated search namespaces."""

from typing import Optional

from knowledge_ingestion.services.knowledge_base_service import KnowledgeBaseService
from knowledge_ingestion.utils.errors import NotFoundError, PermissionDeniedError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("namespace_resolver")


class NamespaceResolver:
    """
    Resolve the namespace a tenant reads from or writes to.

    Without a knowledge base the tenant id itself is the namespace (the legacy
    tenant-wide store). With one, the knowledge base must belong to the tenant
    and its stored namespace is returned.
    """

    def __init__(self, knowledge_bases: KnowledgeBaseService):
        self._knowledge_bases = knowledge_bases

    async def resolve(self, tenant_id: str, knowledge_base_id: Optional[str] = None) -> str:
        """
        Raises:
            NotFoundError: Unknown knowledge base
            PermissionDeniedError: Knowledge base owned by another tenant
        """
        if not knowledge_base_id:
            return tenant_id

        kb = await self._knowledge_bases.get(tenant_id, knowledge_base_id)
        if kb is None:
            raise NotFoundError("Knowledge base", resource_id=knowledge_base_id)
        return kb.namespace

    async def resolve_for_retrieval(
        self, tenant_id: str, knowledge_base_id: Optional[str] = None
    ) -> Optional[str]:
        """Like `resolve`, but an unknown or foreign knowledge base yields None."""
        try:
            return await self.resolve(tenant_id, knowledge_base_id)
        except (NotFoundError, PermissionDeniedError) as e:
            logger.warning(
                f"Namespace unavailable for retrieval: tenant={tenant_id}, "
                f"knowledge_base_id={knowledge_base_id} ({e.code})"
            )
            return None
