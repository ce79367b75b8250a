"""File listings derived by aggregating index entries per display name."""

from typing import Dict, List, Optional

from knowledge_ingestion.models.chunk import ChunkStatus, IndexEntry
from knowledge_ingestion.models.document import DocumentSummary
from knowledge_ingestion.services.document_index import DocumentIndex
from knowledge_ingestion.services.namespace_resolver import NamespaceResolver
from knowledge_ingestion.services.storage_service import BlobStorage, human_readable_size
from knowledge_ingestion.utils.errors import NotFoundError, StorageError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("document_catalog")

LIST_PAGE_SIZE = 100


class DocumentCatalog:
    """A document has no row of its own; its status and size come from its entries."""

    def __init__(self, resolver: NamespaceResolver, index: DocumentIndex, storage: BlobStorage):
        self._resolver = resolver
        self._index = index
        self._storage = storage

    async def list_documents(
        self,
        tenant_id: str,
        knowledge_base_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[DocumentSummary]:
        """
        Raises:
            PermissionDeniedError: Knowledge base owned by another tenant
        """
        try:
            namespace = await self._resolver.resolve(tenant_id, knowledge_base_id)
        except NotFoundError:
            return []

        if await self._index.get_namespace(namespace) is None:
            return []

        groups: Dict[str, List[IndexEntry]] = {}
        cursor: Optional[str] = None
        while True:
            page = await self._index.list(namespace, cursor=cursor, limit=LIST_PAGE_SIZE)
            for entry in page.entries:
                groups.setdefault(entry.metadata.display_name, []).append(entry)
            if page.next_cursor is None:
                break
            cursor = page.next_cursor

        documents = []
        for name, entries in groups.items():
            summary = await self._summarize(name, entries)
            if category and summary.category != category:
                continue
            documents.append(summary)

        documents.sort(key=lambda d: d.display_name.lower())
        return documents

    async def _summarize(self, display_name: str, entries: List[IndexEntry]) -> DocumentSummary:
        placeholders = [e for e in entries if e.metadata.is_placeholder]
        chunks = [e for e in entries if not e.metadata.is_placeholder]

        status = "ready"
        error_message = None
        for placeholder in placeholders:
            if placeholder.metadata.status == ChunkStatus.ERROR:
                status = "error"
                error_message = placeholder.metadata.error_message
                break
            if placeholder.metadata.status == ChunkStatus.PENDING:
                status = "processing"

        # The newest attempt (the placeholder, when there is one) describes the file
        meta = (placeholders or chunks)[0].metadata
        size = None
        url = None
        if meta.storage_handle:
            try:
                size = await self._storage.size(meta.storage_handle)
                if status == "ready":
                    url = await self._storage.get_url(meta.storage_handle)
            except StorageError as e:
                logger.warning(f"Storage lookup failed for {display_name}: {e.message}")

        return DocumentSummary(
            display_name=display_name,
            original_filename=meta.original_filename,
            mime_type=meta.mime_type,
            category=meta.category,
            source_type=meta.source_type,
            status=status,
            error_message=error_message,
            chunk_count=len(chunks),
            size=human_readable_size(size),
            url=url or meta.source_url,
        )
