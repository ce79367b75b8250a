"""Document index: the chunk store searched by the retrieval gateway.

`DocumentIndex` is the seam the coordinators depend on; `QdrantDocumentIndex`
is the production implementation. Each namespace is its own Qdrant
collection, so a query against one namespace cannot see another's points.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.models.chunk import (
    AddResult,
    ChunkMetadata,
    ChunkStatus,
    IndexEntry,
    ListPage,
)
from knowledge_ingestion.models.document import DocumentId
from knowledge_ingestion.services.embedding_service import EmbeddingService
from knowledge_ingestion.utils.errors import DocumentIndexError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("document_index")
settings = get_settings()

# Deterministic namespace for point IDs derived from (namespace, key)
_POINT_ID_NAMESPACE = uuid.UUID("3f1d4c2a-8e57-4b0f-9a61-5c2e7d9b0a14")

_PAYLOAD_TEXT = "text"
_PAYLOAD_KEY = "key"
_PAYLOAD_HASH = "content_hash"


class DocumentIndex(ABC):
    """Chunk store partitioned by namespace."""

    @abstractmethod
    async def add(
        self,
        namespace: str,
        text: str,
        key: str,
        metadata: ChunkMetadata,
        content_hash: str,
    ) -> AddResult:
        """
        Write an entry under `key`, replacing any previous entry with that key.

        Returns created=False, without writing, when the key already holds
        an entry with the same content hash.
        """

    @abstractmethod
    async def search(self, namespace: str, query: str, limit: int) -> List[IndexEntry]:
        """Ranked `ready` entries of one namespace, best first."""

    @abstractmethod
    async def list(self, namespace: str, cursor: Optional[str] = None, limit: int = 100) -> ListPage:
        """One page of every entry in the namespace, in a stable order."""

    @abstractmethod
    async def delete(self, namespace: str, entry_id: str) -> None:
        """Remove one entry. Deleting a missing entry is not an error."""

    @abstractmethod
    async def get_namespace(self, namespace: str) -> Optional[str]:
        """The namespace handle if anything was ever written to it, else None."""

    @abstractmethod
    async def list_document(self, document_id: DocumentId) -> List[IndexEntry]:
        """Every entry (chunks and placeholders) carrying the document's display name."""


class QdrantDocumentIndex(DocumentIndex):
    """Qdrant-backed index with OpenAI embeddings."""

    def __init__(
        self,
        embeddings: Optional[EmbeddingService] = None,
        client: Optional[QdrantClient] = None,
    ) -> None:
        self._embeddings = embeddings or EmbeddingService()
        self._client = client
        self._known_collections: set[str] = set()

    def _get_client(self) -> QdrantClient:
        if self._client is None:
            self._client = QdrantClient(
                url=settings.qdrant.url,
                api_key=settings.qdrant.api_key,
                timeout=settings.qdrant.timeout,
            )
        return self._client

    def collection_name(self, namespace: str) -> str:
        return f"{settings.qdrant.collection_prefix}{namespace}"

    @staticmethod
    def make_point_id(namespace: str, key: str) -> str:
        """Stable point id for a key, so re-writes replace rather than duplicate."""
        return str(uuid.uuid5(_POINT_ID_NAMESPACE, f"{namespace}:{key}"))

    async def _ensure_collection(self, collection: str, vector_size: int) -> None:
        if collection in self._known_collections:
            return

        def _ensure() -> None:
            client = self._get_client()
            if client.collection_exists(collection):
                return
            client.create_collection(
                collection_name=collection,
                vectors_config=VectorParams(size=vector_size, distance=Distance.COSINE),
            )
            # display_name filters drive document listing and deletion
            client.create_payload_index(collection, field_name="display_name", field_schema="keyword")
            client.create_payload_index(collection, field_name="status", field_schema="keyword")
            logger.info(f"Qdrant collection created: {collection} (vector_size={vector_size})")

        await asyncio.to_thread(_ensure)
        self._known_collections.add(collection)

    async def add(
        self,
        namespace: str,
        text: str,
        key: str,
        metadata: ChunkMetadata,
        content_hash: str,
    ) -> AddResult:
        collection = self.collection_name(namespace)
        point_id = self.make_point_id(namespace, key)

        existing = await self._retrieve(collection, point_id)
        if existing is not None and existing.get(_PAYLOAD_HASH) == content_hash:
            logger.debug(f"Index entry unchanged: namespace={namespace}, key={key}")
            return AddResult(entry_id=point_id, created=False)

        # Placeholders have no text; embed the name so the point still has a vector
        vector = await self._embeddings.embed_text(text or metadata.display_name)
        await self._ensure_collection(collection, len(vector))

        payload: Dict[str, Any] = {
            _PAYLOAD_TEXT: text,
            _PAYLOAD_KEY: key,
            _PAYLOAD_HASH: content_hash,
            **metadata.model_dump(mode="json"),
        }

        def _upsert() -> None:
            self._get_client().upsert(
                collection_name=collection,
                points=[PointStruct(id=point_id, vector=vector, payload=payload)],
                wait=True,
            )

        try:
            await asyncio.to_thread(_upsert)
        except Exception as e:
            raise DocumentIndexError(
                "Failed to upsert index entry",
                details={"collection": collection, "key": key, "error": str(e)},
            ) from e

        return AddResult(entry_id=point_id, created=True)

    async def _retrieve(self, collection: str, point_id: str) -> Optional[Dict[str, Any]]:
        def _get() -> Optional[Dict[str, Any]]:
            client = self._get_client()
            if not client.collection_exists(collection):
                return None
            points = client.retrieve(collection_name=collection, ids=[point_id], with_payload=True)
            return dict(points[0].payload or {}) if points else None

        try:
            return await asyncio.to_thread(_get)
        except Exception as e:
            raise DocumentIndexError(
                "Failed to read index entry",
                details={"collection": collection, "error": str(e)},
            ) from e

    async def search(self, namespace: str, query: str, limit: int) -> List[IndexEntry]:
        collection = self.collection_name(namespace)
        vector = await self._embeddings.embed_text(query)
        ready_only = Filter(
            must=[FieldCondition(key="status", match=MatchValue(value=ChunkStatus.READY.value))]
        )

        def _query():
            client = self._get_client()
            if not client.collection_exists(collection):
                return []
            response = client.query_points(
                collection_name=collection,
                query=vector,
                query_filter=ready_only,
                limit=limit,
                with_payload=True,
            )
            return response.points

        try:
            points = await asyncio.to_thread(_query)
        except Exception as e:
            raise DocumentIndexError(
                "Qdrant search failed",
                details={"collection": collection, "error": str(e)},
            ) from e

        return [self._to_entry(namespace, p.id, p.payload, score=p.score) for p in points]

    async def list(self, namespace: str, cursor: Optional[str] = None, limit: int = 100) -> ListPage:
        return await self._scroll(namespace, cursor=cursor, limit=limit)

    async def _scroll(
        self,
        namespace: str,
        cursor: Optional[str] = None,
        limit: int = 100,
        scroll_filter: Optional[Filter] = None,
    ) -> ListPage:
        collection = self.collection_name(namespace)

        def _page():
            client = self._get_client()
            if not client.collection_exists(collection):
                return [], None
            return client.scroll(
                collection_name=collection,
                scroll_filter=scroll_filter,
                limit=limit,
                offset=cursor,
                with_payload=True,
                with_vectors=False,
            )

        try:
            points, next_offset = await asyncio.to_thread(_page)
        except Exception as e:
            raise DocumentIndexError(
                "Qdrant scroll failed",
                details={"collection": collection, "error": str(e)},
            ) from e

        return ListPage(
            entries=[self._to_entry(namespace, p.id, p.payload) for p in points],
            next_cursor=str(next_offset) if next_offset is not None else None,
        )

    async def delete(self, namespace: str, entry_id: str) -> None:
        collection = self.collection_name(namespace)

        def _delete() -> None:
            self._get_client().delete(
                collection_name=collection,
                points_selector=PointIdsList(points=[entry_id]),
                wait=True,
            )

        try:
            await asyncio.to_thread(_delete)
        except Exception as e:
            raise DocumentIndexError(
                "Failed to delete index entry",
                details={"collection": collection, "entry_id": entry_id, "error": str(e)},
            ) from e

    async def get_namespace(self, namespace: str) -> Optional[str]:
        collection = self.collection_name(namespace)
        try:
            exists = await asyncio.to_thread(self._get_client().collection_exists, collection)
        except Exception as e:
            raise DocumentIndexError(
                "Failed to look up namespace",
                details={"collection": collection, "error": str(e)},
            ) from e
        return namespace if exists else None

    async def list_document(self, document_id: DocumentId) -> List[IndexEntry]:
        by_name = Filter(
            must=[FieldCondition(key="display_name", match=MatchValue(value=document_id.display_name))]
        )
        entries: List[IndexEntry] = []
        cursor: Optional[str] = None
        while True:
            page = await self._scroll(document_id.namespace, cursor=cursor, scroll_filter=by_name)
            entries.extend(page.entries)
            if page.next_cursor is None:
                return entries
            cursor = page.next_cursor

    @staticmethod
    def _to_entry(
        namespace: str,
        point_id: Any,
        payload: Optional[Dict[str, Any]],
        score: Optional[float] = None,
    ) -> IndexEntry:
        data = dict(payload or {})
        text = data.pop(_PAYLOAD_TEXT, "") or ""
        key = data.pop(_PAYLOAD_KEY, "")
        digest = data.pop(_PAYLOAD_HASH, None)
        return IndexEntry(
            entry_id=str(point_id),
            namespace=namespace,
            key=key,
            text=text,
            content_hash=digest,
            metadata=ChunkMetadata.model_validate(data),
            score=score,
        )
