"""Pytest configuration and fixtures."""

import asyncio
import re
import uuid
from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from knowledge_ingestion.container import build_container
from knowledge_ingestion.database.models import Base
from knowledge_ingestion.models.chunk import AddResult, ChunkMetadata, ChunkStatus, IndexEntry, ListPage
from knowledge_ingestion.models.document import DocumentId, IngestionRequest
from knowledge_ingestion.services.chunking_service import ChunkingService
from knowledge_ingestion.services.document_index import DocumentIndex, QdrantDocumentIndex
from knowledge_ingestion.services.extraction_service import ContentExtractor
from knowledge_ingestion.services.scraper_service import WebScraper
from knowledge_ingestion.services.storage_service import BlobStorage
from knowledge_ingestion.services.summarizer_service import Summarizer
from knowledge_ingestion.utils.errors import DocumentIndexError, QueueError, StorageError
from knowledge_ingestion.workers.job_dispatcher import InProcessJobDispatcher, JobDispatcher


# Test database URL (in-memory SQLite for unit tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


class InMemoryDocumentIndex(DocumentIndex):
    """
    Dict-backed index with the same contract as the Qdrant one.

    Listing is in write order with a sequence-number cursor, which stays
    valid while entries on earlier pages are deleted. With `order_by_id`
    set, listing follows point ids the way a Qdrant scroll does, so one
    document's entries are scattered across pages. Search ranks ready,
    non-placeholder entries by how many query words they contain.
    """

    def __init__(self) -> None:
        self.namespaces: Dict[str, Dict[str, IndexEntry]] = {}
        self._seq: Dict[str, int] = {}
        self._next_seq = 0
        self.fail_keys: Set[str] = set()
        self.fail_list = False
        self.fail_search = False
        self.list_calls = 0
        self.order_by_id = False

    async def add(self, namespace, text, key, metadata, content_hash) -> AddResult:
        if key in self.fail_keys:
            raise DocumentIndexError("Injected write failure", details={"key": key})

        entries = self.namespaces.setdefault(namespace, {})
        entry_id = QdrantDocumentIndex.make_point_id(namespace, key)
        existing = entries.get(entry_id)
        if existing is not None and existing.content_hash == content_hash:
            return AddResult(entry_id=entry_id, created=False)

        entries[entry_id] = IndexEntry(
            entry_id=entry_id,
            namespace=namespace,
            key=key,
            text=text,
            content_hash=content_hash,
            metadata=metadata.model_copy(deep=True),
        )
        if entry_id not in self._seq:
            self._seq[entry_id] = self._next_seq
            self._next_seq += 1
        return AddResult(entry_id=entry_id, created=True)

    async def search(self, namespace, query, limit) -> List[IndexEntry]:
        if self.fail_search:
            raise DocumentIndexError("Injected search failure")

        words = set(re.findall(r"\w+", query.lower()))
        scored = []
        for entry in self._ordered(namespace):
            if entry.metadata.is_placeholder or entry.metadata.status != ChunkStatus.READY:
                continue
            score = len(words & set(re.findall(r"\w+", entry.text.lower())))
            if score:
                scored.append(entry.model_copy(update={"score": float(score)}))
        scored.sort(key=lambda e: -e.score)
        return scored[:limit]

    async def list(self, namespace, cursor=None, limit=100) -> ListPage:
        self.list_calls += 1
        if self.fail_list:
            raise DocumentIndexError("Injected listing failure")

        remaining = self._ordered(namespace)
        if cursor is not None:
            remaining = [e for e in remaining if self._position(e) >= self._position_of(cursor)]
        page = remaining[:limit]
        next_cursor = None
        if len(remaining) > limit:
            next_cursor = str(self._position(remaining[limit]))
        return ListPage(entries=page, next_cursor=next_cursor)

    async def delete(self, namespace, entry_id) -> None:
        self.namespaces.get(namespace, {}).pop(entry_id, None)

    async def get_namespace(self, namespace) -> Optional[str]:
        return namespace if namespace in self.namespaces else None

    async def list_document(self, document_id: DocumentId) -> List[IndexEntry]:
        return [
            e
            for e in self._ordered(document_id.namespace)
            if e.metadata.display_name == document_id.display_name
        ]

    def _ordered(self, namespace: str) -> List[IndexEntry]:
        entries = self.namespaces.get(namespace, {}).values()
        return sorted(entries, key=self._position)

    def _position(self, entry: IndexEntry):
        return entry.entry_id if self.order_by_id else self._seq[entry.entry_id]

    def _position_of(self, cursor: str):
        return cursor if self.order_by_id else int(cursor)

    def entries(self, namespace: str, display_name: Optional[str] = None) -> List[IndexEntry]:
        found = self._ordered(namespace)
        if display_name is not None:
            found = [e for e in found if e.metadata.display_name == display_name]
        return found

    def chunks(self, namespace: str, display_name: str) -> List[IndexEntry]:
        return [e for e in self.entries(namespace, display_name) if not e.metadata.is_placeholder]


class FakeBlobStorage(BlobStorage):
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.fail_delete = False

    async def store(self, data, filename, content_type=None, tenant_id=None) -> str:
        handle = f"{tenant_id or 'shared'}/{uuid.uuid4().hex}/{filename}"
        self.blobs[handle] = data
        return handle

    async def get(self, handle) -> bytes:
        if handle not in self.blobs:
            raise StorageError(f"Blob not found: {handle}")
        return self.blobs[handle]

    async def delete(self, handle) -> None:
        if self.fail_delete:
            raise StorageError(f"Injected delete failure: {handle}")
        self.blobs.pop(handle, None)
        self.deleted.append(handle)

    async def get_url(self, handle) -> Optional[str]:
        return f"https://blobs.test/{handle}"

    async def size(self, handle) -> Optional[int]:
        data = self.blobs.get(handle)
        return len(data) if data is not None else None


class FakeExtractor(ContentExtractor):
    """Decodes the stored bytes; set `error` to make extraction fail."""

    def __init__(self, storage: BlobStorage) -> None:
        self._storage = storage
        self.error: Optional[Exception] = None
        self.calls = 0

    async def extract(self, storage_handle, filename, mime_type) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        data = await self._storage.get(storage_handle)
        return data.decode("utf-8")


class FakeSummarizer(Summarizer):
    def __init__(self, answer: str = "Refunds are issued within five days.") -> None:
        self.answer = answer
        self.delay = 0.0
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

    async def summarize(self, query, payload) -> str:
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


class RecordingDispatcher(JobDispatcher):
    """Keeps dispatched jobs instead of running them."""

    def __init__(self, fail: bool = False) -> None:
        super().__init__()
        self.jobs: list = []
        self.fail = fail

    async def dispatch(self, job) -> None:
        if self.fail:
            raise QueueError("Injected dispatch failure")
        self.jobs.append(job)


def make_request(
    text: str,
    display_name: str = "faq.txt",
    tenant_id: str = TENANT,
    knowledge_base_id: Optional[str] = None,
    category: Optional[str] = None,
    filename: Optional[str] = None,
) -> IngestionRequest:
    return IngestionRequest(
        data=text.encode("utf-8"),
        filename=filename or display_name,
        display_name=display_name,
        mime_type="text/plain",
        tenant_id=tenant_id,
        knowledge_base_id=knowledge_base_id,
        category=category,
    )


def make_metadata(display_name: str, tenant_id: str = TENANT, **fields) -> ChunkMetadata:
    return ChunkMetadata(display_name=display_name, tenant_id=tenant_id, **fields)


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def index():
    return InMemoryDocumentIndex()


@pytest.fixture
def storage():
    return FakeBlobStorage()


@pytest.fixture
def extractor(storage):
    return FakeExtractor(storage)


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def chunker():
    # No tiktoken encoding download in tests
    return ChunkingService(encoding_name="")


@pytest.fixture
async def container(session_factory, index, storage, extractor, summarizer, chunker):
    """Fully wired services over fakes, running jobs in-process."""
    container = build_container(
        session_factory=session_factory,
        index=index,
        storage=storage,
        extractor=extractor,
        dispatcher=InProcessJobDispatcher(),
        summarizer=summarizer,
        scraper=AsyncMock(spec=WebScraper),
        chunker=chunker,
    )
    yield container
    await container.close()
