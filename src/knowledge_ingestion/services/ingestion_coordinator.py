"""Ingestion coordinator: extraction, chunking, indexing and status finalization."""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, List, Optional, Set

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.models.chunk import (
    AddResult,
    ChunkMetadata,
    ChunkStatus,
    IndexEntry,
    SourceType,
    TextChunk,
)
from knowledge_ingestion.models.document import (
    DocumentId,
    IngestionAck,
    IngestionOutcome,
    IngestionRequest,
)
from knowledge_ingestion.models.jobs import IngestionJob
from knowledge_ingestion.models.notification import NotificationType
from knowledge_ingestion.services.chunking_service import ChunkingService
from knowledge_ingestion.services.content_hash import content_hash, placeholder_hash
from knowledge_ingestion.services.document_index import DocumentIndex
from knowledge_ingestion.services.document_locks import DocumentLocks
from knowledge_ingestion.services.extraction_service import ContentExtractor
from knowledge_ingestion.services.file_change_service import FileChangeService
from knowledge_ingestion.services.namespace_resolver import NamespaceResolver
from knowledge_ingestion.services.notifications_service import (
    NotificationsService,
    failed_message,
    processing_message,
    ready_message,
)
from knowledge_ingestion.services.storage_service import BlobStorage
from knowledge_ingestion.utils.errors import (
    IngestionException,
    IndexWriteFailedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from knowledge_ingestion.utils.logging import get_logger, log_error

if TYPE_CHECKING:
    from knowledge_ingestion.services.scraper_service import WebScraper
    from knowledge_ingestion.workers.job_dispatcher import JobDispatcher

logger = get_logger("ingestion_coordinator")
settings = get_settings()

PLACEHOLDER_SUFFIX = " (processing)"


def placeholder_key(display_name: str) -> str:
    return f"{display_name}{PLACEHOLDER_SUFFIX}"


def chunk_key(display_name: str, index: int, total: int) -> str:
    """Index key of chunk `index` (0-based) out of `total`."""
    if total == 1:
        return display_name
    return f"{display_name} (part {index + 1}/{total})"


def _failure_reason(error: BaseException) -> str:
    if isinstance(error, IngestionException):
        return error.message
    return str(error) or type(error).__name__


class IngestionCoordinator:
    """
    Runs the document state machine `pending -> {ready, error}`.

    `submit` stores the bytes, writes a pending placeholder and hands an
    `IngestionJob` to the dispatcher. `process` is the job body: it never
    raises, it records the outcome in the index and in notifications.
    """

    def __init__(
        self,
        resolver: NamespaceResolver,
        index: DocumentIndex,
        storage: BlobStorage,
        extractor: ContentExtractor,
        notifications: NotificationsService,
        file_changes: FileChangeService,
        dispatcher: Optional["JobDispatcher"] = None,
        chunker: Optional[ChunkingService] = None,
        locks: Optional[DocumentLocks] = None,
        scraper: Optional["WebScraper"] = None,
    ):
        self._resolver = resolver
        self._index = index
        self._storage = storage
        self._extractor = extractor
        self._notifications = notifications
        self._file_changes = file_changes
        self._dispatcher = dispatcher
        self._chunker = chunker or ChunkingService()
        self._locks = locks or DocumentLocks()
        self._scraper = scraper

    # Caller-facing operations

    async def submit(self, request: IngestionRequest) -> IngestionAck:
        """
        Store the bytes, mark the document pending and queue processing.

        Raises:
            NotFoundError / PermissionDeniedError: Knowledge base cannot be used.
                Nothing is stored in that case.
            StorageError: Bytes could not be stored
        """
        if self._dispatcher is None:
            raise IngestionException("No job dispatcher configured", status_code=500)

        job = await self._prepare(request)
        placeholder_id = await self._notify_processing(job)

        try:
            await self._dispatcher.dispatch(job)
        except Exception as e:
            log_error(e, {"job_id": job.job_id, "document": str(job.document_id)})
            await self._mark_failed(job, f"Could not queue processing: {_failure_reason(e)}")
            raise

        logger.info(
            f"Ingestion job accepted: job_id={job.job_id}, document={job.document_id}, "
            f"placeholder={placeholder_id}"
        )
        return IngestionAck(
            job_id=job.job_id,
            display_name=job.display_name,
            namespace=job.namespace,
        )

    async def ingest(self, request: IngestionRequest) -> IngestionOutcome:
        """Store, then process inline. Returns once the document is ready or failed."""
        job = await self._prepare(request)
        return await self.process(job)

    async def submit_scraped(
        self,
        url: str,
        tenant_id: str,
        display_name: Optional[str] = None,
        category: Optional[str] = None,
        knowledge_base_id: Optional[str] = None,
    ) -> IngestionAck:
        """Fetch a web page and submit its main text as a document."""
        if self._scraper is None:
            raise IngestionException("Web scraping is not configured", status_code=501)

        # Fail on a bad knowledge base before fetching anything
        await self._resolver.resolve(tenant_id, knowledge_base_id)

        page = await self._scraper.scrape(url)
        name = (display_name or page.title or url).strip()
        slug = re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-")[:100] or "page"
        return await self.submit(
            IngestionRequest(
                data=page.content.encode("utf-8"),
                filename=f"{slug}.txt",
                display_name=name,
                mime_type="text/plain",
                tenant_id=tenant_id,
                knowledge_base_id=knowledge_base_id,
                category=category,
                source_type=SourceType.SCRAPED,
                source_url=page.url,
            )
        )

    async def retry(
        self,
        tenant_id: str,
        display_name: str,
        knowledge_base_id: Optional[str] = None,
    ) -> IngestionAck:
        """
        Re-run a failed document from extraction, reusing its stored blob.

        Raises:
            NotFoundError: The document has no failed placeholder
        """
        if self._dispatcher is None:
            raise IngestionException("No job dispatcher configured", status_code=500)

        namespace = await self._resolver.resolve(tenant_id, knowledge_base_id)
        document_id = DocumentId(namespace=namespace, display_name=display_name)
        placeholder = await self._find_placeholder(document_id)
        if placeholder is None or placeholder.metadata.status != ChunkStatus.ERROR:
            raise NotFoundError("Failed document", resource_id=display_name)

        meta = placeholder.metadata
        if not meta.storage_handle:
            raise ValidationError(
                f'"{display_name}" has no stored file to retry',
                details={"display_name": display_name},
            )

        job = IngestionJob(
            tenant_id=tenant_id,
            namespace=namespace,
            knowledge_base_id=knowledge_base_id,
            display_name=display_name,
            filename=meta.original_filename or display_name,
            mime_type=meta.mime_type or "application/octet-stream",
            category=meta.category,
            source_type=meta.source_type,
            source_url=meta.source_url,
            storage_handle=meta.storage_handle,
            is_retry=True,
        )
        await self._write_placeholder(
            job, ChunkStatus.PENDING, superseded=meta.superseded_storage_handle
        )
        await self._notify_processing(job)

        try:
            await self._dispatcher.dispatch(job)
        except Exception as e:
            log_error(e, {"job_id": job.job_id, "document": str(document_id)})
            await self._mark_failed(job, f"Could not queue processing: {_failure_reason(e)}")
            raise

        logger.info(f"Retry queued: job_id={job.job_id}, document={document_id}")
        return IngestionAck(
            job_id=job.job_id,
            display_name=display_name,
            namespace=namespace,
            message="Retrying",
        )

    # Job body

    async def process(self, job: IngestionJob) -> IngestionOutcome:
        """
        Extract, chunk and index one stored document.

        Failures are recorded on the placeholder and in a `file_failed`
        notification; they are not raised.
        """
        document_id = job.document_id
        logger.info(
            f"Processing ingestion job: job_id={job.job_id}, document={document_id}, "
            f"filename={job.filename}, mime_type={job.mime_type}, retry={job.is_retry}"
        )

        async with self._locks.hold(document_id):
            try:
                chunks = await self._extract_and_chunk(job)
                previous = await self._stored_handles(document_id)
                results = await self._write_chunks(job, chunks)
            except Exception as e:
                reason = _failure_reason(e)
                logger.error(
                    f"Ingestion pipeline failed: job_id={job.job_id}, document={document_id} - {reason}",
                    exc_info=not isinstance(e, IngestionException),
                )
                await self._mark_failed(job, reason)
                return IngestionOutcome(
                    job_id=job.job_id,
                    document_id=document_id,
                    success=False,
                    error_message=reason,
                )

            created = any(r.created for r in results)
            keys = {chunk_key(job.display_name, c.chunk_index, len(chunks)) for c in chunks}
            await self._finalize(job, keys, results[0].entry_id, previous)

        if not created:
            logger.info(f"Duplicate submission, nothing new indexed: document={document_id}")
        logger.info(
            f"Document ready: job_id={job.job_id}, document={document_id}, chunks={len(chunks)}"
        )
        return IngestionOutcome(
            job_id=job.job_id,
            document_id=document_id,
            success=True,
            chunk_count=len(chunks),
            created=created,
        )

    # Pipeline steps

    async def _prepare(self, request: IngestionRequest) -> IngestionJob:
        namespace = await self._resolver.resolve(request.tenant_id, request.knowledge_base_id)

        max_bytes = settings.storage.max_file_size_mb * 1024 * 1024
        if len(request.data) > max_bytes:
            raise ValidationError(
                f"File exceeds the {settings.storage.max_file_size_mb} MB upload limit",
                details={"size": len(request.data)},
            )

        handle = await self._storage.store(
            request.data,
            request.filename,
            content_type=request.mime_type,
            tenant_id=request.tenant_id,
        )
        job = IngestionJob(
            tenant_id=request.tenant_id,
            namespace=namespace,
            knowledge_base_id=request.knowledge_base_id,
            display_name=request.display_name,
            filename=request.filename,
            mime_type=request.mime_type,
            category=request.category,
            source_type=request.source_type,
            source_url=request.source_url,
            storage_handle=handle,
        )

        try:
            existing = await self._find_placeholder(job.document_id)
            superseded = None
            if existing is not None and existing.metadata.storage_handle not in (None, handle):
                superseded = existing.metadata.storage_handle
            await self._write_placeholder(job, ChunkStatus.PENDING, superseded=superseded)
        except Exception:
            # Nothing references the blob yet
            await self._release_blob(handle)
            raise
        return job

    async def _extract_and_chunk(self, job: IngestionJob) -> List[TextChunk]:
        text = await self._extractor.extract(job.storage_handle, job.filename, job.mime_type)
        chunks = self._chunker.chunk(text)
        logger.info(
            f"Document chunked: document={job.document_id}, text_length={len(text)}, "
            f"chunks={len(chunks)}, tokens={sum(c.token_count for c in chunks)}"
        )
        return chunks

    async def _write_chunks(self, job: IngestionJob, chunks: List[TextChunk]) -> List[AddResult]:
        """
        Write every chunk with bounded parallelism.

        Writes are independent: successful ones stay in the index even when
        others fail, and the job then fails with IndexWriteFailedError.
        """
        total = len(chunks)
        semaphore = asyncio.Semaphore(max(1, settings.ingestion.write_concurrency))

        async def _write(chunk: TextChunk) -> AddResult:
            metadata = self._metadata(job, ChunkStatus.READY)
            metadata.chunk_index = chunk.chunk_index
            metadata.total_chunks = total
            metadata.token_count = chunk.token_count
            async with semaphore:
                return await self._index.add(
                    job.namespace,
                    chunk.text,
                    chunk_key(job.display_name, chunk.chunk_index, total),
                    metadata,
                    content_hash(chunk.text),
                )

        outcomes = await asyncio.gather(*(_write(c) for c in chunks), return_exceptions=True)

        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            for failure in failures:
                logger.warning(f"Chunk write failed for {job.document_id}: {_failure_reason(failure)}")
            raise IndexWriteFailedError(
                f"{len(failures)} of {total} chunks could not be indexed",
                failed=len(failures),
                total=total,
                details={"first_error": _failure_reason(failures[0])},
            )
        return [o for o in outcomes if isinstance(o, AddResult)]

    async def _stored_handles(self, document_id: DocumentId) -> Set[str]:
        """Blobs referenced by the document's entries before this job overwrites them."""
        handles: Set[str] = set()
        for entry in await self._index.list_document(document_id):
            handles.add(entry.metadata.storage_handle)
            handles.add(entry.metadata.superseded_storage_handle)
        handles.discard(None)
        return handles

    async def _finalize(
        self,
        job: IngestionJob,
        keys: Set[str],
        document_ref: str,
        previous_handles: Set[str],
    ) -> None:
        """Prune stale entries, release unreferenced blobs and notify."""
        document_id = job.document_id

        try:
            entries = await self._index.list_document(document_id)
        except IngestionException as e:
            log_error(e, {"document": str(document_id), "step": "prune"})
            entries = []

        kept, stale = [], []
        for entry in entries:
            meta = entry.metadata
            if entry.key in keys:
                kept.append(entry)
            elif (
                meta.is_placeholder
                and meta.status == ChunkStatus.PENDING
                and meta.storage_handle != job.storage_handle
            ):
                # A newer submission is already queued for this document
                kept.append(entry)
            else:
                stale.append(entry)
        for entry in stale:
            try:
                await self._index.delete(document_id.namespace, entry.entry_id)
            except IngestionException as e:
                logger.warning(f"Failed to prune stale entry {entry.key} of {document_id}: {e.message}")

        # A blob is released only once no surviving entry points at it
        referenced = {e.metadata.storage_handle for e in kept}
        candidates = {job.storage_handle, *previous_handles}
        for entry in stale:
            candidates.add(entry.metadata.storage_handle)
            candidates.add(entry.metadata.superseded_storage_handle)
        for handle in sorted(h for h in candidates - referenced if h):
            await self._release_blob(handle)

        title, message = ready_message(job.display_name)
        try:
            await self._notifications.delete_by_display_name(job.tenant_id, job.display_name)
            await self._notifications.create(
                job.tenant_id,
                NotificationType.FILE_READY,
                title,
                message,
                document_ref=document_ref,
                display_name=job.display_name,
            )
            await self._file_changes.record(
                job.tenant_id, "update", job.display_name, job.knowledge_base_id
            )
        except Exception as e:
            logger.error(f"Failed to record ready status for {document_id}: {e}", exc_info=True)

    async def _mark_failed(self, job: IngestionJob, reason: str) -> None:
        """Leave an error placeholder (and the blob) so the caller can retry."""
        document_id = job.document_id
        try:
            current = await self._find_placeholder(document_id)
            superseded = current.metadata.superseded_storage_handle if current else None
            entry_id = await self._write_placeholder(
                job, ChunkStatus.ERROR, superseded=superseded, error_message=reason
            )
        except Exception as e:
            logger.error(f"Failed to write error placeholder for {document_id}: {e}", exc_info=True)
            entry_id = None

        title, message = failed_message(job.display_name, reason)
        try:
            await self._notifications.delete_by_display_name(job.tenant_id, job.display_name)
            await self._notifications.create(
                job.tenant_id,
                NotificationType.FILE_FAILED,
                title,
                message,
                document_ref=entry_id,
                display_name=job.display_name,
            )
        except Exception as e:
            logger.error(f"Failed to record failure for {document_id}: {e}", exc_info=True)

    # Helpers

    def _metadata(self, job: IngestionJob, status: ChunkStatus) -> ChunkMetadata:
        return ChunkMetadata(
            display_name=job.display_name,
            original_filename=job.filename,
            mime_type=job.mime_type,
            category=job.category,
            knowledge_base_id=job.knowledge_base_id,
            source_type=job.source_type,
            tenant_id=job.tenant_id,
            storage_handle=job.storage_handle,
            source_url=job.source_url,
            status=status,
        )

    async def _write_placeholder(
        self,
        job: IngestionJob,
        status: ChunkStatus,
        superseded: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> str:
        metadata = self._metadata(job, status)
        metadata.is_placeholder = True
        metadata.superseded_storage_handle = superseded
        metadata.error_message = error_message
        result = await self._index.add(
            job.namespace,
            "",
            placeholder_key(job.display_name),
            metadata,
            placeholder_hash(metadata),
        )
        logger.debug(f"Placeholder written: document={job.document_id}, status={status.value}")
        return result.entry_id

    async def _find_placeholder(self, document_id: DocumentId) -> Optional[IndexEntry]:
        key = placeholder_key(document_id.display_name)
        for entry in await self._index.list_document(document_id):
            if entry.key == key:
                return entry
        return None

    async def _notify_processing(self, job: IngestionJob) -> Optional[str]:
        placeholder = await self._find_placeholder(job.document_id)
        entry_id = placeholder.entry_id if placeholder else None
        title, message = processing_message(job.display_name)
        try:
            await self._notifications.create(
                job.tenant_id,
                NotificationType.FILE_PROCESSING,
                title,
                message,
                document_ref=entry_id,
                display_name=job.display_name,
            )
        except Exception as e:
            logger.error(f"Failed to record processing notification for {job.document_id}: {e}")
        return entry_id

    async def _release_blob(self, handle: str) -> None:
        try:
            await self._storage.delete(handle)
            logger.info(f"Released unreferenced blob: {handle}")
        except StorageError as e:
            logger.warning(f"Failed to release blob {handle}: {e.message}")
