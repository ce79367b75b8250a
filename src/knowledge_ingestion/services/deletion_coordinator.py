"""Deletion coordinator: remove every entry of a document plus its blobs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Set

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.models.chunk import IndexEntry
from knowledge_ingestion.models.document import DocumentId, IngestionAck
from knowledge_ingestion.models.jobs import DeletionJob
from knowledge_ingestion.models.notification import NotificationType
from knowledge_ingestion.services.document_index import DocumentIndex
from knowledge_ingestion.services.document_locks import DocumentLocks
from knowledge_ingestion.services.file_change_service import FileChangeService
from knowledge_ingestion.services.namespace_resolver import NamespaceResolver
from knowledge_ingestion.services.notifications_service import (
    NotificationsService,
    deleted_message,
    deletion_failed_message,
)
from knowledge_ingestion.services.storage_service import BlobStorage
from knowledge_ingestion.utils.errors import (
    IngestionException,
    StorageCleanupFailedError,
    StorageError,
)
from knowledge_ingestion.utils.logging import get_logger, log_error

if TYPE_CHECKING:
    from knowledge_ingestion.workers.job_dispatcher import JobDispatcher

logger = get_logger("deletion_coordinator")
settings = get_settings()


class DeletionCoordinator:
    """
    Asynchronously removes a document from a namespace.

    The namespace listing is scanned page by page and every entry whose
    display name matches exactly is deleted on its own; chunks of one
    document are not assumed to be contiguous. Once the scan stops early, a
    display-name lookup sweeps up whatever the pages it skipped still hold.
    Re-running a deletion that already finished is a silent no-op.
    """

    def __init__(
        self,
        resolver: NamespaceResolver,
        index: DocumentIndex,
        storage: BlobStorage,
        notifications: NotificationsService,
        file_changes: FileChangeService,
        dispatcher: Optional["JobDispatcher"] = None,
        locks: Optional[DocumentLocks] = None,
    ):
        self._resolver = resolver
        self._index = index
        self._storage = storage
        self._notifications = notifications
        self._file_changes = file_changes
        self._dispatcher = dispatcher
        self._locks = locks or DocumentLocks()

    async def request_deletion(
        self,
        tenant_id: str,
        display_name: str,
        knowledge_base_id: Optional[str] = None,
        storage_handle: Optional[str] = None,
    ) -> IngestionAck:
        """
        Queue a deletion and return immediately.

        Raises:
            NotFoundError / PermissionDeniedError: Knowledge base cannot be used
        """
        if self._dispatcher is None:
            raise IngestionException("No job dispatcher configured", status_code=500)

        namespace = await self._resolver.resolve(tenant_id, knowledge_base_id)
        job = DeletionJob(
            tenant_id=tenant_id,
            namespace=namespace,
            knowledge_base_id=knowledge_base_id,
            display_name=display_name,
            storage_handle=storage_handle,
        )
        await self._dispatcher.dispatch(job)
        logger.info(f"Deletion job accepted: job_id={job.job_id}, document={job.document_id}")
        return IngestionAck(
            job_id=job.job_id,
            display_name=display_name,
            namespace=namespace,
            message="Deleting",
        )

    async def run(self, job: DeletionJob) -> int:
        """Job body for a queued deletion."""
        return await self.delete(
            job.display_name,
            job.namespace,
            known_storage_handle=job.storage_handle,
            tenant_id=job.tenant_id,
            knowledge_base_id=job.knowledge_base_id,
        )

    async def delete(
        self,
        display_name: str,
        namespace: str,
        known_storage_handle: Optional[str] = None,
        tenant_id: Optional[str] = None,
        knowledge_base_id: Optional[str] = None,
    ) -> int:
        """
        Delete every entry named `display_name` in `namespace`.

        Returns the number of entries deleted. Never raises: a failed scan is
        reported through a `file_failed` notification.
        """
        document_id = DocumentId(namespace=namespace, display_name=display_name)
        tenant_id = tenant_id or namespace
        logger.info(f"Starting deletion: document={document_id}")

        async with self._locks.hold(document_id):
            try:
                deleted, handles = await self._scan_and_delete(document_id)
            except Exception as e:
                log_error(e, {"document": str(document_id), "step": "scan"})
                reason = e.message if isinstance(e, IngestionException) else str(e)
                await self._notify(
                    tenant_id,
                    NotificationType.FILE_FAILED,
                    *deletion_failed_message(display_name, reason),
                    display_name=display_name,
                )
                return 0

            if deleted == 0:
                logger.info(f"No entries found, document already deleted: {document_id}")
                return 0

            if known_storage_handle:
                handles.add(known_storage_handle)
            await self._cleanup_storage(handles)

        await self._notify(
            tenant_id,
            NotificationType.FILE_READY,
            *deleted_message(display_name),
            display_name=display_name,
        )
        try:
            await self._file_changes.record(tenant_id, "delete", display_name, knowledge_base_id)
        except Exception as e:
            logger.error(f"Failed to record file change for {document_id}: {e}", exc_info=True)

        logger.info(f"Deletion complete: document={document_id}, entries={deleted}")
        return deleted

    async def _scan_and_delete(self, document_id: DocumentId) -> tuple[int, Set[str]]:
        namespace = await self._index.get_namespace(document_id.namespace)
        if namespace is None:
            logger.info(f"Namespace not found, nothing to delete: {document_id.namespace}")
            return 0, set()

        page_size = settings.deletion.page_size
        max_empty_pages = settings.deletion.max_empty_pages

        deleted = 0
        scanned = 0
        empty_pages = 0
        handles: Set[str] = set()
        cursor: Optional[str] = None

        while True:
            page = await self._index.list(namespace, cursor=cursor, limit=page_size)
            scanned += len(page.entries)
            matches = [e for e in page.entries if e.metadata.display_name == document_id.display_name]

            for entry in matches:
                if await self._delete_entry(namespace, document_id, entry, handles):
                    deleted += 1

            empty_pages = 0 if matches else empty_pages + 1
            if deleted > 0 and empty_pages >= max_empty_pages:
                logger.debug(f"No matches in {empty_pages} consecutive pages, stopping scan")
                break

            if page.next_cursor is None:
                break
            cursor = page.next_cursor

        if deleted > 0:
            # Listing order follows point ids, so the early stop can pass over entries
            for entry in await self._index.list_document(document_id):
                if await self._delete_entry(namespace, document_id, entry, handles):
                    deleted += 1

        logger.info(f"Scanned {scanned} entries, deleted {deleted} for {document_id}")
        return deleted, handles

    async def _delete_entry(
        self, namespace: str, document_id: DocumentId, entry: IndexEntry, handles: Set[str]
    ) -> bool:
        try:
            await self._index.delete(namespace, entry.entry_id)
        except IngestionException as e:
            logger.error(f"Failed to delete entry {entry.entry_id} of {document_id}: {e.message}")
            return False
        for handle in (entry.metadata.storage_handle, entry.metadata.superseded_storage_handle):
            if handle:
                handles.add(handle)
        return True

    async def _cleanup_storage(self, handles: Set[str]) -> None:
        """Best effort; the index deletion already succeeded."""
        for handle in sorted(handles):
            try:
                await self._delete_blob(handle)
            except StorageCleanupFailedError as e:
                logger.warning(f"{e.message} (storage_handle={handle})")

    async def _delete_blob(self, handle: str) -> None:
        try:
            await self._storage.delete(handle)
        except StorageError as e:
            raise StorageCleanupFailedError(handle, message=e.message) from e
        logger.info(f"Deleted storage file: {handle}")

    async def _notify(
        self,
        tenant_id: str,
        type: NotificationType,
        title: str,
        message: str,
        display_name: Optional[str] = None,
    ) -> None:
        try:
            await self._notifications.create(
                tenant_id, type, title, message, display_name=display_name
            )
        except Exception as e:
            logger.error(f"Failed to create deletion notification: {e}", exc_info=True)
