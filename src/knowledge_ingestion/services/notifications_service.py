"""Tenant notifications for background job outcomes."""

from __future__ import annotations

from typing import List, Optional

from knowledge_ingestion.database.models import Notification
from knowledge_ingestion.database.session import SessionFactory, get_session_context
from knowledge_ingestion.models.notification import NotificationType
from knowledge_ingestion.repositories.notifications_repository import NotificationsRepository
from knowledge_ingestion.utils.errors import NotFoundError, PermissionDeniedError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("notifications_service")

DEFAULT_LIST_LIMIT = 50


class NotificationsService:
    """
    Append-only notification store.

    Coordinators create records; the owning tenant reads them, marks them
    read, and deletes them. Nothing else about a record ever changes.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory

    async def create(
        self,
        tenant_id: str,
        type: NotificationType,
        title: str,
        message: str,
        document_ref: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Notification:
        async with get_session_context(self._session_factory) as session:
            notification = await NotificationsRepository(session).create(
                tenant_id=tenant_id,
                type=type.value,
                title=title,
                message=message,
                document_ref=document_ref,
                display_name=display_name,
                read=False,
            )
        logger.info(
            f"Notification created: tenant={tenant_id}, type={type.value}, display_name={display_name}"
        )
        return notification

    async def list(self, tenant_id: str, limit: int = DEFAULT_LIST_LIMIT) -> List[Notification]:
        async with get_session_context(self._session_factory) as session:
            return await NotificationsRepository(session).list_for_tenant(tenant_id, limit=limit)

    async def unread_count(self, tenant_id: str) -> int:
        async with get_session_context(self._session_factory) as session:
            return await NotificationsRepository(session).count_unread(tenant_id)

    async def mark_as_read(self, tenant_id: str, notification_id: str) -> Notification:
        async with get_session_context(self._session_factory) as session:
            repo = NotificationsRepository(session)
            await self._get_owned(repo, tenant_id, notification_id)
            return await repo.update(notification_id, read=True)

    async def mark_all_as_read(self, tenant_id: str) -> int:
        async with get_session_context(self._session_factory) as session:
            return await NotificationsRepository(session).mark_all_read(tenant_id)

    async def delete(self, tenant_id: str, notification_id: str) -> None:
        async with get_session_context(self._session_factory) as session:
            repo = NotificationsRepository(session)
            await self._get_owned(repo, tenant_id, notification_id)
            await repo.delete(notification_id)

    async def delete_all(self, tenant_id: str) -> int:
        async with get_session_context(self._session_factory) as session:
            return await NotificationsRepository(session).delete_for_tenant(tenant_id)

    async def list_by_display_name(self, tenant_id: str, display_name: str) -> List[Notification]:
        async with get_session_context(self._session_factory) as session:
            return await NotificationsRepository(session).list_by_display_name(tenant_id, display_name)

    async def delete_by_display_name(self, tenant_id: str, display_name: str) -> int:
        """Drop every earlier notification about a document."""
        async with get_session_context(self._session_factory) as session:
            removed = await NotificationsRepository(session).delete_by_display_name(
                tenant_id, display_name
            )
        if removed:
            logger.debug(f"Removed {removed} old notifications for {display_name}")
        return removed

    @staticmethod
    async def _get_owned(
        repo: NotificationsRepository, tenant_id: str, notification_id: str
    ) -> Notification:
        notification = await repo.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError("Notification", resource_id=notification_id)
        if notification.tenant_id != tenant_id:
            raise PermissionDeniedError("Notification belongs to another tenant")
        return notification


# Message templates


def processing_message(display_name: str) -> tuple[str, str]:
    return "Processing file", f'"{display_name}" is being processed'


def ready_message(display_name: str) -> tuple[str, str]:
    return "✓ File ready", f'"{display_name}" is ready to use'


def failed_message(display_name: str, reason: str) -> tuple[str, str]:
    return "File processing failed", f'Failed to process "{display_name}": {reason}'


def deleted_message(display_name: str) -> tuple[str, str]:
    return (
        "✓ Deletion complete",
        f'"{display_name}" was successfully removed from your knowledge base',
    )


def deletion_failed_message(display_name: str, reason: str) -> tuple[str, str]:
    return "File deletion failed", f'Failed to delete "{display_name}": {reason}'
