"""Notifications repository for data access operations."""

from __future__ import annotations

from typing import List

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_ingestion.database.models import Notification
from knowledge_ingestion.repositories.base import BaseRepository
from knowledge_ingestion.utils.errors import DatabaseError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("repositories.notifications")


class NotificationsRepository(BaseRepository[Notification]):
    """Repository for notification data access operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Notification, session)

    async def list_for_tenant(self, tenant_id: str, limit: int = 50) -> List[Notification]:
        """Newest first."""
        try:
            result = await self.session.execute(
                select(Notification)
                .where(Notification.tenant_id == tenant_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing notifications for tenant {tenant_id}: {e}")
            raise DatabaseError("Failed to retrieve notifications") from e

    async def list_by_display_name(self, tenant_id: str, display_name: str) -> List[Notification]:
        try:
            result = await self.session.execute(
                select(Notification).where(
                    Notification.tenant_id == tenant_id,
                    Notification.display_name == display_name,
                )
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing notifications for {display_name}: {e}")
            raise DatabaseError("Failed to retrieve notifications") from e

    async def count_unread(self, tenant_id: str) -> int:
        try:
            result = await self.session.execute(
                select(func.count())
                .select_from(Notification)
                .where(Notification.tenant_id == tenant_id, Notification.read.is_(False))
            )
            return result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Error counting unread notifications: {e}")
            raise DatabaseError("Failed to count notifications") from e

    async def mark_all_read(self, tenant_id: str) -> int:
        try:
            result = await self.session.execute(
                update(Notification)
                .where(Notification.tenant_id == tenant_id, Notification.read.is_(False))
                .values(read=True)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error marking notifications read: {e}")
            raise DatabaseError("Failed to update notifications") from e

    async def delete_for_tenant(self, tenant_id: str) -> int:
        try:
            result = await self.session.execute(
                delete(Notification).where(Notification.tenant_id == tenant_id)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting notifications for tenant {tenant_id}: {e}")
            raise DatabaseError("Failed to delete notifications") from e

    async def delete_by_display_name(self, tenant_id: str, display_name: str) -> int:
        try:
            result = await self.session.execute(
                delete(Notification).where(
                    Notification.tenant_id == tenant_id,
                    Notification.display_name == display_name,
                )
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting notifications for {display_name}: {e}")
            raise DatabaseError("Failed to delete notifications") from e
