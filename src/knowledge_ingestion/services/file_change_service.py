"""Record "file list changed" events for reactive consumers."""

from datetime import datetime
from typing import List, Optional

from knowledge_ingestion.database.models import FileChangeEvent
from knowledge_ingestion.database.session import SessionFactory, get_session_context
from knowledge_ingestion.repositories.file_changes_repository import FileChangesRepository
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("file_change_service")


class FileChangeService:
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory

    async def record(
        self,
        tenant_id: str,
        change_type: str,
        display_name: Optional[str] = None,
        knowledge_base_id: Optional[str] = None,
    ) -> None:
        async with get_session_context(self._session_factory) as session:
            await FileChangesRepository(session).create(
                tenant_id=tenant_id,
                knowledge_base_id=knowledge_base_id,
                change_type=change_type,
                display_name=display_name,
            )
        logger.debug(f"File change recorded: tenant={tenant_id}, type={change_type}, name={display_name}")

    async def list_since(
        self,
        tenant_id: str,
        since: Optional[datetime] = None,
        knowledge_base_id: Optional[str] = None,
    ) -> List[FileChangeEvent]:
        async with get_session_context(self._session_factory) as session:
            return await FileChangesRepository(session).list_since(
                tenant_id, since=since, knowledge_base_id=knowledge_base_id
            )
