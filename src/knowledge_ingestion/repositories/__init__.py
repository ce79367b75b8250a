"""Repositories package."""

from knowledge_ingestion.repositories.base import BaseRepository
from knowledge_ingestion.repositories.file_changes_repository import FileChangesRepository
from knowledge_ingestion.repositories.knowledge_base_repository import KnowledgeBaseRepository
from knowledge_ingestion.repositories.notifications_repository import NotificationsRepository

__all__ = [
    "BaseRepository",
    "FileChangesRepository",
    "KnowledgeBaseRepository",
    "NotificationsRepository",
]
