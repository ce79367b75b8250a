"""Database package."""

from knowledge_ingestion.database.models import Base, FileChangeEvent, KnowledgeBase, Notification
from knowledge_ingestion.database.session import get_session_context, get_session_factory

__all__ = [
    "Base",
    "FileChangeEvent",
    "KnowledgeBase",
    "Notification",
    "get_session_context",
    "get_session_factory",
]
