"""Per-document single-flight locks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from knowledge_ingestion.models.document import DocumentId


class DocumentLocks:
    """
    One asyncio.Lock per DocumentId, so ingestion and deletion of the same
    document never interleave inside a process. Locks are dropped once no
    holder or waiter remains.
    """

    def __init__(self) -> None:
        self._locks: Dict[DocumentId, asyncio.Lock] = {}
        self._users: Dict[DocumentId, int] = {}

    @asynccontextmanager
    async def hold(self, document_id: DocumentId) -> AsyncIterator[None]:
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._users[document_id] = self._users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[document_id] -= 1
            if self._users[document_id] == 0:
                del self._users[document_id]
                del self._locks[document_id]

    def is_locked(self, document_id: DocumentId) -> bool:
        lock = self._locks.get(document_id)
        return lock is not None and lock.locked()
