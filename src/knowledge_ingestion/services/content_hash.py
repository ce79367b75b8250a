"""Content-addressed chunk hashing."""

import hashlib
import json
from typing import Union

from knowledge_ingestion.models.chunk import ChunkMetadata


def content_hash(chunk: Union[str, bytes]) -> str:
    """SHA-256 hex digest of a chunk's UTF-8 bytes."""
    data = chunk.encode("utf-8") if isinstance(chunk, str) else chunk
    return hashlib.sha256(data).hexdigest()


def placeholder_hash(metadata: ChunkMetadata) -> str:
    """Digest of a placeholder's state, so each status change is a distinct write."""
    state = {
        "status": metadata.status.value,
        "storage_handle": metadata.storage_handle,
        "superseded_storage_handle": metadata.superseded_storage_handle,
        "error_message": metadata.error_message,
    }
    return content_hash(json.dumps(state, sort_keys=True))
