"""Chunk and index entry models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ChunkStatus(str, Enum):
    """Processing status carried by every index entry."""

    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


class SourceType(str, Enum):
    """How a document entered the system."""

    UPLOADED = "uploaded"
    SCRAPED = "scraped"


class TextChunk(BaseModel):
    """A chunk of text produced by the chunking service."""

    chunk_index: int = Field(..., ge=0, description="0-based index of this chunk within the document")
    text: str = Field(..., description="Chunk text content")
    token_count: int = Field(default=0, ge=0, description="Token count of the chunk text")


class ChunkMetadata(BaseModel):
    """Document attributes denormalized onto each index entry."""

    display_name: str = Field(..., description="Human-readable document name, unique per namespace")
    original_filename: Optional[str] = Field(None, description="Filename as uploaded")
    mime_type: Optional[str] = Field(None, description="MIME type of the stored bytes")
    category: Optional[str] = Field(None, description="Free-text category tag")
    knowledge_base_id: Optional[str] = Field(None, description="Owning knowledge base, if any")
    source_type: SourceType = Field(default=SourceType.UPLOADED)
    tenant_id: str = Field(..., description="Owning tenant")
    storage_handle: Optional[str] = Field(None, description="Blob storage handle of the source bytes")
    superseded_storage_handle: Optional[str] = Field(
        None, description="Blob left behind by an earlier failed attempt, released once the document is ready"
    )
    source_url: Optional[str] = Field(None, description="Origin URL for scraped pages")
    chunk_index: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)
    status: ChunkStatus = Field(default=ChunkStatus.READY)
    error_message: Optional[str] = Field(None, description="Failure reason for error placeholders")
    is_placeholder: bool = Field(default=False, description="Marks the transient entry of an in-flight job")


class IndexEntry(BaseModel):
    """One entry read back from the document index."""

    entry_id: str
    namespace: str
    key: str
    text: str = ""
    content_hash: Optional[str] = None
    metadata: ChunkMetadata
    score: Optional[float] = None


class AddResult(BaseModel):
    """Outcome of a single index write."""

    entry_id: str
    created: bool = Field(..., description="False when the key already held identical content")


class ListPage(BaseModel):
    """One page of a namespace listing."""

    entries: List[IndexEntry] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(None, description="Opaque cursor for the next page; None when exhausted")
