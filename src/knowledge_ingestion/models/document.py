"""Document models: identity, ingestion requests and listing views."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from knowledge_ingestion.models.chunk import SourceType


class DocumentId(BaseModel):
    """Identity of a logical document: a display name inside a namespace."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    display_name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.display_name}"


class IngestionRequest(BaseModel):
    """Raw bytes plus metadata submitted for ingestion."""

    data: bytes = Field(..., description="Raw document bytes")
    filename: str = Field(..., description="Original filename")
    display_name: str = Field(..., min_length=1, description="Name the document is known by")
    mime_type: str = Field(..., description="MIME type of the bytes")
    tenant_id: str = Field(..., min_length=1)
    knowledge_base_id: Optional[str] = None
    category: Optional[str] = None
    source_type: SourceType = SourceType.UPLOADED
    source_url: Optional[str] = None


class IngestionAck(BaseModel):
    """Immediate acknowledgement returned to the caller of a background job."""

    status: str = Field(default="accepted")
    job_id: str
    display_name: str
    namespace: str
    message: str = "Processing"


class IngestionOutcome(BaseModel):
    """Result of running an ingestion job to completion."""

    job_id: str
    document_id: DocumentId
    success: bool
    chunk_count: int = 0
    created: bool = Field(default=True, description="False when every chunk was already indexed")
    error_message: Optional[str] = None


class DocumentSummary(BaseModel):
    """A document as shown in file listings, aggregated from its entries."""

    display_name: str
    original_filename: Optional[str] = None
    mime_type: Optional[str] = None
    category: Optional[str] = None
    source_type: SourceType = SourceType.UPLOADED
    status: str = Field(..., description="ready | processing | error")
    error_message: Optional[str] = None
    chunk_count: int = 0
    size: Optional[str] = Field(None, description="Human-readable size of the stored bytes")
    url: Optional[str] = None


class FileChangeResponse(BaseModel):
    """A recorded change to a namespace's document list."""

    tenant_id: str
    knowledge_base_id: Optional[str] = None
    change_type: str
    display_name: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
