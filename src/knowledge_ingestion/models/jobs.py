"""Job message models shared by the in-process runner and the RabbitMQ queue."""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from knowledge_ingestion.models.chunk import SourceType
from knowledge_ingestion.models.document import DocumentId


def _new_job_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionJob(BaseModel):
    """Extract, chunk and index one stored document."""

    job_type: Literal["ingest"] = "ingest"
    job_id: str = Field(default_factory=_new_job_id)
    tenant_id: str
    namespace: str
    knowledge_base_id: Optional[str] = None
    display_name: str
    filename: str
    mime_type: str
    category: Optional[str] = None
    source_type: SourceType = SourceType.UPLOADED
    source_url: Optional[str] = None
    storage_handle: str = Field(..., description="Blob holding the source bytes")
    is_retry: bool = Field(default=False, description="Re-run reusing a blob from a failed attempt")
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def document_id(self) -> DocumentId:
        return DocumentId(namespace=self.namespace, display_name=self.display_name)


class DeletionJob(BaseModel):
    """Remove every entry of one document from a namespace."""

    job_type: Literal["delete"] = "delete"
    job_id: str = Field(default_factory=_new_job_id)
    tenant_id: str
    namespace: str
    knowledge_base_id: Optional[str] = None
    display_name: str
    storage_handle: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def document_id(self) -> DocumentId:
        return DocumentId(namespace=self.namespace, display_name=self.display_name)


JobMessage = Annotated[Union[IngestionJob, DeletionJob], Field(discriminator="job_type")]

job_message_adapter: TypeAdapter = TypeAdapter(JobMessage)


def parse_job(body: bytes) -> Union[IngestionJob, DeletionJob]:
    """Decode a JSON job body into the matching job model."""
    return job_message_adapter.validate_json(body)
