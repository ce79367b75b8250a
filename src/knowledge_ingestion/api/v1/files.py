"""File endpoints: upload, scrape, list, retry and delete."""

import mimetypes
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status
from pydantic import BaseModel, Field, HttpUrl

from knowledge_ingestion.api.dependencies import ContainerDep, TenantDep
from knowledge_ingestion.models.document import (
    DocumentSummary,
    FileChangeResponse,
    IngestionAck,
    IngestionRequest,
)
from knowledge_ingestion.utils.errors import ValidationError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("api.files")

router = APIRouter(prefix="/files", tags=["files"])


class ScrapeRequest(BaseModel):
    url: HttpUrl
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = None
    knowledge_base_id: Optional[str] = None


class DocumentListResponse(BaseModel):
    files: List[DocumentSummary]
    total: int


class FileChangeListResponse(BaseModel):
    changes: List[FileChangeResponse]


@router.post(
    "",
    response_model=IngestionAck,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload File",
    description="Store a file and queue it for extraction, chunking and indexing.",
)
async def upload_file(
    container: ContainerDep,
    tenant_id: TenantDep,
    file: UploadFile = File(..., description="File to upload"),
    display_name: Optional[str] = Form(None, description="Name shown to users; defaults to the filename"),
    category: Optional[str] = Form(None),
    knowledge_base_id: Optional[str] = Form(None),
) -> IngestionAck:
    data = await file.read()
    if not data:
        raise ValidationError("File is empty")

    filename = file.filename or "upload"
    mime_type = file.content_type
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"

    return await container.ingestion.submit(
        IngestionRequest(
            data=data,
            filename=filename,
            display_name=(display_name or filename).strip(),
            mime_type=mime_type,
            tenant_id=tenant_id,
            knowledge_base_id=knowledge_base_id or None,
            category=category or None,
        )
    )


@router.post(
    "/scrape",
    response_model=IngestionAck,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Scrape Web Page",
)
async def scrape_page(request: ScrapeRequest, container: ContainerDep, tenant_id: TenantDep) -> IngestionAck:
    return await container.ingestion.submit_scraped(
        str(request.url),
        tenant_id,
        display_name=request.display_name,
        category=request.category,
        knowledge_base_id=request.knowledge_base_id,
    )


@router.get("", response_model=DocumentListResponse, summary="List Files")
async def list_files(
    container: ContainerDep,
    tenant_id: TenantDep,
    knowledge_base_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
) -> DocumentListResponse:
    files = await container.catalog.list_documents(tenant_id, knowledge_base_id, category=category)
    return DocumentListResponse(files=files, total=len(files))


@router.get("/changes", response_model=FileChangeListResponse, summary="Recent File Changes")
async def list_changes(
    container: ContainerDep,
    tenant_id: TenantDep,
    since: Optional[datetime] = Query(None, description="Only changes after this time"),
    knowledge_base_id: Optional[str] = Query(None),
) -> FileChangeListResponse:
    events = await container.file_changes.list_since(
        tenant_id, since=since, knowledge_base_id=knowledge_base_id
    )
    return FileChangeListResponse(changes=[FileChangeResponse.model_validate(e) for e in events])


@router.post(
    "/{display_name}/retry",
    response_model=IngestionAck,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Retry Failed File",
)
async def retry_file(
    display_name: str,
    container: ContainerDep,
    tenant_id: TenantDep,
    knowledge_base_id: Optional[str] = Query(None),
) -> IngestionAck:
    return await container.ingestion.retry(tenant_id, display_name, knowledge_base_id)


@router.delete(
    "/{display_name:path}",
    response_model=IngestionAck,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Delete File",
    description="Queue removal of every chunk of a file and its stored bytes.",
)
async def delete_file(
    display_name: str,
    container: ContainerDep,
    tenant_id: TenantDep,
    knowledge_base_id: Optional[str] = Query(None),
) -> IngestionAck:
    return await container.deletion.request_deletion(tenant_id, display_name, knowledge_base_id)
