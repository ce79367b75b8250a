"""Pydantic models for knowledge base API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class KnowledgeBaseCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class KnowledgeBaseUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class KnowledgeBaseResponse(BaseModel):
    """Response model for a knowledge base."""

    model_config = ConfigDict(from_attributes=True)

    knowledge_base_id: str = Field(..., description="Public identifier (kb_...)")
    tenant_id: str
    name: str
    description: Optional[str] = None
    namespace: str = Field(..., description="Search namespace, fixed at creation")
    created_at: datetime
    updated_at: datetime


class KnowledgeBaseListResponse(BaseModel):
    knowledge_bases: List[KnowledgeBaseResponse]
    total: int
