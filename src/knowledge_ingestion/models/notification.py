"""Pydantic models for notifications endpoints."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Outcome kinds reported to the dashboard."""

    FILE_READY = "file_ready"
    FILE_FAILED = "file_failed"
    FILE_PROCESSING = "file_processing"


class NotificationResponse(BaseModel):
    """Response model for a notification record."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Notification ID")
    tenant_id: str = Field(..., description="Owning tenant")
    type: NotificationType
    title: str
    message: str
    document_ref: Optional[str] = Field(None, description="Index entry the notification refers to")
    display_name: Optional[str] = None
    read: bool = False
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int
