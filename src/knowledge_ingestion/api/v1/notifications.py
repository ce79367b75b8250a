"""Notification endpoints for the dashboard."""

from fastapi import APIRouter, Query, Response, status

from knowledge_ingestion.api.dependencies import ContainerDep, TenantDep
from knowledge_ingestion.models.notification import (
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse, summary="List Notifications")
async def list_notifications(
    container: ContainerDep,
    tenant_id: TenantDep,
    limit: int = Query(50, ge=1, le=200),
) -> NotificationListResponse:
    """Newest first."""
    records = await container.notifications.list(tenant_id, limit=limit)
    unread = await container.notifications.unread_count(tenant_id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(r) for r in records],
        unread_count=unread,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(container: ContainerDep, tenant_id: TenantDep) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=await container.notifications.unread_count(tenant_id))


@router.post("/read-all", summary="Mark All Read")
async def mark_all_read(container: ContainerDep, tenant_id: TenantDep) -> dict:
    updated = await container.notifications.mark_all_as_read(tenant_id)
    return {"updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: str, container: ContainerDep, tenant_id: TenantDep) -> NotificationResponse:
    record = await container.notifications.mark_as_read(tenant_id, notification_id)
    return NotificationResponse.model_validate(record)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(notification_id: str, container: ContainerDep, tenant_id: TenantDep) -> Response:
    await container.notifications.delete(tenant_id, notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", summary="Delete All Notifications")
async def delete_all_notifications(container: ContainerDep, tenant_id: TenantDep) -> dict:
    deleted = await container.notifications.delete_all(tenant_id)
    return {"deleted": deleted}
