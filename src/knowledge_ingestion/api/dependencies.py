"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header, Request

from knowledge_ingestion.container import ServiceContainer
from knowledge_ingestion.utils.errors import IngestionException, ValidationError


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise IngestionException("Service is not initialized", status_code=503, code="NOT_READY")
    return container


def get_tenant_id(x_tenant_id: Annotated[str, Header(description="Calling tenant")] = "") -> str:
    """Tenant id asserted by the upstream gateway."""
    tenant_id = x_tenant_id.strip()
    if not tenant_id:
        raise ValidationError("X-Tenant-ID header is required")
    return tenant_id


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
TenantDep = Annotated[str, Depends(get_tenant_id)]
