"""Knowledge base CRUD endpoints."""

from fastapi import APIRouter, Response, status

from knowledge_ingestion.api.dependencies import ContainerDep, TenantDep
from knowledge_ingestion.models.knowledge_base import (
    KnowledgeBaseCreateRequest,
    KnowledgeBaseListResponse,
    KnowledgeBaseResponse,
    KnowledgeBaseUpdateRequest,
)
from knowledge_ingestion.utils.errors import NotFoundError

router = APIRouter(prefix="/knowledge-bases", tags=["knowledge-bases"])


@router.post("", response_model=KnowledgeBaseResponse, status_code=status.HTTP_201_CREATED)
async def create_knowledge_base(
    request: KnowledgeBaseCreateRequest, container: ContainerDep, tenant_id: TenantDep
) -> KnowledgeBaseResponse:
    kb = await container.knowledge_bases.create(tenant_id, request.name, request.description)
    return KnowledgeBaseResponse.model_validate(kb)


@router.get("", response_model=KnowledgeBaseListResponse)
async def list_knowledge_bases(container: ContainerDep, tenant_id: TenantDep) -> KnowledgeBaseListResponse:
    kbs = await container.knowledge_bases.list(tenant_id)
    items = [KnowledgeBaseResponse.model_validate(kb) for kb in kbs]
    return KnowledgeBaseListResponse(knowledge_bases=items, total=len(items))


@router.get("/{knowledge_base_id}", response_model=KnowledgeBaseResponse)
async def get_knowledge_base(
    knowledge_base_id: str, container: ContainerDep, tenant_id: TenantDep
) -> KnowledgeBaseResponse:
    kb = await container.knowledge_bases.get(tenant_id, knowledge_base_id)
    if kb is None:
        raise NotFoundError("Knowledge base", resource_id=knowledge_base_id)
    return KnowledgeBaseResponse.model_validate(kb)


@router.patch("/{knowledge_base_id}", response_model=KnowledgeBaseResponse)
async def update_knowledge_base(
    knowledge_base_id: str,
    request: KnowledgeBaseUpdateRequest,
    container: ContainerDep,
    tenant_id: TenantDep,
) -> KnowledgeBaseResponse:
    kb = await container.knowledge_bases.update(
        tenant_id, knowledge_base_id, name=request.name, description=request.description
    )
    return KnowledgeBaseResponse.model_validate(kb)


@router.delete("/{knowledge_base_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_knowledge_base(knowledge_base_id: str, container: ContainerDep, tenant_id: TenantDep) -> Response:
    await container.knowledge_bases.delete(tenant_id, knowledge_base_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
