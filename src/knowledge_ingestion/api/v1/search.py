"""Search endpoints used by the conversational agent."""

from fastapi import APIRouter

from knowledge_ingestion.api.dependencies import ContainerDep, TenantDep
from knowledge_ingestion.models.retrieval import AgentAnswer, AnswerRequest, SearchPayload, SearchRequest

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    response_model=SearchPayload,
    summary="Search Knowledge Base",
    description=(
        "Classified context for the agent. An unknown knowledge base returns "
        "`no_results` rather than an error."
    ),
)
async def search(request: SearchRequest, container: ContainerDep, tenant_id: TenantDep) -> SearchPayload:
    return await container.retrieval.search(request.query, tenant_id, request.knowledge_base_id)


@router.post("/answer", response_model=AgentAnswer, summary="Search And Answer")
async def answer(request: AnswerRequest, container: ContainerDep, tenant_id: TenantDep) -> AgentAnswer:
    return await container.retrieval.answer(
        request.query,
        tenant_id,
        request.knowledge_base_id,
        timeout=request.timeout,
    )
