"""API v1 router aggregation."""

from fastapi import APIRouter

from knowledge_ingestion.api.v1 import files, health, knowledge_bases, notifications, search

router = APIRouter(
    prefix="/api/v1",
    responses={
        403: {"description": "Permission denied"},
        404: {"description": "Not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(health.router)
router.include_router(files.router)
router.include_router(knowledge_bases.router)
router.include_router(notifications.router)
router.include_router(search.router)


@router.get("/", summary="API Information", tags=["v1"])
async def api_info():
    return {
        "version": "v1",
        "status": "active",
        "service": "knowledge-ingestion",
        "endpoints": {
            "files": "/api/v1/files",
            "knowledge_bases": "/api/v1/knowledge-bases",
            "notifications": "/api/v1/notifications",
            "search": "/api/v1/search",
        },
    }
