"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from knowledge_ingestion.config import JobBackend, get_settings
from knowledge_ingestion.database.connection import check_connection
from knowledge_ingestion.services.queue_setup import verify_queues
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("health")
settings = get_settings()

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Liveness probe.

    Does not check external dependencies.
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(request: Request):
    """
    Readiness probe: database, plus RabbitMQ when it carries the jobs.

    Returns 503 if any checked dependency is unavailable.
    """
    checks = {"database": await check_connection()}

    if settings.jobs.backend == JobBackend.RABBITMQ:
        connection = getattr(request.app.state, "rabbitmq_connection", None)
        if connection is None or connection.is_closed:
            checks["rabbitmq"] = False
        else:
            try:
                queues = await verify_queues(connection)
                checks["rabbitmq"] = all(q.get("exists") for q in queues.values())
            except Exception as e:
                logger.warning(f"RabbitMQ readiness check failed: {e}")
                checks["rabbitmq"] = False

    ready = all(checks.values())
    body = {"status": "ready" if ready else "not_ready", "checks": checks}
    if not ready:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body
