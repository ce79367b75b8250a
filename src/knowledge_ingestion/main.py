"""FastAPI application entry point.

- Lifespan wiring of the service container (database, index, storage, jobs)
- RabbitMQ topology and queue consumer when JOB_BACKEND=rabbitmq
- Middleware (CORS, request id, timing)
- Exception handlers rendering `{"error": {...}}` bodies
"""

from contextlib import asynccontextmanager

import aio_pika
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from knowledge_ingestion import __version__
from knowledge_ingestion.api.v1 import health
from knowledge_ingestion.api.v1.router import router as v1_router
from knowledge_ingestion.config import JobBackend, get_settings
from knowledge_ingestion.container import build_container
from knowledge_ingestion.database.session import close_db, init_db
from knowledge_ingestion.middleware import RequestIDMiddleware, TimingMiddleware
from knowledge_ingestion.services.queue_setup import setup_queues
from knowledge_ingestion.utils.errors import IngestionException
from knowledge_ingestion.utils.logging import get_logger, log_error, setup_logging
from knowledge_ingestion.workers.job_dispatcher import InProcessJobDispatcher, RabbitMQJobDispatcher
from knowledge_ingestion.workers.queue_consumer import QueueConsumer

setup_logging()
logger = get_logger("main")

settings = get_settings()


async def _start_rabbitmq(app: FastAPI) -> RabbitMQJobDispatcher:
    """Connect, declare the topology and return a publisher-side dispatcher."""
    connection = await aio_pika.connect_robust(settings.rabbitmq.url)
    app.state.rabbitmq_connection = connection
    await setup_queues(connection)
    dispatcher = RabbitMQJobDispatcher()
    await dispatcher.connect()
    return dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Knowledge Ingestion service...")
    await init_db()

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        dispatcher = None
        if settings.jobs.backend == JobBackend.RABBITMQ:
            try:
                dispatcher = await _start_rabbitmq(app)
            except Exception as e:
                logger.error(f"Failed to initialize RabbitMQ: {e}", exc_info=True)
                if settings.is_production:
                    raise
                logger.warning("RabbitMQ unavailable in development; jobs will run in-process")
                app.state.rabbitmq_connection = None
                dispatcher = InProcessJobDispatcher()

        container = build_container(dispatcher=dispatcher)
        app.state.container = container

        connection = getattr(app.state, "rabbitmq_connection", None)
        if connection is not None:
            consumer = QueueConsumer(connection, container.runner)
            await consumer.start()
            app.state.queue_consumer = consumer

    logger.info("Knowledge Ingestion service started")
    try:
        yield
    finally:
        logger.info("Shutting down Knowledge Ingestion service...")

        consumer = getattr(app.state, "queue_consumer", None)
        if consumer is not None:
            await consumer.stop()

        if owns_container:
            try:
                await app.state.container.close()
            except Exception as e:
                logger.error(f"Error closing service container: {e}", exc_info=True)
            app.state.container = None

        connection = getattr(app.state, "rabbitmq_connection", None)
        if connection is not None and not connection.is_closed:
            await connection.close()
            logger.info("RabbitMQ connection closed")

        await close_db()
        logger.info("Knowledge Ingestion service shut down")


app = FastAPI(
    title="Knowledge Ingestion Service",
    description="Document ingestion, multi-tenant search namespaces and retrieval for support agents",
    version=__version__,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)

app.add_middleware(TimingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)


@app.exception_handler(IngestionException)
async def ingestion_exception_handler(request: Request, exc: IngestionException):
    log_error(exc, context={"path": request.url.path, "method": request.method})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "code": "HTTP_ERROR",
                "status_code": exc.status_code,
            }
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation error",
                "code": "VALIDATION_ERROR",
                "status_code": 422,
                "details": jsonable_errors(exc),
            }
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    log_error(exc, context={"path": request.url.path, "method": request.method})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": "Internal server error",
                "code": "INTERNAL_ERROR",
                "status_code": 500,
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


app.include_router(v1_router)


@app.get("/health", tags=["health"], include_in_schema=False)
async def root_health_check():
    return await health.health_check()


@app.get("/ready", tags=["health"], include_in_schema=False)
async def root_readiness_check(request: Request):
    return await health.readiness_check(request)


@app.get("/", tags=["root"])
async def root():
    return {
        "service": "knowledge-ingestion",
        "version": __version__,
        "status": "running",
        "environment": settings.environment.value,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "knowledge_ingestion.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload and settings.is_development,
        log_level=settings.log_level.lower(),
    )
