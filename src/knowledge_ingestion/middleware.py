"""Custom middleware for FastAPI."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from knowledge_ingestion.utils.logging import log_request, set_request_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagate or mint an X-Request-ID and expose it to log formatters."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Log each request with its processing time."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            client_ip=request.client.host if request.client else None,
            tenant_id=request.headers.get("X-Tenant-ID"),
        )
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"
        return response
