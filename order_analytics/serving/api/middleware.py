"""
API Middleware

Request logging with correlation IDs.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "x-correlation-id"


def get_correlation_id(request: Request) -> str:
    """Correlation ID of the current request: the one already assigned, the caller's, or a new one"""
    existing = getattr(request.state, "correlation_id", None)
    if existing:
        return existing
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    return correlation_id


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with timing information and echo the correlation ID"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        correlation_id = get_correlation_id(request)
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            structlog.contextvars.unbind_contextvars("correlation_id")
