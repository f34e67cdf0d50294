"""
Request Correlation ID Middleware.

Extracts or generates a correlation ID per request, binds it to the
logging context and echoes it, with the request duration, in the
response headers.
"""

import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.observability.logging import correlation_id_var, get_logger

logger = get_logger(__name__)

CORRELATION_ID_HEADERS = [
    "X-Correlation-ID",
    "X-Request-ID",
]


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return uuid.uuid4().hex[:12]


def extract_correlation_id(request: Request) -> str | None:
    """Extract correlation ID from request headers."""
    for header in CORRELATION_ID_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Correlation ID and timing middleware.

    Usage:
        app.add_middleware(CorrelationMiddleware)
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        correlation_id = extract_correlation_id(request) or generate_correlation_id()
        token = correlation_id_var.set(correlation_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
            )
            raise
        finally:
            correlation_id_var.reset(token)

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
            correlation_id=correlation_id,
        )

        return response
