"""Request logging middleware using structlog.

Binds a request id into structlog's context variables so every event logged
while handling the request (run creation, cancellation ...) carries it, then
logs the outcome with timing.  Health probes are logged at debug level.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from skene.utils.logging import get_logger

logger = get_logger(__name__)

_QUIET_PATHS = ("/api/v1/health",)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every HTTP request with timing and response status."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        if path in _QUIET_PATHS:
            log_fn = logger.debug
        elif response.status_code < 400:
            log_fn = logger.info
        else:
            log_fn = logger.warning
        log_fn(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
            request_id=request_id,
        )
        response.headers["x-request-id"] = request_id
        return response
