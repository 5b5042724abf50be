"""Error-handling middleware for the orchestrator API.

Orchestrator errors (:class:`SkeneError`) become JSON bodies of the form
``{"error": <class name>, "detail": <message>}``.  Anything else is an
internal error and its message is not exposed to the client.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from skene.utils.exceptions import (
    BinaryNotFoundError,
    InvalidTaskTransitionError,
    RunNotFoundError,
    SkeneError,
    TaskNotFoundError,
)
from skene.utils.logging import get_logger

logger = get_logger(__name__)

_STATUS_MAP: dict[type[SkeneError], int] = {
    RunNotFoundError: 404,
    TaskNotFoundError: 404,
    InvalidTaskTransitionError: 409,
    BinaryNotFoundError: 503,
}


def status_for(exc: SkeneError) -> int:
    """HTTP status for *exc*, matching subclasses through the MRO."""
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            return _STATUS_MAP[cls]
    return 500


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except SkeneError as exc:
            code = status_for(exc)
            log_fn = logger.warning if code < 500 else logger.error
            log_fn(
                "orchestrator_error",
                error_type=type(exc).__name__,
                status_code=code,
                detail=str(exc),
                method=request.method,
                path=request.url.path,
            )
            body = {"error": type(exc).__name__, "detail": str(exc)}
        except Exception as exc:
            code = 500
            logger.exception(
                "internal_error",
                error_type=type(exc).__name__,
                method=request.method,
                path=request.url.path,
            )
            body = {"error": "InternalServerError", "detail": "Internal server error"}
        return JSONResponse(status_code=code, content=body)
