"""HTTP middleware for the tapeVault API.

Three pieces, registered in ``main.create_app``:

* ``configure_cors`` -- permissive CORS for the ops dashboard.
* ``RequestLoggingMiddleware`` -- one ``http_request`` event per call,
  with a request id bound into structlog's context vars so every event
  logged while handling the request carries it.
* ``ErrorHandlingMiddleware`` -- maps an ``ArchiveImportError`` onto an
  HTTP status by its ``ErrorKind`` and returns an ``ErrorResponse`` body.

# ─── ORDER ────────────────────────────────────────────────────────────
#
#   app.add_middleware(ErrorHandlingMiddleware)   # inner
#   app.add_middleware(RequestLoggingMiddleware)  # outer
#
#   request -> RequestLogging -> ErrorHandling -> route
#
# The logger therefore records the status chosen for application errors.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import ArchiveImportError, ErrorKind
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# ErrorKind -> HTTP status; anything unlisted is a 500.
_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.CONFIGURATION: 400,
    ErrorKind.ALREADY_LOCKED: 409,
    ErrorKind.LOCK_TIMEOUT: 409,
    ErrorKind.CIRCUIT_OPEN: 503,
    ErrorKind.API_ERROR: 503,
    ErrorKind.RATE_LIMITED: 503,
    ErrorKind.MALFORMED_RESPONSE: 503,
}


def status_for_error(exc: ArchiveImportError) -> int:
    return _STATUS_BY_KIND.get(exc.kind, 500)


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Allow *allowed_origins* (every origin when omitted) to call the API."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome and latency."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn application errors into JSON; stack traces stay in the log."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except ArchiveImportError as exc:
            status = status_for_error(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                kind=exc.kind.value,
                message=exc.message,
                provider=exc.provider_name,
                path=request.url.path,
                status=status,
            )
            body = ErrorResponse(error=type(exc).__name__, kind=exc.kind.value, detail=exc.message)
            return JSONResponse(status_code=status, content=body.model_dump())
