"""tapeVault API layer -- routes, schemas, WebSocket, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    status_for_error,
)
from src.api.routes import router
from src.api.schemas import (
    CancelResponse,
    CollectionProgressResponse,
    ErrorResponse,
    HealthResponse,
    ImportJobListResponse,
    ImportJobResponse,
    ImportRequest,
)
from src.api.websocket import websocket_job_progress

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "status_for_error",
    "router",
    "websocket_job_progress",
    "CancelResponse",
    "CollectionProgressResponse",
    "ErrorResponse",
    "HealthResponse",
    "ImportJobListResponse",
    "ImportJobResponse",
    "ImportRequest",
]
