"""tapeVault FastAPI application entry point.

Wires together all providers, services, and routes via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``,
configures structured logging, starts the import worker pool, and
re-submits any jobs left queued by a previous process.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import APP_VERSION
from src.api.routes import router as api_router
from src.api.websocket import websocket_job_progress
from src.bootstrap import build_components, close_components, initialize_components
from src.config.loader import load_config
from src.config.settings import Settings
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build components and start workers on startup; stop them on shutdown."""
    components = build_components(settings, config)
    for key, value in components.items():
        setattr(application.state, key, value)

    await initialize_components(components)

    worker_pool = components["worker_pool"]
    worker_pool.start()
    recovered = await worker_pool.recover_queued()

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        artists=len(components["collections"]),
        workers=settings.worker_count,
        recovered_jobs=recovered,
    )

    yield

    await worker_pool.stop()
    await close_components(components)
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="tapeVault API",
        version=APP_VERSION,
        description=(
            "Crawl archive.org live-concert collections, reconcile setlist "
            "titles against canonical tracks, and import them into the catalog "
            "through a resumable job queue."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)

    @application.websocket("/ws/imports/{job_id}")
    async def ws_job_progress(websocket: WebSocket, job_id: str) -> None:
        await websocket_job_progress(websocket, job_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
