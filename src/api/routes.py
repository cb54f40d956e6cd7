"""FastAPI API routes for tapeVault.

Exposes the import job queue, collection crawl progress, the unmatched
title review list and a health check.  Service dependencies are resolved
from ``app.state`` via FastAPI's ``Depends`` using the ``Annotated``
pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                     Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/imports                              POST    Queue an import job
# /api/v1/imports                              GET     List jobs (newest first)
# /api/v1/imports/{job_id}                     GET     Job status + live progress
# /api/v1/imports/{job_id}                     DELETE  Cancel a queued/running job
# /api/v1/collections/{collection_id}/progress GET     Crawl progress
# /api/v1/unmatched                            GET     Unmatched titles for review
# /api/v1/health                               GET     Health + circuit state
#
# Each route declares its dependencies as Annotated parameters; the
# helper functions below read them from app.state (populated at startup
# in main.py's build_components).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.schemas import (
    CancelResponse,
    CollectionProgressResponse,
    HealthResponse,
    ImportJobListResponse,
    ImportJobResponse,
    ImportRequest,
    UnmatchedListResponse,
    UnmatchedTrackResponse,
)
from src.interfaces.unmatched_store import IUnmatchedTrackStore
from src.models.job import JobStatus
from src.pipeline.import_publisher import ImportPublisher
from src.pipeline.job_status_store import JobStatusStore
from src.pipeline.progress_tracker import ProgressTracker
from src.services.circuit_breaker import CircuitBreaker
from src.services.metadata_crawler import MetadataCrawler
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

APP_VERSION = "0.1.0"

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_publisher(request: Request) -> ImportPublisher:
    return request.app.state.publisher


def _get_status_store(request: Request) -> JobStatusStore:
    return request.app.state.status_store


def _get_progress_tracker(request: Request) -> ProgressTracker:
    return request.app.state.progress_tracker


def _get_crawler(request: Request) -> MetadataCrawler:
    return request.app.state.crawler


def _get_collections(request: Request) -> dict[str, str]:
    """Return the ``artist name -> collection id`` mapping from config."""
    return getattr(request.app.state, "collections", {})


def _get_unmatched_store(request: Request) -> IUnmatchedTrackStore | None:
    return getattr(request.app.state, "unmatched_store", None)


def _get_circuit_breaker(request: Request) -> CircuitBreaker | None:
    return getattr(request.app.state, "circuit_breaker", None)


PublisherDep = Annotated[ImportPublisher, Depends(_get_publisher)]
StatusStoreDep = Annotated[JobStatusStore, Depends(_get_status_store)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]
CrawlerDep = Annotated[MetadataCrawler, Depends(_get_crawler)]
CollectionsDep = Annotated[dict[str, str], Depends(_get_collections)]
UnmatchedStoreDep = Annotated[Any, Depends(_get_unmatched_store)]
CircuitBreakerDep = Annotated[Any, Depends(_get_circuit_breaker)]


# ---------------------------------------------------------------------------
# Import jobs
# ---------------------------------------------------------------------------


@router.post("/imports", response_model=ImportJobResponse, status_code=202)
async def create_import(
    body: ImportRequest,
    publisher: PublisherDep,
    collections: CollectionsDep,
) -> ImportJobResponse:
    """Queue an import; the job runs on the worker pool."""
    collection_id = body.collection_id or collections.get(body.artist_name)
    if not collection_id:
        raise ConfigurationError(
            f"No archive collection configured for artist '{body.artist_name}'"
        )

    job = await publisher.publish(
        artist_name=body.artist_name,
        collection_id=collection_id,
        limit=body.limit,
        offset=body.offset,
        dry_run=body.dry_run,
    )
    return ImportJobResponse.from_job(job)


@router.get("/imports", response_model=ImportJobListResponse)
async def list_imports(
    store: StatusStoreDep,
    status: Annotated[JobStatus | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> ImportJobListResponse:
    jobs = store.list(status=status, limit=limit)
    return ImportJobListResponse(
        jobs=[ImportJobResponse.from_job(job) for job in jobs],
        total=len(jobs),
    )


@router.get("/imports/{job_id}", response_model=ImportJobResponse)
async def get_import(
    job_id: str,
    store: StatusStoreDep,
    tracker: TrackerDep,
) -> ImportJobResponse:
    job = store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return ImportJobResponse.from_job(job, live=tracker.get_status(job_id))


@router.delete("/imports/{job_id}", response_model=CancelResponse)
async def cancel_import(
    job_id: str,
    publisher: PublisherDep,
    store: StatusStoreDep,
) -> CancelResponse:
    """Cancel a queued or running job; 409 once it has finished."""
    job = store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    cancelled = await publisher.cancel(job_id)
    if not cancelled:
        raise HTTPException(
            status_code=409,
            detail=f"Job {job_id} is {job.status.value} and cannot be cancelled",
        )
    return CancelResponse(job_id=job_id, cancelled=True, status=JobStatus.CANCELLED.value)


# ---------------------------------------------------------------------------
# Collections / review
# ---------------------------------------------------------------------------


@router.get(
    "/collections/{collection_id}/progress",
    response_model=CollectionProgressResponse,
)
async def get_collection_progress(
    collection_id: str,
    crawler: CrawlerDep,
) -> CollectionProgressResponse:
    progress = crawler.get_progress(collection_id)
    if progress is None:
        raise HTTPException(
            status_code=404,
            detail=f"Collection {collection_id} has not been crawled",
        )
    return CollectionProgressResponse.from_progress(progress)


@router.get("/unmatched", response_model=UnmatchedListResponse)
async def list_unmatched(
    unmatched_store: UnmatchedStoreDep,
    artist_key: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> UnmatchedListResponse:
    """Titles no matching tier resolved, most frequent first."""
    if unmatched_store is None:
        return UnmatchedListResponse(tracks=[], total=0)
    records = await unmatched_store.list_unmatched(artist_key=artist_key, limit=limit)
    tracks = [
        UnmatchedTrackResponse(
            artist_key=record.artist_key,
            raw_title=record.raw_title,
            suggested_key=record.suggested_key,
            confidence=record.confidence,
            occurrences=record.occurrences,
            last_seen=record.last_seen,
        )
        for record in records
    ]
    return UnmatchedListResponse(tracks=tracks, total=len(tracks))


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    circuit_breaker: CircuitBreakerDep,
) -> HealthResponse:
    """Report circuit state and worker status.

    ``status`` is ``degraded`` while the archive circuit is open.
    """
    components: dict[str, Any] = {}
    status = "healthy"

    if circuit_breaker is not None:
        circuit = await circuit_breaker.get_status()
        components["circuit"] = circuit
        if circuit.get("state") == "open":
            status = "degraded"

    worker_pool = getattr(request.app.state, "worker_pool", None)
    if worker_pool is not None:
        components["workers"] = {
            "running": worker_pool.is_running,
            "pending": worker_pool.pending,
            "deferred": len(worker_pool.deferred),
        }

    return HealthResponse(status=status, version=APP_VERSION, components=components)
