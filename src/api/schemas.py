"""Pydantic request/response schemas for the tapeVault API.

Defines the public contract for the import-job endpoints, collection
crawl progress, the unmatched-title review list and the health check.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# FastAPI uses these models to validate incoming JSON (422 on failure),
# serialize outgoing responses (response_model=...), and generate the
# OpenAPI docs at /docs.
#
# Convention: request schemas end with "Request", response schemas end
# with "Response".
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.models.job import ImportJob
from src.models.progress import CollectionProgress


class ImportRequest(BaseModel):
    """Queue an import for one artist.

    ``collection_id`` may be omitted when the artist is listed in
    ``config.yaml``.
    """

    artist_name: str = Field(..., min_length=1, max_length=200)
    collection_id: str | None = Field(default=None, max_length=200)
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)
    dry_run: bool = False


class ImportJobResponse(BaseModel):
    """One import job as persisted, plus the tracker's live snapshot if any."""

    job_id: str
    status: str
    artist_name: str
    collection_id: str
    dry_run: bool = False
    limit: int | None = None
    offset: int = 0
    total_shows: int = 0
    processed_shows: int = 0
    tracks_created: int = 0
    tracks_updated: int = 0
    tracks_skipped: int = 0
    error_count: int = 0
    progress: float = 0.0
    message: str | None = None
    error: str | None = None
    errors: list[str] = Field(default_factory=list)
    queued_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    live: dict[str, Any] | None = None

    @classmethod
    def from_job(cls, job: ImportJob, live: dict[str, Any] | None = None) -> ImportJobResponse:
        data = job.model_dump(exclude={"updated_at"})
        data["status"] = job.status.value
        return cls(**data, live=live)


class ImportJobListResponse(BaseModel):
    jobs: list[ImportJobResponse]
    total: int


class CancelResponse(BaseModel):
    job_id: str
    cancelled: bool
    status: str


class CollectionProgressResponse(BaseModel):
    """Crawl progress for one collection."""

    collection_id: str
    status: str
    downloaded: int
    failed: int
    failed_identifiers: list[str] = Field(default_factory=list)
    total_recordings: int = 0
    unique_shows: int = 0
    last_updated: datetime | None = None
    completed_at: datetime | None = None
    last_full_sync: datetime | None = None
    last_incremental_sync: datetime | None = None

    @classmethod
    def from_progress(cls, progress: CollectionProgress) -> CollectionProgressResponse:
        return cls(
            collection_id=progress.collection_id,
            status=progress.status.value,
            downloaded=len(progress.downloaded),
            failed=len(progress.failed),
            failed_identifiers=sorted(progress.failed),
            total_recordings=progress.total_recordings,
            unique_shows=progress.unique_shows,
            last_updated=progress.last_updated,
            completed_at=progress.completed_at,
            last_full_sync=progress.last_full_sync,
            last_incremental_sync=progress.last_incremental_sync,
        )


class UnmatchedTrackResponse(BaseModel):
    artist_key: str
    raw_title: str
    suggested_key: str | None = None
    confidence: float = 0.0
    occurrences: int = 1
    last_seen: datetime | None = None


class UnmatchedListResponse(BaseModel):
    tracks: list[UnmatchedTrackResponse]
    total: int


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    components: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    kind: str | None = None
    detail: str | None = None
