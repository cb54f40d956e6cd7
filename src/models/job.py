"""Import job state and import results.

``ImportJob`` is deliberately mutable: it is the persisted state machine a
single consumer advances (queued -> running -> completed/failed/cancelled)
and writes back through ``JobStatusStore.save`` after each transition.

``ImportResult`` is frozen -- the orchestrator accumulates into a private
tally and builds the result once at the end.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.utils.errors import ErrorKind


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class JobStatus(str, Enum):  # noqa: UP042
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})


def new_job_id(collection_id: str, now: datetime | None = None) -> str:
    """``import_{YYYYmmddHHMMSS}_{collection[:20]}_{6 hex}``."""
    stamp = (now or _utcnow()).strftime("%Y%m%d%H%M%S")
    return f"import_{stamp}_{collection_id[:20]}_{secrets.token_hex(3)}"


class ImportErrorRecord(BaseModel):
    """One captured, non-fatal failure from an import run."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    identifier: str | None = None
    sku: str | None = None

    def describe(self) -> str:
        target = self.sku or self.identifier
        return f"{target}: {self.message}" if target else self.message


class ImportResult(BaseModel):
    """Structured outcome of ``import_by_collection`` / ``import_show``."""

    model_config = ConfigDict(frozen=True)

    artist_name: str
    collection_id: str | None = None
    total_shows: int = 0
    shows_processed: int = 0
    tracks_created: int = 0
    tracks_updated: int = 0
    tracks_skipped: int = 0
    tracks_matched: int = 0
    tracks_unmatched: int = 0
    errors: tuple[ImportErrorRecord, ...] = Field(default_factory=tuple)
    dry_run: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: datetime | None = None

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def error_summary(self, limit: int = 5) -> list[str]:
        """First *limit* error messages, for user-visible reporting."""
        return [record.describe() for record in self.errors[:limit]]


class ImportJob(BaseModel):
    """A unit of asynchronous import work, persisted as one JSON record."""

    model_config = ConfigDict(validate_assignment=True)

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    artist_name: str
    collection_id: str

    # Request extras
    limit: int | None = None
    offset: int = 0
    dry_run: bool = False

    # Progress
    total_shows: int = 0
    processed_shows: int = 0
    tracks_created: int = 0
    tracks_updated: int = 0
    tracks_skipped: int = 0
    error_count: int = 0
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    message: str | None = None
    error: str | None = None
    errors: list[str] = Field(default_factory=list)

    # Timestamps
    queued_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def create(
        cls,
        artist_name: str,
        collection_id: str,
        limit: int | None = None,
        offset: int = 0,
        dry_run: bool = False,
    ) -> ImportJob:
        return cls(
            job_id=new_job_id(collection_id),
            artist_name=artist_name,
            collection_id=collection_id,
            limit=limit,
            offset=offset,
            dry_run=dry_run,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    def record_progress(self, total: int, processed: int, message: str | None = None) -> None:
        self.total_shows = total
        self.processed_shows = processed
        self.progress = round(processed / total * 100, 1) if total else 0.0
        if message is not None:
            self.message = message

    def apply_result(self, result: Any) -> None:
        """Copy final counts and captured errors from an ``ImportResult``."""
        self.total_shows = result.total_shows
        self.processed_shows = result.shows_processed
        self.tracks_created = result.tracks_created
        self.tracks_updated = result.tracks_updated
        self.tracks_skipped = result.tracks_skipped
        self.error_count = result.error_count
        self.errors = result.error_summary(limit=50)
        self.progress = 100.0
