"""Per-collection crawl progress and crawl summaries.

``CollectionProgress`` is mutable and persisted after every batch of
downloads; the crawler re-reads it on every invocation to decide what is
already cached and when the last full/incremental sync happened.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CrawlStatus(str, Enum):  # noqa: UP042
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CollectionProgress(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    collection_id: str
    status: CrawlStatus = CrawlStatus.IN_PROGRESS
    downloaded: set[str] = Field(default_factory=set)
    failed: set[str] = Field(default_factory=set)
    total_recordings: int = 0
    unique_shows: int = 0
    last_identifier: str | None = None
    started_at: datetime | None = None
    last_updated: datetime | None = None
    completed_at: datetime | None = None
    last_full_sync: datetime | None = None
    last_incremental_sync: datetime | None = None

    def mark_downloaded(self, identifier: str) -> None:
        self.downloaded.add(identifier)
        self.failed.discard(identifier)
        self.last_identifier = identifier

    def mark_failed(self, identifier: str) -> None:
        self.failed.add(identifier)
        self.last_identifier = identifier

    def touch(self) -> None:
        self.last_updated = datetime.now(tz=timezone.utc)

    def to_record(self) -> dict:
        """JSON-ready dict with sets rendered as sorted lists."""
        record = self.model_dump(mode="json")
        record["downloaded"] = sorted(self.downloaded)
        record["failed"] = sorted(self.failed)
        return record


class CrawlSummary(BaseModel):
    """Result of one ``MetadataCrawler.download`` call."""

    model_config = ConfigDict(frozen=True)

    collection_id: str
    total_recordings: int = 0
    unique_shows: int = 0
    downloaded: int = 0
    cached: int = 0
    failed: int = 0
    failed_identifiers: tuple[str, ...] = Field(default_factory=tuple)
    skipped_completed: bool = False
