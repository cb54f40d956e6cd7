"""tapeVault domain models -- re-exports all public model classes.

The models are organized by domain concern:
    - artist.py    -- Artist definitions and canonical tracks (YAML-backed)
    - catalog.py   -- Shows, tracks, search candidates, stats
    - job.py       -- Import jobs (mutable, persisted) and import results
    - lock.py      -- Lock metadata
    - matching.py  -- Match results and unmatched-track review records
    - progress.py  -- Per-collection crawl progress and crawl summaries
"""

from __future__ import annotations

from src.models.artist import (
    AlbumDefinition,
    AlbumType,
    ArtistDefinition,
    CanonicalTrack,
    MatchingOverrides,
    TrackType,
)
from src.models.catalog import RecordingCandidate, Show, ShowStats, Track
from src.models.job import (
    ImportErrorRecord,
    ImportJob,
    ImportResult,
    JobStatus,
)
from src.models.lock import LockRecord
from src.models.matching import MatchResult, MatchType, UnmatchedTrack
from src.models.progress import CollectionProgress, CrawlStatus, CrawlSummary

__all__ = [
    "AlbumDefinition",
    "AlbumType",
    "ArtistDefinition",
    "CanonicalTrack",
    "CollectionProgress",
    "CrawlStatus",
    "CrawlSummary",
    "ImportErrorRecord",
    "ImportJob",
    "ImportResult",
    "JobStatus",
    "LockRecord",
    "MatchResult",
    "MatchType",
    "MatchingOverrides",
    "RecordingCandidate",
    "Show",
    "ShowStats",
    "Track",
    "TrackType",
    "UnmatchedTrack",
]
