"""Abstract base class for the unmatched-track review queue."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.matching import UnmatchedTrack


class IUnmatchedTrackStore(ABC):
    """Contract for recording raw titles the matcher could not resolve.

    Repeated sightings of the same raw title (per artist, compared after
    normalization) increment ``occurrences`` instead of adding rows.
    """

    @abstractmethod
    async def record(
        self,
        artist_key: str,
        raw_title: str,
        suggested_key: str | None = None,
        confidence: float = 0.0,
    ) -> None:
        """Insert or bump the record for *raw_title*."""

    @abstractmethod
    async def list_unmatched(
        self,
        artist_key: str | None = None,
        limit: int = 100,
    ) -> list[UnmatchedTrack]:
        """Return records ordered by occurrence count, most frequent first."""
