"""Abstract base class for the external archive API client.

The crawler and importer talk to archive.org exclusively through this
contract, so tests can substitute a fake and the resilience layer (retry,
throttle, response cache, circuit breaker) stays in one adapter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from src.models.catalog import RecordingCandidate, Show, ShowStats

# (fetched_so_far, num_found)
PageCallback = Callable[[int, int], Awaitable[None] | None]

MAX_BATCH_STATS = 100


class IArchiveClient(ABC):
    """Contract for the archive API facade.

    Every method may raise ``ArchiveApiError`` (after retries are
    exhausted), ``RateLimitError`` (429) or ``CircuitOpenError`` (no
    network attempt made).
    """

    @abstractmethod
    async def list_collection_identifiers(
        self,
        collection_id: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[str]:
        """Return item identifiers in *collection_id* in search order.

        Parameters
        ----------
        collection_id:
            Archive collection, e.g. ``"GratefulDead"``.
        limit:
            Maximum identifiers to return; ``None`` for all.
        offset:
            Number of leading identifiers to skip.
        """

    @abstractmethod
    async def search_collection(
        self,
        collection_id: str,
        since: str | None = None,
        on_page: PageCallback | None = None,
    ) -> list[RecordingCandidate]:
        """Return every recording in the collection with its quality fields.

        Parameters
        ----------
        collection_id:
            Archive collection to enumerate.
        since:
            ``YYYY-MM-DD``; when set only items published on or after that
            date are returned (incremental crawl).
        on_page:
            Called after each page with ``(fetched_so_far, num_found)``.
        """

    @abstractmethod
    async def fetch_metadata(self, identifier: str) -> dict[str, Any]:
        """Return the raw metadata document for *identifier*."""

    @abstractmethod
    async def fetch_show_metadata(self, identifier: str) -> Show:
        """Return *identifier*'s metadata parsed into a :class:`Show`."""

    @abstractmethod
    async def fetch_batch_stats(self, identifiers: list[str]) -> dict[str, ShowStats]:
        """Return rating/review/download stats for at most 100 identifiers.

        Raises
        ------
        ValueError
            If more than ``MAX_BATCH_STATS`` identifiers are passed.
        """

    @abstractmethod
    async def test_connectivity(self) -> bool:
        """Return ``True`` if the archive answers a trivial search."""

    @abstractmethod
    async def collection_item_count(self, collection_id: str) -> int:
        """Return the number of items the archive reports for the collection."""
