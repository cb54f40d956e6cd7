"""Resumable metadata crawler for archive collections.

# ─── HOW A CRAWL WORKS ─────────────────────────────────────────────────
#
#   1. Search the collection (paginated) for every recording with its
#      quality fields: identifier, date, avg_rating, num_reviews, downloads.
#   2. Group recordings by show date and keep the best one per date:
#        soundboard > higher rating > more reviews > more downloads,
#      ties going to whichever the search returned first.
#   3. Skip winners whose metadata is already cached (unless ``force``).
#   4. Download the rest in search order, writing each document to the
#      metadata cache and recording it in the collection's progress file.
#   5. Persist progress every ``progress_save_interval`` downloads and on
#      the way out (including when interrupted), so a re-run picks up
#      where the last one stopped.
#
# Incremental mode narrows step 1 to items published since the last full
# or incremental sync.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog

from src.interfaces.archive_client import MAX_BATCH_STATS, IArchiveClient
from src.models.catalog import RecordingCandidate, Show
from src.models.progress import CollectionProgress, CrawlStatus, CrawlSummary
from src.providers.archive.metadata_parser import parse_show
from src.providers.metadata.file_metadata_store import MetadataCache, ProgressStore
from src.services.lock_service import LockService
from src.utils.concurrency import invoke_callback
from src.utils.errors import ArchiveApiError, RateLimitError
from src.utils.logging import get_logger

# (current, total, identifier)
CrawlProgressCallback = Callable[[int, int, str], Awaitable[None] | None]


def select_best_recordings(candidates: list[RecordingCandidate]) -> list[RecordingCandidate]:
    """Keep the best recording per show date.

    Dates are compared on their ``YYYY-MM-DD`` prefix; candidates with no
    usable date are dropped.  The result is ordered by each date's first
    appearance in *candidates*.
    """
    by_date: dict[str, list[RecordingCandidate]] = {}
    for candidate in candidates:
        show_date = candidate.show_date
        if show_date:
            by_date.setdefault(show_date, []).append(candidate)

    winners: list[RecordingCandidate] = []
    for group in by_date.values():
        # sorted() is stable, so equal keys keep first-seen order.
        ranked = sorted(
            group,
            key=lambda c: (not c.is_soundboard, -c.avg_rating, -c.num_reviews, -c.downloads),
        )
        winners.append(ranked[0])
    return winners


class MetadataCrawler:
    """Enumerate, select and cache show metadata for a collection.

    Parameters
    ----------
    client:
        Archive API client.
    metadata_cache:
        Where raw metadata documents are stored.
    progress_store:
        Where per-collection progress is stored.
    lock_service:
        Optional; when given, ``download`` holds the
        ``("download", collection_id)`` lock for its duration.
    audio_format:
        Track file extension used when parsing cached shows.
    api_delay_ms:
        Extra pause between downloads on top of the client's throttle.
    progress_save_interval:
        Downloads between progress writes.
    rate_limit_backoff_seconds:
        Upper bound on how long to honour a 429's ``retry_after``.
    stats_refresh_batch:
        Identifiers per ``fetch_batch_stats`` call (at most 100).
    """

    def __init__(
        self,
        client: IArchiveClient,
        metadata_cache: MetadataCache,
        progress_store: ProgressStore,
        lock_service: LockService | None = None,
        audio_format: str = "flac",
        api_delay_ms: int = 750,
        progress_save_interval: int = 10,
        rate_limit_backoff_seconds: float = 60.0,
        stats_refresh_batch: int = MAX_BATCH_STATS,
    ) -> None:
        self._client = client
        self._metadata = metadata_cache
        self._progress = progress_store
        self._locks = lock_service
        self._audio_format = audio_format
        self._api_delay = api_delay_ms / 1000.0
        self._save_interval = max(1, progress_save_interval)
        self._rate_limit_backoff = rate_limit_backoff_seconds
        self._stats_batch = max(1, min(stats_refresh_batch, MAX_BATCH_STATS))
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Crawling
    # ------------------------------------------------------------------

    async def download(
        self,
        collection_id: str,
        limit: int | None = None,
        force: bool = False,
        incremental: bool = False,
        since: str | None = None,
        on_progress: CrawlProgressCallback | None = None,
    ) -> CrawlSummary:
        """Crawl *collection_id* and cache the best recording per date.

        Parameters
        ----------
        collection_id:
            Archive collection to crawl.
        limit:
            Download at most this many new shows in this run.
        force:
            Re-download shows that are already cached.
        incremental:
            Only consider items published since the last sync.
        since:
            Explicit ``YYYY-MM-DD`` lower bound for incremental mode.
        on_progress:
            Called after each download with ``(current, total, identifier)``.
            May raise to interrupt the crawl; progress is saved first.

        Raises
        ------
        CircuitOpenError
            When the archive circuit opens mid-crawl.
        LockError
            When another process is already crawling this collection.
        """
        async with AsyncExitStack() as stack:
            if self._locks is not None:
                await stack.enter_async_context(self._locks.hold("download", collection_id))
            return await self._download(collection_id, limit, force, incremental, since, on_progress)

    async def _download(
        self,
        collection_id: str,
        limit: int | None,
        force: bool,
        incremental: bool,
        since: str | None,
        on_progress: CrawlProgressCallback | None,
    ) -> CrawlSummary:
        progress = self._progress.load(collection_id)

        if (
            progress is not None
            and progress.status == CrawlStatus.COMPLETED
            and not force
            and not incremental
        ):
            self._logger.info("crawl_already_completed", collection=collection_id)
            return CrawlSummary(
                collection_id=collection_id,
                total_recordings=progress.total_recordings,
                unique_shows=progress.unique_shows,
                cached=len(progress.downloaded),
                failed=len(progress.failed),
                failed_identifiers=tuple(sorted(progress.failed)),
                skipped_completed=True,
            )

        if progress is None:
            progress = CollectionProgress(collection_id=collection_id)
        progress.status = CrawlStatus.IN_PROGRESS
        progress.started_at = datetime.now(tz=timezone.utc)

        if incremental and since is None:
            last_sync = progress.last_full_sync or progress.last_incremental_sync
            since = last_sync.strftime("%Y-%m-%d") if last_sync else None

        candidates = await self._client.search_collection(collection_id, since=since)
        winners = select_best_recordings(candidates)
        progress.total_recordings = len(candidates) if not incremental else progress.total_recordings
        progress.unique_shows = len(winners) if not incremental else progress.unique_shows

        cached: list[str] = []
        to_download: list[str] = []
        for winner in winners:
            if not force and self._metadata.contains(winner.identifier):
                cached.append(winner.identifier)
                progress.downloaded.add(winner.identifier)
            else:
                to_download.append(winner.identifier)

        pending = len(to_download)
        if limit is not None:
            to_download = to_download[:limit]

        self._logger.info(
            "crawl_started",
            collection=collection_id,
            recordings=len(candidates),
            unique_shows=len(winners),
            cached=len(cached),
            to_download=len(to_download),
            incremental=incremental,
            since=since,
        )

        downloaded = 0
        failed: list[str] = []
        try:
            for position, identifier in enumerate(to_download, start=1):
                if position > 1 and self._api_delay:
                    await asyncio.sleep(self._api_delay)

                if await self._download_one(identifier, progress):
                    downloaded += 1
                else:
                    failed.append(identifier)

                if position % self._save_interval == 0:
                    await self._progress.asave(progress)
                await invoke_callback(on_progress, position, len(to_download), identifier)
        finally:
            # Interrupted runs still record what they finished.
            await self._progress.asave(progress)

        now = datetime.now(tz=timezone.utc)
        if downloaded == 0 and failed:
            progress.status = CrawlStatus.FAILED
        elif pending > len(to_download):
            # A limit left shows for the next run.
            progress.status = CrawlStatus.IN_PROGRESS
        else:
            progress.status = CrawlStatus.COMPLETED
            progress.completed_at = now
            if incremental:
                progress.last_incremental_sync = now
            else:
                progress.last_full_sync = now
        await self._progress.asave(progress)

        summary = CrawlSummary(
            collection_id=collection_id,
            total_recordings=len(candidates),
            unique_shows=len(winners),
            downloaded=downloaded,
            cached=len(cached),
            failed=len(failed),
            failed_identifiers=tuple(failed),
        )
        self._logger.info(
            "crawl_complete",
            collection=collection_id,
            downloaded=downloaded,
            cached=len(cached),
            failed=len(failed),
            status=progress.status.value,
        )
        return summary

    async def _download_one(self, identifier: str, progress: CollectionProgress) -> bool:
        """Fetch and cache one identifier; ``False`` on a per-item failure."""
        for attempt in (1, 2):
            try:
                metadata = await self._client.fetch_metadata(identifier)
            except RateLimitError as exc:
                if attempt == 2:
                    progress.mark_failed(identifier)
                    self._logger.warning("crawl_rate_limited_twice", identifier=identifier)
                    return False
                wait = min(exc.retry_after, self._rate_limit_backoff)
                self._logger.warning("crawl_rate_limited", identifier=identifier, wait=wait)
                await asyncio.sleep(wait)
                continue
            except ArchiveApiError as exc:
                progress.mark_failed(identifier)
                self._logger.warning(
                    "crawl_item_failed",
                    identifier=identifier,
                    status=exc.status_code,
                    error=exc.message,
                )
                return False

            await self._metadata.aput(identifier, metadata)
            progress.mark_downloaded(identifier)
            return True
        return False

    async def retry_failed(self, collection_id: str) -> dict[str, int]:
        """Re-attempt every identifier recorded as failed for the collection."""
        progress = self._progress.load(collection_id)
        if progress is None or not progress.failed:
            return {"downloaded": 0, "still_failed": 0}

        downloaded = 0
        for position, identifier in enumerate(sorted(progress.failed), start=1):
            if position > 1 and self._api_delay:
                await asyncio.sleep(self._api_delay)
            if await self._download_one(identifier, progress):
                downloaded += 1
        await self._progress.asave(progress)

        self._logger.info(
            "crawl_retry_complete",
            collection=collection_id,
            downloaded=downloaded,
            still_failed=len(progress.failed),
        )
        return {"downloaded": downloaded, "still_failed": len(progress.failed)}

    async def refresh_stats(self, collection_id: str) -> int:
        """Rewrite cached shows' rating/review/download stats. Returns shows updated."""
        identifiers = self.get_downloaded_identifiers(collection_id)
        updated = 0
        for start in range(0, len(identifiers), self._stats_batch):
            chunk = identifiers[start : start + self._stats_batch]
            stats = await self._client.fetch_batch_stats(chunk)
            for identifier, show_stats in stats.items():
                metadata = self._metadata.get(identifier)
                if metadata is None:
                    continue
                metadata["stats"] = show_stats.model_dump()
                await self._metadata.aput(identifier, metadata)
                updated += 1
        self._logger.info("stats_refreshed", collection=collection_id, updated=updated)
        return updated

    # ------------------------------------------------------------------
    # Cache inspection
    # ------------------------------------------------------------------

    def get_progress(self, collection_id: str) -> CollectionProgress | None:
        return self._progress.load(collection_id)

    def get_cached_metadata(self, identifier: str) -> dict[str, Any] | None:
        return self._metadata.get(identifier)

    def is_cached(self, identifier: str) -> bool:
        return self._metadata.contains(identifier)

    def get_downloaded_identifiers(self, collection_id: str) -> list[str]:
        progress = self._progress.load(collection_id)
        return sorted(progress.downloaded) if progress else []

    def load_show(self, identifier: str) -> Show | None:
        """Parse a cached show; ``None`` if missing or unusable."""
        metadata = self._metadata.get(identifier)
        if metadata is None:
            return None
        try:
            return parse_show(identifier, metadata, self._audio_format)
        except ArchiveApiError as exc:
            self._logger.warning("cached_show_unusable", identifier=identifier, error=exc.message)
            return None
