"""Unit tests for MetadataCrawler and best-recording selection."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.config.settings import Settings
from src.models.catalog import RecordingCandidate, ShowStats
from src.models.progress import CrawlStatus
from src.providers.metadata.file_metadata_store import MetadataCache, ProgressStore
from src.services.lock_service import LockService
from src.services.metadata_crawler import MetadataCrawler, select_best_recordings
from src.utils.errors import ArchiveApiError, CircuitOpenError, LockError, RateLimitError
from tests.conftest import FakeArchiveClient, make_metadata

_COLLECTION = "GratefulDead"


def _candidate(identifier: str, date: str | None = "1977-05-08", **kwargs) -> RecordingCandidate:
    return RecordingCandidate(identifier=identifier, date=date, **kwargs)


def _add_shows(client: FakeArchiveClient, count: int) -> list[str]:
    identifiers = []
    for day in range(1, count + 1):
        identifier = f"gd1977-05-{day:02d}.sbd.miller"
        client.add_show(_COLLECTION, identifier, date=f"1977-05-{day:02d}")
        identifiers.append(identifier)
    return identifiers


@pytest.fixture
def crawler(
    archive_client: FakeArchiveClient,
    metadata_cache: MetadataCache,
    progress_store: ProgressStore,
) -> MetadataCrawler:
    return MetadataCrawler(
        archive_client,
        metadata_cache,
        progress_store,
        api_delay_ms=0,
        progress_save_interval=2,
        rate_limit_backoff_seconds=0,
    )


# ======================================================================
# Best recording selection
# ======================================================================


class TestSelectBestRecordings:
    def test_soundboard_beats_higher_rating(self) -> None:
        winners = select_best_recordings(
            [
                _candidate("gd77-05-08.aud.fan", avg_rating=5.0, num_reviews=90),
                _candidate("gd77-05-08.sbd.hicks", avg_rating=3.0),
            ]
        )
        assert [w.identifier for w in winners] == ["gd77-05-08.sbd.hicks"]

    def test_rating_then_reviews_then_downloads(self) -> None:
        winners = select_best_recordings(
            [
                _candidate("a", avg_rating=4.0, num_reviews=5, downloads=900),
                _candidate("b", avg_rating=4.0, num_reviews=5, downloads=1000),
                _candidate("c", avg_rating=4.0, num_reviews=4, downloads=5000),
                _candidate("d", avg_rating=3.9, num_reviews=50, downloads=9000),
            ]
        )
        assert winners[0].identifier == "b"

    def test_tie_keeps_first_seen(self) -> None:
        winners = select_best_recordings([_candidate("first"), _candidate("second")])
        assert winners[0].identifier == "first"

    def test_dates_compared_on_day_prefix(self) -> None:
        winners = select_best_recordings(
            [
                _candidate("early", date="1977-05-08T00:00:00Z", avg_rating=3.0),
                _candidate("late", date="1977-05-08", avg_rating=4.0),
            ]
        )
        assert [w.identifier for w in winners] == ["late"]

    def test_undated_dropped_and_first_appearance_order(self) -> None:
        winners = select_best_recordings(
            [
                _candidate("may-9", date="1977-05-09"),
                _candidate("undated", date=None),
                _candidate("may-8", date="1977-05-08"),
                _candidate("may-9-better", date="1977-05-09", avg_rating=5.0),
            ]
        )
        assert [w.identifier for w in winners] == ["may-9-better", "may-8"]

    def test_empty(self) -> None:
        assert select_best_recordings([]) == []


# ======================================================================
# Crawling
# ======================================================================


class TestDownload:
    @pytest.mark.asyncio
    async def test_full_crawl_caches_one_show_per_date(
        self,
        crawler: MetadataCrawler,
        archive_client: FakeArchiveClient,
        metadata_cache: MetadataCache,
    ) -> None:
        _add_shows(archive_client, 2)
        archive_client.add_show(_COLLECTION, "gd1977-05-01.aud.fan", date="1977-05-01")

        summary = await crawler.download(_COLLECTION)

        assert summary.total_recordings == 3
        assert summary.unique_shows == 2
        assert summary.downloaded == 2
        assert not metadata_cache.contains("gd1977-05-01.aud.fan")
        progress = crawler.get_progress(_COLLECTION)
        assert progress is not None
        assert progress.status == CrawlStatus.COMPLETED
        assert progress.last_full_sync is not None
        assert crawler.get_downloaded_identifiers(_COLLECTION) == [
            "gd1977-05-01.sbd.miller",
            "gd1977-05-02.sbd.miller",
        ]

    @pytest.mark.asyncio
    async def test_completed_collection_is_skipped(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        _add_shows(archive_client, 2)
        await crawler.download(_COLLECTION)
        archive_client.fetch_calls.clear()

        summary = await crawler.download(_COLLECTION)

        assert summary.skipped_completed
        assert summary.cached == 2
        assert archive_client.fetch_calls == []

    @pytest.mark.asyncio
    async def test_force_refetches(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        _add_shows(archive_client, 2)
        await crawler.download(_COLLECTION)
        archive_client.fetch_calls.clear()

        summary = await crawler.download(_COLLECTION, force=True)

        assert summary.downloaded == 2
        assert len(archive_client.fetch_calls) == 2

    @pytest.mark.asyncio
    async def test_already_cached_shows_not_fetched(
        self,
        crawler: MetadataCrawler,
        archive_client: FakeArchiveClient,
        metadata_cache: MetadataCache,
    ) -> None:
        identifiers = _add_shows(archive_client, 3)
        metadata_cache.put(identifiers[0], make_metadata(identifiers[0]))

        summary = await crawler.download(_COLLECTION)

        assert summary.cached == 1
        assert summary.downloaded == 2
        assert identifiers[0] not in archive_client.fetch_calls

    @pytest.mark.asyncio
    async def test_limited_crawl_resumes(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        identifiers = _add_shows(archive_client, 10)

        first = await crawler.download(_COLLECTION, limit=4)

        assert first.downloaded == 4
        progress = crawler.get_progress(_COLLECTION)
        assert progress is not None
        assert progress.status == CrawlStatus.IN_PROGRESS

        archive_client.fetch_calls.clear()
        second = await crawler.download(_COLLECTION)

        assert second.cached == 4
        assert second.downloaded == 6
        assert archive_client.fetch_calls == identifiers[4:]
        assert crawler.get_progress(_COLLECTION).status == CrawlStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_progress_callback(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        identifiers = _add_shows(archive_client, 3)
        calls: list[tuple[int, int, str]] = []

        async def _on_progress(current: int, total: int, identifier: str) -> None:
            calls.append((current, total, identifier))

        await crawler.download(_COLLECTION, on_progress=_on_progress)

        assert calls == [(n, 3, identifier) for n, identifier in enumerate(identifiers, start=1)]


class TestDownloadFailures:
    @pytest.mark.asyncio
    async def test_item_failure_recorded_and_crawl_continues(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        identifiers = _add_shows(archive_client, 3)
        archive_client.failures[identifiers[1]] = ArchiveApiError("HTTP 500", status_code=500)

        summary = await crawler.download(_COLLECTION)

        assert summary.downloaded == 2
        assert summary.failed_identifiers == (identifiers[1],)
        progress = crawler.get_progress(_COLLECTION)
        assert progress.failed == {identifiers[1]}
        assert progress.status == CrawlStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_retry_failed(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        identifiers = _add_shows(archive_client, 3)
        archive_client.failures[identifiers[0]] = ArchiveApiError("HTTP 500", status_code=500)
        archive_client.failures[identifiers[2]] = ArchiveApiError("HTTP 500", status_code=500)
        await crawler.download(_COLLECTION)
        del archive_client.failures[identifiers[0]]

        result = await crawler.retry_failed(_COLLECTION)

        assert result == {"downloaded": 1, "still_failed": 1}
        progress = crawler.get_progress(_COLLECTION)
        assert identifiers[0] in progress.downloaded
        assert progress.failed == {identifiers[2]}

    @pytest.mark.asyncio
    async def test_retry_failed_without_progress(self, crawler: MetadataCrawler) -> None:
        assert await crawler.retry_failed("nothing") == {"downloaded": 0, "still_failed": 0}

    @pytest.mark.asyncio
    async def test_all_failures_mark_crawl_failed(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        for identifier in _add_shows(archive_client, 2):
            archive_client.failures[identifier] = ArchiveApiError("HTTP 404", status_code=404)

        summary = await crawler.download(_COLLECTION)

        assert summary.downloaded == 0
        assert summary.failed == 2
        assert crawler.get_progress(_COLLECTION).status == CrawlStatus.FAILED

    @pytest.mark.asyncio
    async def test_rate_limit_waits_and_retries_once(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        (identifier,) = _add_shows(archive_client, 1)
        archive_client.fetch_metadata = AsyncMock(
            side_effect=[RateLimitError(retry_after=30), make_metadata(identifier)]
        )

        summary = await crawler.download(_COLLECTION)

        assert summary.downloaded == 1
        assert archive_client.fetch_metadata.await_count == 2

    @pytest.mark.asyncio
    async def test_second_rate_limit_fails_item(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        (identifier,) = _add_shows(archive_client, 1)
        archive_client.failures[identifier] = RateLimitError(retry_after=1)

        summary = await crawler.download(_COLLECTION)

        assert summary.failed_identifiers == (identifier,)
        assert archive_client.fetch_calls == [identifier, identifier]

    @pytest.mark.asyncio
    async def test_open_circuit_aborts_with_progress_saved(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        identifiers = _add_shows(archive_client, 3)
        archive_client.failures[identifiers[1]] = CircuitOpenError(retry_in=30)

        with pytest.raises(CircuitOpenError):
            await crawler.download(_COLLECTION)

        progress = crawler.get_progress(_COLLECTION)
        assert progress is not None
        assert progress.downloaded == {identifiers[0]}
        assert progress.status == CrawlStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere(
        self,
        archive_client: FakeArchiveClient,
        metadata_cache: MetadataCache,
        progress_store: ProgressStore,
        lock_service: LockService,
        settings: Settings,
    ) -> None:
        other = LockService(settings.lock_dir)
        token = await other.acquire("download", _COLLECTION)
        crawler = MetadataCrawler(
            archive_client, metadata_cache, progress_store, lock_service=lock_service, api_delay_ms=0
        )
        try:
            with pytest.raises(LockError):
                await crawler.download(_COLLECTION)
        finally:
            other.release(token)

        assert archive_client.search_calls == []


# ======================================================================
# Incremental sync and stats
# ======================================================================


class TestIncremental:
    @pytest.mark.asyncio
    async def test_incremental_uses_last_sync_date(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        _add_shows(archive_client, 1)
        await crawler.download(_COLLECTION)
        today = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")

        await crawler.download(_COLLECTION, incremental=True)

        assert archive_client.search_calls[-1] == (_COLLECTION, today)
        progress = crawler.get_progress(_COLLECTION)
        assert progress.last_incremental_sync is not None
        assert progress.unique_shows == 1

    @pytest.mark.asyncio
    async def test_incremental_without_history_searches_everything(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        await crawler.download(_COLLECTION, incremental=True)
        assert archive_client.search_calls == [(_COLLECTION, None)]

    @pytest.mark.asyncio
    async def test_explicit_since(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        await crawler.download(_COLLECTION, incremental=True, since="2024-01-01")
        assert archive_client.search_calls == [(_COLLECTION, "2024-01-01")]


class TestRefreshStats:
    @pytest.mark.asyncio
    async def test_refresh_stats_rewrites_cached_shows(
        self, crawler: MetadataCrawler, archive_client: FakeArchiveClient
    ) -> None:
        identifiers = _add_shows(archive_client, 2)
        await crawler.download(_COLLECTION)
        archive_client.stats[identifiers[0]] = ShowStats(
            avg_rating=4.8, num_reviews=44, downloads=25000
        )

        updated = await crawler.refresh_stats(_COLLECTION)

        assert updated == 1
        show = crawler.load_show(identifiers[0])
        assert show.avg_rating == 4.8
        assert show.downloads == 25000
        assert crawler.load_show(identifiers[1]).num_reviews == 2


class TestLoadShow:
    def test_missing(self, crawler: MetadataCrawler) -> None:
        assert crawler.load_show("missing") is None

    def test_unusable_cached_document(
        self, crawler: MetadataCrawler, metadata_cache: MetadataCache
    ) -> None:
        metadata_cache.put("broken", {"files": []})
        assert crawler.is_cached("broken")
        assert crawler.load_show("broken") is None
