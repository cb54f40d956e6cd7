"""End-to-end import flow: queue -> worker pool -> crawler -> matcher -> SQLite.

Only the archive.org client is faked; every other component is real and
persists under ``tmp_path``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from src.bootstrap import build_components, close_components, initialize_components
from src.config.artist_config import ArtistConfigLoader
from src.config.loader import load_config
from src.config.settings import Settings
from src.models.job import JobStatus
from src.pipeline.import_consumer import ImportConsumer
from src.pipeline.import_publisher import ImportPublisher
from src.pipeline.job_status_store import JobStatusStore
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.worker_pool import ImportWorkerPool
from src.providers.archive.archive_org_client import ArchiveOrgClient
from src.providers.catalog.sqlite_catalog_store import SQLiteCatalogStore
from src.providers.metadata.file_metadata_store import MetadataCache, ProgressStore
from src.providers.unmatched.sqlite_unmatched_store import SQLiteUnmatchedTrackStore
from src.services.import_orchestrator import ImportOrchestrator
from src.services.lock_service import LockService
from src.services.metadata_crawler import MetadataCrawler
from src.services.track_matcher import TrackMatcher
from tests.conftest import FakeArchiveClient

_ARTIST = "Grateful Dead"
_COLLECTION = "GratefulDead"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seeded_client(archive_client: FakeArchiveClient) -> FakeArchiveClient:
    archive_client.add_show(
        _COLLECTION, "gd1977-05-08.sbd.miller", date="1977-05-08", titles=["Dark Star", "Drums"]
    )
    archive_client.add_show(_COLLECTION, "gd1977-05-09.sbd.miller", date="1977-05-09")
    return archive_client


@pytest_asyncio.fixture
async def pipeline(
    settings: Settings,
    seeded_client: FakeArchiveClient,
    metadata_cache: MetadataCache,
    progress_store: ProgressStore,
    lock_service: LockService,
    artist_loader: ArtistConfigLoader,
    matcher: TrackMatcher,
) -> dict[str, Any]:
    """Wire the queue and import path around the fake client."""
    catalog_store = SQLiteCatalogStore(settings.catalog_db_path)
    unmatched_store = SQLiteUnmatchedTrackStore(settings.unmatched_db_path)
    await catalog_store.initialize()
    await unmatched_store.initialize()

    crawler = MetadataCrawler(
        seeded_client,
        metadata_cache,
        progress_store,
        lock_service=lock_service,
        api_delay_ms=0,
        rate_limit_backoff_seconds=0,
    )
    orchestrator = ImportOrchestrator(
        crawler=crawler,
        client=seeded_client,
        catalog_store=catalog_store,
        matcher=matcher,
        artist_loader=artist_loader,
        unmatched_store=unmatched_store,
        batch_size=1,
        batch_pause_ms=0,
    )
    status_store = JobStatusStore(settings.jobs_dir)
    tracker = ProgressTracker()
    consumer = ImportConsumer(orchestrator, status_store, tracker=tracker, progress_save_interval=1)
    worker_pool = ImportWorkerPool(consumer, lock_service, status_store, worker_count=1)
    publisher = ImportPublisher(status_store, worker_pool=worker_pool, tracker=tracker)

    worker_pool.start()
    yield {
        "catalog_store": catalog_store,
        "unmatched_store": unmatched_store,
        "crawler": crawler,
        "status_store": status_store,
        "tracker": tracker,
        "worker_pool": worker_pool,
        "publisher": publisher,
    }
    await worker_pool.stop()


# ---------------------------------------------------------------------------
# Queue to catalog
# ---------------------------------------------------------------------------


class TestQueuedImport:
    @pytest.mark.asyncio
    async def test_job_crawls_matches_and_stores(
        self, pipeline: dict[str, Any], seeded_client: FakeArchiveClient
    ) -> None:
        job = await pipeline["publisher"].publish(_ARTIST, _COLLECTION)
        await pipeline["worker_pool"].join()

        stored = pipeline["status_store"].get(job.job_id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.total_shows == 2
        assert stored.processed_shows == 2
        assert stored.tracks_created == 4
        assert stored.progress == 100.0

        # The empty cache triggered a crawl before importing.
        assert seeded_client.search_calls == [(_COLLECTION, None)]
        assert await pipeline["catalog_store"].count_items() == 4

        unmatched = await pipeline["unmatched_store"].list_unmatched(artist_key="grateful-dead")
        assert [record.raw_title for record in unmatched] == ["Drums"]

        snapshot = pipeline["tracker"].get_status(job.job_id)
        assert snapshot["status"] == "completed"

    @pytest.mark.asyncio
    async def test_second_run_writes_nothing_new(self, pipeline: dict[str, Any]) -> None:
        first = await pipeline["publisher"].publish(_ARTIST, _COLLECTION)
        await pipeline["worker_pool"].join()
        second = await pipeline["publisher"].publish(_ARTIST, _COLLECTION)
        await pipeline["worker_pool"].join()

        assert pipeline["status_store"].get(first.job_id).tracks_created == 4
        rerun = pipeline["status_store"].get(second.job_id)
        assert rerun.status == JobStatus.COMPLETED
        assert rerun.tracks_created == 0
        assert rerun.tracks_updated == 0
        assert rerun.tracks_skipped == 4
        assert await pipeline["catalog_store"].count_items() == 4

        # Repeat sightings bump the occurrence count rather than adding rows.
        unmatched = await pipeline["unmatched_store"].list_unmatched()
        assert len(unmatched) == 1
        assert unmatched[0].occurrences == 2

    @pytest.mark.asyncio
    async def test_dry_run_job_leaves_catalog_empty(self, pipeline: dict[str, Any]) -> None:
        await pipeline["crawler"].download(_COLLECTION)

        job = await pipeline["publisher"].publish(_ARTIST, _COLLECTION, dry_run=True)
        await pipeline["worker_pool"].join()

        stored = pipeline["status_store"].get(job.job_id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.tracks_created == 4
        assert await pipeline["catalog_store"].count_items() == 0
        assert await pipeline["unmatched_store"].list_unmatched() == []

    @pytest.mark.asyncio
    async def test_limit_and_offset_select_one_show(self, pipeline: dict[str, Any]) -> None:
        await pipeline["crawler"].download(_COLLECTION)

        job = await pipeline["publisher"].publish(_ARTIST, _COLLECTION, limit=1, offset=1)
        await pipeline["worker_pool"].join()

        stored = pipeline["status_store"].get(job.job_id)
        assert stored.total_shows == 1
        assert stored.tracks_created == 2
        assert await pipeline["catalog_store"].count_items() == 2


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_wires_every_component(self, settings: Settings, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text("artists:\n  Grateful Dead: GratefulDead\n", encoding="utf-8")
        app_config = load_config(str(config_path), settings=settings)

        components = build_components(settings, app_config)
        try:
            await initialize_components(components)

            assert components["collections"] == {"Grateful Dead": "GratefulDead"}
            assert isinstance(components["archive_client"], ArchiveOrgClient)
            assert isinstance(components["worker_pool"], ImportWorkerPool)
            assert await components["catalog_store"].count_items() == 0
            assert Path(settings.catalog_db_path).exists()
            assert Path(settings.unmatched_db_path).exists()
        finally:
            await close_components(components)

        assert components["http_client"].is_closed
