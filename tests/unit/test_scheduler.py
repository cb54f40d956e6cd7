"""Unit tests for the cron-style ImportScheduler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.config.settings import Settings
from src.models.job import ImportJob, ImportResult, JobStatus
from src.pipeline.job_status_store import JobStatusStore
from src.pipeline.scheduler import ImportScheduler
from src.services.lock_service import LockService
from src.utils.errors import CircuitOpenError, ConfigurationError

_COLLECTIONS = {"Grateful Dead": "GratefulDead", "Phish": "phish"}


@pytest.fixture
def store(tmp_path: Path) -> JobStatusStore:
    return JobStatusStore(tmp_path / "jobs")


@pytest.fixture
def orchestrator() -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.import_by_collection = AsyncMock(
        side_effect=lambda artist, collection, limit=None: ImportResult(
            artist_name=artist, collection_id=collection
        )
    )
    return orchestrator


@pytest.fixture
def crawler() -> MagicMock:
    crawler = MagicMock()
    crawler.download = AsyncMock()
    crawler.refresh_stats = AsyncMock(return_value=3)
    return crawler


@pytest.fixture
def consumer() -> MagicMock:
    consumer = MagicMock()
    consumer.process = AsyncMock(side_effect=lambda job: job)
    return consumer


def _scheduler(
    orchestrator: MagicMock,
    crawler: MagicMock,
    consumer: MagicMock,
    lock_service: LockService,
    store: JobStatusStore,
    schedule: dict | None = None,
) -> ImportScheduler:
    return ImportScheduler(
        _COLLECTIONS,
        orchestrator,
        crawler,
        consumer,
        lock_service,
        store,
        schedule=schedule,
        job_retention_days=7,
        lock_stale_hours=24,
    )


# ======================================================================
# Scheduled imports
# ======================================================================


class TestImportAll:
    @pytest.mark.asyncio
    async def test_imports_every_artist(
        self, orchestrator, crawler, consumer, lock_service, store
    ) -> None:
        scheduler = _scheduler(
            orchestrator, crawler, consumer, lock_service, store,
            schedule={"import_limit": 50, "incremental": True},
        )

        results = await scheduler.import_all()

        assert set(results) == {"Grateful Dead", "Phish"}
        assert all(result is not None for result in results.values())
        orchestrator.import_by_collection.assert_any_await("Phish", "phish", limit=50)
        crawler.download.assert_any_await("GratefulDead", incremental=True)
        assert lock_service.held_tokens == []

    @pytest.mark.asyncio
    async def test_non_incremental_skips_crawl(
        self, orchestrator, crawler, consumer, lock_service, store
    ) -> None:
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)
        await scheduler.import_all(["Phish"])
        crawler.download.assert_not_awaited()
        orchestrator.import_by_collection.assert_awaited_once_with("Phish", "phish", limit=None)

    @pytest.mark.asyncio
    async def test_locked_artist_skipped(
        self, orchestrator, crawler, consumer, lock_service, store, settings: Settings
    ) -> None:
        other = LockService(settings.lock_dir)
        token = await other.acquire("import", "GratefulDead")
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)
        try:
            results = await scheduler.import_all()
        finally:
            other.release(token)

        assert results["Grateful Dead"] is None
        assert results["Phish"] is not None

    @pytest.mark.asyncio
    async def test_failed_artist_does_not_stop_others(
        self, orchestrator, crawler, consumer, lock_service, store
    ) -> None:
        orchestrator.import_by_collection.side_effect = [
            CircuitOpenError(retry_in=5),
            ImportResult(artist_name="Phish", collection_id="phish"),
        ]
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)

        results = await scheduler.import_all()

        assert results["Grateful Dead"] is None
        assert results["Phish"].collection_id == "phish"
        assert lock_service.held_tokens == []

    @pytest.mark.asyncio
    async def test_unknown_artist(
        self, orchestrator, crawler, consumer, lock_service, store
    ) -> None:
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)
        with pytest.raises(ConfigurationError):
            await scheduler.import_all(["Widespread Panic"])


# ======================================================================
# Queue draining, stats and cleanup
# ======================================================================


class TestProcessQueue:
    @pytest.mark.asyncio
    async def test_runs_up_to_max_jobs(
        self, orchestrator, crawler, consumer, lock_service, store
    ) -> None:
        for collection in ("a", "b", "c"):
            store.save(ImportJob.create("Grateful Dead", collection))
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)

        assert await scheduler.process_queue(max_jobs=2) == 2
        assert consumer.process.await_count == 2

    @pytest.mark.asyncio
    async def test_locked_collection_deferred(
        self, orchestrator, crawler, consumer, lock_service, store, settings: Settings
    ) -> None:
        store.save(ImportJob.create("Grateful Dead", "GratefulDead"))
        other = LockService(settings.lock_dir)
        token = await other.acquire("import", "GratefulDead")
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)
        try:
            assert await scheduler.process_queue() == 0
        finally:
            other.release(token)
        consumer.process.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_crashed_running_job_is_picked_up(
        self, orchestrator, crawler, consumer, lock_service, store
    ) -> None:
        job = ImportJob.create("Grateful Dead", "GratefulDead")
        job.status = JobStatus.RUNNING
        store.save(job)
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)

        assert await scheduler.process_queue() == 1

        (ran,), _ = consumer.process.await_args
        assert ran.job_id == job.job_id
        assert ran.status == JobStatus.QUEUED


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_refresh_stats(
        self, orchestrator, crawler, consumer, lock_service, store
    ) -> None:
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)
        assert await scheduler.refresh_stats() == {"Grateful Dead": 3, "Phish": 3}

    def test_cleanup(self, orchestrator, crawler, consumer, lock_service, store) -> None:
        job = ImportJob.create("Grateful Dead", "GratefulDead")
        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(tz=timezone.utc) - timedelta(days=10)
        store.save(job)
        scheduler = _scheduler(orchestrator, crawler, consumer, lock_service, store)

        assert scheduler.cleanup() == {"jobs_removed": 1, "locks_removed": 0}
