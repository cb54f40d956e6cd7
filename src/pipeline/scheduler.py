"""Cron-style entry points: scheduled imports, queue draining and cleanup.

Every operation here is safe to run from overlapping cron invocations:
imports take the ``("import", collection_id)`` lock without waiting and
skip the artist when it is busy.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.models.job import ImportResult
from src.pipeline.import_consumer import ImportConsumer
from src.pipeline.job_status_store import JobStatusStore
from src.services.import_orchestrator import ImportOrchestrator
from src.services.lock_service import LockService
from src.services.metadata_crawler import MetadataCrawler
from src.utils.errors import ArchiveImportError, ConfigurationError, LockError
from src.utils.logging import get_logger


class ImportScheduler:
    """Runs scheduled work for every configured artist.

    Parameters
    ----------
    collections:
        ``artist name -> collection id`` (see ``artist_collection_mapping``).
    orchestrator, crawler, consumer:
        The import machinery.
    lock_service, status_store:
        Shared with the worker pool and API.
    schedule:
        The ``schedule`` section of ``config.yaml``: ``import_limit``
        (shows per artist per run) and ``incremental`` (crawl new items
        before importing).
    job_retention_days, lock_stale_hours:
        Thresholds for :meth:`cleanup`.
    """

    def __init__(
        self,
        collections: dict[str, str],
        orchestrator: ImportOrchestrator,
        crawler: MetadataCrawler,
        consumer: ImportConsumer,
        lock_service: LockService,
        status_store: JobStatusStore,
        schedule: dict[str, Any] | None = None,
        job_retention_days: int = 7,
        lock_stale_hours: float = 24,
    ) -> None:
        self._collections = collections
        self._orchestrator = orchestrator
        self._crawler = crawler
        self._consumer = consumer
        self._locks = lock_service
        self._store = status_store
        self._schedule = schedule or {}
        self._job_retention_days = job_retention_days
        self._lock_stale_hours = lock_stale_hours
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def _select(self, artists: list[str] | None) -> dict[str, str]:
        if not artists:
            return dict(self._collections)
        selected: dict[str, str] = {}
        for name in artists:
            if name not in self._collections:
                raise ConfigurationError(f"No archive collection configured for artist '{name}'")
            selected[name] = self._collections[name]
        return selected

    async def import_all(self, artists: list[str] | None = None) -> dict[str, ImportResult | None]:
        """Import every configured artist (or just *artists*).

        Returns a result per artist; ``None`` marks an artist that was
        skipped (lock held) or whose run failed.
        """
        limit = self._schedule.get("import_limit")
        incremental = bool(self._schedule.get("incremental", False))
        results: dict[str, ImportResult | None] = {}

        for artist_name, collection_id in self._select(artists).items():
            try:
                token = await self._locks.acquire("import", collection_id, timeout_seconds=0)
            except LockError:
                self._logger.info("scheduled_import_skipped_locked", artist=artist_name)
                results[artist_name] = None
                continue

            try:
                if incremental:
                    await self._crawler.download(collection_id, incremental=True)
                results[artist_name] = await self._orchestrator.import_by_collection(
                    artist_name,
                    collection_id,
                    limit=limit,
                )
            except ArchiveImportError as exc:
                self._logger.error(
                    "scheduled_import_failed",
                    artist=artist_name,
                    kind=exc.kind.value,
                    error=str(exc),
                )
                results[artist_name] = None
            finally:
                self._locks.release(token)
        return results

    async def process_queue(self, max_jobs: int = 10) -> int:
        """Run up to *max_jobs* queued jobs in this process. Returns jobs run.

        Running jobs left behind by a crashed worker (no one holds their
        collection lock) are queued again first.
        """
        self._store.requeue_orphaned(
            lambda job: self._locks.is_locked("import", job.collection_id)
        )
        processed = 0
        for job in self._store.list_queued():
            if processed >= max_jobs:
                break
            try:
                token = await self._locks.acquire("import", job.collection_id, timeout_seconds=0)
            except LockError:
                self._logger.info("queued_job_deferred", job_id=job.job_id)
                continue
            try:
                await self._consumer.process(job)
            finally:
                self._locks.release(token)
            processed += 1
        return processed

    def cleanup(self) -> dict[str, int]:
        """Purge old finished jobs and stale lock files."""
        jobs_removed = self._store.cleanup_old_jobs(self._job_retention_days)
        locks_removed = self._locks.cleanup_stale_locks(self._lock_stale_hours)
        self._logger.info("cleanup_complete", jobs_removed=jobs_removed, locks_removed=locks_removed)
        return {"jobs_removed": jobs_removed, "locks_removed": locks_removed}

    async def refresh_stats(self, artists: list[str] | None = None) -> dict[str, int]:
        """Refresh cached rating/review/download stats per artist."""
        updated: dict[str, int] = {}
        for artist_name, collection_id in self._select(artists).items():
            updated[artist_name] = await self._crawler.refresh_stats(collection_id)
        return updated
