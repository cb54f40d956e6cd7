"""Publishes import jobs and status changes.

The publisher is the only writer of *new* jobs: it persists the job as
queued first and only then hands it to the worker pool, so a crash
between the two leaves a queued record that ``recover_queued`` picks up.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from src.models.job import ImportJob, JobStatus
from src.pipeline.job_status_store import JobStatusStore
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.pipeline.worker_pool import ImportWorkerPool


class ImportPublisher:
    """Create, cancel and re-label import jobs."""

    def __init__(
        self,
        status_store: JobStatusStore,
        worker_pool: ImportWorkerPool | None = None,
        tracker: ProgressTracker | None = None,
    ) -> None:
        self._store = status_store
        self._pool = worker_pool
        self._tracker = tracker
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def attach_pool(self, worker_pool: ImportWorkerPool | None) -> None:
        self._pool = worker_pool

    async def publish(
        self,
        artist_name: str,
        collection_id: str,
        limit: int | None = None,
        offset: int = 0,
        dry_run: bool = False,
    ) -> ImportJob:
        """Persist a new queued job and submit it to the worker pool, if any."""
        job = ImportJob.create(
            artist_name=artist_name,
            collection_id=collection_id,
            limit=limit,
            offset=offset,
            dry_run=dry_run,
        )
        self._store.save(job)
        self._logger.info(
            "import_job_published",
            job_id=job.job_id,
            artist=artist_name,
            collection=collection_id,
            dry_run=dry_run,
        )
        if self._tracker is not None:
            await self._tracker.update(job.job_id, JobStatus.QUEUED, message="Queued")
        if self._pool is not None:
            await self._pool.submit(job)
        return job

    async def publish_status_update(
        self,
        job_id: str,
        status: JobStatus,
        message: str | None = None,
    ) -> None:
        """Best-effort status change; failures are logged, never raised."""
        try:
            job = self._store.get(job_id)
            if job is None:
                self._logger.warning("status_update_unknown_job", job_id=job_id)
                return
            job.status = status
            if message is not None:
                job.message = message
            job = self._store.save(job)
            if self._tracker is not None:
                await self._tracker.update(
                    job_id,
                    job.status,
                    processed=job.processed_shows,
                    total=job.total_shows,
                    message=job.message or "",
                )
        except Exception as exc:
            self._logger.warning(
                "status_update_failed",
                job_id=job_id,
                status=status.value,
                error=str(exc),
            )

    async def cancel(self, job_id: str) -> bool:
        """Cancel a queued or running job. Returns ``False`` for anything else."""
        job = self._store.get(job_id)
        if job is None or not job.is_cancellable:
            return False

        job.status = JobStatus.CANCELLED
        job.cancelled_at = datetime.now(tz=timezone.utc)
        job.message = "Cancelled"
        self._store.save(job)
        self._logger.info("import_job_cancelled", job_id=job_id)
        if self._tracker is not None:
            await self._tracker.update(
                job_id,
                JobStatus.CANCELLED,
                processed=job.processed_shows,
                total=job.total_shows,
                message="Cancelled",
            )
        return True
