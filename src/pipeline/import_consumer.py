"""Runs one import job to completion.

Job lifecycle::

    queued ──▶ running ──▶ completed
       │          ├──────▶ failed      (ArchiveImportError or unexpected error)
       └──────────┴──────▶ cancelled   (set by the publisher; seen here on the
                                        next progress callback)

Cancellation is checked before the job starts and again on every progress
callback, so a cancelled job stops within one show.  Only a queued job is
started; a worker shut down mid-run hands its job back as queued.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from src.models.job import ImportJob, ImportResult, JobStatus
from src.pipeline.job_status_store import JobStatusStore
from src.pipeline.progress_tracker import ProgressTracker
from src.services.import_orchestrator import ImportOrchestrator
from src.utils.errors import ArchiveImportError, JobCancelledError
from src.utils.logging import get_logger


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ImportConsumer:
    """Executes queued :class:`ImportJob` records via the orchestrator.

    Parameters
    ----------
    orchestrator:
        Performs the actual import.
    status_store:
        Job persistence.
    tracker:
        Optional progress observer.
    progress_save_interval:
        Shows between job-record writes (the last show is always written).
    """

    def __init__(
        self,
        orchestrator: ImportOrchestrator,
        status_store: JobStatusStore,
        tracker: ProgressTracker | None = None,
        progress_save_interval: int = 5,
    ) -> None:
        self._orchestrator = orchestrator
        self._store = status_store
        self._tracker = tracker or ProgressTracker()
        self._save_interval = max(1, progress_save_interval)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    async def process(self, job: ImportJob) -> ImportJob:
        """Run *job* and return its final persisted state."""
        current = self._store.get(job.job_id) or job
        if current.status != JobStatus.QUEUED:
            self._logger.info(
                "import_job_skipped",
                job_id=current.job_id,
                status=current.status.value,
            )
            return current

        current.status = JobStatus.RUNNING
        current.started_at = _utcnow()
        current.message = "Starting import"
        current = self._store.save(current)
        if current.status != JobStatus.RUNNING:
            return current
        await self._tracker.update(current.job_id, JobStatus.RUNNING, message="Starting import")

        log = self._logger.bind(job_id=current.job_id, collection=current.collection_id)
        log.info("import_job_started", artist=current.artist_name, dry_run=current.dry_run)

        async def _on_progress(total: int, processed: int, message: str) -> None:
            if self._store.is_cancelled(current.job_id):
                raise JobCancelledError(job_id=current.job_id)
            current.record_progress(total, processed, message)
            await self._tracker.update(
                current.job_id,
                JobStatus.RUNNING,
                processed=processed,
                total=total,
                message=message,
            )
            if processed % self._save_interval == 0 or processed == total:
                self._store.save(current)

        try:
            result = await self._orchestrator.import_by_collection(
                current.artist_name,
                current.collection_id,
                limit=current.limit,
                offset=current.offset,
                on_progress=_on_progress,
                dry_run=current.dry_run,
            )
        except JobCancelledError:
            final = self._store.get(current.job_id) or current
            log.info("import_job_cancelled", processed=current.processed_shows)
            await self._tracker.update(
                final.job_id,
                JobStatus.CANCELLED,
                processed=current.processed_shows,
                total=current.total_shows,
                message="Cancelled",
            )
            return final
        except asyncio.CancelledError:
            await self._interrupt(current)
            raise
        except ArchiveImportError as exc:
            log.warning("import_job_failed", kind=exc.kind.value, error=str(exc))
            return await self._fail(current, str(exc))
        except Exception as exc:
            log.exception("import_job_crashed", error=str(exc))
            return await self._fail(current, f"Unexpected error: {exc}")

        return await self._complete(current, result)

    async def _complete(self, job: ImportJob, result: ImportResult) -> ImportJob:
        job.apply_result(result)
        job.status = JobStatus.COMPLETED
        job.completed_at = _utcnow()
        job.message = (
            f"Imported {result.shows_processed} shows: {result.tracks_created} created, "
            f"{result.tracks_updated} updated, {result.tracks_skipped} skipped"
        )
        job = self._store.save(job)
        if job.status == JobStatus.COMPLETED:
            self._logger.info(
                "import_job_completed",
                job_id=job.job_id,
                shows=result.shows_processed,
                errors=result.error_count,
            )
        else:
            self._logger.info("import_job_outcome_kept", job_id=job.job_id, status=job.status.value)
        await self._tracker.update(
            job.job_id,
            job.status,
            processed=job.processed_shows,
            total=job.total_shows,
            message=job.message,
        )
        return job

    async def _fail(self, job: ImportJob, error: str) -> ImportJob:
        job.status = JobStatus.FAILED
        job.error = error
        job.message = "Import failed"
        job.completed_at = _utcnow()
        job = self._store.save(job)
        await self._tracker.update(
            job.job_id,
            job.status,
            processed=job.processed_shows,
            total=job.total_shows,
            message=error if job.status == JobStatus.FAILED else job.message,
        )
        return job

    async def _interrupt(self, job: ImportJob) -> None:
        """Hand a job cut off by worker shutdown back to the queue."""
        job.status = JobStatus.QUEUED
        job.message = "Interrupted; waiting to resume"
        job = self._store.save(job)
        self._logger.warning("import_job_interrupted", job_id=job.job_id, status=job.status.value)
        await self._tracker.update(
            job.job_id,
            job.status,
            processed=job.processed_shows,
            total=job.total_shows,
            message=job.message,
        )
