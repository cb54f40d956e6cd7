"""File-backed persistence for import jobs.

One JSON document per job under ``jobs/``, written with atomic replace so
the API, the CLI and worker processes can read a job at any moment without
seeing a half-written file.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog
from pydantic import ValidationError

from src.models.job import ImportJob, JobStatus, TERMINAL_STATUSES
from src.utils.atomic_io import read_json, write_json_atomic
from src.utils.logging import get_logger
from src.utils.text_normalizer import safe_filename

logger: structlog.BoundLogger = get_logger(__name__)


class JobStatusStore:
    """Read and write :class:`ImportJob` records in a directory."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, job_id: str) -> Path:
        return self._directory / f"{safe_filename(job_id)}.json"

    def get(self, job_id: str) -> ImportJob | None:
        """Return the job, or ``None`` when missing or unreadable."""
        data = read_json(self._path(job_id))
        if data is None:
            return None
        try:
            return ImportJob.model_validate(data)
        except ValidationError as exc:
            logger.warning("job_record_corrupt", job_id=job_id, error=str(exc))
            return None

    def save(self, job: ImportJob) -> ImportJob:
        """Persist *job* and return what was written.

        A job already persisted in a terminal state keeps that state: a
        write carrying a different status only updates the counters, and
        *job* is updated in place to reflect the persisted outcome.
        """
        persisted = self.get(job.job_id)
        if (
            persisted is not None
            and persisted.status in TERMINAL_STATUSES
            and job.status != persisted.status
        ):
            logger.info(
                "job_terminal_state_kept",
                job_id=job.job_id,
                persisted=persisted.status.value,
                attempted=job.status.value,
            )
            job.status = persisted.status
            job.cancelled_at = persisted.cancelled_at
            job.completed_at = persisted.completed_at
            job.error = persisted.error
            job.message = persisted.message

        job.updated_at = datetime.now(tz=timezone.utc)
        write_json_atomic(self._path(job.job_id), job.model_dump(mode="json"))
        return job

    def list(self, status: JobStatus | None = None, limit: int = 50) -> list[ImportJob]:
        """Jobs newest first, optionally filtered by *status*."""
        jobs = [job for job in self._iter_jobs() if status is None or job.status == status]
        jobs.sort(key=lambda job: job.queued_at, reverse=True)
        return jobs[:limit]

    def list_queued(self) -> list[ImportJob]:
        """Queued jobs oldest first, for re-submission after a restart."""
        jobs = [job for job in self._iter_jobs() if job.status == JobStatus.QUEUED]
        jobs.sort(key=lambda job: job.queued_at)
        return jobs

    def requeue_orphaned(self, is_active: Callable[[ImportJob], bool]) -> list[ImportJob]:
        """Move running jobs that nobody is executing back to queued.

        *is_active* reports whether some process still runs the job (for
        the pool: whether its collection lock is held).  Returns the jobs
        that were reset.
        """
        reset: list[ImportJob] = []
        for job in self._iter_jobs():
            if job.status != JobStatus.RUNNING or is_active(job):
                continue
            job.status = JobStatus.QUEUED
            job.message = "Recovered after interruption"
            job = self.save(job)
            if job.status == JobStatus.QUEUED:
                reset.append(job)
        if reset:
            logger.info("orphaned_jobs_requeued", count=len(reset))
        return reset

    def delete(self, job_id: str) -> bool:
        path = self._path(job_id)
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        return True

    def is_cancelled(self, job_id: str) -> bool:
        job = self.get(job_id)
        return job is not None and job.status == JobStatus.CANCELLED

    def cleanup_old_jobs(self, older_than_days: int = 7) -> int:
        """Delete terminal jobs that finished before the cutoff. Returns count."""
        cutoff = datetime.now(tz=timezone.utc) - timedelta(days=older_than_days)
        removed = 0
        for job in self._iter_jobs():
            if job.status not in TERMINAL_STATUSES:
                continue
            finished = job.completed_at or job.cancelled_at or job.updated_at or job.queued_at
            if finished < cutoff and self.delete(job.job_id):
                removed += 1
        if removed:
            logger.info("old_jobs_removed", removed=removed, older_than_days=older_than_days)
        return removed

    def _iter_jobs(self) -> list[ImportJob]:
        if not self._directory.exists():
            return []
        jobs: list[ImportJob] = []
        for path in sorted(self._directory.glob("*.json")):
            job = self.get(path.stem)
            if job is not None:
                jobs.append(job)
        return jobs
