"""Import job progress tracking with callback-based listener notification.

Keeps the latest snapshot for each import job and broadcasts updates to
registered listener callbacks.  Listeners are keyed by job ID so several
workers can report at once without cross-talk; a listener registered for
``"*"`` hears every job.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
#   ImportConsumer ──update()──→ ProgressTracker ──callback()──→ API / CLI
#                                                 ──callback()──→ (any other listener)
#
#   1. The consumer's progress callback calls tracker.update(job_id, ...)
#      once per show, plus once on each status transition.
#   2. The tracker stores the snapshot and calls the job's listeners,
#      then the wildcard listeners.
#   3. A listener that raises is logged and skipped; the import goes on.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog

from src.models.job import JobStatus
from src.utils.concurrency import invoke_callback
from src.utils.logging import get_logger

ALL_JOBS = "*"


@dataclass
class _JobSnapshot:
    """Latest known state of one job. Internal only, never persisted."""

    status: JobStatus = JobStatus.QUEUED
    processed: int = 0
    total: int = 0
    progress: float = 0.0
    message: str = ""


class ProgressTracker:
    """Tracks and broadcasts import progress via callbacks.

    Listeners are async or sync callables accepting
    ``(job_id, status, progress, message)``.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, _JobSnapshot] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        job_id: str,
        status: JobStatus,
        processed: int = 0,
        total: int = 0,
        message: str = "",
    ) -> None:
        """Record a progress update and notify listeners.

        Parameters
        ----------
        job_id:
            The job being reported on.
        status:
            Current job status.
        processed:
            Shows processed so far.
        total:
            Shows in the run (0 when not yet known).
        message:
            Human-readable status line.
        """
        progress = round(min(100.0, processed / total * 100), 1) if total else 0.0
        if status == JobStatus.COMPLETED:
            progress = 100.0

        self._snapshots[job_id] = _JobSnapshot(
            status=status,
            processed=processed,
            total=total,
            progress=progress,
            message=message,
        )

        self._logger.debug(
            "job_progress_update",
            job_id=job_id,
            status=status.value,
            progress=progress,
            message=message,
        )

        await self._notify_listeners(job_id, status, progress, message)

    def register_listener(self, job_id: str, callback: Callable) -> None:
        """Register *callback* for one job, or for every job with ``"*"``."""
        listeners = self._listeners.setdefault(job_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                job_id=job_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, job_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(job_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                job_id=job_id,
                remaining_listeners=len(listeners),
            )

    def get_status(self, job_id: str) -> dict | None:
        """Latest snapshot for *job_id* as a plain dict, or ``None`` if unseen.

        Returns
        -------
        dict | None
            Keys: ``status``, ``processed``, ``total``, ``progress``,
            ``message``.
        """
        snapshot = self._snapshots.get(job_id)
        if snapshot is None:
            return None
        return {
            "status": snapshot.status.value,
            "processed": snapshot.processed,
            "total": snapshot.total,
            "progress": snapshot.progress,
            "message": snapshot.message,
        }

    def forget(self, job_id: str) -> None:
        """Drop the snapshot and listeners for a finished job."""
        self._snapshots.pop(job_id, None)
        self._listeners.pop(job_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(
        self,
        job_id: str,
        status: JobStatus,
        progress: float,
        message: str,
    ) -> None:
        """Invoke the job's listeners, then the wildcard listeners.

        A listener that raises is logged and skipped.
        """
        listeners = [*self._listeners.get(job_id, []), *self._listeners.get(ALL_JOBS, [])]
        for callback in listeners:
            try:
                await invoke_callback(callback, job_id, status, progress, message)
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    job_id=job_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
