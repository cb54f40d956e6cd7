"""Bounded asyncio worker pool for import jobs.

A fixed number of worker tasks drain a bounded ``asyncio.Queue``.  Each
job runs on exactly one worker, under the ``("import", collection_id)``
lock; jobs for different collections run side by side.

When the lock is already held (another worker, the cron scheduler, or a
CLI run in a different process) the job is *deferred*: it stays queued on
disk and a background task re-submits it, either right after one of this
pool's workers releases a lock or every ``requeue_interval`` seconds.
"""

from __future__ import annotations

import asyncio

import structlog

from src.models.job import ImportJob, JobStatus
from src.pipeline.import_consumer import ImportConsumer
from src.pipeline.job_status_store import JobStatusStore
from src.services.lock_service import LockService
from src.utils.errors import LockError
from src.utils.logging import get_logger


class ImportWorkerPool:
    """N workers consuming :class:`ImportJob` items from a bounded queue.

    Parameters
    ----------
    consumer:
        Runs a single job.
    lock_service:
        Cross-process exclusion per collection.
    status_store:
        Used to recover queued jobs and to drop finished deferrals.
    worker_count:
        Number of concurrent workers.
    maxsize:
        Queue bound; ``submit`` waits when the queue is full.
    requeue_interval:
        Seconds between background retries of deferred jobs.
    """

    def __init__(
        self,
        consumer: ImportConsumer,
        lock_service: LockService,
        status_store: JobStatusStore,
        worker_count: int = 2,
        maxsize: int = 100,
        requeue_interval: float = 30.0,
    ) -> None:
        self._consumer = consumer
        self._locks = lock_service
        self._store = status_store
        self._worker_count = max(1, worker_count)
        self._requeue_interval = max(0.01, requeue_interval)
        self._queue: asyncio.Queue[ImportJob] = asyncio.Queue(maxsize=maxsize)
        self._workers: list[asyncio.Task[None]] = []
        self._requeue_task: asyncio.Task[None] | None = None
        self._lock_freed = asyncio.Event()
        self._deferred: list[ImportJob] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def deferred(self) -> list[ImportJob]:
        return list(self._deferred)

    def start(self) -> None:
        if self.is_running:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"import-worker-{index}")
            for index in range(self._worker_count)
        ]
        self._requeue_task = asyncio.create_task(self._requeue_loop(), name="import-requeue")
        self._logger.info("worker_pool_started", workers=self._worker_count)

    async def stop(self) -> None:
        """Cancel the workers; a job in flight is handed back as queued."""
        tasks = list(self._workers)
        if self._requeue_task is not None:
            tasks.append(self._requeue_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._requeue_task = None
        self._logger.info("worker_pool_stopped", deferred=len(self._deferred))

    async def join(self) -> None:
        """Wait until every submitted job has been processed or deferred."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, job: ImportJob) -> None:
        await self._queue.put(job)
        self._logger.debug("job_submitted", job_id=job.job_id, pending=self._queue.qsize())

    async def requeue_deferred(self) -> int:
        """Re-submit jobs deferred on a lock miss.

        Jobs no longer persisted as queued (cancelled, or finished by
        another process) are dropped.
        """
        deferred, self._deferred = self._deferred, []
        submitted = 0
        for job in deferred:
            persisted = self._store.get(job.job_id)
            if persisted is not None and persisted.status != JobStatus.QUEUED:
                continue
            await self.submit(job)
            submitted += 1
        if submitted:
            self._logger.info("deferred_jobs_requeued", count=submitted)
        return submitted

    async def recover_queued(self) -> int:
        """Submit every job persisted as queued, e.g. after a restart.

        Running jobs whose collection lock nobody holds were cut off by a
        crash; they are reset to queued first and submitted with the rest.
        """
        self._store.requeue_orphaned(
            lambda job: self._locks.is_locked("import", job.collection_id)
        )
        jobs = self._store.list_queued()
        for job in jobs:
            await self.submit(job)
        if jobs:
            self._logger.info("queued_jobs_recovered", count=len(jobs))
        return len(jobs)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, index: int) -> None:
        log = self._logger.bind(worker=index)
        while True:
            job = await self._queue.get()
            try:
                await self._run(job, log)
            except Exception as exc:
                # ImportConsumer records its own failures; this is a last resort
                # so one bad job cannot stop the worker.
                log.exception("worker_job_crashed", job_id=job.job_id, error=str(exc))
            finally:
                self._queue.task_done()

    async def _run(self, job: ImportJob, log: structlog.BoundLogger) -> None:
        try:
            token = await self._locks.acquire("import", job.collection_id, timeout_seconds=0)
        except LockError as exc:
            if all(waiting.job_id != job.job_id for waiting in self._deferred):
                self._deferred.append(job)
            log.info(
                "import_job_deferred",
                job_id=job.job_id,
                collection=job.collection_id,
                reason=exc.message,
            )
            return

        try:
            await self._consumer.process(job)
        finally:
            self._locks.release(token)
            if self._deferred:
                self._lock_freed.set()

    async def _requeue_loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._lock_freed.wait(), timeout=self._requeue_interval)
            except asyncio.TimeoutError:
                pass
            self._lock_freed.clear()
            if not self._deferred:
                continue
            try:
                await self.requeue_deferred()
            except Exception as exc:
                self._logger.exception("deferred_requeue_failed", error=str(exc))
