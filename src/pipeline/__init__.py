"""Job pipeline for tapeVault imports: publish, queue, consume, schedule."""

from src.pipeline.import_consumer import ImportConsumer
from src.pipeline.import_publisher import ImportPublisher
from src.pipeline.job_status_store import JobStatusStore
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.scheduler import ImportScheduler
from src.pipeline.worker_pool import ImportWorkerPool

__all__ = [
    "ImportConsumer",
    "ImportPublisher",
    "ImportScheduler",
    "ImportWorkerPool",
    "JobStatusStore",
    "ProgressTracker",
]
