"""Component wiring shared by the API server and the CLI.

``build_components`` constructs every provider and service once and
returns them as a flat dict; ``main.py`` copies the dict onto
``app.state`` and the CLI pulls what each command needs.

# ─── DEPENDENCY GRAPH ─────────────────────────────────────────────────
#
#   httpx.AsyncClient ─┐
#   CircuitBreaker ────┼─▶ ArchiveOrgClient ─▶ MetadataCrawler ─┐
#   MemoryCache ───────┘                                         │
#   ArtistConfigLoader ─▶ TrackMatcher ──────────────────────────┼─▶ ImportOrchestrator
#   SQLiteCatalogStore / SQLiteUnmatchedTrackStore ──────────────┘        │
#                                                                          ▼
#   JobStatusStore + ProgressTracker ─▶ ImportConsumer ─▶ ImportWorkerPool
#                                                      └─▶ ImportScheduler
#   ImportPublisher ─▶ (JobStatusStore, ImportWorkerPool)
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.artist_config import ArtistConfigLoader
from src.config.loader import artist_collection_mapping
from src.config.settings import Settings
from src.pipeline.import_consumer import ImportConsumer
from src.pipeline.import_publisher import ImportPublisher
from src.pipeline.job_status_store import JobStatusStore
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.scheduler import ImportScheduler
from src.pipeline.worker_pool import ImportWorkerPool
from src.providers.archive.archive_org_client import ArchiveOrgClient
from src.providers.cache.file_cache import FileCacheProvider
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.catalog.sqlite_catalog_store import SQLiteCatalogStore
from src.providers.metadata.file_metadata_store import MetadataCache, ProgressStore
from src.providers.unmatched.sqlite_unmatched_store import SQLiteUnmatchedTrackStore
from src.services.circuit_breaker import CircuitBreaker
from src.services.import_orchestrator import ImportOrchestrator
from src.services.lock_service import LockService
from src.services.metadata_crawler import MetadataCrawler
from src.services.track_matcher import TrackMatcher
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# Circuit state outlives any single request burst but not an outage review.
_SHARED_CACHE_TTL = 3600


def build_components(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service for one process.

    Parameters
    ----------
    app_settings:
        Environment-derived settings.
    app_config:
        Output of :func:`load_config` (artist mapping and schedule).

    Returns
    -------
    dict
        Named components, suitable for ``app.state``.
    """
    http_client = httpx.AsyncClient(
        timeout=app_settings.archive_timeout,
        headers={"User-Agent": app_settings.user_agent},
        follow_redirects=True,
    )
    shared_cache = FileCacheProvider(app_settings.shared_cache_dir, ttl=_SHARED_CACHE_TTL)
    response_cache = (
        MemoryCacheProvider(ttl=app_settings.cache_ttl) if app_settings.cache_enabled else None
    )

    circuit_breaker = CircuitBreaker(
        shared_cache,
        threshold=app_settings.circuit_threshold,
        reset_seconds=app_settings.circuit_reset_seconds,
    )
    archive_client = ArchiveOrgClient(
        http_client=http_client,
        circuit_breaker=circuit_breaker,
        cache=response_cache,
        base_url=app_settings.archive_base_url,
        timeout=app_settings.archive_timeout,
        retry_attempts=app_settings.retry_attempts,
        retry_delay_ms=app_settings.retry_delay_ms,
        rate_limit_ms=app_settings.rate_limit_ms,
        rate_limit_backoff_seconds=app_settings.rate_limit_backoff_seconds,
        page_size=app_settings.page_size,
        audio_format=app_settings.audio_format,
        cache_ttl=app_settings.cache_ttl,
    )

    lock_service = LockService(app_settings.lock_dir)
    crawler = MetadataCrawler(
        client=archive_client,
        metadata_cache=MetadataCache(app_settings.metadata_dir),
        progress_store=ProgressStore(app_settings.progress_dir),
        lock_service=lock_service,
        audio_format=app_settings.audio_format,
        api_delay_ms=app_settings.api_delay_ms,
        progress_save_interval=app_settings.progress_save_interval,
        rate_limit_backoff_seconds=app_settings.rate_limit_backoff_seconds,
        stats_refresh_batch=app_settings.stats_refresh_batch,
    )

    artist_loader = ArtistConfigLoader(app_settings.artists_config_dir)
    matcher = TrackMatcher(
        artist_loader,
        fuzzy_threshold=app_settings.fuzzy_threshold,
        phonetic_min_length=app_settings.phonetic_min_length,
        fuzzy_candidate_limit=app_settings.fuzzy_candidate_limit,
    )
    catalog_store = SQLiteCatalogStore(app_settings.catalog_db_path)
    unmatched_store = SQLiteUnmatchedTrackStore(app_settings.unmatched_db_path)

    orchestrator = ImportOrchestrator(
        crawler=crawler,
        client=archive_client,
        catalog_store=catalog_store,
        matcher=matcher,
        artist_loader=artist_loader,
        unmatched_store=unmatched_store,
        batch_size=app_settings.batch_size,
        batch_pause_ms=app_settings.batch_pause_ms,
    )

    status_store = JobStatusStore(app_settings.jobs_dir)
    progress_tracker = ProgressTracker()
    consumer = ImportConsumer(
        orchestrator,
        status_store,
        tracker=progress_tracker,
        progress_save_interval=app_settings.job_progress_save_interval,
    )
    worker_pool = ImportWorkerPool(
        consumer,
        lock_service,
        status_store,
        worker_count=app_settings.worker_count,
        maxsize=app_settings.queue_maxsize,
        requeue_interval=app_settings.deferred_requeue_seconds,
    )
    publisher = ImportPublisher(status_store, worker_pool=worker_pool, tracker=progress_tracker)

    collections = artist_collection_mapping(app_config)
    scheduler = ImportScheduler(
        collections,
        orchestrator=orchestrator,
        crawler=crawler,
        consumer=consumer,
        lock_service=lock_service,
        status_store=status_store,
        schedule=app_config.get("schedule") or {},
        job_retention_days=app_settings.job_retention_days,
        lock_stale_hours=app_settings.lock_stale_hours,
    )

    return {
        "settings": app_settings,
        "http_client": http_client,
        "circuit_breaker": circuit_breaker,
        "archive_client": archive_client,
        "lock_service": lock_service,
        "crawler": crawler,
        "artist_loader": artist_loader,
        "matcher": matcher,
        "catalog_store": catalog_store,
        "unmatched_store": unmatched_store,
        "orchestrator": orchestrator,
        "status_store": status_store,
        "progress_tracker": progress_tracker,
        "consumer": consumer,
        "worker_pool": worker_pool,
        "publisher": publisher,
        "collections": collections,
        "scheduler": scheduler,
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create SQLite tables; safe to call on every start."""
    await components["catalog_store"].initialize()
    await components["unmatched_store"].initialize()


async def close_components(components: dict[str, Any]) -> None:
    """Release held locks and close the shared HTTP client."""
    released = components["lock_service"].release_all()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("components_closed", locks_released=released)
