"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority
# order):
#
#   1. **Environment variables** -- e.g., RETRY_ATTEMPTS=5
#   2. **.env file** -- key=value lines in the project root .env file
#
# Field ``circuit_threshold`` maps to env var ``CIRCUIT_THRESHOLD``.
# Defaults below apply when neither source sets a value.
#
# Per-artist matching overrides (fuzzy threshold, phonetic cutoff) live
# in ``config/artists/<key>.yaml`` and take precedence over the global
# values here for that artist only.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """tapeVault application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Archive API ===
    archive_base_url: str = "https://archive.org"
    archive_timeout: float = 30.0
    retry_attempts: int = 3
    retry_delay_ms: int = 1000  # multiplied by the attempt number
    rate_limit_ms: int = 100  # minimum gap between consecutive requests
    rate_limit_backoff_seconds: float = 60.0  # wait on 429 without Retry-After
    page_size: int = 1000
    audio_format: str = "flac"
    cache_enabled: bool = True
    cache_ttl: int = 86400
    user_agent: str = "tapeVault/0.1.0"

    # === Circuit Breaker ===
    circuit_threshold: int = 5
    circuit_reset_seconds: int = 30

    # === Metadata Crawler ===
    api_delay_ms: int = 750
    progress_save_interval: int = 10
    stats_refresh_batch: int = 100

    # === Import / Job Queue ===
    batch_size: int = 100
    batch_pause_ms: int = 500
    job_progress_save_interval: int = 5
    job_retention_days: int = 7
    worker_count: int = 2
    queue_maxsize: int = 100
    deferred_requeue_seconds: float = 30.0

    # === Track Matching ===
    fuzzy_threshold: float = 75.0
    phonetic_min_length: int = 4
    fuzzy_candidate_limit: int = 5

    # === Paths ===
    data_dir: str = "var/tapevault"
    artists_config_dir: str = "config/artists"
    lock_dir: str = "var/tapevault/locks"
    catalog_db_path: str = "var/tapevault/catalog.db"
    unmatched_db_path: str = "var/tapevault/unmatched.db"

    # === Locks ===
    lock_stale_hours: int = 24

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def metadata_dir(self) -> Path:
        """Directory holding one ``<identifier>.json`` per cached show."""
        return self.data_path / "metadata"

    @property
    def progress_dir(self) -> Path:
        return self.data_path / "progress"

    @property
    def jobs_dir(self) -> Path:
        return self.data_path / "jobs"

    @property
    def shared_cache_dir(self) -> Path:
        """Directory backing the cross-process cache (circuit-breaker state)."""
        return self.data_path / "cache"
