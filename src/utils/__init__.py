"""Utility modules for tapeVault.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain exception hierarchy rooted at ArchiveImportError;
  every error carries an ``ErrorKind`` so callers branch on the kind
  instead of catching broad exception types.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- Track title normalization, metaphone keys,
  rapidfuzz similarity and slug helpers for the matching engine.
- **atomic_io** -- Write-to-temp-then-rename JSON persistence shared by
  the metadata cache, crawl progress and job status stores.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ArchiveApiError,
    ArchiveImportError,
    CatalogStoreError,
    CircuitOpenError,
    ConfigurationError,
    ErrorKind,
    JobCancelledError,
    LockError,
    LockTimeoutError,
    RateLimitError,
    ShowImportError,
    TrackImportError,
)

# -- Atomic JSON persistence -----------------------------------------------
from src.utils.atomic_io import read_json, write_json_atomic

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Track title normalization and matching keys ---------------------------
from src.utils.text_normalizer import (
    make_url_key,
    metaphone_key,
    normalize_track_name,
    safe_filename,
    similarity_percent,
)

__all__ = [
    "ArchiveApiError",
    "ArchiveImportError",
    "CatalogStoreError",
    "CircuitOpenError",
    "ConfigurationError",
    "ErrorKind",
    "JobCancelledError",
    "LockError",
    "LockTimeoutError",
    "RateLimitError",
    "ShowImportError",
    "TrackImportError",
    "configure_logging",
    "get_logger",
    "make_url_key",
    "metaphone_key",
    "normalize_track_name",
    "read_json",
    "safe_filename",
    "similarity_percent",
    "write_json_atomic",
]
