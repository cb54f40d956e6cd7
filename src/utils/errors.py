"""Custom exception hierarchy for tapeVault.

All application exceptions inherit from :class:`ArchiveImportError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "archive.org", "lock_service", "catalog_store") caused
the failure, plus a discriminated :class:`ErrorKind`.

The hierarchy is organized by pipeline domain:

    ArchiveImportError  (base -- catch-all for any tapeVault error)
    +-- ConfigurationError   (missing settings / artist mapping)
    +-- ArchiveApiError      (HTTP failure after retries, malformed body)
    |   +-- RateLimitError   (429 -- carries the required wait)
    +-- CircuitOpenError     (short-circuited call, no network attempt)
    +-- LockError            (already locked / unknown token)
    |   +-- LockTimeoutError (positive timeout elapsed)
    +-- ShowImportError      (one show could not be processed)
    +-- TrackImportError     (one track could not be written)
    +-- CatalogStoreError    (catalog-store collaborator failure)
    +-- JobCancelledError    (raised by a progress callback to stop cleanly)

Expected conditions are branched on via ``exc.kind`` rather than by
catching broad exception types -- e.g. skip the artist on
``ErrorKind.ALREADY_LOCKED``, retry later on ``ErrorKind.CIRCUIT_OPEN``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):  # noqa: UP042
    """Discriminator carried by every error and every captured error record."""

    CONFIGURATION = "configuration"
    API_ERROR = "api_error"
    RATE_LIMITED = "rate_limited"
    MALFORMED_RESPONSE = "malformed_response"
    CIRCUIT_OPEN = "circuit_open"
    ALREADY_LOCKED = "already_locked"
    LOCK_TIMEOUT = "lock_timeout"
    UNKNOWN_TOKEN = "unknown_token"
    SHOW_IMPORT = "show_import"
    TRACK_IMPORT = "track_import"
    CATALOG_STORE = "catalog_store"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"


class ArchiveImportError(Exception):
    """Base exception for all tapeVault errors.

    Every subclass carries a human-readable ``message``, an optional
    ``provider_name`` identifying which collaborator triggered the error,
    and a ``kind``.  The ``__str__`` method prefixes the provider name in
    brackets for structured log output, e.g. ``[archive.org] HTTP 503``.
    """

    default_kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        self._kind = kind or self.default_kind
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(ArchiveImportError):
    """Raised when configuration is invalid or missing. Never retried."""

    default_kind = ErrorKind.CONFIGURATION

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External archive API
# ---------------------------------------------------------------------------

class ArchiveApiError(ArchiveImportError):
    """Raised when an archive request fails after exhausting retries.

    ``status_code`` is ``None`` when no HTTP response was received at all
    (connect error, timeout) -- callers treat that as a connectivity
    failure that aborts the batch.
    """

    default_kind = ErrorKind.API_ERROR

    def __init__(
        self,
        message: str = "Archive API request failed",
        provider_name: str | None = "archive.org",
        endpoint: str = "",
        status_code: int | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._status_code = status_code
        super().__init__(message=message, provider_name=provider_name, kind=kind)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def is_connectivity_failure(self) -> bool:
        return self._status_code is None or self._status_code >= 500


class RateLimitError(ArchiveApiError):
    """Raised on a 429 response; ``retry_after`` is the required wait in seconds."""

    default_kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = "archive.org",
        endpoint: str = "",
        retry_after: float = 60.0,
    ) -> None:
        self._retry_after = retry_after
        super().__init__(
            message=message,
            provider_name=provider_name,
            endpoint=endpoint,
            status_code=429,
        )

    @property
    def retry_after(self) -> float:
        return self._retry_after


class CircuitOpenError(ArchiveImportError):
    """Raised without touching the network while the circuit is open."""

    default_kind = ErrorKind.CIRCUIT_OPEN

    def __init__(
        self,
        message: str = "Circuit breaker is open",
        provider_name: str | None = "archive.org",
        retry_in: float = 0.0,
    ) -> None:
        self._retry_in = retry_in
        super().__init__(message=message, provider_name=provider_name)

    @property
    def retry_in(self) -> float:
        return self._retry_in


# ---------------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------------

class LockError(ArchiveImportError):
    """Raised when a lock is already held or a release token is unknown."""

    default_kind = ErrorKind.ALREADY_LOCKED

    def __init__(
        self,
        message: str = "Lock is already held",
        provider_name: str | None = "lock_service",
        kind: ErrorKind | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, kind=kind)


class LockTimeoutError(LockError):
    """Raised when a positive acquisition timeout elapses."""

    default_kind = ErrorKind.LOCK_TIMEOUT

    def __init__(
        self,
        message: str = "Timed out waiting for lock",
        provider_name: str | None = "lock_service",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Import errors (captured per item, not fatal to a batch)
# ---------------------------------------------------------------------------

class ShowImportError(ArchiveImportError):
    """Raised when a single show cannot be processed."""

    default_kind = ErrorKind.SHOW_IMPORT

    def __init__(
        self,
        message: str = "Show import failed",
        provider_name: str | None = None,
        identifier: str = "",
    ) -> None:
        self._identifier = identifier
        super().__init__(message=message, provider_name=provider_name)

    @property
    def identifier(self) -> str:
        return self._identifier


class TrackImportError(ArchiveImportError):
    """Raised when a single track cannot be created or updated."""

    default_kind = ErrorKind.TRACK_IMPORT

    def __init__(
        self,
        message: str = "Track import failed",
        provider_name: str | None = None,
        sku: str = "",
    ) -> None:
        self._sku = sku
        super().__init__(message=message, provider_name=provider_name)

    @property
    def sku(self) -> str:
        return self._sku


class CatalogStoreError(ArchiveImportError):
    """Raised by catalog-store adapters when a write or lookup fails."""

    default_kind = ErrorKind.CATALOG_STORE

    def __init__(
        self,
        message: str = "Catalog store operation failed",
        provider_name: str | None = "catalog_store",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Job control
# ---------------------------------------------------------------------------

class JobCancelledError(ArchiveImportError):
    """Raised from a progress callback when the owning job was cancelled."""

    default_kind = ErrorKind.CANCELLED

    def __init__(
        self,
        message: str = "Job was cancelled",
        provider_name: str | None = None,
        job_id: str = "",
    ) -> None:
        self._job_id = job_id
        super().__init__(message=message, provider_name=provider_name)

    @property
    def job_id(self) -> str:
        return self._job_id
