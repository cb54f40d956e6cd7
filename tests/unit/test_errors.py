"""Unit tests for the tapeVault exception hierarchy."""

from __future__ import annotations

import pytest

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


class TestArchiveImportError:
    def test_str_includes_provider(self) -> None:
        exc = ArchiveImportError("HTTP 503", provider_name="archive.org")
        assert str(exc) == "[archive.org] HTTP 503"

    def test_str_without_provider(self) -> None:
        assert str(ArchiveImportError("boom")) == "boom"

    def test_default_kind(self) -> None:
        assert ArchiveImportError().kind == ErrorKind.UNEXPECTED

    def test_explicit_kind_overrides_default(self) -> None:
        exc = ArchiveApiError("bad body", kind=ErrorKind.MALFORMED_RESPONSE)
        assert exc.kind == ErrorKind.MALFORMED_RESPONSE


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (ConfigurationError(), ErrorKind.CONFIGURATION),
        (ArchiveApiError(), ErrorKind.API_ERROR),
        (RateLimitError(), ErrorKind.RATE_LIMITED),
        (CircuitOpenError(), ErrorKind.CIRCUIT_OPEN),
        (LockError(), ErrorKind.ALREADY_LOCKED),
        (LockTimeoutError(), ErrorKind.LOCK_TIMEOUT),
        (ShowImportError(), ErrorKind.SHOW_IMPORT),
        (TrackImportError(), ErrorKind.TRACK_IMPORT),
        (CatalogStoreError(), ErrorKind.CATALOG_STORE),
        (JobCancelledError(), ErrorKind.CANCELLED),
    ],
)
def test_each_error_carries_its_kind(exc: ArchiveImportError, kind: ErrorKind) -> None:
    assert exc.kind == kind
    assert isinstance(exc, ArchiveImportError)


class TestArchiveApiError:
    def test_no_status_is_connectivity_failure(self) -> None:
        assert ArchiveApiError(status_code=None).is_connectivity_failure

    def test_server_error_is_connectivity_failure(self) -> None:
        assert ArchiveApiError(status_code=503).is_connectivity_failure

    def test_client_error_is_not(self) -> None:
        assert not ArchiveApiError(status_code=404).is_connectivity_failure

    def test_endpoint_and_provider(self) -> None:
        exc = ArchiveApiError("nope", endpoint="metadata/x", status_code=404)
        assert exc.endpoint == "metadata/x"
        assert exc.provider_name == "archive.org"


class TestRateLimitError:
    def test_is_api_error_with_429(self) -> None:
        exc = RateLimitError(retry_after=12.5)
        assert isinstance(exc, ArchiveApiError)
        assert exc.status_code == 429
        assert exc.retry_after == 12.5


def test_lock_timeout_is_lock_error() -> None:
    assert isinstance(LockTimeoutError(), LockError)


def test_item_errors_carry_targets() -> None:
    assert ShowImportError(identifier="gd77").identifier == "gd77"
    assert TrackImportError(sku="abc").sku == "abc"
    assert JobCancelledError(job_id="import_1").job_id == "import_1"
    assert CircuitOpenError(retry_in=4.5).retry_in == 4.5
