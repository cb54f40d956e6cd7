"""archive.org API client with retry, throttling, caching and circuit breaking.

Two endpoints are used:

    GET /advancedsearch.php   -- paginated search (identifiers, quality
                                 fields, batch stats)
    GET /metadata/<id>        -- full item metadata (show fields, files,
                                 reviews, storage servers)

Every request passes through the shared :class:`CircuitBreaker`; inside
the breaker, transport errors and 5xx responses are retried with a
linear backoff (``retry_delay_ms * attempt``).  A 429 is not retried here
-- it raises :class:`RateLimitError` carrying the wait so the caller (the
crawler) decides whether to sleep.  Metadata responses are cached by
identifier for ``cache_ttl`` seconds.

Follows the adapter pattern used by the other providers: injected
``httpx.AsyncClient``, ``_throttle()``, typed errors.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import time
from typing import Any

import httpx

from src.interfaces.archive_client import MAX_BATCH_STATS, IArchiveClient, PageCallback
from src.interfaces.cache_provider import ICacheProvider
from src.models.catalog import RecordingCandidate, Show, ShowStats
from src.providers.archive.metadata_parser import (
    parse_candidate,
    parse_show,
    parse_stats,
)
from src.services.circuit_breaker import CircuitBreaker
from src.utils.errors import ArchiveApiError, ArchiveImportError, ErrorKind, RateLimitError
from src.utils.logging import get_logger

_PROVIDER_NAME = "archive.org"
_CACHE_PREFIX = "archivedotorg_api_"
_SEARCH_FIELDS = ("identifier", "date", "avg_rating", "num_reviews", "downloads")
_STATS_FIELDS = ("identifier", "avg_rating", "num_reviews", "downloads")


def _is_breaker_failure(exc: BaseException) -> bool:
    """Only outages and throttling trip the breaker, not a single bad item."""
    if isinstance(exc, RateLimitError):
        return True
    return isinstance(exc, ArchiveApiError) and exc.is_connectivity_failure


class ArchiveOrgClient(IArchiveClient):
    """Resilient facade over the archive.org HTTP API.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` for testability and connection pooling.
    circuit_breaker:
        Breaker shared by every request this client makes.
    cache:
        Response cache for metadata documents; ``None`` disables caching.
    base_url:
        Archive root, ``https://archive.org`` in production.
    timeout:
        Per-request timeout in seconds.
    retry_attempts:
        Attempts per request for transport errors and 5xx responses.
    retry_delay_ms:
        Base backoff; attempt *n* waits ``n * retry_delay_ms``.
    rate_limit_ms:
        Minimum gap between two consecutive requests.
    rate_limit_backoff_seconds:
        Wait reported on a 429 that carries no ``Retry-After`` header.
    page_size:
        Rows per advanced-search page.
    audio_format:
        File extension treated as a playable track.
    cache_ttl:
        Lifetime of cached metadata responses in seconds.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        circuit_breaker: CircuitBreaker,
        cache: ICacheProvider | None = None,
        base_url: str = "https://archive.org",
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_delay_ms: int = 1000,
        rate_limit_ms: int = 100,
        rate_limit_backoff_seconds: float = 60.0,
        page_size: int = 1000,
        audio_format: str = "flac",
        cache_ttl: int = 86400,
    ) -> None:
        self._http = http_client
        self._breaker = circuit_breaker
        self._cache = cache
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay_ms / 1000.0
        self._min_interval = rate_limit_ms / 1000.0
        self._rate_limit_backoff = rate_limit_backoff_seconds
        self._page_size = page_size
        self._audio_format = audio_format
        self._cache_ttl = cache_ttl
        self._last_request_time: float = 0.0
        self._logger = get_logger(__name__)

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _throttle(self) -> None:
        """Enforce the minimum delay between consecutive requests."""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self._min_interval:
            await asyncio.sleep(self._min_interval - elapsed)
        self._last_request_time = time.monotonic()

    def _retry_after(self, response: httpx.Response) -> float:
        header = response.headers.get("Retry-After")
        try:
            return float(header) if header else self._rate_limit_backoff
        except ValueError:
            return self._rate_limit_backoff

    async def _get_with_retry(self, endpoint: str, params: Any = None) -> Any:
        url = f"{self._base_url}/{endpoint}"
        last_error: ArchiveApiError | None = None

        for attempt in range(1, self._retry_attempts + 1):
            await self._throttle()
            try:
                response = await self._http.get(url, params=params, timeout=self._timeout)
            except httpx.HTTPError as exc:
                last_error = ArchiveApiError(
                    message=f"Request to {endpoint} failed: {exc}",
                    endpoint=endpoint,
                    status_code=None,
                )
                self._logger.warning(
                    "archive_request_failed",
                    endpoint=endpoint,
                    attempt=attempt,
                    error=str(exc),
                )
            else:
                if response.status_code == 429:
                    retry_after = self._retry_after(response)
                    self._logger.warning(
                        "archive_rate_limited",
                        endpoint=endpoint,
                        retry_after=retry_after,
                    )
                    raise RateLimitError(
                        message=f"Rate limited on {endpoint}; retry after {retry_after}s",
                        endpoint=endpoint,
                        retry_after=retry_after,
                    )

                if response.status_code >= 500:
                    last_error = ArchiveApiError(
                        message=f"HTTP {response.status_code} from {endpoint}",
                        endpoint=endpoint,
                        status_code=response.status_code,
                    )
                    self._logger.warning(
                        "archive_server_error",
                        endpoint=endpoint,
                        status=response.status_code,
                        attempt=attempt,
                    )
                elif response.status_code >= 400:
                    raise ArchiveApiError(
                        message=f"HTTP {response.status_code} from {endpoint}",
                        endpoint=endpoint,
                        status_code=response.status_code,
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise ArchiveApiError(
                            message=f"Invalid JSON from {endpoint}: {exc}",
                            endpoint=endpoint,
                            status_code=response.status_code,
                            kind=ErrorKind.MALFORMED_RESPONSE,
                        ) from exc

            if attempt < self._retry_attempts:
                await asyncio.sleep(self._retry_delay * attempt)

        assert last_error is not None
        raise last_error

    async def _request(self, endpoint: str, params: Any = None) -> Any:
        return await self._breaker.call(
            lambda: self._get_with_retry(endpoint, params),
            counts_as_failure=_is_breaker_failure,
        )

    async def _search_page(
        self,
        query: str,
        fields: tuple[str, ...],
        rows: int,
        page: int,
    ) -> tuple[list[dict[str, Any]], int]:
        params: list[tuple[str, str | int]] = [("q", query)]
        params.extend(("fl[]", field) for field in fields)
        params.extend(
            [
                ("sort[]", "identifier asc"),
                ("rows", rows),
                ("page", page),
                ("output", "json"),
            ]
        )
        data = await self._request("advancedsearch.php", params)
        response = data.get("response") if isinstance(data, dict) else None
        if not isinstance(response, dict):
            raise ArchiveApiError(
                message="Search response has no 'response' object",
                endpoint="advancedsearch.php",
                status_code=200,
                kind=ErrorKind.MALFORMED_RESPONSE,
            )
        docs = [doc for doc in response.get("docs") or [] if isinstance(doc, dict)]
        return docs, int(response.get("numFound") or 0)

    # ------------------------------------------------------------------
    # IArchiveClient implementation
    # ------------------------------------------------------------------

    async def list_collection_identifiers(
        self,
        collection_id: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[str]:
        rows = self._page_size
        page = offset // rows + 1
        skip = offset % rows
        identifiers: list[str] = []

        while limit is None or len(identifiers) < limit:
            docs, num_found = await self._search_page(
                f"collection:{collection_id}", ("identifier",), rows, page
            )
            if not docs:
                break
            identifiers.extend(str(doc["identifier"]) for doc in docs[skip:] if "identifier" in doc)
            skip = 0
            if page * rows >= num_found:
                break
            page += 1

        if limit is not None:
            identifiers = identifiers[:limit]
        self._logger.debug(
            "collection_identifiers_listed",
            collection=collection_id,
            count=len(identifiers),
        )
        return identifiers

    async def search_collection(
        self,
        collection_id: str,
        since: str | None = None,
        on_page: PageCallback | None = None,
    ) -> list[RecordingCandidate]:
        query = f"collection:{collection_id}"
        if since:
            query += f" AND publicdate:[{since} TO *]"

        candidates: list[RecordingCandidate] = []
        page = 1
        while True:
            docs, num_found = await self._search_page(
                query, _SEARCH_FIELDS, self._page_size, page
            )
            if not docs:
                break
            candidates.extend(parse_candidate(doc) for doc in docs if "identifier" in doc)
            if on_page is not None:
                outcome = on_page(len(candidates), num_found)
                if inspect.isawaitable(outcome):
                    await outcome
            if len(candidates) >= num_found:
                break
            page += 1

        self._logger.info(
            "collection_searched",
            collection=collection_id,
            since=since,
            recordings=len(candidates),
        )
        return candidates

    async def fetch_metadata(self, identifier: str) -> dict[str, Any]:
        cache_key = _CACHE_PREFIX + hashlib.sha1(identifier.encode("utf-8")).hexdigest()
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if isinstance(cached, dict):
                return cached

        data = await self._request(f"metadata/{identifier}")
        if not isinstance(data, dict) or not isinstance(data.get("metadata"), dict):
            raise ArchiveApiError(
                message=f"No metadata returned for '{identifier}'",
                endpoint=f"metadata/{identifier}",
                status_code=200,
                kind=ErrorKind.MALFORMED_RESPONSE,
            )

        if self._cache is not None:
            await self._cache.set(cache_key, data, ttl=self._cache_ttl)
        return data

    async def fetch_show_metadata(self, identifier: str) -> Show:
        data = await self.fetch_metadata(identifier)
        return parse_show(identifier, data, self._audio_format)

    async def fetch_batch_stats(self, identifiers: list[str]) -> dict[str, ShowStats]:
        if len(identifiers) > MAX_BATCH_STATS:
            raise ValueError(
                f"fetch_batch_stats accepts at most {MAX_BATCH_STATS} identifiers, "
                f"got {len(identifiers)}"
            )
        if not identifiers:
            return {}

        query = "identifier:(" + " OR ".join(identifiers) + ")"
        docs, _ = await self._search_page(query, _STATS_FIELDS, len(identifiers), 1)
        return {str(doc["identifier"]): parse_stats(doc) for doc in docs if "identifier" in doc}

    async def test_connectivity(self) -> bool:
        try:
            await self._search_page("collection:etree", ("identifier",), 1, 1)
        except ArchiveImportError as exc:
            self._logger.warning("archive_connectivity_failed", error=str(exc))
            return False
        return True

    async def collection_item_count(self, collection_id: str) -> int:
        _, num_found = await self._search_page(
            f"collection:{collection_id}", ("identifier",), 0, 1
        )
        return num_found
