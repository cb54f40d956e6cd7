"""In-memory cache provider using cachetools.TLRUCache.

Fast cache for single-process runs and tests.  Entries carry their own
time-to-use so the response cache (one day) and the circuit-breaker state
(one hour) can share a provider.  Not shared across processes -- use
``FileCacheProvider`` for state that workers must agree on.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import structlog
from cachetools import TLRUCache

from src.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory per-key TTL cache backed by ``cachetools.TLRUCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    ttl:
        Default time-to-live in seconds for entries stored without one.
    timer:
        Clock used for expiry; defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl: int = 3600,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = ttl
        # Stored values are (value, ttl) pairs; ttu reads the ttl back out.
        self._cache: TLRUCache[str, tuple[Any, int]] = TLRUCache(
            maxsize=max_size,
            ttu=lambda _key, entry, now: now + entry[1],
            timer=timer,
        )

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Retrieve the cached value for *key*, or ``None`` if missing/expired."""
        entry = self._cache.get(key)
        if entry is not None:
            logger.debug("cache_hit", key=key)
            return entry[0]
        logger.debug("cache_miss", key=key)
        return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key* for *ttl* seconds (provider default if omitted)."""
        self._cache[key] = (value, ttl if ttl is not None else self._default_ttl)
        logger.debug("cache_set", key=key)

    async def delete(self, key: str) -> None:
        """Remove *key* from the cache (no-op if absent)."""
        self._cache.pop(key, None)
        logger.debug("cache_delete", key=key)

    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
        return key in self._cache

    async def scan(self, prefix: str = "") -> list[str]:
        self._cache.expire()
        return sorted(key for key in list(self._cache.keys()) if key.startswith(prefix))
