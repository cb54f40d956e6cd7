"""Abstract base class for cache service providers.

Defines the key-value contract used for archive response caching and for
the circuit breaker's shared state.  Implementations may be in-process
(``MemoryCacheProvider``) or shared between worker processes
(``FileCacheProvider``); business logic never knows which.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async to allow for network-backed stores without
    blocking the event loop.  Values must be JSON-serialisable (str, int,
    float, bool, dict, list) so every backend can store them.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Retrieve the value stored under *key*.

        Parameters
        ----------
        key:
            The cache key to look up.

        Returns
        -------
        Any or None
            The cached value if present and not expired; ``None`` otherwise.
        """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key* with an optional time-to-live.

        Parameters
        ----------
        key:
            The cache key.
        value:
            The value to store.
        ttl:
            Time-to-live in seconds.  ``None`` uses the provider default.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the entry stored under *key*.

        This is a no-op if the key does not exist.
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present in the cache and not expired."""

    @abstractmethod
    async def scan(self, prefix: str = "") -> list[str]:
        """Return every live key starting with *prefix*, sorted.

        Parameters
        ----------
        prefix:
            Key prefix to filter on.  An empty prefix lists all keys.
        """
