"""Cache providers.

MemoryCacheProvider is a per-key TTL cache for single-process runs: the
archive response cache lives here by default.

FileCacheProvider stores one JSON file per key so several worker
processes see the same values -- the circuit breaker keeps its state here
so a dependency outage observed by one worker opens the circuit for all.
"""

from src.providers.cache.file_cache import FileCacheProvider
from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["FileCacheProvider", "MemoryCacheProvider"]
