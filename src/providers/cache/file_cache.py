"""File-backed cache provider shared across worker processes.

Each key lives in its own JSON file (``<sha1(key)>.json``) holding the
original key, the value and a wall-clock ``expires_at``.  Writes go
through :func:`write_json_atomic`, so concurrent readers in other
processes never see a half-written entry.  Read-then-write sequences
(e.g. incrementing the circuit breaker's failure count) are not atomic
across processes; a lost increment only delays the breaker opening.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from pathlib import Path
from typing import Any, Callable

import structlog

from src.interfaces.cache_provider import ICacheProvider
from src.utils.atomic_io import read_json, write_json_atomic

logger = structlog.get_logger(logger_name=__name__)


class FileCacheProvider(ICacheProvider):
    """JSON-file cache in *directory* with per-entry expiry.

    Parameters
    ----------
    directory:
        Directory holding one file per key; created on first write.
    ttl:
        Default time-to-live in seconds.
    timer:
        Wall clock used for expiry; defaults to ``time.time`` because the
        value must be comparable between processes.
    """

    def __init__(
        self,
        directory: str | Path,
        ttl: int = 3600,
        timer: Callable[[], float] = time.time,
    ) -> None:
        self._directory = Path(directory)
        self._default_ttl = ttl
        self._timer = timer

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self._directory / f"{digest}.json"

    def _read_live(self, path: Path) -> dict[str, Any] | None:
        entry = read_json(path)
        if not isinstance(entry, dict) or "key" not in entry:
            return None
        expires_at = entry.get("expires_at")
        if expires_at is not None and self._timer() >= float(expires_at):
            path.unlink(missing_ok=True)
            return None
        return entry

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        entry = await asyncio.to_thread(self._read_live, self._path_for(key))
        if entry is None:
            logger.debug("cache_miss", key=key)
            return None
        logger.debug("cache_hit", key=key)
        return entry.get("value")

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        lifetime = ttl if ttl is not None else self._default_ttl
        entry = {
            "key": key,
            "value": value,
            "expires_at": self._timer() + lifetime,
        }
        await asyncio.to_thread(write_json_atomic, self._path_for(key), entry)
        logger.debug("cache_set", key=key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path_for(key).unlink, missing_ok=True)
        logger.debug("cache_delete", key=key)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._read_live, self._path_for(key)) is not None

    async def scan(self, prefix: str = "") -> list[str]:
        def _scan() -> list[str]:
            if not self._directory.exists():
                return []
            keys: list[str] = []
            for path in self._directory.glob("*.json"):
                entry = self._read_live(path)
                if entry is not None and str(entry["key"]).startswith(prefix):
                    keys.append(str(entry["key"]))
            return sorted(keys)

        return await asyncio.to_thread(_scan)
