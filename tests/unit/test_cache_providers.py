"""Unit tests for MemoryCacheProvider and FileCacheProvider."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.providers.cache.file_cache import FileCacheProvider
from src.providers.cache.memory_cache import MemoryCacheProvider


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ======================================================================
# MemoryCacheProvider
# ======================================================================


class TestMemoryCacheProvider:
    @pytest.mark.asyncio
    async def test_set_and_get(self) -> None:
        cache = MemoryCacheProvider()
        await cache.set("k", {"v": 1})
        assert await cache.get("k") == {"v": 1}
        assert await cache.exists("k")

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        cache = MemoryCacheProvider()
        assert await cache.get("nope") is None
        assert not await cache.exists("nope")

    @pytest.mark.asyncio
    async def test_per_key_ttl(self) -> None:
        clock = _Clock()
        cache = MemoryCacheProvider(ttl=100, timer=clock)
        await cache.set("short", 1, ttl=10)
        await cache.set("long", 2)

        clock.now += 50

        assert await cache.get("short") is None
        assert await cache.get("long") == 2

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        cache = MemoryCacheProvider()
        await cache.set("k", 1)
        await cache.delete("k")
        await cache.delete("never-set")
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_scan_by_prefix(self) -> None:
        cache = MemoryCacheProvider()
        await cache.set("circuit_state", "open")
        await cache.set("circuit_failures", 3)
        await cache.set("api_x", {})
        assert await cache.scan("circuit_") == ["circuit_failures", "circuit_state"]


# ======================================================================
# FileCacheProvider
# ======================================================================


class TestFileCacheProvider:
    @pytest.mark.asyncio
    async def test_set_and_get(self, tmp_path: Path) -> None:
        cache = FileCacheProvider(tmp_path)
        await cache.set("circuit_state", "open")
        assert await cache.get("circuit_state") == "open"

    @pytest.mark.asyncio
    async def test_shared_between_instances(self, tmp_path: Path) -> None:
        writer = FileCacheProvider(tmp_path)
        reader = FileCacheProvider(tmp_path)
        await writer.set("failures", 4)
        assert await reader.get("failures") == 4

    @pytest.mark.asyncio
    async def test_expiry(self, tmp_path: Path) -> None:
        clock = _Clock()
        cache = FileCacheProvider(tmp_path, ttl=60, timer=clock)
        await cache.set("k", "v")

        clock.now += 61

        assert await cache.get("k") is None
        assert not await cache.exists("k")
        assert list(tmp_path.glob("*.json")) == []

    @pytest.mark.asyncio
    async def test_delete_and_scan(self, tmp_path: Path) -> None:
        cache = FileCacheProvider(tmp_path)
        await cache.set("archivedotorg_circuit_state", "closed")
        await cache.set("archivedotorg_circuit_failures", 0)
        await cache.set("other", 1)

        assert await cache.scan("archivedotorg_circuit") == [
            "archivedotorg_circuit_failures",
            "archivedotorg_circuit_state",
        ]

        await cache.delete("other")
        assert await cache.scan() == [
            "archivedotorg_circuit_failures",
            "archivedotorg_circuit_state",
        ]

    @pytest.mark.asyncio
    async def test_scan_on_missing_directory(self, tmp_path: Path) -> None:
        cache = FileCacheProvider(tmp_path / "not-yet")
        assert await cache.scan() == []

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, tmp_path: Path) -> None:
        cache = FileCacheProvider(tmp_path)
        await cache.set("k", "v")
        next(tmp_path.glob("*.json")).write_text("garbage", encoding="utf-8")
        assert await cache.get("k") is None
