"""In-memory catalog store.

Keeps items and group memberships in dicts.  Used for dry runs from the
CLI, for tests, and as the reference behaviour every other catalog
adapter has to match.
"""

from __future__ import annotations

import copy
from typing import Any

import structlog

from src.interfaces.catalog_store import ICatalogStore

logger = structlog.get_logger(logger_name=__name__)


class MemoryCatalogStore(ICatalogStore):
    """Dict-backed :class:`ICatalogStore`."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, Any]] = {}
        self._ids: dict[str, str] = {}
        self._groups: dict[tuple[str, ...], set[str]] = {}
        self._writes = 0

    async def upsert_item(self, sku: str, fields: dict[str, Any]) -> str:
        item_id = self._ids.setdefault(sku, f"item-{len(self._ids) + 1}")
        self._items[sku] = copy.deepcopy(fields)
        self._writes += 1
        logger.debug("catalog_item_upserted", sku=sku, item_id=item_id)
        return item_id

    async def item_exists_for_sku(self, sku: str) -> bool:
        return sku in self._items

    async def get_item_id(self, sku: str) -> str | None:
        return self._ids.get(sku) if sku in self._items else None

    async def get_item_fields(self, sku: str) -> dict[str, Any] | None:
        fields = self._items.get(sku)
        return copy.deepcopy(fields) if fields is not None else None

    async def assign_to_group(self, item_id: str, group_path: tuple[str, ...]) -> None:
        self._groups.setdefault(tuple(group_path), set()).add(item_id)

    # -- Inspection helpers (not part of the interface) ---------------------

    @property
    def item_count(self) -> int:
        return len(self._items)

    @property
    def write_count(self) -> int:
        """Total ``upsert_item`` calls, including overwrites."""
        return self._writes

    def group_members(self, group_path: tuple[str, ...]) -> set[str]:
        return set(self._groups.get(tuple(group_path), set()))

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._items)
