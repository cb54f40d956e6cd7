"""Abstract base class for the catalog-store collaborator.

The importer never reasons about how items or groups are stored -- it
hands over a SKU plus a flat dict of fixed fields, and a group path such
as ``("Grateful Dead", "1977-05-08 Barton Hall")``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICatalogStore(ABC):
    """Contract for persisting catalog items and their group memberships.

    Implementations raise ``CatalogStoreError`` for write or lookup
    failures; the importer records those per track without aborting.
    """

    @abstractmethod
    async def upsert_item(self, sku: str, fields: dict[str, Any]) -> str:
        """Create or replace the item identified by *sku*.

        Returns
        -------
        str
            The store's item id (stable for a given SKU).
        """

    @abstractmethod
    async def item_exists_for_sku(self, sku: str) -> bool:
        """Return ``True`` if an item with *sku* is already stored."""

    @abstractmethod
    async def get_item_id(self, sku: str) -> str | None:
        """Return the item id stored for *sku*, or ``None`` if unseen."""

    @abstractmethod
    async def get_item_fields(self, sku: str) -> dict[str, Any] | None:
        """Return the stored fields for *sku*, or ``None`` if unseen.

        Used for change detection: an identical field dict means the
        upsert can be skipped.
        """

    @abstractmethod
    async def assign_to_group(self, item_id: str, group_path: tuple[str, ...]) -> None:
        """Place *item_id* in the group at *group_path* (created as needed)."""
