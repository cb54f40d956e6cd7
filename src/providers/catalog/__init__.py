"""Catalog-store adapters.

The real storefront catalog lives outside this project; these adapters
implement ICatalogStore so the import pipeline can run end to end:
MemoryCatalogStore for tests and dry runs, SQLiteCatalogStore for local
imports.
"""

from src.providers.catalog.memory_catalog_store import MemoryCatalogStore
from src.providers.catalog.sqlite_catalog_store import SQLiteCatalogStore

__all__ = ["MemoryCatalogStore", "SQLiteCatalogStore"]
