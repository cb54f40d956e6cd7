"""Public interface definitions for all external collaborators.

Every external API or store the import pipeline touches is accessed
exclusively through the abstract base classes defined in this package.
Concrete adapters implement these interfaces and are injected at runtime,
so unit tests can pass fakes and deployments can swap backends.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    IArchiveClient         →  ArchiveOrgClient
    ICacheProvider         →  MemoryCacheProvider, FileCacheProvider
    ICatalogStore          →  MemoryCatalogStore, SQLiteCatalogStore
    IUnmatchedTrackStore   →  SQLiteUnmatchedTrackStore
"""

from src.interfaces.archive_client import IArchiveClient
from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.catalog_store import ICatalogStore
from src.interfaces.unmatched_store import IUnmatchedTrackStore

__all__ = [
    "IArchiveClient",
    "ICacheProvider",
    "ICatalogStore",
    "IUnmatchedTrackStore",
]
