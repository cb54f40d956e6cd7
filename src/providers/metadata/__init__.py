"""Local storage for crawled archive metadata and crawl progress."""

from src.providers.metadata.file_metadata_store import MetadataCache, ProgressStore

__all__ = ["MetadataCache", "ProgressStore"]
