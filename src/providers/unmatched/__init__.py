"""Review queue for track titles the matcher could not resolve."""

from src.providers.unmatched.sqlite_unmatched_store import SQLiteUnmatchedTrackStore

__all__ = ["SQLiteUnmatchedTrackStore"]
