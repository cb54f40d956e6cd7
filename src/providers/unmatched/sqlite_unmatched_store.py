"""SQLite-backed unmatched-track review queue.

Stores one row per ``(artist_key, normalized raw title)``.  Each sighting
during an import bumps ``occurrences`` and refreshes the suggestion when
the new one is more confident.  Uses ``aiosqlite`` for async I/O.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.unmatched_store import IUnmatchedTrackStore
from src.models.matching import UnmatchedTrack
from src.utils.errors import CatalogStoreError
from src.utils.text_normalizer import normalize_track_name

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("var/tapevault/unmatched.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS unmatched_tracks (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    artist_key     TEXT    NOT NULL,
    normalized     TEXT    NOT NULL,
    raw_title      TEXT    NOT NULL,
    suggested_key  TEXT,
    confidence     REAL    NOT NULL DEFAULT 0,
    occurrences    INTEGER NOT NULL DEFAULT 1,
    first_seen     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    last_seen      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE(artist_key, normalized)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_unmatched_artist ON unmatched_tracks(artist_key);",
    "CREATE INDEX IF NOT EXISTS idx_unmatched_occurrences ON unmatched_tracks(occurrences);",
]

_UPSERT_SQL = """\
INSERT INTO unmatched_tracks (artist_key, normalized, raw_title, suggested_key, confidence)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(artist_key, normalized)
DO UPDATE SET occurrences   = occurrences + 1,
              last_seen     = strftime('%Y-%m-%dT%H:%M:%fZ', 'now'),
              suggested_key = CASE WHEN excluded.confidence > confidence
                                   THEN excluded.suggested_key ELSE suggested_key END,
              confidence    = MAX(confidence, excluded.confidence);
"""


class SQLiteUnmatchedTrackStore(IUnmatchedTrackStore):
    """SQLite-backed :class:`IUnmatchedTrackStore`."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("unmatched_db_initialized", path=str(self._db_path))

    async def record(
        self,
        artist_key: str,
        raw_title: str,
        suggested_key: str | None = None,
        confidence: float = 0.0,
    ) -> None:
        normalized = normalize_track_name(raw_title)
        if not normalized:
            return
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _UPSERT_SQL,
                    (artist_key, normalized, raw_title, suggested_key, confidence),
                )
                await db.commit()
        except sqlite3.Error as exc:
            raise CatalogStoreError(
                f"Could not record unmatched title {raw_title!r}: {exc}",
                provider_name="unmatched_store",
            ) from exc
        logger.debug(
            "unmatched_track_recorded",
            artist_key=artist_key,
            raw_title=raw_title,
            suggested_key=suggested_key,
        )

    async def list_unmatched(
        self,
        artist_key: str | None = None,
        limit: int = 100,
    ) -> list[UnmatchedTrack]:
        query = (
            "SELECT artist_key, raw_title, suggested_key, confidence, occurrences, "
            "first_seen, last_seen FROM unmatched_tracks"
        )
        params: tuple = ()
        if artist_key:
            query += " WHERE artist_key = ?"
            params = (artist_key,)
        query += " ORDER BY occurrences DESC, id ASC LIMIT ?"
        params = (*params, limit)

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()

        return [
            UnmatchedTrack(
                artist_key=row["artist_key"],
                raw_title=row["raw_title"],
                suggested_key=row["suggested_key"],
                confidence=row["confidence"],
                occurrences=row["occurrences"],
                first_seen=datetime.fromisoformat(row["first_seen"].replace("Z", "+00:00")),
                last_seen=datetime.fromisoformat(row["last_seen"].replace("Z", "+00:00")),
            )
            for row in rows
        ]
