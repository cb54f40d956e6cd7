"""SQLite-backed catalog store.

A small, self-contained stand-in for the real storefront catalog: one
``items`` row per SKU with its fields as a JSON document, and a
``item_groups`` table mapping item ids to ``/``-joined group paths.
Uses ``aiosqlite`` for async I/O.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.catalog_store import ICatalogStore
from src.utils.errors import CatalogStoreError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("var/tapevault/catalog.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS items (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    sku         TEXT    NOT NULL UNIQUE,
    fields      TEXT    NOT NULL,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
""",
    """\
CREATE TABLE IF NOT EXISTS item_groups (
    item_id     INTEGER NOT NULL,
    group_path  TEXT    NOT NULL,
    PRIMARY KEY (item_id, group_path)
);
""",
]

_UPSERT_SQL = """\
INSERT INTO items (sku, fields)
VALUES (?, ?)
ON CONFLICT(sku)
DO UPDATE SET fields     = excluded.fields,
              updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""


class SQLiteCatalogStore(ICatalogStore):
    """SQLite-backed :class:`ICatalogStore`."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for sql in _CREATE_TABLES_SQL:
                await db.execute(sql)
            await db.commit()
        logger.info("catalog_db_initialized", path=str(self._db_path))

    async def upsert_item(self, sku: str, fields: dict[str, Any]) -> str:
        payload = json.dumps(fields, sort_keys=True)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_UPSERT_SQL, (sku, payload))
                await db.commit()
                cursor = await db.execute("SELECT id FROM items WHERE sku = ?", (sku,))
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise CatalogStoreError(f"Upsert failed for SKU {sku}: {exc}") from exc
        return str(row[0])

    async def item_exists_for_sku(self, sku: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT 1 FROM items WHERE sku = ?", (sku,))
            return await cursor.fetchone() is not None

    async def get_item_id(self, sku: str) -> str | None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute("SELECT id FROM items WHERE sku = ?", (sku,))
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise CatalogStoreError(f"Lookup failed for SKU {sku}: {exc}") from exc
        return str(row[0]) if row else None

    async def get_item_fields(self, sku: str) -> dict[str, Any] | None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute("SELECT fields FROM items WHERE sku = ?", (sku,))
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise CatalogStoreError(f"Lookup failed for SKU {sku}: {exc}") from exc
        return json.loads(row[0]) if row else None

    async def assign_to_group(self, item_id: str, group_path: tuple[str, ...]) -> None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    "INSERT OR IGNORE INTO item_groups (item_id, group_path) VALUES (?, ?)",
                    (int(item_id), "/".join(group_path)),
                )
                await db.commit()
        except sqlite3.Error as exc:
            raise CatalogStoreError(f"Group assignment failed for item {item_id}: {exc}") from exc

    async def count_items(self) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM items")
            row = await cursor.fetchone()
        return int(row[0])
