"""On-disk metadata cache and crawl progress records.

Layout under the data directory::

    metadata/<identifier>.json     raw archive metadata, one file per show
    progress/<collection>.json     CollectionProgress for resumable crawls

Both are written with atomic replace and read leniently: a corrupt file is
logged and treated as missing, so the next crawl simply re-fetches it.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from src.models.progress import CollectionProgress
from src.utils.atomic_io import read_json, write_json_atomic
from src.utils.logging import get_logger
from src.utils.text_normalizer import safe_filename

_logger: structlog.BoundLogger = get_logger(__name__)

# Archive identifiers are [A-Za-z0-9._-]; anything else is replaced.
_IDENTIFIER_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]")


class MetadataCache:
    """Directory of raw metadata documents keyed by identifier."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, identifier: str) -> Path:
        return self._directory / f"{_IDENTIFIER_UNSAFE_RE.sub('_', identifier).lstrip('.')}.json"

    def get(self, identifier: str) -> dict[str, Any] | None:
        data = read_json(self.path_for(identifier))
        if data is not None and not isinstance(data, dict):
            _logger.warning("metadata_cache_corrupt", identifier=identifier)
            return None
        return data

    def contains(self, identifier: str) -> bool:
        """``True`` only if the file exists *and* decodes."""
        return self.get(identifier) is not None

    def put(self, identifier: str, metadata: dict[str, Any]) -> None:
        write_json_atomic(self.path_for(identifier), metadata)

    async def aput(self, identifier: str, metadata: dict[str, Any]) -> None:
        await asyncio.to_thread(self.put, identifier, metadata)

    def identifiers(self) -> list[str]:
        if not self._directory.exists():
            return []
        return sorted(path.stem for path in self._directory.glob("*.json"))


class ProgressStore:
    """Per-collection :class:`CollectionProgress` records."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, collection_id: str) -> Path:
        return self._directory / f"{safe_filename(collection_id)}.json"

    def load(self, collection_id: str) -> CollectionProgress | None:
        data = read_json(self._path(collection_id))
        if data is None:
            return None
        try:
            return CollectionProgress.model_validate(data)
        except ValidationError as exc:
            _logger.warning(
                "progress_record_corrupt",
                collection=collection_id,
                error=str(exc),
            )
            return None

    def save(self, progress: CollectionProgress) -> None:
        progress.touch()
        write_json_atomic(self._path(progress.collection_id), progress.to_record())

    async def asave(self, progress: CollectionProgress) -> None:
        await asyncio.to_thread(self.save, progress)

    def delete(self, collection_id: str) -> None:
        self._path(collection_id).unlink(missing_ok=True)
