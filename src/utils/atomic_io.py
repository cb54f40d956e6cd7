"""Crash-safe JSON file helpers.

Cached metadata, crawl progress and job records are all written with
write-to-temp-then-rename so a concurrent reader sees either the old file
or the new one, never a torn write.  Reads treat a missing or corrupt file
as a miss (``None``) and log it, trading a re-fetch for availability.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping

import structlog

from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def write_json_atomic(path: Path, payload: Mapping[str, Any] | list[Any]) -> None:
    """Serialize *payload* to *path* via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.stem}.",
        suffix=".tmp",
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True, default=str)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            tmp_path.unlink(missing_ok=True)
        finally:
            raise


def read_json(path: Path) -> Any | None:
    """Return the decoded JSON at *path*, or ``None`` when missing or corrupt."""
    try:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        _logger.warning("json_file_unreadable", path=str(path), error=str(exc))
        return None
