"""Parse archive.org metadata and search documents into catalog models.

The metadata endpoint returns loosely typed JSON: any metadata value may be
a scalar or a list (multi-valued fields), numbers arrive as strings, and
the ``files`` array mixes audio, artwork, checksums and derivative formats.
These helpers pin all of that down to :class:`Show` / :class:`Track`.
"""

from __future__ import annotations

from typing import Any

from src.models.catalog import RecordingCandidate, Show, ShowStats, Track
from src.utils.errors import ArchiveApiError, ErrorKind

# metadata key -> Show field
_METADATA_FIELDS: dict[str, str] = {
    "description": "description",
    "date": "date",
    "year": "year",
    "venue": "venue",
    "coverage": "coverage",
    "creator": "creator",
    "taper": "taper",
    "transferer": "transferer",
    "source": "source",
    "lineage": "lineage",
    "notes": "notes",
    "collection": "collection",
    "publicdate": "pub_date",
}


def first_value(value: Any) -> Any:
    """Return the first element of a list value, or the value itself."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _as_str(value: Any) -> str | None:
    value = first_value(value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any) -> int | None:
    value = first_value(value)
    if value in (None, ""):
        return None
    try:
        return int(float(str(value).split("/")[0]))
    except (ValueError, OverflowError):
        return None


def _as_float(value: Any) -> float | None:
    value = first_value(value)
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_tracks(files: list[dict[str, Any]], audio_format: str = "flac") -> tuple[Track, ...]:
    """Keep files ending in ``.<audio_format>`` that carry a title."""
    suffix = f".{audio_format.lower()}"
    tracks: list[Track] = []
    for entry in files:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "")
        title = _as_str(entry.get("title"))
        if not name.lower().endswith(suffix) or not title:
            continue
        tracks.append(
            Track(
                name=name,
                title=title,
                track_number=_as_int(entry.get("track")),
                length=_as_str(entry.get("length")),
                format=str(entry.get("format") or ""),
                sha1=str(entry.get("sha1") or ""),
                source=_as_str(entry.get("source")),
                size=_as_int(entry.get("size")),
            )
        )
    return tuple(tracks)


def parse_show(identifier: str, payload: Any, audio_format: str = "flac") -> Show:
    """Build a :class:`Show` from a metadata endpoint response.

    Raises
    ------
    ArchiveApiError
        ``kind=MALFORMED_RESPONSE`` if the payload has no ``metadata``
        object (the archive answers ``{}`` for unknown identifiers).
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("metadata"), dict):
        raise ArchiveApiError(
            message=f"No metadata returned for '{identifier}'",
            endpoint=f"metadata/{identifier}",
            status_code=200,
            kind=ErrorKind.MALFORMED_RESPONSE,
        )

    metadata: dict[str, Any] = payload["metadata"]
    fields: dict[str, Any] = {
        show_field: _as_str(metadata.get(meta_key))
        for meta_key, show_field in _METADATA_FIELDS.items()
    }

    reviews = payload.get("reviews") or []
    stars = [
        rating
        for rating in (_as_float(r.get("stars")) for r in reviews if isinstance(r, dict))
        if rating is not None
    ]
    avg_rating = round(sum(stars) / len(stars), 1) if stars else _as_float(metadata.get("avg_rating"))
    num_reviews = len(reviews) if reviews else (_as_int(metadata.get("num_reviews")) or 0)
    downloads = _as_int(metadata.get("downloads"))

    # Written by a stats refresh; newer than the embedded reviews.
    refreshed = payload.get("stats")
    if isinstance(refreshed, dict):
        stats = parse_stats(refreshed)
        avg_rating = stats.avg_rating if stats.avg_rating is not None else avg_rating
        num_reviews = stats.num_reviews
        downloads = stats.downloads

    return Show(
        identifier=identifier,
        title=_as_str(metadata.get("title")) or identifier,
        dir=_as_str(payload.get("dir")),
        server_one=_as_str(payload.get("d1")),
        server_two=_as_str(payload.get("d2")),
        avg_rating=avg_rating,
        num_reviews=num_reviews,
        downloads=downloads,
        tracks=parse_tracks(payload.get("files") or [], audio_format),
        **fields,
    )


def parse_candidate(doc: dict[str, Any]) -> RecordingCandidate:
    """Build a :class:`RecordingCandidate` from an advanced-search document."""
    return RecordingCandidate(
        identifier=str(doc["identifier"]),
        date=_as_str(doc.get("date")),
        avg_rating=_as_float(doc.get("avg_rating")) or 0.0,
        num_reviews=_as_int(doc.get("num_reviews")) or 0,
        downloads=_as_int(doc.get("downloads")) or 0,
    )


def parse_stats(doc: dict[str, Any]) -> ShowStats:
    return ShowStats(
        avg_rating=_as_float(doc.get("avg_rating")),
        num_reviews=_as_int(doc.get("num_reviews")) or 0,
        downloads=_as_int(doc.get("downloads")) or 0,
    )
