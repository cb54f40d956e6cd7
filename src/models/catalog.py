"""Archive catalog value types -- shows, tracks and search candidates.

All models are frozen; the crawler and importer derive new instances via
``model_copy(update={...})`` (e.g. a stats refresh) instead of mutating.

Key relationships:
    - Show has an ordered tuple of Track objects (one per audio file)
    - Track.sku (the file's sha1) is the catalog deduplication key
    - RecordingCandidate is one advanced-search hit, fed to best-recording
      selection before any metadata is fetched
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from src.utils.text_normalizer import make_url_key

ARCHIVE_DETAILS_URL = "https://archive.org/details/"


class Track(BaseModel):
    """One playable audio file within a Show."""

    model_config = ConfigDict(frozen=True)

    name: str  # filename within the item, e.g. "gd77-05-08d1t01.flac"
    title: str
    track_number: int | None = None
    length: str | None = None  # seconds ("332.45") or clock ("5:32") as published
    format: str = ""
    sha1: str = ""
    source: str | None = None
    size: int | None = None

    @property
    def sku(self) -> str:
        """Catalog SKU -- the content hash, so one recording maps to one item."""
        return self.sha1

    @property
    def url_key(self) -> str:
        return make_url_key(self.title)

    @property
    def formatted_length(self) -> str | None:
        """``M:SS`` or ``H:MM:SS``; non-numeric lengths pass through unchanged."""
        if self.length is None:
            return None
        try:
            total = int(float(self.length))
        except ValueError:
            return self.length
        hours, remainder = divmod(total, 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"


class Show(BaseModel):
    """One external recording event (an archive item).

    Created by the crawler when first fetched and immutable once cached,
    except that ``refresh_stats`` swaps in new rating/review/download
    aggregates.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str
    title: str
    description: str | None = None
    date: str | None = None
    year: str | None = None
    venue: str | None = None
    coverage: str | None = None
    creator: str | None = None
    taper: str | None = None
    transferer: str | None = None
    source: str | None = None
    lineage: str | None = None
    notes: str | None = None
    collection: str | None = None
    pub_date: str | None = None

    # Streaming location: https://{server}{dir}/{filename}
    dir: str | None = None
    server_one: str | None = None
    server_two: str | None = None

    avg_rating: float | None = None
    num_reviews: int = 0
    downloads: int | None = None

    tracks: tuple[Track, ...] = Field(default_factory=tuple)

    @property
    def guid(self) -> str:
        return f"{ARCHIVE_DETAILS_URL}{self.identifier}"

    @property
    def show_date(self) -> str | None:
        """The ``YYYY-MM-DD`` prefix of ``date``."""
        return self.date[:10] if self.date else None

    def streaming_url(self, track: Track) -> str | None:
        """Direct file URL on the primary (or secondary) storage server."""
        server = self.server_one or self.server_two
        if not server or not self.dir:
            return None
        return f"https://{server}{self.dir}/{track.name}"


class RecordingCandidate(BaseModel):
    """One advanced-search document, input to best-recording selection."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    date: str | None = None
    avg_rating: float = 0.0
    num_reviews: int = 0
    downloads: int = 0

    @property
    def show_date(self) -> str | None:
        return self.date[:10] if self.date and len(self.date) >= 10 else None

    @property
    def is_soundboard(self) -> bool:
        return "sbd" in self.identifier.lower()


class ShowStats(BaseModel):
    """Rating/review/download aggregates for one identifier."""

    model_config = ConfigDict(frozen=True)

    avg_rating: float | None = None
    num_reviews: int = 0
    downloads: int = 0
