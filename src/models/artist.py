"""Artist definitions loaded from ``config/artists/<key>.yaml``.

An artist file names the archive collection to crawl and lists the
canonical tracks that raw setlist titles are matched against:

    artist:
      name: Grateful Dead
      collection_id: GratefulDead
      url_key: grateful-dead
    matching:
      fuzzy_threshold: 80
    tracks:
      - key: eyes-of-the-world
        name: Eyes of the World
        aliases: [Eyes]
        type: original
    albums:
      - key: wake-of-the-flood
        name: Wake of the Flood
        type: studio
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TrackType(str, Enum):  # noqa: UP042
    ORIGINAL = "original"
    COVER = "cover"
    JAM = "jam"


class AlbumType(str, Enum):  # noqa: UP042
    STUDIO = "studio"
    LIVE = "live"
    COMPILATION = "compilation"
    VIRTUAL = "virtual"


class CanonicalTrack(BaseModel):
    """The artist's authoritative definition of one song."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    aliases: tuple[str, ...] = Field(default_factory=tuple)
    type: TrackType = TrackType.ORIGINAL


class AlbumDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    type: AlbumType = AlbumType.STUDIO


class MatchingOverrides(BaseModel):
    """Per-artist overrides for the global matching thresholds."""

    model_config = ConfigDict(frozen=True)

    fuzzy_threshold: float | None = None
    phonetic_min_length: int | None = None


class ArtistDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    collection_id: str
    url_key: str | None = None
    matching: MatchingOverrides = Field(default_factory=MatchingOverrides)
    tracks: tuple[CanonicalTrack, ...] = Field(default_factory=tuple)
    albums: tuple[AlbumDefinition, ...] = Field(default_factory=tuple)
