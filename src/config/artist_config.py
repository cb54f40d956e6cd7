"""Artist YAML definitions -- loading, validation and lookup.

One file per artist under ``artists_config_dir`` (``config/artists`` by
default), named ``<artist_key>.yaml``.  See :mod:`src.models.artist` for
the file layout.

Validation separates *errors* (the file cannot be used: missing name or
collection, duplicate track keys, bad enum values) from *warnings* (the
file works but is probably incomplete: no tracks, no albums).  Errors
raise ConfigurationError with every problem listed; warnings are logged.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import structlog
import yaml

from src.models.artist import (
    AlbumDefinition,
    AlbumType,
    ArtistDefinition,
    CanonicalTrack,
    MatchingOverrides,
    TrackType,
)
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_URL_KEY_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_TRACK_TYPES = {t.value for t in TrackType}
_ALBUM_TYPES = {t.value for t in AlbumType}


class ArtistConfigValidator:
    """Check a raw artist YAML document before it is turned into models."""

    def validate(self, data: Any) -> tuple[list[str], list[str]]:
        """Return ``(errors, warnings)`` for one decoded YAML document."""
        errors: list[str] = []
        warnings: list[str] = []

        if not isinstance(data, dict):
            return ["Artist file must be a mapping"], warnings

        artist = data.get("artist")
        if not isinstance(artist, dict):
            errors.append("Missing 'artist' section")
            artist = {}
        if not artist.get("name"):
            errors.append("artist.name is required")
        if not artist.get("collection_id"):
            errors.append("artist.collection_id is required")
        url_key = artist.get("url_key")
        if url_key is not None and not _URL_KEY_RE.match(str(url_key)):
            errors.append(f"artist.url_key '{url_key}' must be lowercase words joined by hyphens")

        matching = data.get("matching") or {}
        threshold = matching.get("fuzzy_threshold") if isinstance(matching, dict) else None
        if threshold is not None:
            if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 100:
                errors.append("matching.fuzzy_threshold must be a number between 0 and 100")

        errors.extend(self._validate_tracks(data.get("tracks"), warnings))
        errors.extend(self._validate_albums(data.get("albums"), warnings))
        return errors, warnings

    def _validate_tracks(self, tracks: Any, warnings: list[str]) -> list[str]:
        if not tracks:
            warnings.append("No tracks defined; every track will be unmatched")
            return []
        if not isinstance(tracks, list):
            return ["'tracks' must be a list"]

        errors: list[str] = []
        seen: set[str] = set()
        for position, track in enumerate(tracks, start=1):
            if not isinstance(track, dict):
                errors.append(f"Track #{position} must be a mapping")
                continue
            key = track.get("key")
            if not key:
                errors.append(f"Track #{position} is missing 'key'")
            elif key in seen:
                errors.append(f"Duplicate track key '{key}'")
            else:
                seen.add(key)
            if not track.get("name"):
                errors.append(f"Track '{key or position}' is missing 'name'")
            for alias in track.get("aliases") or []:
                if not isinstance(alias, str) or not alias.strip():
                    errors.append(f"Track '{key or position}' has an empty alias")
            track_type = track.get("type")
            if track_type is not None and track_type not in _TRACK_TYPES:
                errors.append(
                    f"Track '{key or position}' has invalid type '{track_type}' "
                    f"(expected one of {sorted(_TRACK_TYPES)})"
                )
        return errors

    def _validate_albums(self, albums: Any, warnings: list[str]) -> list[str]:
        if not albums:
            warnings.append("No albums defined")
            return []
        if not isinstance(albums, list):
            return ["'albums' must be a list"]

        errors: list[str] = []
        for position, album in enumerate(albums, start=1):
            if not isinstance(album, dict) or not album.get("key") or not album.get("name"):
                errors.append(f"Album #{position} needs 'key' and 'name'")
                continue
            album_type = album.get("type")
            if album_type is not None and album_type not in _ALBUM_TYPES:
                errors.append(
                    f"Album '{album['key']}' has invalid type '{album_type}' "
                    f"(expected one of {sorted(_ALBUM_TYPES)})"
                )
        return errors


class ArtistConfigLoader:
    """Load and cache :class:`ArtistDefinition` objects from YAML files.

    Parameters
    ----------
    config_dir:
        Directory holding ``<artist_key>.yaml`` files.
    validator:
        Validator applied to every file on first load.
    """

    def __init__(
        self,
        config_dir: str | Path,
        validator: ArtistConfigValidator | None = None,
    ) -> None:
        self._config_dir = Path(config_dir)
        self._validator = validator or ArtistConfigValidator()
        self._cache: dict[str, ArtistDefinition] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def list_artist_keys(self) -> list[str]:
        if not self._config_dir.exists():
            return []
        return sorted(path.stem for path in self._config_dir.glob("*.yaml"))

    def load(self, artist_key: str) -> ArtistDefinition:
        """Return the definition for *artist_key*, loading it on first use.

        Raises
        ------
        ConfigurationError
            If the file is missing, is not valid YAML, or fails validation.
        """
        if artist_key in self._cache:
            return self._cache[artist_key]

        path = self._config_dir / f"{artist_key}.yaml"
        if not path.exists():
            raise ConfigurationError(f"Artist config not found: {path}")

        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

        errors, warnings = self._validator.validate(data)
        for warning in warnings:
            self._logger.warning("artist_config_warning", artist_key=artist_key, warning=warning)
        if errors:
            raise ConfigurationError(
                f"Invalid artist config {path}: " + "; ".join(errors)
            )

        definition = self._build(artist_key, data)
        self._cache[artist_key] = definition
        self._logger.debug(
            "artist_config_loaded",
            artist_key=artist_key,
            tracks=len(definition.tracks),
        )
        return definition

    def load_all(self) -> list[ArtistDefinition]:
        return [self.load(key) for key in self.list_artist_keys()]

    def find_by_name(self, artist_name: str) -> ArtistDefinition | None:
        wanted = artist_name.strip().lower()
        for definition in self.load_all():
            if definition.name.lower() == wanted:
                return definition
        return None

    def find_by_collection(self, collection_id: str) -> ArtistDefinition | None:
        for definition in self.load_all():
            if definition.collection_id == collection_id:
                return definition
        return None

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def _build(artist_key: str, data: dict[str, Any]) -> ArtistDefinition:
        artist = data["artist"]
        matching = data.get("matching") or {}
        return ArtistDefinition(
            key=artist_key,
            name=str(artist["name"]),
            collection_id=str(artist["collection_id"]),
            url_key=artist.get("url_key"),
            matching=MatchingOverrides(
                fuzzy_threshold=matching.get("fuzzy_threshold"),
                phonetic_min_length=matching.get("phonetic_min_length"),
            ),
            tracks=tuple(
                CanonicalTrack(
                    key=str(track["key"]),
                    name=str(track["name"]),
                    aliases=tuple(str(alias) for alias in track.get("aliases") or []),
                    type=track.get("type") or TrackType.ORIGINAL,
                )
                for track in data.get("tracks") or []
            ),
            albums=tuple(
                AlbumDefinition(
                    key=str(album["key"]),
                    name=str(album["name"]),
                    type=album.get("type") or AlbumType.STUDIO,
                )
                for album in data.get("albums") or []
            ),
        )
