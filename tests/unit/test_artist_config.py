"""Unit tests for artist YAML loading/validation and the app config loader."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from src.config.artist_config import ArtistConfigLoader, ArtistConfigValidator
from src.config.loader import artist_collection_mapping, load_config
from src.config.settings import Settings
from src.models.artist import AlbumType, TrackType
from src.utils.errors import ConfigurationError


def _write(directory: Path, name: str, body: str) -> Path:
    path = directory / name
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


# ======================================================================
# Loader
# ======================================================================


class TestArtistConfigLoader:
    def test_load_definition(self, artist_loader: ArtistConfigLoader) -> None:
        definition = artist_loader.load("grateful-dead")

        assert definition.name == "Grateful Dead"
        assert definition.collection_id == "GratefulDead"
        assert len(definition.tracks) == 6
        eyes = definition.tracks[1]
        assert eyes.aliases == ("Eyes",)
        assert eyes.type == TrackType.ORIGINAL
        assert definition.albums[0].type == AlbumType.LIVE

    def test_definitions_cached(self, artist_loader: ArtistConfigLoader) -> None:
        assert artist_loader.load("grateful-dead") is artist_loader.load("grateful-dead")

    def test_missing_file(self, artist_loader: ArtistConfigLoader) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            artist_loader.load("phish")

    def test_invalid_yaml(self, artists_dir: Path, artist_loader: ArtistConfigLoader) -> None:
        _write(artists_dir, "broken.yaml", "artist: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            artist_loader.load("broken")

    def test_validation_errors_listed(
        self, artists_dir: Path, artist_loader: ArtistConfigLoader
    ) -> None:
        _write(
            artists_dir,
            "bad.yaml",
            """\
            artist:
              name: Bad
            tracks:
              - key: one
                name: One
              - key: one
                name: Again
                type: medley
            """,
        )
        with pytest.raises(ConfigurationError) as exc_info:
            artist_loader.load("bad")

        message = exc_info.value.message
        assert "collection_id is required" in message
        assert "Duplicate track key 'one'" in message
        assert "invalid type 'medley'" in message

    def test_lookup_helpers(self, artists_dir: Path, artist_loader: ArtistConfigLoader) -> None:
        _write(
            artists_dir,
            "phish.yaml",
            """\
            artist:
              name: Phish
              collection_id: phish
            matching:
              fuzzy_threshold: 85
            tracks:
              - key: tweezer
                name: Tweezer
            """,
        )

        assert artist_loader.list_artist_keys() == ["grateful-dead", "phish"]
        assert artist_loader.find_by_name("  PHISH ").key == "phish"
        assert artist_loader.find_by_collection("GratefulDead").key == "grateful-dead"
        assert artist_loader.find_by_name("Widespread Panic") is None
        assert artist_loader.load("phish").matching.fuzzy_threshold == 85

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert ArtistConfigLoader(tmp_path / "none").list_artist_keys() == []


class TestArtistConfigValidator:
    def test_warnings_for_empty_sections(self) -> None:
        errors, warnings = ArtistConfigValidator().validate(
            {"artist": {"name": "X", "collection_id": "x"}}
        )
        assert errors == []
        assert len(warnings) == 2

    def test_non_mapping(self) -> None:
        errors, _ = ArtistConfigValidator().validate(["artist"])
        assert errors == ["Artist file must be a mapping"]

    @pytest.mark.parametrize(
        ("section", "expected"),
        [
            ({"artist": {"name": "X", "collection_id": "x", "url_key": "Bad Key"}}, "url_key"),
            (
                {"artist": {"name": "X", "collection_id": "x"}, "matching": {"fuzzy_threshold": 150}},
                "fuzzy_threshold",
            ),
            (
                {"artist": {"name": "X", "collection_id": "x"}, "albums": [{"key": "a"}]},
                "needs 'key' and 'name'",
            ),
            (
                {
                    "artist": {"name": "X", "collection_id": "x"},
                    "tracks": [{"key": "a", "name": "A", "aliases": [""]}],
                },
                "empty alias",
            ),
        ],
    )
    def test_errors(self, section: dict, expected: str) -> None:
        errors, _ = ArtistConfigValidator().validate(section)
        assert any(expected in error for error in errors)


# ======================================================================
# Application config
# ======================================================================


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=Settings(_env_file=None))
        assert config["artists"] == {}
        assert config["schedule"] == {}
        assert config["archive"]["base_url"] == "https://archive.org"

    def test_yaml_merged_with_settings(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "config.yaml",
            """\
            artists:
              Grateful Dead: GratefulDead
            archive:
              timeout: 5
              extra: kept
            """,
        )

        config = load_config(
            str(path), settings=Settings(_env_file=None, archive_timeout=12.5)
        )

        assert artist_collection_mapping(config) == {"Grateful Dead": "GratefulDead"}
        assert config["archive"]["timeout"] == 12.5
        assert config["archive"]["extra"] == "kept"

    def test_non_mapping_top_level(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "config.yaml", "- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path), settings=Settings(_env_file=None))

    def test_collection_required(self) -> None:
        with pytest.raises(ConfigurationError, match="Grateful Dead"):
            artist_collection_mapping({"artists": {"Grateful Dead": None}})
