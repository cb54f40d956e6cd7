"""Shared pytest fixtures for the tapeVault test suite."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import pytest

from src.config.artist_config import ArtistConfigLoader
from src.config.settings import Settings
from src.interfaces.archive_client import IArchiveClient
from src.models.catalog import RecordingCandidate, Show, ShowStats
from src.providers.archive.metadata_parser import parse_show
from src.providers.catalog.memory_catalog_store import MemoryCatalogStore
from src.providers.metadata.file_metadata_store import MetadataCache, ProgressStore
from src.services.lock_service import LockService
from src.services.track_matcher import TrackMatcher
from src.utils.errors import ArchiveApiError

# ---------------------------------------------------------------------------
# Sample archive payloads
# ---------------------------------------------------------------------------

ARTIST_YAML = textwrap.dedent(
    """\
    artist:
      name: Grateful Dead
      collection_id: GratefulDead
      url_key: grateful-dead
    tracks:
      - key: dark-star
        name: Dark Star
      - key: eyes-of-the-world
        name: Eyes of the World
        aliases: [Eyes]
      - key: china-cat-sunflower
        name: China Cat Sunflower
      - key: scarlet-begonias
        name: Scarlet Begonias
        aliases: [Scarlet]
      - key: fire-on-the-mountain
        name: Fire on the Mountain
      - key: sugar-magnolia
        name: Sugar Magnolia
    albums:
      - key: europe-72
        name: Europe '72
        type: live
    """
)


def make_metadata(
    identifier: str,
    titles: list[str] | None = None,
    date: str = "1977-05-08",
    venue: str = "Barton Hall, Cornell University",
    **metadata_extra: Any,
) -> dict[str, Any]:
    """Build an archive ``/metadata/<id>`` response with one FLAC per title."""
    titles = ["Dark Star", "Eyes Of The World"] if titles is None else titles
    files: list[dict[str, Any]] = []
    for number, title in enumerate(titles, start=1):
        files.append(
            {
                "name": f"{identifier}t{number:02d}.flac",
                "title": title,
                "track": str(number),
                "length": "332.45",
                "format": "Flac",
                "sha1": f"{identifier}-sha1-{number:02d}",
                "source": "original",
            }
        )
        # Derivatives and artwork must be ignored.
        files.append({"name": f"{identifier}t{number:02d}.mp3", "title": title, "format": "VBR MP3"})
    files.append({"name": "cover.jpg", "format": "JPEG"})

    metadata: dict[str, Any] = {
        "identifier": identifier,
        "title": f"Grateful Dead Live at {venue} on {date}",
        "date": date,
        "year": date[:4],
        "venue": venue,
        "coverage": "Ithaca, NY",
        "creator": "Grateful Dead",
        "taper": "Betty Cantor",
        "transferer": "Charlie Miller",
        "source": "SBD > Reel > DAT",
        "lineage": "DAT > CD > FLAC",
        "collection": ["GratefulDead", "etree"],
        "publicdate": "2004-03-12 00:00:00",
    }
    metadata.update(metadata_extra)
    return {
        "metadata": metadata,
        "files": files,
        "reviews": [{"stars": "5"}, {"stars": "4"}],
        "dir": f"/27/items/{identifier}",
        "d1": "ia800300.us.archive.org",
        "d2": "ia600300.us.archive.org",
    }


@pytest.fixture
def sample_metadata() -> dict[str, Any]:
    return make_metadata("gd1977-05-08.sbd.miller.89174")


# ---------------------------------------------------------------------------
# Fake archive client
# ---------------------------------------------------------------------------


class FakeArchiveClient(IArchiveClient):
    """In-memory IArchiveClient: candidates per collection, metadata per id."""

    def __init__(self, audio_format: str = "flac") -> None:
        self.candidates: dict[str, list[RecordingCandidate]] = {}
        self.metadata: dict[str, dict[str, Any]] = {}
        self.stats: dict[str, ShowStats] = {}
        self.failures: dict[str, Exception] = {}
        self.fetch_calls: list[str] = []
        self.search_calls: list[tuple[str, str | None]] = []
        self._audio_format = audio_format

    def add_show(
        self,
        collection_id: str,
        identifier: str,
        date: str = "1977-05-08",
        titles: list[str] | None = None,
        avg_rating: float = 4.0,
        num_reviews: int = 10,
        downloads: int = 1000,
    ) -> None:
        self.candidates.setdefault(collection_id, []).append(
            RecordingCandidate(
                identifier=identifier,
                date=date,
                avg_rating=avg_rating,
                num_reviews=num_reviews,
                downloads=downloads,
            )
        )
        self.metadata[identifier] = make_metadata(identifier, titles=titles, date=date)

    async def list_collection_identifiers(
        self,
        collection_id: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[str]:
        identifiers = [c.identifier for c in self.candidates.get(collection_id, [])][offset:]
        return identifiers[:limit] if limit is not None else identifiers

    async def search_collection(self, collection_id, since=None, on_page=None):
        self.search_calls.append((collection_id, since))
        return list(self.candidates.get(collection_id, []))

    async def fetch_metadata(self, identifier: str) -> dict[str, Any]:
        self.fetch_calls.append(identifier)
        if identifier in self.failures:
            raise self.failures[identifier]
        if identifier not in self.metadata:
            raise ArchiveApiError(
                message=f"HTTP 404 from metadata/{identifier}",
                endpoint=f"metadata/{identifier}",
                status_code=404,
            )
        return self.metadata[identifier]

    async def fetch_show_metadata(self, identifier: str) -> Show:
        return parse_show(identifier, await self.fetch_metadata(identifier), self._audio_format)

    async def fetch_batch_stats(self, identifiers: list[str]) -> dict[str, ShowStats]:
        return {i: self.stats[i] for i in identifiers if i in self.stats}

    async def test_connectivity(self) -> bool:
        return True

    async def collection_item_count(self, collection_id: str) -> int:
        return len(self.candidates.get(collection_id, []))


@pytest.fixture
def archive_client() -> FakeArchiveClient:
    return FakeArchiveClient()


# ---------------------------------------------------------------------------
# Settings, stores and services on a temporary directory
# ---------------------------------------------------------------------------


@pytest.fixture
def artists_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "artists"
    directory.mkdir()
    (directory / "grateful-dead.yaml").write_text(ARTIST_YAML, encoding="utf-8")
    return directory


@pytest.fixture
def settings(tmp_path: Path, artists_dir: Path) -> Settings:
    """Settings rooted in tmp_path with every delay switched off."""
    data_dir = tmp_path / "data"
    return Settings(
        _env_file=None,
        data_dir=str(data_dir),
        lock_dir=str(data_dir / "locks"),
        artists_config_dir=str(artists_dir),
        catalog_db_path=str(data_dir / "catalog.db"),
        unmatched_db_path=str(data_dir / "unmatched.db"),
        api_delay_ms=0,
        batch_pause_ms=0,
        retry_delay_ms=0,
        rate_limit_ms=0,
    )


@pytest.fixture
def artist_loader(artists_dir: Path) -> ArtistConfigLoader:
    return ArtistConfigLoader(artists_dir)


@pytest.fixture
def matcher(artist_loader: ArtistConfigLoader) -> TrackMatcher:
    return TrackMatcher(artist_loader)


@pytest.fixture
def metadata_cache(settings: Settings) -> MetadataCache:
    return MetadataCache(settings.metadata_dir)


@pytest.fixture
def progress_store(settings: Settings) -> ProgressStore:
    return ProgressStore(settings.progress_dir)


@pytest.fixture
def lock_service(settings: Settings) -> LockService:
    service = LockService(settings.lock_dir)
    yield service
    service.release_all()


@pytest.fixture
def catalog_store() -> MemoryCatalogStore:
    return MemoryCatalogStore()
