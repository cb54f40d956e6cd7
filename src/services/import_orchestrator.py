"""Import orchestrator -- turns cached shows into catalog items.

For every show in a collection, each audio track becomes one catalog item
keyed by its SKU (the file's sha1).  Titles are resolved against the
artist's canonical tracks, the item's fields are compared with what the
store already holds, and only real changes are written:

    stored fields  None      -> create
    stored fields  differ    -> update
    stored fields  identical -> skip

Item-level failures are captured as ``ImportErrorRecord`` entries and the
run continues; connectivity failures (open circuit, exhausted retries)
and cancellation propagate to the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog

from src.config.artist_config import ArtistConfigLoader
from src.interfaces.archive_client import IArchiveClient
from src.interfaces.catalog_store import ICatalogStore
from src.interfaces.unmatched_store import IUnmatchedTrackStore
from src.models.catalog import Show, Track
from src.models.job import ImportErrorRecord, ImportResult
from src.models.matching import MatchResult
from src.services.metadata_crawler import MetadataCrawler
from src.services.track_matcher import TrackMatcher
from src.utils.concurrency import invoke_callback
from src.utils.errors import (
    ArchiveApiError,
    CatalogStoreError,
    ErrorKind,
    ShowImportError,
    TrackImportError,
)
from src.utils.logging import get_logger

# (total, current, message)
ImportProgressCallback = Callable[[int, int, str], Awaitable[None] | None]

_NOT_STORED = "not stored"


def show_group_name(show: Show) -> str:
    """Name of the per-show group an item is filed under."""
    return show.title or show.identifier


def build_item_fields(
    track: Track,
    show: Show,
    artist_name: str,
    match: MatchResult | None = None,
) -> dict[str, Any]:
    """Flat, fixed set of catalog fields for one track of one show."""
    name = " ".join(
        part for part in (artist_name, track.title, show.year or "", show.venue or "") if part
    )
    fields: dict[str, Any] = {
        "name": name.strip(),
        "url_key": track.url_key,
        "title": track.title,
        "length": track.formatted_length,
        "track_number": track.track_number,
        "identifier": show.identifier,
        "show_name": show.title,
        "show_date": show.date,
        "show_year": show.year,
        "show_venue": show.venue,
        "show_taper": show.taper,
        "show_transferer": show.transferer,
        "show_location": show.coverage,
        "show_source": track.source or show.source,
        "lineage": show.lineage or _NOT_STORED,
        "notes": show.notes or _NOT_STORED,
        "dir": show.dir,
        "server_one": show.server_one or _NOT_STORED,
        "server_two": show.server_two or _NOT_STORED,
        "pub_date": show.pub_date,
        "guid": show.guid,
        "song_url": show.streaming_url(track),
        "archive_collection": artist_name,
        "archive_avg_rating": show.avg_rating,
        "archive_num_reviews": show.num_reviews,
        "canonical_key": match.canonical_key if match else None,
        "match_type": match.match_type.value if match else None,
        "match_confidence": match.confidence if match else None,
    }
    return fields


@dataclass
class _Tally:
    """Mutable counters for one run; frozen into an ``ImportResult`` at the end."""

    artist_name: str
    collection_id: str | None
    dry_run: bool
    total_shows: int = 0
    shows_processed: int = 0
    tracks_created: int = 0
    tracks_updated: int = 0
    tracks_skipped: int = 0
    tracks_matched: int = 0
    tracks_unmatched: int = 0
    errors: list[ImportErrorRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def freeze(self) -> ImportResult:
        return ImportResult(
            artist_name=self.artist_name,
            collection_id=self.collection_id,
            total_shows=self.total_shows,
            shows_processed=self.shows_processed,
            tracks_created=self.tracks_created,
            tracks_updated=self.tracks_updated,
            tracks_skipped=self.tracks_skipped,
            tracks_matched=self.tracks_matched,
            tracks_unmatched=self.tracks_unmatched,
            errors=tuple(self.errors),
            dry_run=self.dry_run,
            started_at=self.started_at,
            finished_at=datetime.now(tz=timezone.utc),
        )


class ImportOrchestrator:
    """Coordinates crawler, matcher and catalog store for one artist at a time.

    Parameters
    ----------
    crawler:
        Source of cached show metadata (and the crawl when nothing is cached).
    client:
        Fallback for shows missing from the cache.
    catalog_store:
        Destination for items and group assignments.
    matcher:
        Track matching engine.
    artist_loader:
        Resolves the artist definition for a display name.
    unmatched_store:
        Optional review queue for titles no tier matched.
    batch_size:
        Shows per batch.
    batch_pause_ms:
        Pause between batches.
    """

    def __init__(
        self,
        crawler: MetadataCrawler,
        client: IArchiveClient,
        catalog_store: ICatalogStore,
        matcher: TrackMatcher,
        artist_loader: ArtistConfigLoader,
        unmatched_store: IUnmatchedTrackStore | None = None,
        batch_size: int = 100,
        batch_pause_ms: int = 500,
    ) -> None:
        self._crawler = crawler
        self._client = client
        self._store = catalog_store
        self._matcher = matcher
        self._artists = artist_loader
        self._unmatched = unmatched_store
        self._batch_size = max(1, batch_size)
        self._batch_pause = batch_pause_ms / 1000.0
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def import_by_collection(
        self,
        artist_name: str,
        collection_id: str,
        limit: int | None = None,
        offset: int = 0,
        on_progress: ImportProgressCallback | None = None,
        dry_run: bool = False,
    ) -> ImportResult:
        """Import every cached show of *collection_id* for *artist_name*.

        Raises
        ------
        CircuitOpenError
            The archive circuit is open.
        ArchiveApiError
            A connectivity failure (no HTTP status) after retries.
        JobCancelledError
            Raised by *on_progress* when the owning job was cancelled.
        """
        tally = _Tally(artist_name=artist_name, collection_id=collection_id, dry_run=dry_run)
        artist_key = self._resolve_artist_key(artist_name)

        try:
            identifiers = self._crawler.get_downloaded_identifiers(collection_id)
            if not identifiers and not dry_run:
                self._logger.info("import_nothing_cached_crawling", collection=collection_id)
                await self._crawler.download(collection_id)
                identifiers = self._crawler.get_downloaded_identifiers(collection_id)

            identifiers = identifiers[offset:]
            if limit is not None:
                identifiers = identifiers[:limit]
            tally.total_shows = len(identifiers)

            self._logger.info(
                "import_started",
                artist=artist_name,
                artist_key=artist_key,
                collection=collection_id,
                shows=tally.total_shows,
                dry_run=dry_run,
            )

            for batch_start in range(0, len(identifiers), self._batch_size):
                if batch_start and self._batch_pause:
                    await asyncio.sleep(self._batch_pause)
                batch = identifiers[batch_start : batch_start + self._batch_size]
                for position, identifier in enumerate(batch, start=batch_start + 1):
                    await invoke_callback(
                        on_progress,
                        tally.total_shows,
                        position,
                        f"Processing {identifier}",
                    )
                    await self._import_one_show(identifier, artist_name, artist_key, tally)
        finally:
            if artist_key is not None:
                self._matcher.clear_indexes(artist_key)

        result = tally.freeze()
        self._logger.info(
            "import_complete",
            artist=artist_name,
            collection=collection_id,
            shows=result.shows_processed,
            created=result.tracks_created,
            updated=result.tracks_updated,
            skipped=result.tracks_skipped,
            unmatched=result.tracks_unmatched,
            errors=result.error_count,
            duration=round(result.duration_seconds, 2),
        )
        return result

    async def import_show(
        self,
        identifier: str,
        artist_name: str,
        dry_run: bool = False,
    ) -> ImportResult:
        """Import a single show by identifier."""
        tally = _Tally(artist_name=artist_name, collection_id=None, dry_run=dry_run, total_shows=1)
        artist_key = self._resolve_artist_key(artist_name)
        try:
            await self._import_one_show(identifier, artist_name, artist_key, tally)
        finally:
            if artist_key is not None:
                self._matcher.clear_indexes(artist_key)
        return tally.freeze()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_artist_key(self, artist_name: str) -> str | None:
        definition = self._artists.find_by_name(artist_name)
        if definition is None:
            self._logger.warning("import_artist_not_configured", artist=artist_name)
            return None
        self._matcher.build_indexes(definition.key)
        return definition.key

    async def _load_show(self, identifier: str) -> Show:
        show = self._crawler.load_show(identifier)
        if show is not None:
            return show
        return await self._client.fetch_show_metadata(identifier)

    async def _import_one_show(
        self,
        identifier: str,
        artist_name: str,
        artist_key: str | None,
        tally: _Tally,
    ) -> None:
        try:
            show = await self._load_show(identifier)
            if not show.tracks:
                raise ShowImportError(f"No audio tracks in '{identifier}'", identifier=identifier)
        except ArchiveApiError as exc:
            if exc.is_connectivity_failure:
                raise
            self._record_show_error(tally, identifier, exc.message)
            return
        except ShowImportError as exc:
            self._record_show_error(tally, identifier, exc.message)
            return

        for track in show.tracks:
            await self._import_track(track, show, artist_name, artist_key, tally)
        tally.shows_processed += 1

    async def _import_track(
        self,
        track: Track,
        show: Show,
        artist_name: str,
        artist_key: str | None,
        tally: _Tally,
    ) -> None:
        sku = track.sku
        if not sku:
            tally.tracks_skipped += 1
            return

        match = self._matcher.match(track.title, artist_key) if artist_key else None
        if match is not None:
            tally.tracks_matched += 1
        else:
            tally.tracks_unmatched += 1
            if artist_key and not tally.dry_run and self._unmatched is not None:
                await self._record_unmatched(artist_key, track.title)

        fields = build_item_fields(track, show, artist_name, match)
        try:
            existing = await self._store.get_item_fields(sku)
            if existing == fields:
                # Groups are re-asserted so a failed assignment on an earlier
                # run gets repaired; assign_to_group is idempotent.
                if not tally.dry_run:
                    item_id = await self._store.get_item_id(sku)
                    if item_id is not None:
                        await self._assign_groups(item_id, show, artist_name)
                tally.tracks_skipped += 1
                return

            if not tally.dry_run:
                item_id = await self._store.upsert_item(sku, fields)
                await self._assign_groups(item_id, show, artist_name)
        except (CatalogStoreError, TrackImportError) as exc:
            tally.errors.append(
                ImportErrorRecord(
                    kind=ErrorKind.TRACK_IMPORT,
                    message=exc.message,
                    identifier=show.identifier,
                    sku=sku,
                )
            )
            self._logger.warning(
                "track_import_failed",
                identifier=show.identifier,
                sku=sku,
                error=exc.message,
            )
            return

        if existing is None:
            tally.tracks_created += 1
        else:
            tally.tracks_updated += 1

    async def _assign_groups(self, item_id: str, show: Show, artist_name: str) -> None:
        await self._store.assign_to_group(item_id, (artist_name,))
        await self._store.assign_to_group(item_id, (artist_name, show_group_name(show)))

    async def _record_unmatched(self, artist_key: str, raw_title: str) -> None:
        suggestion = self._matcher.suggest(raw_title, artist_key)
        suggested_key, confidence = suggestion if suggestion else (None, 0.0)
        try:
            await self._unmatched.record(
                artist_key,
                raw_title,
                suggested_key=suggested_key,
                confidence=confidence,
            )
        except CatalogStoreError as exc:
            self._logger.warning("unmatched_record_failed", title=raw_title, error=exc.message)

    def _record_show_error(self, tally: _Tally, identifier: str, message: str) -> None:
        tally.errors.append(
            ImportErrorRecord(kind=ErrorKind.SHOW_IMPORT, message=message, identifier=identifier)
        )
        self._logger.warning("show_import_failed", identifier=identifier, error=message)
