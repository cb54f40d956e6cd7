# =============================================================================
# src/cli/archive.py -- tapeVault command line
# =============================================================================
#
# Operator CLI for crawling archive.org collections and importing them into
# the catalog.  Every command builds the same components the API server uses
# (src/bootstrap.py), so locks, caches and job records are shared between
# cron runs, the CLI and the web process.
#
# Supported subcommands:
#
#   download      -- crawl a collection's metadata (resumable, incremental)
#   retry-failed  -- re-fetch identifiers that failed during a crawl
#   import        -- import an artist now, or --queue it as a job
#   import-show   -- import one show by identifier
#   import-all    -- cron import for every configured artist
#   status        -- crawl progress per collection
#   jobs          -- list import jobs
#   cancel        -- cancel a queued or running job
#   worker        -- run queued jobs in this process
#   refresh-stats -- update cached rating/review/download figures
#   unmatched     -- list titles no matching tier resolved
#   cleanup       -- purge old jobs and stale lock files
#
# Usage examples:
#   python -m src.cli download GratefulDead --limit 50
#   python -m src.cli download GratefulDead --incremental
#   python -m src.cli import "Grateful Dead" --dry-run
#   python -m src.cli import "Grateful Dead" --queue
#   python -m src.cli worker --max-jobs 5
#   python -m src.cli cleanup
# =============================================================================

"""Operator CLI for the tapeVault import pipeline.

Usage::

    python -m src.cli download GratefulDead --limit 50
    python -m src.cli import "Grateful Dead" --dry-run
    python -m src.cli jobs --status failed

Exit codes: 0 on success, 1 on an application error, 2 on bad usage.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Awaitable, Callable

from src.bootstrap import build_components, close_components, initialize_components
from src.config.loader import load_config
from src.config.settings import Settings
from src.models.job import ImportResult, JobStatus
from src.utils.errors import ArchiveImportError, ConfigurationError
from src.utils.logging import configure_logging

Handler = Callable[[argparse.Namespace, dict[str, Any]], Awaitable[int]]


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _print_result(result: ImportResult) -> None:
    label = " (dry run)" if result.dry_run else ""
    print(f"\nImport complete{label}: {result.artist_name}")
    print(f"  Shows:     {result.shows_processed}/{result.total_shows}")
    print(f"  Created:   {result.tracks_created}")
    print(f"  Updated:   {result.tracks_updated}")
    print(f"  Skipped:   {result.tracks_skipped}")
    print(f"  Matched:   {result.tracks_matched}")
    print(f"  Unmatched: {result.tracks_unmatched}")
    print(f"  Errors:    {result.error_count}")
    print(f"  Time:      {result.duration_seconds:.2f}s")
    for line in result.error_summary():
        print(f"    - {line}")


def _resolve_collection(args: argparse.Namespace, components: dict[str, Any]) -> str:
    collection_id = getattr(args, "collection", None) or components["collections"].get(args.artist)
    if not collection_id:
        raise ConfigurationError(f"No archive collection configured for artist '{args.artist}'")
    return collection_id


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_download(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Crawl one collection."""
    print(f"Crawling collection: {args.collection_id}")

    def _on_progress(current: int, total: int, identifier: str) -> None:
        if current % 25 == 0 or current == total:
            print(f"  [{current}/{total}] {identifier}")

    summary = await components["crawler"].download(
        args.collection_id,
        limit=args.limit,
        force=args.force,
        incremental=args.incremental,
        since=args.since,
        on_progress=_on_progress,
    )

    if summary.skipped_completed:
        print("Collection already fully crawled (use --force or --incremental).")
    print("\nCrawl complete:")
    print(f"  Recordings found: {summary.total_recordings}")
    print(f"  Unique shows:     {summary.unique_shows}")
    print(f"  Downloaded:       {summary.downloaded}")
    print(f"  Already cached:   {summary.cached}")
    print(f"  Failed:           {summary.failed}")
    for identifier in summary.failed_identifiers[:10]:
        print(f"    - {identifier}")
    return 0


async def _handle_retry_failed(args: argparse.Namespace, components: dict[str, Any]) -> int:
    outcome = await components["crawler"].retry_failed(args.collection_id)
    print(f"Recovered: {outcome['downloaded']}  Still failing: {outcome['still_failed']}")
    return 0 if outcome["still_failed"] == 0 else 1


async def _handle_import(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Import an artist now, or queue it for a worker."""
    collection_id = _resolve_collection(args, components)

    if args.queue:
        publisher = components["publisher"]
        # No worker pool in a CLI process; `worker` or the API server runs it.
        publisher.attach_pool(None)
        job = await publisher.publish(
            args.artist,
            collection_id,
            limit=args.limit,
            offset=args.offset,
            dry_run=args.dry_run,
        )
        print(f"Queued job {job.job_id}")
        return 0

    lock_service = components["lock_service"]
    async with lock_service.hold("import", collection_id):
        result = await components["orchestrator"].import_by_collection(
            args.artist,
            collection_id,
            limit=args.limit,
            offset=args.offset,
            on_progress=lambda total, current, message: print(f"  [{current}/{total}] {message}"),
            dry_run=args.dry_run,
        )
    _print_result(result)
    return 0


async def _handle_import_show(args: argparse.Namespace, components: dict[str, Any]) -> int:
    result = await components["orchestrator"].import_show(
        args.identifier,
        args.artist,
        dry_run=args.dry_run,
    )
    _print_result(result)
    return 0 if result.error_count == 0 else 1


async def _handle_import_all(args: argparse.Namespace, components: dict[str, Any]) -> int:
    results = await components["scheduler"].import_all(args.artist or None)
    failed = 0
    for artist_name, result in results.items():
        if result is None:
            failed += 1
            print(f"{artist_name}: skipped or failed (see log)")
        else:
            print(
                f"{artist_name}: {result.shows_processed} shows, "
                f"{result.tracks_created} created, {result.tracks_updated} updated, "
                f"{result.error_count} errors"
            )
    return 0 if failed == 0 else 1


async def _handle_status(args: argparse.Namespace, components: dict[str, Any]) -> int:
    crawler = components["crawler"]
    collection_ids = [args.collection_id] if args.collection_id else sorted(
        set(components["collections"].values())
    )
    if not collection_ids:
        print("No collections configured.")
        return 0

    print(f"{'Collection':<30} {'Status':<12} {'Shows':>7} {'Cached':>7} {'Failed':>7}")
    print("-" * 67)
    for collection_id in collection_ids:
        progress = crawler.get_progress(collection_id)
        if progress is None:
            print(f"{collection_id:<30} {'never':<12} {'-':>7} {'-':>7} {'-':>7}")
            continue
        print(
            f"{collection_id:<30} {progress.status.value:<12} {progress.unique_shows:>7} "
            f"{len(progress.downloaded):>7} {len(progress.failed):>7}"
        )
    return 0


async def _handle_jobs(args: argparse.Namespace, components: dict[str, Any]) -> int:
    status = JobStatus(args.status) if args.status else None
    jobs = components["status_store"].list(status=status, limit=args.limit)
    if not jobs:
        print("No jobs.")
        return 0
    for job in jobs:
        print(
            f"{job.job_id}  {job.status.value:<10} {job.progress:5.1f}%  "
            f"{job.artist_name} ({job.collection_id})"
        )
        if job.error:
            print(f"    error: {job.error}")
    return 0


async def _handle_cancel(args: argparse.Namespace, components: dict[str, Any]) -> int:
    if await components["publisher"].cancel(args.job_id):
        print(f"Cancelled {args.job_id}")
        return 0
    print(f"Job {args.job_id} not found or already finished", file=sys.stderr)
    return 1


async def _handle_worker(args: argparse.Namespace, components: dict[str, Any]) -> int:
    processed = await components["scheduler"].process_queue(max_jobs=args.max_jobs)
    print(f"Processed {processed} job(s)")
    return 0


async def _handle_refresh_stats(args: argparse.Namespace, components: dict[str, Any]) -> int:
    updated = await components["scheduler"].refresh_stats(args.artist or None)
    for artist_name, count in updated.items():
        print(f"{artist_name}: {count} shows updated")
    return 0


async def _handle_unmatched(args: argparse.Namespace, components: dict[str, Any]) -> int:
    records = await components["unmatched_store"].list_unmatched(
        artist_key=args.artist_key,
        limit=args.limit,
    )
    if not records:
        print("No unmatched titles.")
        return 0
    for record in records:
        suggestion = (
            f" -> {record.suggested_key} ({record.confidence:.0f}%)" if record.suggested_key else ""
        )
        print(f"{record.occurrences:>5}x  [{record.artist_key}] {record.raw_title}{suggestion}")
    return 0


async def _handle_cleanup(args: argparse.Namespace, components: dict[str, Any]) -> int:
    outcome = components["scheduler"].cleanup()
    print(f"Removed {outcome['jobs_removed']} job(s) and {outcome['locks_removed']} stale lock(s)")
    return 0


_HANDLERS: dict[str, Handler] = {
    "download": _handle_download,
    "retry-failed": _handle_retry_failed,
    "import": _handle_import,
    "import-show": _handle_import_show,
    "import-all": _handle_import_all,
    "status": _handle_status,
    "jobs": _handle_jobs,
    "cancel": _handle_cancel,
    "worker": _handle_worker,
    "refresh-stats": _handle_refresh_stats,
    "unmatched": _handle_unmatched,
    "cleanup": _handle_cleanup,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the tapeVault CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Crawl archive.org collections and import them into the catalog.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to config.yaml (default: config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- download --
    download = subparsers.add_parser("download", help="Crawl a collection's metadata")
    download.add_argument("collection_id", help="Archive collection id, e.g. GratefulDead")
    download.add_argument("--limit", type=int, help="Download at most N new shows")
    download.add_argument("--force", action="store_true", help="Re-download cached shows")
    download.add_argument(
        "--incremental",
        action="store_true",
        help="Only items published since the last sync",
    )
    download.add_argument("--since", help="Explicit YYYY-MM-DD lower bound for --incremental")

    retry = subparsers.add_parser("retry-failed", help="Retry identifiers that failed to download")
    retry.add_argument("collection_id")

    # -- import --
    imp = subparsers.add_parser("import", help="Import an artist's cached shows")
    imp.add_argument("artist", help="Artist display name, as in config.yaml")
    imp.add_argument("--collection", help="Override the configured collection id")
    imp.add_argument("--limit", type=int)
    imp.add_argument("--offset", type=int, default=0)
    imp.add_argument("--dry-run", action="store_true", dest="dry_run")
    imp.add_argument("--queue", action="store_true", help="Queue a job instead of running now")

    show = subparsers.add_parser("import-show", help="Import one show by identifier")
    show.add_argument("identifier")
    show.add_argument("--artist", required=True)
    show.add_argument("--dry-run", action="store_true", dest="dry_run")

    import_all = subparsers.add_parser("import-all", help="Import every configured artist")
    import_all.add_argument("--artist", action="append", help="Restrict to this artist (repeatable)")

    # -- inspection --
    status = subparsers.add_parser("status", help="Crawl progress per collection")
    status.add_argument("collection_id", nargs="?")

    jobs = subparsers.add_parser("jobs", help="List import jobs")
    jobs.add_argument("--status", choices=[s.value for s in JobStatus])
    jobs.add_argument("--limit", type=int, default=50)

    cancel = subparsers.add_parser("cancel", help="Cancel a queued or running job")
    cancel.add_argument("job_id")

    unmatched = subparsers.add_parser("unmatched", help="List unmatched titles")
    unmatched.add_argument("--artist-key", dest="artist_key")
    unmatched.add_argument("--limit", type=int, default=50)

    # -- maintenance --
    worker = subparsers.add_parser("worker", help="Run queued jobs in this process")
    worker.add_argument("--max-jobs", type=int, default=10, dest="max_jobs")

    refresh = subparsers.add_parser("refresh-stats", help="Refresh cached show statistics")
    refresh.add_argument("--artist", action="append")

    subparsers.add_parser("cleanup", help="Purge old jobs and stale lock files")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def run_command(handler: Handler, args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Run *handler* with initialized components, always closing them."""
    await initialize_components(components)
    try:
        return await handler(args, components)
    finally:
        await close_components(components)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production" or args.command == "worker"),
    )

    try:
        app_config = load_config(args.config, settings=app_settings)
        components = build_components(app_settings, app_config)
        exit_code = asyncio.run(run_command(_HANDLERS[args.command], args, components))
    except ArchiveImportError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
