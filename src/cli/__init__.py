# =============================================================================
# src/cli/__init__.py -- CLI Module Overview
# =============================================================================
#
# Command-line tools for operating tapeVault outside the API server:
# cron crawls, one-off imports, job inspection and housekeeping.
#
# Architecture Notes:
#   - argparse for argument parsing (not Click/Typer).
#   - Commands build the same component graph as the API server through
#     src/bootstrap.py, so lock files, caches and job records are shared
#     between the CLI, cron and the web process.
# =============================================================================

"""CLI tools for the tapeVault import pipeline.

- ``python -m src.cli download <collection>`` -- crawl collection metadata
- ``python -m src.cli import <artist>`` -- import cached shows into the catalog
- ``python -m src.cli jobs`` / ``cancel`` / ``worker`` -- job queue operations
- ``python -m src.cli cleanup`` -- purge old jobs and stale locks
"""
