# =============================================================================
# src/cli/__main__.py -- Package Entry Point
# =============================================================================
#
# Enables running the CLI package itself as a module:
#     python -m src.cli download GratefulDead --limit 50
#
# Delegates to the archive CLI (archive.py), which owns every subcommand.
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.archive import main

main()
