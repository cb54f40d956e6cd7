"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, timestamps, stack
info) feeds either a coloured ConsoleRenderer for local runs or a
JSONRenderer for production workers.  ``APP_ENV=production`` selects JSON
automatically; ``json_output=True`` forces it (the ``worker`` CLI command
does this so job logs can be shipped as-is).

Standard-library ``logging`` is rewired through the same formatter so
httpx, uvicorn and aiosqlite output lines look like ours.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

# Per-request chatter from the HTTP stack drowns out crawl progress.
_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def _processor_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _pick_renderer(json_output: bool) -> structlog.types.Processor:
    in_production = os.environ.get("APP_ENV", "development") == "production"
    if json_output or in_production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def _route_stdlib(chain: list[structlog.types.Processor], renderer: structlog.types.Processor, level: str) -> None:
    """Send stdlib log records through the structlog chain on stdout."""
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *chain, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(stdout_handler)
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Set up structlog and the stdlib root logger for this process.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR (case-insensitive).
        json_output: Emit JSON lines even outside production.

    Returns:
        The root structlog logger.
    """
    level = log_level.upper()
    chain = _processor_chain()
    renderer = _pick_renderer(json_output)

    structlog.configure(
        processors=[*chain, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _route_stdlib(chain, renderer, level)
    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
