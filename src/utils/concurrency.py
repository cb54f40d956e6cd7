"""Async callback helper shared by the crawler, importer and job pipeline.

Progress callbacks may be plain functions or coroutine functions; callers
use :func:`invoke_callback` so they do not need to care which.  Exceptions
raised by the callback propagate -- cancellation is signalled that way.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> Any:
    """Call *callback* with *args*, awaiting the result if it is awaitable."""
    if callback is None:
        return None
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        return await outcome
    return outcome
