"""Circuit breaker guarding calls to the archive API.

States:

    closed     -- calls pass through; each failure increments a counter.
    open       -- calls fail immediately with CircuitOpenError (no network).
    half_open  -- after ``reset_seconds`` the next call is let through as a
                  trial; success closes the circuit, failure re-opens it.

State, failure count and last-failure timestamp live in an
:class:`ICacheProvider` so every worker sharing that cache sees the same
breaker.  Updates are read-then-write; a race between two processes can
lose an increment, which only changes how quickly the circuit opens.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from src.interfaces.cache_provider import ICacheProvider
from src.utils.errors import CircuitOpenError
from src.utils.logging import get_logger

_T = TypeVar("_T")

_STATE_TTL = 3600
_KEY_PREFIX = "archivedotorg_circuit"


class CircuitState(str, Enum):  # noqa: UP042
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Shared-state circuit breaker.

    Parameters
    ----------
    cache:
        Backing store for the breaker's state.
    name:
        Distinguishes independent breakers sharing one cache.
    threshold:
        Consecutive failures that open the circuit.
    reset_seconds:
        Cool-down before a half-open trial call is allowed.
    clock:
        Wall clock returning epoch seconds; injectable for tests.
    """

    def __init__(
        self,
        cache: ICacheProvider,
        name: str = "archive_api",
        threshold: int = 5,
        reset_seconds: float = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._name = name
        self._threshold = threshold
        self._reset_seconds = reset_seconds
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # -- Cache keys --------------------------------------------------------

    def _key(self, suffix: str) -> str:
        return f"{_KEY_PREFIX}_{self._name}_{suffix}"

    async def _state(self) -> CircuitState:
        raw = await self._cache.get(self._key("state"))
        try:
            return CircuitState(raw) if raw else CircuitState.CLOSED
        except ValueError:
            return CircuitState.CLOSED

    async def _failures(self) -> int:
        return int(await self._cache.get(self._key("failures")) or 0)

    async def _last_failure(self) -> float | None:
        raw = await self._cache.get(self._key("last_failure"))
        return float(raw) if raw is not None else None

    async def _set_state(self, state: CircuitState) -> None:
        await self._cache.set(self._key("state"), state.value, ttl=_STATE_TTL)

    # -- Public API --------------------------------------------------------

    async def call(
        self,
        operation: Callable[[], Awaitable[_T]],
        counts_as_failure: Callable[[BaseException], bool] | None = None,
    ) -> _T:
        """Run *operation* through the breaker.

        Parameters
        ----------
        operation:
            Zero-argument coroutine factory performing the guarded call.
        counts_as_failure:
            Optional predicate; exceptions for which it returns ``False``
            (e.g. a 404 for one missing item) propagate without tripping
            the breaker.

        Raises
        ------
        CircuitOpenError
            While open and the reset timeout has not yet elapsed.
        """
        state = await self._state()

        if state == CircuitState.OPEN:
            last_failure = await self._last_failure() or 0.0
            elapsed = self._clock() - last_failure
            if elapsed < self._reset_seconds:
                retry_in = round(self._reset_seconds - elapsed, 1)
                raise CircuitOpenError(
                    message=f"Circuit '{self._name}' is open; retry in {retry_in}s",
                    retry_in=retry_in,
                )
            await self._set_state(CircuitState.HALF_OPEN)
            self._logger.info("circuit_half_open", circuit=self._name)

        try:
            result = await operation()
        except Exception as exc:
            if counts_as_failure is None or counts_as_failure(exc):
                await self._on_failure()
            raise

        await self._on_success()
        return result

    async def _on_success(self) -> None:
        state = await self._state()
        if state != CircuitState.CLOSED or await self._failures():
            await self._cache.set(self._key("failures"), 0, ttl=_STATE_TTL)
            await self._set_state(CircuitState.CLOSED)
            if state != CircuitState.CLOSED:
                self._logger.info("circuit_closed", circuit=self._name)

    async def _on_failure(self) -> None:
        state = await self._state()
        failures = await self._failures() + 1
        now = self._clock()
        await self._cache.set(self._key("failures"), failures, ttl=_STATE_TTL)
        await self._cache.set(self._key("last_failure"), now, ttl=_STATE_TTL)

        if state == CircuitState.HALF_OPEN or failures >= self._threshold:
            await self._set_state(CircuitState.OPEN)
            self._logger.warning(
                "circuit_opened",
                circuit=self._name,
                failures=failures,
                threshold=self._threshold,
                reset_seconds=self._reset_seconds,
            )

    async def reset(self) -> None:
        """Force the breaker closed and clear its counters."""
        for suffix in ("state", "failures", "last_failure"):
            await self._cache.delete(self._key(suffix))
        self._logger.info("circuit_reset", circuit=self._name)

    async def is_open(self) -> bool:
        return await self._state() == CircuitState.OPEN

    async def is_closed(self) -> bool:
        return await self._state() == CircuitState.CLOSED

    async def get_status(self) -> dict[str, Any]:
        return {
            "name": self._name,
            "state": (await self._state()).value,
            "failures": await self._failures(),
            "last_failure": await self._last_failure(),
            "threshold": self._threshold,
            "reset_seconds": self._reset_seconds,
        }
