"""Exclusive named locks keyed by ``(operation, resource)``.

Each lock is a file ``<lock_dir>/<operation>_<resource>.lock`` held with
``fcntl.flock(LOCK_EX | LOCK_NB)``.  The kernel drops the flock when the
holder exits, so a crashed worker never blocks others -- but the file and
its JSON metadata (pid, host, acquisition time) stay behind, which is what
``cleanup_stale_locks`` sweeps.

Usage::

    token = await locks.acquire("import", "GratefulDead")
    try:
        ...
    finally:
        locks.release(token)

or ``async with locks.hold("import", "GratefulDead"): ...``.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import os
import secrets
import socket
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, AsyncIterator

import structlog

from src.models.lock import LockRecord
from src.utils.errors import ErrorKind, LockError, LockTimeoutError
from src.utils.logging import get_logger
from src.utils.text_normalizer import safe_filename

_POLL_INTERVAL = 0.1


@dataclass(slots=True)
class _LockHandle:
    """An acquired lock: the open file keeps the flock alive."""

    path: Path
    handle: IO[str]
    record: LockRecord

    def release(self) -> None:
        try:
            fcntl.flock(self.handle, fcntl.LOCK_UN)
        finally:
            self.handle.close()


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user.
        return True
    return True


class LockService:
    """File-lock based mutual exclusion between workers on one host.

    Parameters
    ----------
    lock_dir:
        Directory holding the lock files; created on demand.
    """

    def __init__(self, lock_dir: str | Path) -> None:
        self._lock_dir = Path(lock_dir)
        self._held: dict[str, _LockHandle] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def _lock_path(self, operation: str, resource: str) -> Path:
        return self._lock_dir / f"{safe_filename(operation)}_{safe_filename(resource)}.lock"

    @property
    def held_tokens(self) -> list[str]:
        return list(self._held)

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    def _try_lock(self, operation: str, resource: str) -> _LockHandle | None:
        path = self._lock_path(operation, resource)
        path.parent.mkdir(parents=True, exist_ok=True)
        while True:
            handle = open(path, "a+", encoding="utf-8")
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                handle.close()
                return None
            except OSError:
                handle.close()
                raise
            if self._still_linked(path, handle):
                break
            # Swept between open and flock; the path now names a new file.
            fcntl.flock(handle, fcntl.LOCK_UN)
            handle.close()

        record = LockRecord(
            operation=operation,
            resource=resource,
            pid=os.getpid(),
            hostname=socket.gethostname(),
            acquired_at=datetime.now(tz=timezone.utc),
            token=f"{operation}:{resource}:{os.getpid()}:{secrets.token_hex(4)}",
        )
        handle.seek(0)
        handle.truncate()
        handle.write(record.model_dump_json())
        handle.flush()
        return _LockHandle(path=path, handle=handle, record=record)

    @staticmethod
    def _still_linked(path: Path, handle: IO[str]) -> bool:
        try:
            current = os.stat(path)
        except FileNotFoundError:
            return False
        return current.st_ino == os.fstat(handle.fileno()).st_ino

    async def acquire(self, operation: str, resource: str, timeout_seconds: float = 0) -> str:
        """Acquire the lock and return its release token.

        Parameters
        ----------
        operation:
            Operation name, e.g. ``"import"`` or ``"download"``.
        resource:
            Resource the operation targets, e.g. a collection id.
        timeout_seconds:
            ``0`` fails immediately when the lock is held; a positive value
            polls every 100 ms until acquired or the timeout elapses.

        Raises
        ------
        LockError
            ``kind=ALREADY_LOCKED`` when non-blocking and held elsewhere.
        LockTimeoutError
            When a positive timeout elapses.
        """
        deadline = time.monotonic() + timeout_seconds
        while True:
            lock = self._try_lock(operation, resource)
            if lock is not None:
                self._held[lock.record.token] = lock
                self._logger.debug(
                    "lock_acquired",
                    operation=operation,
                    resource=resource,
                    token=lock.record.token,
                )
                return lock.record.token

            if timeout_seconds <= 0:
                raise LockError(
                    f"Another '{operation}' operation is already running for '{resource}'"
                )
            if time.monotonic() >= deadline:
                raise LockTimeoutError(
                    f"Timed out after {timeout_seconds}s waiting for "
                    f"'{operation}' lock on '{resource}'"
                )
            await asyncio.sleep(_POLL_INTERVAL)

    def release(self, token: str) -> None:
        """Release the lock acquired with *token*.

        Raises
        ------
        LockError
            ``kind=UNKNOWN_TOKEN`` if *token* is not held by this service.
        """
        lock = self._held.pop(token, None)
        if lock is None:
            raise LockError(f"Unknown lock token: {token}", kind=ErrorKind.UNKNOWN_TOKEN)
        lock.release()
        self._logger.debug("lock_released", token=token)

    def release_all(self) -> int:
        """Release every lock held through this service; returns the count."""
        count = 0
        for token in list(self._held):
            self.release(token)
            count += 1
        return count

    @asynccontextmanager
    async def hold(
        self,
        operation: str,
        resource: str,
        timeout_seconds: float = 0,
    ) -> AsyncIterator[str]:
        token = await self.acquire(operation, resource, timeout_seconds)
        try:
            yield token
        finally:
            self.release(token)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def is_locked(self, operation: str, resource: str) -> bool:
        path = self._lock_path(operation, resource)
        if not path.exists():
            return False
        with open(path, "a+", encoding="utf-8") as handle:
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                return True
            fcntl.flock(handle, fcntl.LOCK_UN)
        return False

    def get_lock_info(self, operation: str, resource: str) -> LockRecord | None:
        return self._read_record(self._lock_path(operation, resource))

    def _read_record(self, path: Path) -> LockRecord | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        if not raw.strip():
            return None
        try:
            return LockRecord.model_validate(json.loads(raw))
        except ValueError:
            self._logger.warning("lock_metadata_unreadable", path=str(path))
            return None

    # ------------------------------------------------------------------
    # Reclaiming
    # ------------------------------------------------------------------

    def _flock_nowait(self, path: Path) -> IO[str] | None:
        """Open *path* and take its flock, or ``None`` if missing or held."""
        try:
            handle = open(path, "r", encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            return None
        except OSError:
            handle.close()
            raise
        if not self._still_linked(path, handle):
            fcntl.flock(handle, fcntl.LOCK_UN)
            handle.close()
            return None
        return handle

    def force_release(self, operation: str, resource: str) -> bool:
        """Delete the lock file regardless of holder. Returns ``True`` if removed.

        When nobody holds the flock the file is unlinked under it, so no
        acquirer can slip in between the check and the delete.  A live
        holder is broken anyway and keeps running on the orphaned inode.
        """
        path = self._lock_path(operation, resource)
        for token, lock in list(self._held.items()):
            if lock.path == path:
                self._held.pop(token).release()
        if not path.exists():
            return False
        info = self._read_record(path)
        handle = self._flock_nowait(path)
        try:
            path.unlink(missing_ok=True)
        finally:
            if handle is not None:
                handle.close()
        self._logger.warning(
            "lock_force_released",
            operation=operation,
            resource=resource,
            holder_pid=info.pid if info else None,
            holder_active=handle is None,
        )
        return True

    def cleanup_stale_locks(self, max_age_hours: float = 24) -> int:
        """Remove lock files older than *max_age_hours* whose owner is dead.

        Each file is flocked before it is judged and unlinked while the
        flock is held; a file whose flock is taken is in use and skipped.

        Returns
        -------
        int
            Number of lock files removed.
        """
        if not self._lock_dir.exists():
            return 0

        cutoff = time.time() - max_age_hours * 3600
        removed = 0
        for path in self._lock_dir.glob("*.lock"):
            handle = self._flock_nowait(path)
            if handle is None:
                continue
            try:
                if os.fstat(handle.fileno()).st_mtime >= cutoff:
                    continue
                info = self._read_record(path)
                if info is None or _pid_alive(info.pid):
                    continue
                path.unlink(missing_ok=True)
            finally:
                handle.close()
            removed += 1
            self._logger.info(
                "stale_lock_removed",
                path=str(path),
                operation=info.operation,
                resource=info.resource,
                pid=info.pid,
            )
        return removed
