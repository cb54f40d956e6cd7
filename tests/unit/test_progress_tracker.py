"""Unit tests for ProgressTracker."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.job import JobStatus
from src.pipeline.progress_tracker import ALL_JOBS, ProgressTracker


class TestProgressTracker:
    @pytest.mark.asyncio
    async def test_snapshot(self) -> None:
        tracker = ProgressTracker()

        await tracker.update("job-1", JobStatus.RUNNING, processed=1, total=3, message="gd77")

        assert tracker.get_status("job-1") == {
            "status": "running",
            "processed": 1,
            "total": 3,
            "progress": 33.3,
            "message": "gd77",
        }

    @pytest.mark.asyncio
    async def test_completed_is_full_progress(self) -> None:
        tracker = ProgressTracker()
        await tracker.update("job-1", JobStatus.COMPLETED)
        assert tracker.get_status("job-1")["progress"] == 100.0

    def test_unknown_job(self) -> None:
        assert ProgressTracker().get_status("missing") is None

    @pytest.mark.asyncio
    async def test_listeners_keyed_by_job(self) -> None:
        tracker = ProgressTracker()
        mine = MagicMock()
        everyone = AsyncMock()
        tracker.register_listener("job-1", mine)
        tracker.register_listener(ALL_JOBS, everyone)

        await tracker.update("job-1", JobStatus.RUNNING, processed=1, total=2, message="a")
        await tracker.update("job-2", JobStatus.RUNNING, processed=1, total=4, message="b")

        mine.assert_called_once_with("job-1", JobStatus.RUNNING, 50.0, "a")
        assert everyone.await_count == 2

    @pytest.mark.asyncio
    async def test_register_twice_notifies_once(self) -> None:
        tracker = ProgressTracker()
        listener = MagicMock()
        tracker.register_listener("job-1", listener)
        tracker.register_listener("job-1", listener)

        await tracker.update("job-1", JobStatus.QUEUED)

        listener.assert_called_once()

    @pytest.mark.asyncio
    async def test_unregister(self) -> None:
        tracker = ProgressTracker()
        listener = MagicMock()
        tracker.register_listener("job-1", listener)
        tracker.unregister_listener("job-1", listener)

        await tracker.update("job-1", JobStatus.RUNNING)

        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self) -> None:
        tracker = ProgressTracker()
        broken = MagicMock(side_effect=RuntimeError("socket closed"))
        healthy = MagicMock()
        tracker.register_listener("job-1", broken)
        tracker.register_listener("job-1", healthy)

        await tracker.update("job-1", JobStatus.RUNNING)

        healthy.assert_called_once()

    @pytest.mark.asyncio
    async def test_forget(self) -> None:
        tracker = ProgressTracker()
        listener = MagicMock()
        tracker.register_listener("job-1", listener)
        await tracker.update("job-1", JobStatus.COMPLETED)
        listener.reset_mock()

        tracker.forget("job-1")
        await tracker.update("job-1", JobStatus.COMPLETED)

        listener.assert_not_called()
