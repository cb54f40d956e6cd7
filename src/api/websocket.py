"""WebSocket endpoint for live import job progress.

Connects a client to one import job via the ``ProgressTracker`` listener
mechanism.  Updates are pushed as JSON messages containing ``job_id``,
``status``, ``progress`` and ``message``.

# ─── HOW WEBSOCKET PROGRESS WORKS ─────────────────────────────────────
#
#   Client                               Backend (this file)
#   ──────                               ───────────────────
#   ws = new WebSocket(url)   ──────→   websocket.accept()
#                                        register_listener(callback)
#                             ←──────   send current snapshot
#                                        ...worker imports shows...
#                             ←──────   push progress update (JSON)
#   ws.close()                ──────→   WebSocketDisconnect
#                                        unregister_listener(callback)
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from src.models.job import JobStatus
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_job_progress(websocket: WebSocket, job_id: str) -> None:
    """Stream progress updates for *job_id* until the client disconnects.

    Parameters
    ----------
    websocket:
        The WebSocket connection managed by FastAPI / Starlette.
    job_id:
        The import job to subscribe to.
    """
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker

    await websocket.accept()
    _logger.info("websocket_connected", job_id=job_id)

    async def _on_progress(
        jid: str,
        status: JobStatus,
        progress: float,
        message: str,
    ) -> None:
        # A send on a closed socket raises; the tracker logs and moves on.
        await websocket.send_json(
            {
                "job_id": jid,
                "status": status.value,
                "progress": round(progress, 1),
                "message": message,
            }
        )

    progress_tracker.register_listener(job_id, _on_progress)

    try:
        snapshot = progress_tracker.get_status(job_id) or {"status": None, "progress": 0.0}
        await websocket.send_json({"job_id": job_id, **snapshot})

        # Blocks until the client disconnects.
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", job_id=job_id)

    finally:
        progress_tracker.unregister_listener(job_id, _on_progress)
        _logger.debug("websocket_listener_cleaned_up", job_id=job_id)
