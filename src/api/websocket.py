"""WebSocket endpoint streaming a material's embedding progress.

Subscribes the client to :class:`~src.pipeline.progress_tracker.ProgressTracker`
updates for one material.  Each update is pushed as::

    {"material_id": "...", "stage": "EMBED", "current": 3, "total": 7,
     "percent": 42.9, "message": "Embedded 3/7 chunks"}
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from src.models.pipeline import IngestionProgress
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _payload(progress: IngestionProgress) -> dict:
    return {
        "material_id": progress.material_id,
        "stage": progress.stage.value,
        "current": progress.current,
        "total": progress.total,
        "percent": progress.percent,
        "message": progress.message,
    }


async def websocket_progress(websocket: WebSocket, material_id: str) -> None:
    """Push progress for *material_id* until the client disconnects."""
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker

    await websocket.accept()
    _logger.info("websocket_connected", material_id=material_id)

    async def _on_progress(progress: IngestionProgress) -> None:
        # The socket may close between updates; the finally block cleans up.
        with contextlib.suppress(Exception):
            await websocket.send_json(_payload(progress))

    progress_tracker.register_listener(material_id, _on_progress)

    try:
        current = progress_tracker.get_status(material_id)
        if current is not None:
            await websocket.send_json(_payload(current))
        else:
            await websocket.send_json({"material_id": material_id, "stage": None})

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", material_id=material_id)

    finally:
        progress_tracker.unregister_listener(material_id, _on_progress)
