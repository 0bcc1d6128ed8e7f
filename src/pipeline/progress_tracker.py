"""Per-material ingestion progress with callback-based listener notification.

Stores the latest :class:`~src.models.pipeline.IngestionProgress` for each
material and broadcasts updates to listeners registered for that material.

    IngestionPipeline ──update()──→ ProgressTracker ──callback()──→ listener

Listener errors are caught and logged so a broken listener cannot stall
an ingestion job.  Both sync and async callbacks are accepted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from src.models.pipeline import IngestionProgress, IngestionStage
from src.utils.logging import get_logger


class ProgressTracker:
    """Tracks and broadcasts ingestion progress keyed by material id."""

    def __init__(self) -> None:
        self._statuses: dict[str, IngestionProgress] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def update(
        self,
        material_id: str,
        stage: IngestionStage,
        current: int = 0,
        total: int = 0,
        message: str = "",
    ) -> IngestionProgress:
        """Record a snapshot and notify the material's listeners."""
        snapshot = IngestionProgress(
            material_id=material_id,
            stage=stage,
            current=max(0, current),
            total=max(0, total),
            message=message,
        )
        self._statuses[material_id] = snapshot

        self._logger.debug(
            "progress_update",
            material_id=material_id,
            stage=stage.value,
            current=snapshot.current,
            total=snapshot.total,
            message=message,
        )

        await self._notify_listeners(snapshot)
        return snapshot

    def register_listener(self, material_id: str, callback: Callable) -> None:
        """Register *callback* for updates on *material_id*.

        The callback receives the :class:`IngestionProgress` snapshot.
        """
        listeners = self._listeners.setdefault(material_id, [])
        if callback not in listeners:
            listeners.append(callback)

    def unregister_listener(self, material_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(material_id, [])
        if callback in listeners:
            listeners.remove(callback)

    def get_status(self, material_id: str) -> IngestionProgress | None:
        """Return the latest snapshot, or ``None`` if nothing was tracked."""
        return self._statuses.get(material_id)

    def clear(self, material_id: str) -> None:
        """Forget a material's snapshot and listeners."""
        self._statuses.pop(material_id, None)
        self._listeners.pop(material_id, None)

    async def _notify_listeners(self, snapshot: IngestionProgress) -> None:
        for callback in list(self._listeners.get(snapshot.material_id, [])):
            try:
                result = callback(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    material_id=snapshot.material_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
