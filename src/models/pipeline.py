"""Ingestion job and progress models.

The ingestion pipeline never runs work inline in a request.  Each unit of
work is an :class:`IngestionJob` placed on the task queue
(src/pipeline/task_queue.py); workers dispatch on ``stage``.  Progress for a
running job is published as :class:`IngestionProgress` snapshots by the
progress tracker (src/pipeline/progress_tracker.py).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IngestionStage(str, Enum):  # noqa: UP042
    """Which half of the state machine a job drives."""

    PARSE = "PARSE"
    EMBED = "EMBED"


class IngestionJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    material_id: str
    stage: IngestionStage
    enqueued_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class IngestionProgress(BaseModel):
    """Snapshot of how far a material's current stage has progressed.

    For the EMBED stage ``current``/``total`` count embedded chunks; for
    PARSE they stay at 0 until the stage finishes.
    """

    model_config = ConfigDict(frozen=True)

    material_id: str
    stage: IngestionStage
    current: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    message: str = ""

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(100.0 * min(self.current, self.total) / self.total, 1)

