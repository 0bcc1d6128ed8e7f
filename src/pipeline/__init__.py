"""Background execution components for the ingestion pipeline."""

from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.task_queue import IngestionTaskQueue, JobHandler

__all__ = [
    "IngestionTaskQueue",
    "JobHandler",
    "ProgressTracker",
]
