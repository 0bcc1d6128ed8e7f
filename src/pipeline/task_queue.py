"""Bounded worker pool for ingestion jobs.

Request handlers never run parse/embed work inline.  They place an
:class:`~src.models.pipeline.IngestionJob` on this queue and return; a
fixed number of worker tasks drain it and hand each job to the handler
installed by :meth:`IngestionTaskQueue.start`.

A handler exception is logged against the job and the worker moves on.
Shutdown cancels the workers without draining; anything left in the
queue is picked up again from persisted material statuses on the next
start (see ``IngestionPipeline.recover``).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from src.models.pipeline import IngestionJob
from src.utils.errors import PipelineError

logger = structlog.get_logger(logger_name=__name__)

JobHandler = Callable[[IngestionJob], Awaitable[None]]


class IngestionTaskQueue:
    """An ``asyncio.Queue`` drained by ``workers`` tasks.

    Parameters
    ----------
    workers:
        Number of concurrent worker tasks.
    max_size:
        Queue capacity; :meth:`submit` fails once it is reached.
    """

    def __init__(self, workers: int = 2, max_size: int = 100) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._worker_count = workers
        self._queue: asyncio.Queue[IngestionJob] = asyncio.Queue(maxsize=max_size)
        self._workers: list[asyncio.Task[None]] = []
        self._handler: JobHandler | None = None

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self, handler: JobHandler) -> None:
        """Spawn the worker tasks.  Must be called from a running event loop."""
        if self._workers:
            return
        self._handler = handler
        self._workers = [
            asyncio.create_task(self._run(n), name=f"ingestion-worker-{n}")
            for n in range(self._worker_count)
        ]
        logger.info("task_queue_started", workers=self._worker_count)

    def submit(self, job: IngestionJob) -> None:
        """Enqueue *job* without waiting.

        Raises
        ------
        PipelineError
            If the queue is not started or is full.
        """
        if not self._workers:
            raise PipelineError(message="Ingestion queue is not running")
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull as exc:
            raise PipelineError(
                message=f"Ingestion queue is full ({self._queue.maxsize} jobs)"
            ) from exc
        logger.debug(
            "job_enqueued",
            job_id=job.job_id,
            material_id=job.material_id,
            stage=job.stage.value,
            pending=self._queue.qsize(),
        )

    async def join(self) -> None:
        """Wait until every submitted job has been processed."""
        await self._queue.join()

    async def shutdown(self) -> None:
        """Cancel the workers.  Jobs still queued are dropped."""
        if not self._workers:
            return
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        dropped = self._queue.qsize()
        self._workers = []
        logger.info("task_queue_stopped", dropped=dropped)

    async def _run(self, worker_id: int) -> None:
        assert self._handler is not None
        while True:
            job = await self._queue.get()
            try:
                await self._handler(job)
            except Exception as exc:
                logger.error(
                    "job_failed",
                    worker=worker_id,
                    job_id=job.job_id,
                    material_id=job.material_id,
                    stage=job.stage.value,
                    error=str(exc),
                )
            finally:
                self._queue.task_done()
