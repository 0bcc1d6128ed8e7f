"""Unit tests for IngestionTaskQueue and ProgressTracker."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.pipeline import IngestionJob, IngestionProgress, IngestionStage
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.task_queue import IngestionTaskQueue
from src.utils.errors import PipelineError


def _job(material_id: str = "m1", stage: IngestionStage = IngestionStage.PARSE) -> IngestionJob:
    return IngestionJob(material_id=material_id, stage=stage)


# ======================================================================
# Task queue
# ======================================================================


class TestIngestionTaskQueue:
    def test_invalid_worker_count(self) -> None:
        with pytest.raises(ValueError):
            IngestionTaskQueue(workers=0)

    @pytest.mark.asyncio
    async def test_submit_before_start_raises(self) -> None:
        queue = IngestionTaskQueue()
        with pytest.raises(PipelineError, match="not running"):
            queue.submit(_job())

    @pytest.mark.asyncio
    async def test_jobs_dispatched_to_handler(self) -> None:
        handled: list[str] = []

        async def handler(job: IngestionJob) -> None:
            handled.append(job.material_id)

        queue = IngestionTaskQueue(workers=2)
        queue.start(handler)
        for name in ("a", "b", "c"):
            queue.submit(_job(name))
        await queue.join()
        await queue.shutdown()

        assert sorted(handled) == ["a", "b", "c"]
        assert queue.is_running is False

    @pytest.mark.asyncio
    async def test_full_queue_rejects(self) -> None:
        release = asyncio.Event()

        async def blocking(job: IngestionJob) -> None:
            await release.wait()

        queue = IngestionTaskQueue(workers=1, max_size=1)
        queue.start(blocking)
        queue.submit(_job("first"))
        await asyncio.sleep(0)  # worker takes "first"
        queue.submit(_job("second"))

        with pytest.raises(PipelineError, match="full"):
            queue.submit(_job("third"))

        release.set()
        await queue.join()
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_worker(self) -> None:
        handled: list[str] = []

        async def handler(job: IngestionJob) -> None:
            if job.material_id == "bad":
                raise RuntimeError("parser crashed")
            handled.append(job.material_id)

        queue = IngestionTaskQueue(workers=1)
        queue.start(handler)
        queue.submit(_job("bad"))
        queue.submit(_job("good"))
        await queue.join()
        await queue.shutdown()

        assert handled == ["good"]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        handler = AsyncMock()
        queue = IngestionTaskQueue(workers=2)
        queue.start(handler)
        queue.start(handler)

        assert len(queue._workers) == 2
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_drops_pending_jobs(self) -> None:
        release = asyncio.Event()

        async def blocking(job: IngestionJob) -> None:
            await release.wait()

        queue = IngestionTaskQueue(workers=1)
        queue.start(blocking)
        queue.submit(_job("a"))
        queue.submit(_job("b"))
        await asyncio.sleep(0)

        await queue.shutdown()

        assert queue.pending == 1
        with pytest.raises(PipelineError):
            queue.submit(_job("c"))


# ======================================================================
# Progress tracker
# ======================================================================


class TestProgressTracker:
    @pytest.mark.asyncio
    async def test_update_stores_snapshot(self) -> None:
        tracker = ProgressTracker()

        snapshot = await tracker.update("m1", IngestionStage.EMBED, current=1, total=4)

        assert tracker.get_status("m1") == snapshot
        assert snapshot.percent == 25.0

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners_notified(self) -> None:
        tracker = ProgressTracker()
        sync_cb = MagicMock()
        async_cb = AsyncMock()
        tracker.register_listener("m1", sync_cb)
        tracker.register_listener("m1", async_cb)
        tracker.register_listener("m1", sync_cb)

        await tracker.update("m1", IngestionStage.PARSE, message="Parsing")

        sync_cb.assert_called_once()
        async_cb.assert_awaited_once()
        received = sync_cb.call_args.args[0]
        assert isinstance(received, IngestionProgress)
        assert received.message == "Parsing"

    @pytest.mark.asyncio
    async def test_listeners_scoped_per_material(self) -> None:
        tracker = ProgressTracker()
        cb = MagicMock()
        tracker.register_listener("other", cb)

        await tracker.update("m1", IngestionStage.PARSE)

        cb.assert_not_called()

    @pytest.mark.asyncio
    async def test_broken_listener_does_not_block_others(self) -> None:
        tracker = ProgressTracker()
        good = MagicMock()
        tracker.register_listener("m1", MagicMock(side_effect=RuntimeError("socket closed")))
        tracker.register_listener("m1", good)

        await tracker.update("m1", IngestionStage.EMBED, current=2, total=2)

        good.assert_called_once()

    @pytest.mark.asyncio
    async def test_unregister_and_clear(self) -> None:
        tracker = ProgressTracker()
        cb = MagicMock()
        tracker.register_listener("m1", cb)
        tracker.unregister_listener("m1", cb)
        await tracker.update("m1", IngestionStage.PARSE)
        cb.assert_not_called()

        tracker.clear("m1")
        assert tracker.get_status("m1") is None

    def test_percent_without_total(self) -> None:
        progress = IngestionProgress(material_id="m1", stage=IngestionStage.PARSE)
        assert progress.percent == 0.0
