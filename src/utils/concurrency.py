"""Bounded-concurrency helpers for calls to the inference backend.

``batched_gather`` runs fixed-size batches, concurrent within a batch and
strictly sequential across batches with a pause in between, so peak load on
the backend never exceeds the batch size.  Used by the embedding gateway.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")
_R = TypeVar("_R")

_logger: structlog.BoundLogger = get_logger(__name__)


async def batched_gather(
    items: Sequence[_T],
    worker: Callable[[_T], Awaitable[_R]],
    batch_size: int = 3,
    pause_seconds: float = 0.1,
    on_item_done: Callable[[int, _R | BaseException], Awaitable[None] | None] | None = None,
) -> list[_R | BaseException]:
    """Apply ``worker`` to ``items`` in sequential, internally concurrent batches.

    Exceptions raised by ``worker`` are returned in place of the result so a
    single failing item never aborts its batch.

    Parameters
    ----------
    items:
        Inputs, processed in order.
    worker:
        Async callable invoked once per item.
    batch_size:
        Number of concurrent calls per batch.  Must be positive.
    pause_seconds:
        Sleep between consecutive batches (not after the last one).
    on_item_done:
        Optional callback fired once per completed item with the item's
        index and its result (or exception).  May be sync or async.

    Returns
    -------
    list[_R | BaseException]
        Results aligned with ``items``.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    results: list[_R | BaseException] = []

    async def _run(index: int, item: _T) -> _R | BaseException:
        try:
            outcome: _R | BaseException = await worker(item)
        except Exception as exc:
            outcome = exc
        if on_item_done is not None:
            maybe = on_item_done(index, outcome)
            if asyncio.iscoroutine(maybe):
                await maybe
        return outcome

    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        batch_results = await asyncio.gather(
            *(_run(start + offset, item) for offset, item in enumerate(batch))
        )
        results.extend(batch_results)

        if start + batch_size < len(items) and pause_seconds > 0:
            _logger.debug(
                "batch_pause",
                completed=start + len(batch),
                total=len(items),
                pause_seconds=pause_seconds,
            )
            await asyncio.sleep(pause_seconds)

    return results
