# src/batch/runner.py
"""Bounded-concurrency batch runner.

Items run in consecutive chunks of ``concurrency``: everything inside a
chunk runs concurrently, chunks run one after another. An item's failure
is recorded as data and never aborts its siblings or later chunks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from sitelift.batch.models import BatchOutcome, ItemFailure, ItemSuccess

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_batch(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 3,
    inter_chunk_delay_s: float = 0.0,
    label: str = "batch",
) -> BatchOutcome[T, R]:
    """Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    Args:
        items: Independent work items.
        worker: Async callable applied to each item.
        concurrency: Chunk size; must be >= 1.
        inter_chunk_delay_s: Pause between chunks to smooth load on
            downstream rate-limited services.
        label: Name used in log messages.

    Returns:
        BatchOutcome where every input item appears exactly once, either
        in ``succeeded`` or in ``failed``.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    outcome: BatchOutcome[T, R] = BatchOutcome()
    chunks = [items[i:i + concurrency] for i in range(0, len(items), concurrency)]

    for index, chunk in enumerate(chunks):
        results = await asyncio.gather(
            *(worker(item) for item in chunk), return_exceptions=True,
        )
        for item, result in zip(chunk, results):
            if isinstance(result, Exception):
                logger.warning(
                    "%s item failed (%s): %s", label, type(result).__name__, result,
                )
                outcome.failed.append(ItemFailure(item=item, error=result))
            elif isinstance(result, BaseException):
                # Cancellation and interpreter exits are not item failures.
                raise result
            else:
                outcome.succeeded.append(ItemSuccess(item=item, result=result))

        if inter_chunk_delay_s > 0 and index < len(chunks) - 1:
            await asyncio.sleep(inter_chunk_delay_s)

    logger.info(
        "%s complete: %d succeeded, %d failed (concurrency=%d)",
        label, len(outcome.succeeded), len(outcome.failed), concurrency,
    )
    return outcome
