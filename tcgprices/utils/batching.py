"""
TCG Price Tracker: Bounded Concurrency & Chunking

run_bounded() fans a list of items out to an async worker with a fixed pool
of asyncio tasks pulling from a shared cursor. chunk() splits rows into
fixed-size write batches.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")
G = TypeVar("G")


@dataclass
class GroupFetchResult(Generic[G, R]):
    """
    Tagged outcome of one per-group fetch.

    Fan-out call sites catch upstream failures inside the worker and return
    one of these so a single bad group cannot abort the whole batch.
    """

    group: G
    items: list[R] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R]:
    """
    Run worker(item) for every item with at most `concurrency` in flight.

    Spawns min(concurrency, len(items)) tasks; each claims the next unclaimed
    index until the index space is exhausted. results[i] always corresponds
    to items[i] regardless of completion order.

    The first unhandled worker exception cancels the remaining tasks and is
    re-raised. Workers that must not abort the batch should catch their own
    errors and return a tagged result instead.

    Args:
        items: Inputs to process.
        worker: Async callable applied to each item.
        concurrency: Maximum number of concurrent worker calls.

    Returns:
        Worker results in input order.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")
    if not items:
        return []

    results: list[R | None] = [None] * len(items)
    cursor = 0

    async def _drain() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await worker(items[index])

    tasks = [
        asyncio.create_task(_drain())
        for _ in range(min(concurrency, len(items)))
    ]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        # Let cancelled siblings unwind before the error escapes.
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return results  # type: ignore[return-value]


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split items into consecutive lists of `size` (the last may be shorter).

    Order is preserved: concatenating the chunks yields the input.
    """
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
