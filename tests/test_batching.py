"""
Tests for bounded concurrency and chunking (tcgprices/utils/batching.py).
"""

from __future__ import annotations

import asyncio

import pytest

from tcgprices.utils.batching import GroupFetchResult, chunk, run_bounded


# ---------------------------------------------------------------------------
# run_bounded
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_results_keep_input_order_under_staggered_delays() -> None:
    """Later items finish first, results still line up with inputs."""
    items = list(range(12))

    async def worker(i: int) -> int:
        await asyncio.sleep((12 - i) * 0.002)
        return i * 10

    results = await run_bounded(items, worker, concurrency=4)
    assert results == [i * 10 for i in items]


@pytest.mark.asyncio
async def test_in_flight_never_exceeds_limit() -> None:
    in_flight = 0
    peak = 0

    async def worker(i: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.001 * (i % 3))
        in_flight -= 1
        return i

    await run_bounded(list(range(50)), worker, concurrency=5)
    assert peak == 5


@pytest.mark.asyncio
async def test_fewer_items_than_workers() -> None:
    calls: list[int] = []

    async def worker(i: int) -> int:
        calls.append(i)
        return i

    assert await run_bounded([1, 2], worker, concurrency=10) == [1, 2]
    assert sorted(calls) == [1, 2]


@pytest.mark.asyncio
async def test_empty_input_returns_empty_list() -> None:
    async def worker(i: int) -> int:
        raise AssertionError("worker must not run")

    assert await run_bounded([], worker, concurrency=3) == []


@pytest.mark.asyncio
async def test_invalid_concurrency_rejected() -> None:
    async def worker(i: int) -> int:
        return i

    with pytest.raises(ValueError):
        await run_bounded([1], worker, concurrency=0)


@pytest.mark.asyncio
async def test_unhandled_worker_error_propagates_and_cancels_siblings() -> None:
    cancelled = 0

    async def worker(i: int) -> int:
        nonlocal cancelled
        if i == 0:
            await asyncio.sleep(0.001)
            raise RuntimeError("boom")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled += 1
            raise
        return i

    with pytest.raises(RuntimeError, match="boom"):
        await run_bounded(list(range(4)), worker, concurrency=4)
    assert cancelled == 3


@pytest.mark.asyncio
async def test_tagged_results_isolate_failures() -> None:
    async def worker(group: int) -> GroupFetchResult[int, str]:
        if group == 2:
            return GroupFetchResult(group=group, error=ValueError("bad group"))
        return GroupFetchResult(group=group, items=[f"p{group}"])

    results = await run_bounded([1, 2, 3], worker, concurrency=2)

    assert [r.ok for r in results] == [True, False, True]
    assert [p for r in results for p in r.items] == ["p1", "p3"]


# ---------------------------------------------------------------------------
# chunk
# ---------------------------------------------------------------------------


def test_chunk_sizes_and_completeness() -> None:
    items = list(range(1203))
    chunks = chunk(items, 500)

    assert [len(c) for c in chunks] == [500, 500, 203]
    assert [x for c in chunks for x in c] == items


def test_chunk_exact_multiple_and_empty() -> None:
    assert chunk([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]
    assert chunk([], 500) == []


def test_chunk_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        chunk([1, 2], 0)
