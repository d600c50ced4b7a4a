"""
reqdoc — unit tests for async concurrency helpers.

File: tests/unit/utils/test_concurrency.py

Purpose
- Validate bounded worker pools, timeouts and cooperative cancellation.
"""

from __future__ import annotations

import asyncio

import pytest

from reqdoc.utils.concurrency import CancellationToken, WorkerPool, run_with_timeout


@pytest.mark.unit
async def test_worker_pool_map_preserves_input_order_and_bounds_concurrency() -> None:
    active = 0
    peak = 0

    async def work(value: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01 * (5 - value))
        active -= 1
        return value * 10

    pool: WorkerPool[int, int] = WorkerPool(max_concurrency=2)

    assert await pool.map(work, range(5)) == [0, 10, 20, 30, 40]
    assert peak <= 2


@pytest.mark.unit
async def test_as_completed_yields_indices_as_they_finish() -> None:
    async def work(delay: float) -> float:
        await asyncio.sleep(delay)
        return delay

    pool: WorkerPool[float, float] = WorkerPool(max_concurrency=3)

    seen = [index async for index, _ in pool.as_completed(work, [0.05, 0.0, 0.02])]

    assert seen == [1, 2, 0]


@pytest.mark.unit
async def test_first_exception_propagates_and_cancels_the_rest() -> None:
    finished: list[int] = []

    async def work(value: int) -> int:
        if value == 0:
            raise RuntimeError("boom")
        await asyncio.sleep(0.2)
        finished.append(value)
        return value

    pool: WorkerPool[int, int] = WorkerPool(max_concurrency=4)

    with pytest.raises(RuntimeError, match="boom"):
        await pool.map(work, range(4))
    await asyncio.sleep(0.25)

    assert finished == []


@pytest.mark.unit
def test_worker_pool_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError, match="max_concurrency"):
        WorkerPool(max_concurrency=0)


@pytest.mark.unit
async def test_cancelled_token_stops_pool_before_work_starts() -> None:
    token = CancellationToken()
    token.cancel("shutdown")
    pool: WorkerPool[int, int] = WorkerPool(max_concurrency=1, cancel_token=token)

    async def work(value: int) -> int:
        return value

    with pytest.raises(asyncio.CancelledError):
        await pool.map(work, [1])
    assert pool.token.reason == "shutdown"


@pytest.mark.unit
async def test_run_with_timeout_returns_value_or_raises() -> None:
    assert await run_with_timeout(asyncio.sleep(0, result="ok"), 1.0) == "ok"

    with pytest.raises(TimeoutError):
        await run_with_timeout(asyncio.sleep(1), 0.01)

    with pytest.raises(ValueError, match="timeout_seconds"):
        await run_with_timeout(asyncio.sleep(0), 0)


@pytest.mark.unit
async def test_run_with_timeout_honors_cancellation_token() -> None:
    token = CancellationToken()

    async def cancel_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel("stop")

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(asyncio.sleep(1), None, token)
    await canceller

    assert token.is_cancelled
    assert token.reason == "stop"


@pytest.mark.unit
def test_token_keeps_first_reason() -> None:
    token = CancellationToken()
    token.cancel("first")
    token.cancel("second")

    assert token.reason == "first"
    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()
