"""Async concurrency primitives for corpus loading and case execution."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError(self._reason or "operation cancelled")


@dataclass(slots=True)
class WorkerPool(Generic[T, R]):
    """Apply an async function to items with bounded concurrency.

    ``map`` preserves input order; ``as_completed`` yields ``(index, result)``
    pairs as each item finishes. The first exception cancels the remaining work.
    """

    max_concurrency: int
    cancel_token: CancellationToken | None = None
    _token: CancellationToken = field(init=False, repr=False)
    _semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._token = self.cancel_token or CancellationToken()
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    @property
    def token(self) -> CancellationToken:
        return self._token

    async def map(self, func: Callable[[T], Awaitable[R]], items: Iterable[T]) -> list[R]:
        results: dict[int, R] = {}
        async for index, result in self.as_completed(func, items):
            results[index] = result
        return [results[index] for index in sorted(results)]

    async def as_completed(
        self, func: Callable[[T], Awaitable[R]], items: Iterable[T]
    ) -> AsyncIterator[tuple[int, R]]:
        self._token.raise_if_cancelled()
        tasks: dict[asyncio.Task[R], int] = {
            asyncio.create_task(self._run_one(func, item)): index
            for index, item in enumerate(items)
        }

        try:
            while tasks:
                self._token.raise_if_cancelled()
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=tasks.__getitem__):
                    index = tasks.pop(task)
                    if task.cancelled():
                        raise asyncio.CancelledError("worker task cancelled")
                    exc = task.exception()
                    if exc is not None:
                        raise exc
                    yield index, task.result()
        finally:
            await _cancel_all(tasks)

    async def _run_one(self, func: Callable[[T], Awaitable[R]], item: T) -> R:
        async with self._semaphore:
            self._token.raise_if_cancelled()
            return await func(item)


async def _cancel_all(tasks: Iterable[asyncio.Task[R]]) -> None:
    pending = list(tasks)
    for task in pending:
        task.cancel()
    if pending:
        with suppress(Exception):
            await asyncio.gather(*pending, return_exceptions=True)


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_seconds: float | None,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Run ``coroutine`` with an optional timeout and cooperative cancellation.

    Raises ``TimeoutError`` on expiry and ``asyncio.CancelledError`` when the
    token fires first.
    """
    if timeout_seconds is not None and timeout_seconds <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_seconds must be > 0")

    token = cancel_token or CancellationToken()
    if token.is_cancelled:
        _close_unscheduled_coroutine(coroutine)
        raise asyncio.CancelledError(token.reason or "operation cancelled")

    task: asyncio.Task[T] = asyncio.create_task(_await_value(coroutine))
    cancel_wait_task = asyncio.create_task(token.wait())

    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if task in done:
            return await task

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        if cancel_wait_task in done:
            raise asyncio.CancelledError(token.reason or "operation cancelled")
        raise TimeoutError(f"timed out after {timeout_seconds} seconds")
    finally:
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


async def _await_value(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects that were never scheduled so CPython does not
    # emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "WorkerPool",
    "run_with_timeout",
]
