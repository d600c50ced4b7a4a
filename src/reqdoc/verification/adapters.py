"""
reqdoc — candidate implementation adapters.

File: src/reqdoc/verification/adapters.py

Purpose
- Define the single-operation contract the validation loop drives:
  ``execute(input) -> output``, raising ``AdapterError``.

What this module provides
- ``CallableAdapter`` wrapping an in-process function (sync or async).
- ``SubprocessAdapter`` running a command per case with the input as a JSON
  object on stdin and the output read as a JSON object from stdout.
- ``invoke_adapter`` normalizing sync/async adapters into one awaitable call.
  Blocking adapters run on their own daemon thread so per-case timeouts still
  apply and a call that never returns cannot hold up loop or process shutdown.

Non-functional requirements
- An adapter that cannot be started is reported as a fatal ``AdapterError`` so
  the loop can abort instead of failing every remaining case the same way.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import json
import os
import shlex
import threading
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import suppress
from typing import Any, Protocol, runtime_checkable

from reqdoc.domain.errors import AdapterError
from reqdoc.domain.models import Value

AdapterOutput = Mapping[str, object]
_STDERR_TAIL = 2000


@runtime_checkable
class ExecutionAdapter(Protocol):
    """Anything exposing ``execute(input) -> output`` (optionally ``async``)."""

    def execute(self, payload: dict[str, Value]) -> AdapterOutput | Awaitable[AdapterOutput]: ...


AdapterFactory = Callable[[], ExecutionAdapter]


class CallableAdapter:
    """Adapter over a plain function or coroutine function."""

    def __init__(
        self,
        func: Callable[[dict[str, Value]], AdapterOutput | Awaitable[AdapterOutput]],
    ) -> None:
        self._func = func

    def execute(self, payload: dict[str, Value]) -> AdapterOutput | Awaitable[AdapterOutput]:
        return self._func(payload)

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", type(self._func).__name__)
        return f"CallableAdapter({name})"


class SubprocessAdapter:
    """Run ``argv`` once per case, exchanging JSON over stdin/stdout."""

    def __init__(
        self,
        argv: Sequence[str] | str,
        *,
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        parsed = shlex.split(argv) if isinstance(argv, str) else list(argv)
        if not parsed:
            raise ValueError("adapter command must not be empty")
        self.argv: tuple[str, ...] = tuple(parsed)
        self._cwd = cwd
        self._env = dict(env) if env is not None else None

    async def execute(self, payload: dict[str, Value]) -> AdapterOutput:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
                env=self._env,
            )
        except FileNotFoundError as exc:
            raise AdapterError(f"adapter command not found: {self.argv[0]}", fatal=True) from exc
        except OSError as exc:
            raise AdapterError(f"failed to start adapter: {exc}", fatal=True) from exc

        request = json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")
        try:
            stdout, stderr = await process.communicate(request)
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace").strip()[-_STDERR_TAIL:]
            detail = f": {tail}" if tail else ""
            raise AdapterError(f"adapter exited with status {process.returncode}{detail}")
        return _decode_output(stdout)

    def __repr__(self) -> str:
        return f"SubprocessAdapter({shlex.join(self.argv)!r})"


async def invoke_adapter(adapter: ExecutionAdapter, payload: Mapping[str, Value]) -> AdapterOutput:
    """Call ``adapter.execute`` with a private copy of ``payload`` and validate the output."""

    request = _copy_value(dict(payload))
    execute = adapter.execute
    if inspect.iscoroutinefunction(execute):
        result: object = await execute(request)
    else:
        result = await _run_blocking(execute, request)
        if inspect.isawaitable(result):
            result = await result
    if not isinstance(result, Mapping):
        raise AdapterError(f"adapter returned {type(result).__name__}, expected a mapping")
    return result


async def _run_blocking(func: Callable[..., Any], *args: Any) -> Any:
    """Run ``func`` on a fresh daemon thread and await its result.

    Cancelling the await abandons the thread; its late result is dropped.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()
    context = contextvars.copy_context()

    def settle(value: Any, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)

    def target() -> None:
        value: Any = None
        error: BaseException | None = None
        try:
            value = context.run(func, *args)
        except Exception as exc:  # noqa: BLE001 - forwarded to the awaiting task
            error = exc
        with suppress(RuntimeError):
            # Loop already closed after a timeout.
            loop.call_soon_threadsafe(settle, value, error)

    threading.Thread(target=target, name="reqdoc-adapter-call", daemon=True).start()
    return await future


def _decode_output(stdout: bytes) -> AdapterOutput:
    text = stdout.decode("utf-8", errors="replace").strip()
    if not text:
        raise AdapterError("adapter produced no output")
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise AdapterError(f"adapter output is not valid JSON: {exc.msg}") from exc
    if not isinstance(decoded, dict):
        raise AdapterError(f"adapter output must be a JSON object, got {type(decoded).__name__}")
    return decoded


def _copy_value(value: Value) -> dict[str, Value]:
    # Adapters may mutate what they receive; cases are reused across runs.
    return json.loads(json.dumps(value))


__all__ = [
    "AdapterFactory",
    "AdapterOutput",
    "CallableAdapter",
    "ExecutionAdapter",
    "SubprocessAdapter",
    "invoke_adapter",
]
