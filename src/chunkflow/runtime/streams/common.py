"""Shared primitives for the stream runtime: states, read results, task bookkeeping."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Coroutine
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from chunkflow.runtime.observability.logging import get_logger

T = TypeVar("T")

log = get_logger("chunkflow.runtime")

# Strong references to detached tasks until they finish
_background: set[asyncio.Task[Any]] = set()


class StreamState(StrEnum):
    """Stream lifecycle states."""
    READABLE = "readable"
    WRITABLE = "writable"
    CLOSING = "closing"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass(slots=True, frozen=True)
class ReadResult(Generic[T]):
    """Outcome of a single read: a chunk, or the end-of-stream marker.

    Attributes:
        value: The chunk read (None when done)
        done: True once the stream is closed and drained
    """
    value: T | None = None
    done: bool = False


_DONE: ReadResult[Any] = ReadResult(None, True)


def spawn(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
    """Start a detached task and keep it referenced until done."""
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background.add(task)
    task.add_done_callback(_background.discard)
    return task


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Await value if it is awaitable, else return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


def wake(waiters: list[asyncio.Future[None]]) -> None:
    """Resolve and clear a list of waiter futures."""
    for fut in waiters:
        if not fut.done():
            fut.set_result(None)
    waiters.clear()
