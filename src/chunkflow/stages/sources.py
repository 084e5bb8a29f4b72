"""Source adapters: readable streams over iterables and timers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any, TypeVar

from chunkflow.foundation.errors import StageConfigError, StreamStateError
from chunkflow.runtime.streams import ReadableStream, ReadableStreamController
from chunkflow.runtime.streams.common import log, maybe_await, spawn

from . import params

T = TypeVar("T")

__all__ = ["from_iterable", "interval"]


class _IterableCursor:
    """Pulls one item per request from a sync or async iterable."""

    __slots__ = ("source", "is_async", "iterator")

    def __init__(self, source: Iterable[Any] | AsyncIterable[Any]) -> None:
        self.source = source
        self.is_async = isinstance(source, AsyncIterable)
        self.iterator: Iterator[Any] | AsyncIterator[Any] | None = None

    def open(self, _: ReadableStreamController[Any]) -> None:
        self.iterator = aiter(self.source) if self.is_async else iter(self.source)  # type: ignore[arg-type]

    async def pull(self, controller: ReadableStreamController[Any]) -> None:
        assert self.iterator is not None
        if self.is_async:
            try:
                item = await anext(self.iterator)  # type: ignore[arg-type]
            except StopAsyncIteration:
                controller.close()
                return
        else:
            try:
                item = next(self.iterator)  # type: ignore[arg-type]
            except StopIteration:
                controller.close()
                return
            item = await maybe_await(item)
        controller.enqueue(item)

    async def cancel(self, _: BaseException) -> None:
        if self.iterator is None:
            return
        if self.is_async:
            if (aclose := getattr(self.iterator, "aclose", None)) is not None:
                await aclose()
        elif (close := getattr(self.iterator, "close", None)) is not None:
            close()


def from_iterable(
    source: Iterable[T | Awaitable[T]] | AsyncIterable[T],
    *,
    high_water_mark: int | None = None,
) -> ReadableStream[T]:
    """Readable stream over the items of ``source``, in order.

    Items are pulled lazily, one per request, so nothing is iterated
    before the first read. Awaitable items from a sync iterable are
    awaited. Cancelling the stream closes the underlying generator.

    Args:
        source: Iterable or async iterable
        high_water_mark: Items to fetch ahead of the reader

    Raises:
        StageConfigError: If ``source`` is not iterable

    Example:
        >>> await to_array(from_iterable([1, 2, 3]))
        [1, 2, 3]
    """
    if not isinstance(source, (Iterable, AsyncIterable)):
        raise StageConfigError.create("from_iterable", f"source: expected an iterable (got {type(source).__name__})")
    cursor = _IterableCursor(source)
    return ReadableStream(
        start=cursor.open, pull=cursor.pull, cancel=cursor.cancel,
        high_water_mark=high_water_mark, name="from_iterable",
    )


@dataclass(slots=True)
class _Ticker:
    """Timer task emitting 0, 1, 2, ... every ``period`` seconds."""

    period: float
    counter: int = 0
    task: asyncio.Task[None] | None = None

    def start(self, controller: ReadableStreamController[int]) -> None:
        self.task = spawn(self._run(controller), name="chunkflow.interval")
        log.debug("interval started", period=self.period)

    async def _run(self, controller: ReadableStreamController[int]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        try:
            while controller.is_open:
                if not controller.has_demand:
                    # Paused while the queue is full; the next tick is one period after demand returns
                    await controller.wait_for_demand()
                    if not controller.is_open:
                        return
                    deadline = loop.time()
                deadline += self.period
                await asyncio.sleep(max(0.0, deadline - loop.time()))
                try:
                    controller.enqueue(self.counter)
                except StreamStateError:
                    return
                self.counter += 1
        finally:
            log.debug("interval stopped", ticks=self.counter)

    def cancel(self, _: BaseException) -> None:
        if self.task is not None:
            self.task.cancel()


def interval(period: float) -> ReadableStream[int]:
    """Infinite stream of ticks ``0, 1, 2, ...``, one every ``period`` seconds.

    The timer starts on the first read and stops when the stream is
    cancelled, including cancellation from a downstream ``take``. Ticks
    pause while the queue is at its high-water mark and nothing is reading,
    so a slow consumer sees consecutive values rather than a backlog.

    Raises:
        StageConfigError: If ``period`` is not a positive number

    Example:
        >>> await to_array(interval(0.1).pipe_through(take(3)))
        [0, 1, 2]
    """
    ticker = _Ticker(params.period(period, stage="interval"))
    return ReadableStream(start=ticker.start, cancel=ticker.cancel, name="interval")
