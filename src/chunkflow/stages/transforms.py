"""Transform stages: one chunk-to-chunks policy per TransformStream.

Each factory builds a fresh Transformer, so stage state (counters, buffers,
accumulators) is never shared between two pipelines. Callbacks handed to
``map``, ``filter``, ``tap``, ``scan``, ``reduce`` and ``flat_map`` may be
plain functions or return awaitables; the stage awaits the result before
it accepts the next chunk.

Example:
    >>> evens_doubled = (
    ...     from_iterable(range(100))
    ...     .pipe_through(filter(lambda x: x % 2 == 0))
    ...     .pipe_through(map(lambda x: x * 2))
    ...     .pipe_through(take(5))
    ... )
    >>> await to_array(evens_doubled)
    [0, 4, 8, 12, 16]
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from chunkflow.runtime.streams import StreamPair, TransformStream, TransformStreamController, Transformer
from chunkflow.runtime.streams.common import maybe_await

from . import params

T = TypeVar("T")
R = TypeVar("R")
A = TypeVar("A")

SyncOrAsync = R | Awaitable[R]

__all__ = [
    "compact", "map", "filter", "tap", "batch", "flatten", "take", "skip",
    "flat_map", "scan", "reduce", "append",
    "Compact", "Map", "Filter", "Tap", "Batch", "Flatten", "Take", "Skip", "Scan", "Reduce", "Append",
]


# ─────────────────────────────────────────────────────────────────────────────
# Transformers
# ─────────────────────────────────────────────────────────────────────────────


class Compact(Transformer[T | None, T]):
    """Drop None chunks."""

    name = "compact"

    def transform(self, chunk: T | None, controller: TransformStreamController[T]) -> None:
        if chunk is not None:
            controller.enqueue(chunk)


class Map(Transformer[T, R]):
    name = "map"

    def __init__(self, fn: Callable[[T], SyncOrAsync[R]]) -> None:
        self.fn = fn

    async def transform(self, chunk: T, controller: TransformStreamController[R]) -> None:
        controller.enqueue(await maybe_await(self.fn(chunk)))


class Filter(Transformer[T, T]):
    name = "filter"

    def __init__(self, predicate: Callable[[T], SyncOrAsync[bool]]) -> None:
        self.predicate = predicate

    async def transform(self, chunk: T, controller: TransformStreamController[T]) -> None:
        if await maybe_await(self.predicate(chunk)):
            controller.enqueue(chunk)


class Tap(Transformer[T, T]):
    """Run a side effect, forward the chunk untouched."""

    name = "tap"

    def __init__(self, fn: Callable[[T], SyncOrAsync[object]]) -> None:
        self.fn = fn

    async def transform(self, chunk: T, controller: TransformStreamController[T]) -> None:
        await maybe_await(self.fn(chunk))
        controller.enqueue(chunk)


class Batch(Transformer[T, list[T]]):
    """Group chunks into lists of ``size``; a short remainder goes out on close."""

    name = "batch"

    def __init__(self, size: int) -> None:
        self.size = size
        self.buffer: list[T] = []

    def transform(self, chunk: T, controller: TransformStreamController[list[T]]) -> None:
        self.buffer.append(chunk)
        if len(self.buffer) >= self.size:
            controller.enqueue(self.buffer.copy())
            self.buffer.clear()

    def flush(self, controller: TransformStreamController[list[T]]) -> None:
        if self.buffer:
            controller.enqueue(self.buffer.copy())
            self.buffer.clear()


class Flatten(Transformer[Iterable[T], T]):
    name = "flatten"

    def transform(self, chunk: Iterable[T], controller: TransformStreamController[T]) -> None:
        for item in chunk:
            controller.enqueue(item)


class Take(Transformer[T, T]):
    """Forward the first ``limit`` chunks, then terminate.

    Termination is immediate: the output closes as soon as the limit is
    reached and the upstream pipe cancels its source without reading
    another chunk. ``limit == 0`` terminates at start.
    """

    name = "take"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.count = 0

    def start(self, controller: TransformStreamController[T]) -> None:
        if self.limit == 0:
            controller.terminate()

    def transform(self, chunk: T, controller: TransformStreamController[T]) -> None:
        if self.count < self.limit:
            controller.enqueue(chunk)
            self.count += 1
        if self.count >= self.limit:
            controller.terminate()


class Skip(Transformer[T, T]):
    name = "skip"

    def __init__(self, count: int) -> None:
        self.count = count
        self.skipped = 0

    def transform(self, chunk: T, controller: TransformStreamController[T]) -> None:
        if self.skipped < self.count:
            self.skipped += 1
            return
        controller.enqueue(chunk)


class Scan(Transformer[T, A]):
    """Running accumulation, emitting the new accumulator after every chunk."""

    name = "scan"

    def __init__(self, fn: Callable[[A, T], SyncOrAsync[A]], seed: A) -> None:
        self.fn = fn
        self.acc = seed

    async def transform(self, chunk: T, controller: TransformStreamController[A]) -> None:
        self.acc = await maybe_await(self.fn(self.acc, chunk))
        controller.enqueue(self.acc)


class Reduce(Scan[T, A]):
    """Same accumulation as Scan; emits the final value once on close, nothing for empty input."""

    name = "reduce"

    def __init__(self, fn: Callable[[A, T], SyncOrAsync[A]], seed: A) -> None:
        super().__init__(fn, seed)
        self.seen = False

    async def transform(self, chunk: T, controller: TransformStreamController[A]) -> None:
        self.acc = await maybe_await(self.fn(self.acc, chunk))
        self.seen = True

    def flush(self, controller: TransformStreamController[A]) -> None:
        if self.seen:
            controller.enqueue(self.acc)


class Append(Transformer[T, T]):
    name = "append"

    def __init__(self, value: T) -> None:
        self.value = value

    def flush(self, controller: TransformStreamController[T]) -> None:
        controller.enqueue(self.value)


# ─────────────────────────────────────────────────────────────────────────────
# Factories
# ─────────────────────────────────────────────────────────────────────────────


def compact() -> TransformStream[T | None, T]:
    """Remove None chunks from a stream.

    Example:
        >>> await to_array(from_iterable([1, None, 2, None, 3]).pipe_through(compact()))
        [1, 2, 3]
    """
    return TransformStream(Compact())


def map(fn: Callable[[T], SyncOrAsync[R]]) -> TransformStream[T, R]:  # noqa: A001 - stage name
    """Apply ``fn`` to every chunk.

    Example:
        >>> stream = readable.pipe_through(map(lambda x: x * 2))
    """
    return TransformStream(Map(params.callback(fn, stage="map")))


def filter(predicate: Callable[[T], SyncOrAsync[bool]]) -> TransformStream[T, T]:  # noqa: A001 - stage name
    """Keep chunks for which ``predicate`` is truthy.

    Example:
        >>> stream = readable.pipe_through(filter(lambda x: x > 10))
    """
    return TransformStream(Filter(params.callback(predicate, stage="filter", param="predicate")))


def tap(fn: Callable[[T], SyncOrAsync[object]]) -> TransformStream[T, T]:
    """Call ``fn`` for each chunk as a side effect; chunks pass through unchanged.

    Example:
        >>> stream = readable.pipe_through(tap(lambda x: log.info("chunk", value=x)))
    """
    return TransformStream(Tap(params.callback(fn, stage="tap")))


def batch(size: int) -> TransformStream[T, list[T]]:
    """Group chunks into lists of ``size``.

    Raises:
        StageConfigError: If ``size`` is not a positive int

    Example:
        >>> await to_array(from_iterable([1, 2, 3, 4, 5]).pipe_through(batch(2)))
        [[1, 2], [3, 4], [5]]
    """
    return TransformStream(Batch(params.positive_count(size, stage="batch", param="size")))


def flatten() -> TransformStream[Iterable[T], T]:
    """Emit the elements of each iterable chunk in order.

    Example:
        >>> await to_array(from_iterable([[1, 2], [], [3]]).pipe_through(flatten()))
        [1, 2, 3]
    """
    return TransformStream(Flatten())


def take(limit: int) -> TransformStream[T, T]:
    """Forward at most ``limit`` chunks, then end the stream.

    Raises:
        StageConfigError: If ``limit`` is not a non-negative int
    """
    return TransformStream(Take(params.non_negative_count(limit, stage="take", param="limit")))


def skip(count: int) -> TransformStream[T, T]:
    """Drop the first ``count`` chunks.

    Raises:
        StageConfigError: If ``count`` is not a non-negative int
    """
    return TransformStream(Skip(params.non_negative_count(count, stage="skip", param="count")))


def flat_map(fn: Callable[[T], SyncOrAsync[Iterable[R]]]) -> StreamPair[T, R]:
    """``map(fn)`` piped into ``flatten()``; only the outer ends are exposed.

    Example:
        >>> await to_array(from_iterable(["ab", "c"]).pipe_through(flat_map(list)))
        ['a', 'b', 'c']
    """
    mapper: TransformStream[T, Iterable[R]] = map(fn)
    flattener: TransformStream[Iterable[R], R] = flatten()
    return StreamPair(writable=mapper.writable, readable=mapper.readable.pipe_through(flattener))


def scan(fn: Callable[[A, T], SyncOrAsync[A]], seed: A) -> TransformStream[T, A]:
    """Emit the running accumulation ``acc = fn(acc, chunk)`` after every chunk.

    Example:
        >>> await to_array(from_iterable([1, 2, 3, 4]).pipe_through(scan(operator.add, 0)))
        [1, 3, 6, 10]
    """
    return TransformStream(Scan(params.callback(fn, stage="scan"), seed))


def reduce(fn: Callable[[A, T], SyncOrAsync[A]], seed: A) -> TransformStream[T, A]:
    """Emit only the final accumulation, once the input closes.

    An empty input emits nothing, not even ``seed``.
    """
    return TransformStream(Reduce(params.callback(fn, stage="reduce"), seed))


def append(value: T) -> TransformStream[T, T]:
    """Forward every chunk, then emit ``value`` once before closing."""
    return TransformStream(Append(value))
