"""Chunkflow - Composable stream stages on asyncio.

A small kit of reusable stages for in-process streams: sources that turn
iterables and timers into readable streams, transforms that reshape the
chunks flowing through them, a fan-in that merges several streams, and a
sink that collects a stream into a list. Every stage respects
backpressure and consumer cancellation.

Quick Start:
    >>> from chunkflow import from_iterable, filter, map, take, to_array
    >>>
    >>> stream = (
    ...     from_iterable(range(100))
    ...     .pipe_through(filter(lambda x: x % 3 == 0))
    ...     .pipe_through(map(lambda x: x * 10))
    ...     .pipe_through(take(3))
    ... )
    >>> await to_array(stream)
    [0, 30, 60]

Timers and Fan-in:
    >>> from chunkflow import interval, merge, batch
    >>>
    >>> ticks = merge(interval(0.5), interval(0.2)).pipe_through(batch(4))
    >>> async for group in ticks:
    ...     print(group)

Custom Stages:
    >>> from chunkflow import Transformer, TransformStream
    >>>
    >>> class Upper(Transformer[str, str]):
    ...     name = "upper"
    ...     def transform(self, chunk, controller):
    ...         controller.enqueue(chunk.upper())
    >>>
    >>> shouting = from_iterable(["a", "b"]).pipe_through(TransformStream(Upper()))

Configuration:
    Defaults come from ``CHUNKFLOW_*`` environment variables (see
    ``chunkflow.foundation.config``); logging is set up with
    ``configure_logging()``.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Errors
from .foundation.errors import (
    ErrorCode,
    StageConfigError,
    StreamCancelled,
    StreamError,
    StreamException,
    StreamStateError,
    StreamTerminated,
    classify_exception,
)

# Config
from .foundation.config import ChunkflowSettings, clear_settings_cache, get_settings

# Logging
from .runtime.observability import configure_logging, get_logger, log_context

# Stream runtime
from .runtime.streams import (
    ReadableStream,
    ReadableStreamController,
    ReadableStreamReader,
    ReadResult,
    StreamPair,
    StreamState,
    TransformStream,
    TransformStreamController,
    Transformer,
    WritableStream,
    WritableStreamWriter,
)

# Stages
from .stages import (
    append,
    batch,
    compact,
    filter,
    flat_map,
    flatten,
    from_iterable,
    interval,
    map,
    merge,
    reduce,
    scan,
    skip,
    take,
    tap,
    to_array,
)

__all__ = [
    "__version__",
    # Errors
    "ErrorCode", "StreamError", "StreamException", "classify_exception",
    "StageConfigError", "StreamStateError", "StreamTerminated", "StreamCancelled",
    # Config
    "ChunkflowSettings", "get_settings", "clear_settings_cache",
    # Logging
    "configure_logging", "get_logger", "log_context",
    # Stream runtime
    "ReadableStream", "ReadableStreamController", "ReadableStreamReader", "ReadResult",
    "WritableStream", "WritableStreamWriter",
    "TransformStream", "TransformStreamController", "Transformer", "StreamPair", "StreamState",
    # Sources
    "from_iterable", "interval",
    # Transforms
    "compact", "map", "filter", "tap", "batch", "flatten", "take", "skip",
    "flat_map", "scan", "reduce", "append",
    # Fan-in / sinks
    "merge", "to_array",
]
