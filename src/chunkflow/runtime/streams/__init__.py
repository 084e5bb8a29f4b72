"""In-process stream runtime on asyncio.

- ReadableStream: pull-based source with backpressure, reader lock, cancellation
- WritableStream: push-based sink with serialized, awaited writes
- TransformStream: writable input paired with readable output via a Transformer
- pipe_to / pipe_through: connect readable ends to writable ends
"""

from .common import ReadResult, StreamState
from .pipe import pipe_through, pipe_to
from .readable import ReadableStream, ReadableStreamController, ReadableStreamReader
from .transform import ReadableWritablePair, StreamPair, TransformStream, TransformStreamController, Transformer
from .writable import WritableStream, WritableStreamWriter

__all__ = [
    "ReadResult",
    "StreamState",
    "ReadableStream",
    "ReadableStreamController",
    "ReadableStreamReader",
    "WritableStream",
    "WritableStreamWriter",
    "TransformStream",
    "TransformStreamController",
    "Transformer",
    "ReadableWritablePair",
    "StreamPair",
    "pipe_to",
    "pipe_through",
]
