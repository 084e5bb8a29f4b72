"""Sinks: collecting a stream into Python values."""

from __future__ import annotations

from typing import TypeVar

from chunkflow.foundation.errors import StageConfigError
from chunkflow.runtime.streams import ReadableStream, WritableStream

T = TypeVar("T")

__all__ = ["to_array"]


async def to_array(stream: ReadableStream[T]) -> list[T]:
    """Drain ``stream`` and return its chunks in arrival order.

    Raises:
        The stream's error, if it errors before closing.

    Example:
        >>> await to_array(from_iterable("abc"))
        ['a', 'b', 'c']
    """
    if not isinstance(stream, ReadableStream):
        raise StageConfigError.create("to_array", f"stream: expected a ReadableStream (got {type(stream).__name__})")
    chunks: list[T] = []
    await stream.pipe_to(WritableStream(write=chunks.append, name="to_array"))
    return chunks
