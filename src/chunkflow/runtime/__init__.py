"""Runtime - stream primitives and observability.

Contains: streams, observability.
"""

from __future__ import annotations

__all__ = [
    # Streams
    "ReadResult", "StreamState",
    "ReadableStream", "ReadableStreamController", "ReadableStreamReader",
    "WritableStream", "WritableStreamWriter",
    "TransformStream", "TransformStreamController", "Transformer",
    "ReadableWritablePair", "StreamPair", "pipe_to", "pipe_through",
    # Observability
    "BoundLogger", "get_logger", "configure_logging", "log_context",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("BoundLogger", "get_logger", "configure_logging", "log_context"):
        from . import observability
        return getattr(observability, name)

    if name in __all__:
        from . import streams
        return getattr(streams, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
