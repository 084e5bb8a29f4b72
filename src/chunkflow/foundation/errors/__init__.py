"""Unified error handling for chunkflow.

- ErrorCode: Standard error codes for stream failures
- StreamError/StreamException: Structured errors and exceptions
- StageConfigError, StreamStateError, StreamTerminated, StreamCancelled: concrete failures
"""

from .errors import (
    ErrorCode,
    StageConfigError,
    StreamCancelled,
    StreamError,
    StreamException,
    StreamStateError,
    StreamTerminated,
    classify_exception,
)

__all__ = [
    "ErrorCode", "StreamError", "StreamException", "classify_exception",
    "StageConfigError", "StreamStateError", "StreamTerminated", "StreamCancelled",
]
