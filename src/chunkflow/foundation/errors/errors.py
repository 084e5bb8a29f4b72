"""Standardized error handling for stream stages.

Provides error codes and structured error records for stream failures.
Uses Pydantic for validation and serialization of the error payload.
"""

from __future__ import annotations

import traceback
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorCode(StrEnum):
    """Standard error codes for stream failures.

    Used for programmatic error handling and log classification.
    """
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_STATE = "INVALID_STATE"
    CALLBACK_FAILED = "CALLBACK_FAILED"
    SOURCE_FAILED = "SOURCE_FAILED"
    TERMINATED = "TERMINATED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


# Flattened pattern -> code mapping, checked in insertion order
_PATTERN_CODES: dict[str, ErrorCode] = {
    "cancel": ErrorCode.CANCELLED,
    "terminat": ErrorCode.TERMINATED,
    "timeout": ErrorCode.TIMEOUT,
    "connection": ErrorCode.SOURCE_FAILED,
    "brokenpipe": ErrorCode.SOURCE_FAILED,
    "eoferror": ErrorCode.SOURCE_FAILED,
    "validation": ErrorCode.INVALID_CONFIG,
    "locked": ErrorCode.INVALID_STATE,
    "released": ErrorCode.INVALID_STATE,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    """Cached classification by exception signature."""
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.CALLBACK_FAILED


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map exception to error code. Structured stream exceptions carry their own code."""
    if isinstance(exc, StreamException):
        return exc.error.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


class StreamError(BaseModel):
    """Structured description of a stream failure.

    Attributes:
        stage: Name of the stage or runtime component that failed
        message: Human-readable error message
        code: Machine-readable error code
        details: Optional detailed information (e.g., stack trace)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Stream Error",
            "description": "Structured error from a stream stage",
            "examples": [{
                "stage": "batch",
                "message": "size must be a positive integer, got 0",
                "code": "INVALID_CONFIG",
            }],
        },
    )

    stage: Annotated[str, Field(min_length=1, description="Stage or component that produced the error")]
    message: Annotated[str, Field(min_length=1, description="Human-readable error message")]
    code: ErrorCode = Field(default=ErrorCode.UNKNOWN, description="Machine-readable error classification")
    details: str | None = Field(default=None, description="Optional detailed error info")

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | BaseException) -> str:
        """Accept exception objects and extract message."""
        return (str(v) or type(v).__name__) if isinstance(v, BaseException) else v

    @computed_field
    @property
    def is_usage_error(self) -> bool:
        """Whether the failure comes from misuse of the API rather than data flow."""
        return self.code in (ErrorCode.INVALID_CONFIG, ErrorCode.INVALID_STATE)

    @classmethod
    def from_exception(cls, stage: str, exc: BaseException, *, include_trace: bool = False) -> Self:
        """Create from exception with auto-classification."""
        return cls(
            stage=stage,
            message=exc,  # type: ignore[arg-type]
            code=classify_exception(exc),
            details="".join(traceback.format_exception(exc)) if include_trace else None,
        )

    def render(self) -> str:
        return f"[{self.code}] {self.stage}: {self.message}"

    __str__ = render


class StreamException(Exception):
    """Exception wrapping a StreamError for raising."""

    __slots__ = ("error",)
    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, error: StreamError) -> None:
        self.error = error
        super().__init__(error.message)

    @classmethod
    def create(cls, stage: str, message: str, code: ErrorCode | None = None) -> Self:
        """Create exception with the class' default code unless one is given."""
        return cls(StreamError(stage=stage, message=message, code=code or cls.default_code))


class StageConfigError(StreamException, ValueError):
    """A stage factory received an argument it cannot work with."""

    default_code = ErrorCode.INVALID_CONFIG


class StreamStateError(StreamException, RuntimeError):
    """Operation not allowed in the stream's current state (locked, closed, released)."""

    default_code = ErrorCode.INVALID_STATE


class StreamTerminated(StreamException):
    """Writable side of a transform after its readable side was terminated."""

    default_code = ErrorCode.TERMINATED


class StreamCancelled(StreamException):
    """Default cancellation reason when the consumer gives none."""

    default_code = ErrorCode.CANCELLED
