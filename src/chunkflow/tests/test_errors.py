"""Tests for the error taxonomy."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from chunkflow import (
    ErrorCode,
    StageConfigError,
    StreamCancelled,
    StreamError,
    StreamException,
    StreamStateError,
    StreamTerminated,
    batch,
    classify_exception,
)


class TestStreamError:
    """Structured error records."""

    def test_render(self) -> None:
        err = StreamError(stage="batch", message="size: too small", code=ErrorCode.INVALID_CONFIG)
        assert err.render() == "[INVALID_CONFIG] batch: size: too small"
        assert str(err) == err.render()

    def test_accepts_exception_as_message(self) -> None:
        err = StreamError(stage="map", message=KeyError("missing"))
        assert err.message == "'missing'"
        assert StreamError(stage="map", message=RuntimeError()).message == "RuntimeError"

    def test_is_frozen(self) -> None:
        err = StreamError(stage="take", message="done")
        with pytest.raises(ValidationError):
            err.stage = "skip"  # type: ignore[misc]

    def test_requires_stage(self) -> None:
        with pytest.raises(ValidationError):
            StreamError(stage="", message="x")

    def test_from_exception_classifies(self) -> None:
        err = StreamError.from_exception("interval", TimeoutError("timeout waiting for tick"))
        assert err.code is ErrorCode.TIMEOUT
        assert err.details is None

    def test_from_exception_with_trace(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError as exc:
            err = StreamError.from_exception("map", exc, include_trace=True)
        assert err.details is not None and "ValueError: bad" in err.details

    def test_usage_error_flag(self) -> None:
        assert StreamError(stage="s", message="m", code=ErrorCode.INVALID_STATE).is_usage_error
        assert not StreamError(stage="s", message="m", code=ErrorCode.CALLBACK_FAILED).is_usage_error

    def test_serializes_with_computed_field(self) -> None:
        data = StreamError(stage="merge", message="m", code=ErrorCode.SOURCE_FAILED).model_dump()
        assert data == {"stage": "merge", "message": "m", "code": ErrorCode.SOURCE_FAILED,
                        "details": None, "is_usage_error": False}


class TestStreamExceptions:
    """Exception hierarchy and default codes."""

    @pytest.mark.parametrize(("cls", "code", "builtin"), [
        (StageConfigError, ErrorCode.INVALID_CONFIG, ValueError),
        (StreamStateError, ErrorCode.INVALID_STATE, RuntimeError),
        (StreamTerminated, ErrorCode.TERMINATED, StreamException),
        (StreamCancelled, ErrorCode.CANCELLED, StreamException),
    ])
    def test_default_codes(self, cls: type[StreamException], code: ErrorCode, builtin: type) -> None:
        exc = cls.create("stage", "message")
        assert exc.error.code is code
        assert isinstance(exc, builtin)
        assert str(exc) == "message"
        assert classify_exception(exc) is code

    def test_explicit_code_overrides_default(self) -> None:
        exc = StreamStateError.create("reader", "gone", ErrorCode.CANCELLED)
        assert exc.error.code is ErrorCode.CANCELLED

    def test_factory_error_carries_stage(self) -> None:
        with pytest.raises(StageConfigError) as exc_info:
            batch(0)
        assert exc_info.value.error.stage == "batch"
        assert exc_info.value.error.is_usage_error


class TestClassifyException:
    """Classification of arbitrary exceptions."""

    @pytest.mark.parametrize(("exc", "code"), [
        (TimeoutError("read timeout"), ErrorCode.TIMEOUT),
        (RuntimeError("task was cancelled"), ErrorCode.CANCELLED),
        (RuntimeError("stream is already locked"), ErrorCode.INVALID_STATE),
        (ConnectionResetError("peer reset"), ErrorCode.SOURCE_FAILED),
        (EOFError("short read"), ErrorCode.SOURCE_FAILED),
        (ValueError("bad chunk"), ErrorCode.CALLBACK_FAILED),
    ])
    def test_patterns(self, exc: BaseException, code: ErrorCode) -> None:
        assert classify_exception(exc) is code
