"""Construction-time validation of stage arguments.

Uses pydantic TypeAdapters over strict constrained types, so ``True`` is
not a count and ``"3"`` is not a size.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any, TypeVar

from pydantic import Field, Strict, TypeAdapter, ValidationError

from chunkflow.foundation.errors import StageConfigError

T = TypeVar("T")

PositiveCount = Annotated[int, Strict(), Field(gt=0)]
NonNegativeCount = Annotated[int, Strict(), Field(ge=0)]
Period = Annotated[float, Strict(), Field(gt=0, allow_inf_nan=False)]

_POSITIVE_COUNT: TypeAdapter[int] = TypeAdapter(PositiveCount)
_NON_NEGATIVE_COUNT: TypeAdapter[int] = TypeAdapter(NonNegativeCount)
_PERIOD: TypeAdapter[float] = TypeAdapter(Period)


def _validate(adapter: TypeAdapter[T], value: object, stage: str, param: str) -> T:
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        reason = exc.errors()[0]["msg"]
        raise StageConfigError.create(stage, f"{param}: {reason} (got {value!r})") from None


def positive_count(value: object, *, stage: str, param: str) -> int:
    return _validate(_POSITIVE_COUNT, value, stage, param)


def non_negative_count(value: object, *, stage: str, param: str) -> int:
    return _validate(_NON_NEGATIVE_COUNT, value, stage, param)


def period(value: object, *, stage: str, param: str = "period") -> float:
    return _validate(_PERIOD, value, stage, param)


def callback(fn: Any, *, stage: str, param: str = "fn") -> Callable[..., Any]:
    if not callable(fn):
        raise StageConfigError.create(stage, f"{param}: expected a callable (got {type(fn).__name__})")
    return fn
