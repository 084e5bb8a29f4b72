"""Transform streams: a writable input paired with a readable output.

A Transformer holds one stage's policy and private state. TransformStream
wires it between the two ends: the writable side hands each chunk to
``Transformer.transform`` only once the readable side has demand, so a
stage never runs ahead of its consumer.

Example:
    >>> class Double(Transformer[int, int]):
    ...     name = "double"
    ...     def transform(self, chunk, controller):
    ...         controller.enqueue(chunk * 2)
    >>>
    >>> doubled = source.pipe_through(TransformStream(Double()))
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from chunkflow.foundation.config import get_settings
from chunkflow.foundation.errors import StreamStateError, StreamTerminated, classify_exception

from .common import log, maybe_await
from .readable import ReadableStream
from .writable import WritableStream

I = TypeVar("I")  # noqa: E741
O = TypeVar("O")  # noqa: E741


class TransformStreamController(Generic[O]):
    """Handle passed to a Transformer for emitting, failing or ending its output."""

    __slots__ = ("_owner",)

    def __init__(self, owner: TransformStream[Any, O]) -> None:
        self._owner = owner

    @property
    def desired_size(self) -> int | None:
        return self._owner.readable._desired_size()

    def enqueue(self, chunk: O) -> None:
        readable = self._owner.readable
        if not readable._can_enqueue():
            raise StreamStateError.create(readable.name, "output no longer accepts chunks")
        readable._enqueue(chunk)

    def error(self, exc: BaseException) -> None:
        self._owner._fail(exc)

    def terminate(self) -> None:
        """Close the output now and refuse further input."""
        self._owner._terminate()


class Transformer(Generic[I, O]):
    """Chunk-processing policy of one stage. Identity by default.

    Subclasses override any of the hooks; each may be sync or async.
    State kept on the instance belongs to exactly one TransformStream.
    """

    name: str = "transform"

    def start(self, controller: TransformStreamController[O]) -> Awaitable[None] | None:
        return None

    def transform(self, chunk: I, controller: TransformStreamController[O]) -> Awaitable[None] | None:
        controller.enqueue(chunk)  # type: ignore[arg-type]
        return None

    def flush(self, controller: TransformStreamController[O]) -> Awaitable[None] | None:
        return None


@runtime_checkable
class ReadableWritablePair(Protocol):
    """Anything pipe_through() can connect to: a writable input and a readable output."""

    @property
    def writable(self) -> WritableStream[Any]: ...

    @property
    def readable(self) -> ReadableStream[Any]: ...


@dataclass(slots=True, frozen=True)
class StreamPair(Generic[I, O]):
    """Outer ends of an internally composed pipeline."""

    writable: WritableStream[I]
    readable: ReadableStream[O]


class TransformStream(Generic[I, O]):
    """Writable/readable pair driven by a Transformer.

    - writable close: flush, then close the readable
    - writable abort: error the readable, flush skipped
    - readable cancel: error the writable
    - terminate(): close the readable, error the writable with StreamTerminated
    """

    def __init__(self, transformer: Transformer[I, O] | None = None, *, readable_high_water_mark: int | None = None) -> None:
        self.transformer: Transformer[I, O] = transformer if transformer is not None else Transformer()
        name = self.transformer.name
        hwm = get_settings().stream.transform_high_water_mark if readable_high_water_mark is None else readable_high_water_mark
        self._controller: TransformStreamController[O] = TransformStreamController(self)
        self._log = log.bind_stage(name)
        self.readable: ReadableStream[O] = ReadableStream(
            start=self._on_start, cancel=self._on_cancel, high_water_mark=hwm, name=f"{name}.readable",
        )
        self.writable: WritableStream[I] = WritableStream(
            write=self._on_write, close=self._on_close, abort=self._on_abort, name=f"{name}.writable",
        )

    def __repr__(self) -> str:
        return f"TransformStream({self.transformer.name!r})"

    # ─────────────────────────────────────────────────────────────────────
    # Readable side
    # ─────────────────────────────────────────────────────────────────────

    def _on_start(self, _: object) -> Awaitable[None] | None:
        try:
            outcome = self.transformer.start(self._controller)
        except Exception as exc:
            self._fail(exc)
            raise
        return self._await_start(outcome) if inspect.isawaitable(outcome) else None

    async def _await_start(self, outcome: Awaitable[None]) -> None:
        try:
            await outcome
        except Exception as exc:
            self._fail(exc)
            raise

    def _on_cancel(self, reason: BaseException) -> None:
        self.writable._error(reason)

    # ─────────────────────────────────────────────────────────────────────
    # Writable side
    # ─────────────────────────────────────────────────────────────────────

    async def _on_write(self, chunk: I) -> None:
        readable = self.readable
        await readable._wait_for_demand()
        if not readable._can_enqueue():
            raise (self.writable.stored_error or readable._stored_error
                   or StreamStateError.create(readable.name, "output closed before the chunk was processed"))
        try:
            await maybe_await(self.transformer.transform(chunk, self._controller))
        except Exception as exc:
            self._fail(exc)
            raise

    async def _on_close(self) -> None:
        try:
            await maybe_await(self.transformer.flush(self._controller))
        except Exception as exc:
            self._fail(exc)
            raise
        if self.readable._can_enqueue():
            self.readable._request_close()

    def _on_abort(self, reason: BaseException) -> None:
        self.readable._error(reason)

    # ─────────────────────────────────────────────────────────────────────
    # Shared
    # ─────────────────────────────────────────────────────────────────────

    def _fail(self, exc: BaseException) -> None:
        self._log.debug("stage failed", error=str(exc), code=classify_exception(exc))
        self.readable._error(exc)
        self.writable._error(exc)

    def _terminate(self) -> None:
        if self.readable._can_enqueue():
            self.readable._request_close()
        self.writable._error(StreamTerminated.create(self.transformer.name, "transform terminated"))
