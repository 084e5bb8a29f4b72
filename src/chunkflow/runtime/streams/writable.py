"""Push-based writable streams with serialized, awaited writes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from chunkflow.foundation.errors import StreamCancelled, StreamStateError

from .common import StreamState, maybe_await

T = TypeVar("T")


class WritableStreamWriter(Generic[T]):
    """Exclusive write handle over a WritableStream."""

    __slots__ = ("_stream",)

    def __init__(self, stream: WritableStream[T]) -> None:
        self._stream: WritableStream[T] | None = stream

    def _owned(self) -> WritableStream[T]:
        if self._stream is None:
            raise StreamStateError.create("writer", "writer has been released")
        return self._stream

    async def write(self, chunk: T) -> None:
        """Hand a chunk to the sink. Returns once the sink has accepted it."""
        await self._owned()._write(chunk)

    async def close(self) -> None:
        await self._owned()._close()

    async def abort(self, reason: BaseException | None = None) -> None:
        await self._owned()._abort(reason)

    def release_lock(self) -> None:
        if (stream := self._stream) is None:
            return
        stream._writer = None
        self._stream = None


class WritableStream(Generic[T]):
    """Writable end of a stream, draining into a sink.

    Args:
        start: Called once before the first write or close
        write: Called with each chunk; at most one call in flight
        close: Called once after the last write
        abort: Called with the reason when the producer gives up
        name: Label used in errors and logs

    Callbacks may be plain functions or return awaitables. A failing callback
    errors the stream and every later write raises that error.
    """

    def __init__(
        self,
        *,
        start: Callable[[], Awaitable[None] | None] | None = None,
        write: Callable[[T], Awaitable[None] | None] | None = None,
        close: Callable[[], Awaitable[None] | None] | None = None,
        abort: Callable[[BaseException], Awaitable[None] | None] | None = None,
        name: str = "writable",
    ) -> None:
        self.name = name
        self._start_fn, self._write_fn, self._close_fn, self._abort_fn = start, write, close, abort
        self._state = StreamState.WRITABLE
        self._stored_error: BaseException | None = None
        self._writer: WritableStreamWriter[T] | None = None
        self._lock = asyncio.Lock()
        self._start_called = False
        self._error_signal: asyncio.Future[None] | None = None

    def __repr__(self) -> str:
        return f"WritableStream(name={self.name!r}, state={self._state})"

    @property
    def locked(self) -> bool:
        return self._writer is not None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def stored_error(self) -> BaseException | None:
        return self._stored_error

    def get_writer(self) -> WritableStreamWriter[T]:
        """Lock the stream to a new writer."""
        if self._writer is not None:
            raise StreamStateError.create(self.name, "stream is already locked to a writer")
        self._writer = WritableStreamWriter(self)
        return self._writer

    async def close(self) -> None:
        if self._writer is not None:
            raise StreamStateError.create(self.name, "cannot close a stream locked to a writer")
        await self._close()

    async def abort(self, reason: BaseException | None = None) -> None:
        if self._writer is not None:
            raise StreamStateError.create(self.name, "cannot abort a stream locked to a writer")
        await self._abort(reason)

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _check_writable(self) -> None:
        if self._state is StreamState.ERRORED:
            assert self._stored_error is not None
            raise self._stored_error
        if self._state is not StreamState.WRITABLE:
            raise StreamStateError.create(self.name, f"cannot write to a {self._state} stream")

    async def _ensure_started(self) -> None:
        if self._start_called:
            return
        self._start_called = True
        if self._start_fn is None:
            return
        try:
            await maybe_await(self._start_fn())
        except Exception as exc:
            self._error(exc)
            raise

    async def _write(self, chunk: T) -> None:
        self._check_writable()
        async with self._lock:
            self._check_writable()
            await self._ensure_started()
            if self._write_fn is None:
                return
            try:
                await maybe_await(self._write_fn(chunk))
            except Exception as exc:
                self._error(exc)
                raise

    async def _close(self) -> None:
        self._check_writable()
        self._state = StreamState.CLOSING
        async with self._lock:
            if self._state is StreamState.ERRORED:
                raise self._stored_error  # type: ignore[misc]
            await self._ensure_started()
            if self._close_fn is not None:
                try:
                    await maybe_await(self._close_fn())
                except Exception as exc:
                    self._error(exc)
                    raise
            # The sink may have errored us without raising
            if self._state is StreamState.ERRORED:
                raise self._stored_error  # type: ignore[misc]
            self._state = StreamState.CLOSED

    async def _abort(self, reason: BaseException | None) -> None:
        if self._state in (StreamState.CLOSED, StreamState.ERRORED):
            return
        reason = reason if reason is not None else StreamCancelled.create(self.name, "stream aborted")
        self._error(reason)
        if self._abort_fn is not None:
            await maybe_await(self._abort_fn(reason))

    def _error(self, exc: BaseException) -> None:
        if self._state in (StreamState.CLOSED, StreamState.ERRORED):
            return
        self._state = StreamState.ERRORED
        self._stored_error = exc
        if self._error_signal is not None and not self._error_signal.done():
            self._error_signal.set_result(None)

    def _errored(self) -> asyncio.Future[Any]:
        """Future resolved once this stream errors (already resolved if it has)."""
        if self._error_signal is None:
            self._error_signal = asyncio.get_running_loop().create_future()
            if self._state is StreamState.ERRORED:
                self._error_signal.set_result(None)
        return self._error_signal
