"""Pull-based readable streams.

A ReadableStream queues chunks pushed by its source through a
ReadableStreamController and hands them out to a single locked reader.
The source is asked for more (``pull``) only while there is demand: a
pending read, or queue space below the high-water mark.

Key behaviours:
    - Lazy start: the source's ``start`` runs on the first read or cancel
    - Exclusive reader lock via get_reader()
    - Cancellation empties the queue and runs the source's ``cancel``
    - ``async for`` iteration, pipe_to() and pipe_through()

Example:
    >>> async def pull(controller):
    ...     controller.enqueue(await fetch_next())
    >>>
    >>> stream = ReadableStream(pull=pull)
    >>> async for chunk in stream:
    ...     handle(chunk)
"""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from chunkflow.foundation.config import get_settings
from chunkflow.foundation.errors import StageConfigError, StreamCancelled, StreamStateError

from .common import _DONE, ReadResult, StreamState, log, maybe_await, spawn, wake

if TYPE_CHECKING:
    from .transform import ReadableWritablePair
    from .writable import WritableStream

T = TypeVar("T")
U = TypeVar("U")

SourceCallback = Callable[..., "Awaitable[None] | None"]


class ReadableStreamController(Generic[T]):
    """Handle passed to a source's callbacks for feeding its stream."""

    __slots__ = ("_stream",)

    def __init__(self, stream: ReadableStream[T]) -> None:
        self._stream = stream

    @property
    def desired_size(self) -> int | None:
        """Room left below the high-water mark. None once errored, 0 once closed."""
        return self._stream._desired_size()

    @property
    def is_open(self) -> bool:
        """True while the stream still accepts chunks."""
        return self._stream._can_enqueue()

    @property
    def has_demand(self) -> bool:
        """True while a read is pending or the queue is below the high-water mark."""
        return self._stream._has_demand()

    def enqueue(self, chunk: T) -> None:
        self._stream._enqueue(chunk)

    def close(self) -> None:
        """Close after the queued chunks have been read."""
        self._stream._request_close()

    def error(self, exc: BaseException) -> None:
        self._stream._error(exc)

    async def wait_for_demand(self) -> None:
        """Suspend until a reader wants more, or the stream stops accepting chunks."""
        await self._stream._wait_for_demand()


class ReadableStreamReader(Generic[T]):
    """Exclusive read cursor over a ReadableStream."""

    __slots__ = ("_stream",)

    def __init__(self, stream: ReadableStream[T]) -> None:
        self._stream: ReadableStream[T] | None = stream

    def _owned(self) -> ReadableStream[T]:
        if self._stream is None:
            raise StreamStateError.create("reader", "reader has been released")
        return self._stream

    async def read(self) -> ReadResult[T]:
        """Next chunk, or ReadResult(done=True) once the stream is closed and drained."""
        return await self._owned()._read()

    async def cancel(self, reason: BaseException | None = None) -> None:
        await self._owned()._cancel(reason)

    def release_lock(self) -> None:
        """Give up the lock. Reads still pending fail with StreamStateError."""
        if (stream := self._stream) is None:
            return
        released = StreamStateError.create(stream.name, "reader released while a read was pending")
        while stream._reads:
            if not (fut := stream._reads.popleft()).done():
                fut.set_exception(released)
        stream._reader = None
        self._stream = None


class ReadableStream(Generic[T]):
    """Readable end of a stream, fed by a source through its controller.

    Args:
        start: Called once with the controller before the first pull
        pull: Called with the controller whenever there is demand; one call at a time
        cancel: Called with the reason when the consumer cancels
        high_water_mark: Chunks to queue ahead of the reader (default from StreamSettings)
        name: Label used in errors and logs

    Every callback may be a plain function or return an awaitable. An exception
    raised by ``start`` or ``pull`` errors the stream.
    """

    def __init__(
        self,
        *,
        start: SourceCallback | None = None,
        pull: SourceCallback | None = None,
        cancel: Callable[[BaseException], Awaitable[None] | None] | None = None,
        high_water_mark: int | None = None,
        name: str = "readable",
    ) -> None:
        hwm = get_settings().stream.high_water_mark if high_water_mark is None else high_water_mark
        if hwm < 0:
            raise StageConfigError.create(name, f"high_water_mark must be >= 0, got {hwm}")
        self.name = name
        self._start_fn, self._pull_fn, self._cancel_fn = start, pull, cancel
        self._hwm = hwm
        self._controller: ReadableStreamController[T] = ReadableStreamController(self)
        self._state = StreamState.READABLE
        self._stored_error: BaseException | None = None
        self._queue: deque[T] = deque()
        self._close_requested = False
        self._reads: deque[asyncio.Future[ReadResult[T]]] = deque()
        self._demand: list[asyncio.Future[None]] = []
        self._reader: ReadableStreamReader[T] | None = None
        self._deferred: list[Callable[[], Coroutine[Any, Any, None]]] = []
        self._start_called = False
        self._started = False
        self._pulling = False
        self._pull_again = False
        self._pull_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"ReadableStream(name={self.name!r}, state={self._state}, queued={len(self._queue)})"

    # ─────────────────────────────────────────────────────────────────────
    # Public surface
    # ─────────────────────────────────────────────────────────────────────

    @property
    def locked(self) -> bool:
        return self._reader is not None

    @property
    def state(self) -> StreamState:
        return self._state

    def get_reader(self) -> ReadableStreamReader[T]:
        """Lock the stream to a new reader."""
        if self._reader is not None:
            raise StreamStateError.create(self.name, "stream is already locked to a reader")
        self._reader = ReadableStreamReader(self)
        return self._reader

    async def cancel(self, reason: BaseException | None = None) -> None:
        """Cancel an unlocked stream. Use reader.cancel() while locked."""
        if self._reader is not None:
            raise StreamStateError.create(self.name, "cannot cancel a stream locked to a reader")
        await self._cancel(reason)

    def pipe_through(self, transform: ReadableWritablePair) -> ReadableStream[Any]:
        """Connect this stream to ``transform.writable`` and return ``transform.readable``.

        Both ends are locked immediately; chunks start flowing once the
        returned readable is read.
        """
        from .pipe import pipe_through
        return pipe_through(self, transform)

    async def pipe_to(self, dest: WritableStream[T]) -> None:
        """Write every chunk into ``dest``, then close it. Raises if either side errors."""
        from .pipe import pipe_to
        await pipe_to(self, dest)

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        reader = self.get_reader()
        settled = False
        try:
            while not (result := await reader.read()).done:
                yield result.value  # type: ignore[misc]
            settled = True
        except Exception:
            settled = True
            raise
        finally:
            # Consumer left early (break, aclose, task cancelled)
            if not settled:
                await reader.cancel()
            reader.release_lock()

    # ─────────────────────────────────────────────────────────────────────
    # Controller side
    # ─────────────────────────────────────────────────────────────────────

    def _desired_size(self) -> int | None:
        if self._state is StreamState.ERRORED:
            return None
        if self._state is StreamState.CLOSED:
            return 0
        return self._hwm - len(self._queue)

    def _can_enqueue(self) -> bool:
        return self._state is StreamState.READABLE and not self._close_requested

    def _has_demand(self) -> bool:
        return self._can_enqueue() and (bool(self._reads) or self._hwm - len(self._queue) > 0)

    def _enqueue(self, chunk: T) -> None:
        if not self._can_enqueue():
            raise StreamStateError.create(self.name, f"cannot enqueue into a {self._describe()} stream")
        while self._reads:
            if not (fut := self._reads.popleft()).done():
                fut.set_result(ReadResult(chunk))
                break
        else:
            self._queue.append(chunk)
        self._pull_if_needed()

    def _request_close(self) -> None:
        if not self._can_enqueue():
            raise StreamStateError.create(self.name, f"cannot close a {self._describe()} stream")
        self._close_requested = True
        if not self._queue:
            self._finalize_close()

    def _finalize_close(self) -> None:
        self._state = StreamState.CLOSED
        while self._reads:
            if not (fut := self._reads.popleft()).done():
                fut.set_result(_DONE)
        wake(self._demand)

    def _error(self, exc: BaseException) -> None:
        if self._state is not StreamState.READABLE:
            return
        self._state = StreamState.ERRORED
        self._stored_error = exc
        self._queue.clear()
        while self._reads:
            if not (fut := self._reads.popleft()).done():
                fut.set_exception(exc)
        wake(self._demand)

    def _describe(self) -> str:
        return "closing" if self._close_requested and self._state is StreamState.READABLE else str(self._state)

    async def _wait_for_demand(self) -> None:
        loop = asyncio.get_running_loop()
        while self._can_enqueue() and not self._has_demand():
            fut: asyncio.Future[None] = loop.create_future()
            self._demand.append(fut)
            await fut

    # ─────────────────────────────────────────────────────────────────────
    # Source lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def _defer(self, factory: Callable[[], Coroutine[Any, Any, None]]) -> None:
        """Run ``factory()`` as a task once this stream starts."""
        if self._start_called:
            spawn(factory(), name=f"{self.name}.pipe")
        else:
            self._deferred.append(factory)

    def _ensure_started(self) -> None:
        if self._start_called:
            return
        self._start_called = True
        for factory in self._deferred:
            spawn(factory(), name=f"{self.name}.pipe")
        self._deferred.clear()
        try:
            outcome = self._start_fn(self._controller) if self._start_fn is not None else None
        except Exception as exc:
            self._error(exc)
            return
        if inspect.isawaitable(outcome):
            spawn(self._finish_start(outcome), name=f"{self.name}.start")
        else:
            self._mark_started()

    async def _finish_start(self, outcome: Awaitable[None]) -> None:
        try:
            await outcome
        except Exception as exc:
            self._error(exc)
        else:
            self._mark_started()

    def _mark_started(self) -> None:
        self._started = True
        self._pull_if_needed()

    def _pull_if_needed(self) -> None:
        if self._pull_fn is None or not self._started or not self._has_demand():
            return
        if self._pulling:
            self._pull_again = True
            return
        self._pulling = True
        self._pull_task = spawn(self._run_pull(), name=f"{self.name}.pull")

    async def _run_pull(self) -> None:
        assert self._pull_fn is not None
        try:
            while True:
                self._pull_again = False
                await maybe_await(self._pull_fn(self._controller))
                if not (self._pull_again and self._has_demand()):
                    break
        except Exception as exc:
            self._error(exc)
        finally:
            self._pulling = False
            self._pull_task = None

    # ─────────────────────────────────────────────────────────────────────
    # Reader side
    # ─────────────────────────────────────────────────────────────────────

    async def _read(self) -> ReadResult[T]:
        self._ensure_started()
        if self._queue:
            chunk = self._queue.popleft()
            if self._close_requested and not self._queue:
                self._finalize_close()
            else:
                self._pull_if_needed()
                wake(self._demand)
            return ReadResult(chunk)
        if self._state is StreamState.CLOSED:
            return _DONE
        if self._state is StreamState.ERRORED:
            assert self._stored_error is not None
            raise self._stored_error
        fut: asyncio.Future[ReadResult[T]] = asyncio.get_running_loop().create_future()
        self._reads.append(fut)
        self._pull_if_needed()
        wake(self._demand)
        try:
            return await fut
        except asyncio.CancelledError:
            if fut in self._reads:
                self._reads.remove(fut)
            raise

    async def _cancel(self, reason: BaseException | None) -> None:
        # Idempotent teardown: closed or errored streams have nothing left to release
        if self._state is not StreamState.READABLE:
            return
        self._ensure_started()
        if self._state is not StreamState.READABLE:
            return
        self._queue.clear()
        self._finalize_close()
        if (task := self._pull_task) is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        reason = reason if reason is not None else StreamCancelled.create(self.name, "stream cancelled")
        log.debug("stream cancelled", stream=self.name, reason=str(reason))
        if self._cancel_fn is not None:
            await maybe_await(self._cancel_fn(reason))
