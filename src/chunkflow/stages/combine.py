"""Fan-in of several readable streams into one.

One pump task per input moves chunks into the merged output as soon as
they arrive, waiting for output demand before each read. A supervisor
watches the pumps: the output closes once every pump has drained its
input, or errors with the first failure, after which the surviving inputs
are cancelled.

Example:
    >>> merged = merge(interval(0.1), from_iterable(["a", "b"]))
    >>> await to_array(merged.pipe_through(take(4)))  # arrival order
    ['a', 'b', 0, 1]
"""

from __future__ import annotations

import asyncio
from typing import Any, Generic, TypeVar

from chunkflow.foundation.errors import StageConfigError, classify_exception
from chunkflow.runtime.streams import ReadableStream, ReadableStreamController, ReadableStreamReader
from chunkflow.runtime.streams.common import log, spawn

T = TypeVar("T")

__all__ = ["merge"]


class _FanIn(Generic[T]):
    """Pump and supervisor tasks for one merged stream."""

    def __init__(self, streams: list[ReadableStream[T]], readers: list[ReadableStreamReader[T]]) -> None:
        self.streams = streams
        self.readers = readers
        self.pumps: list[asyncio.Task[None]] = []
        self.supervisor: asyncio.Task[None] | None = None
        self._log = log.bind_stage("merge", inputs=len(streams))

    def start(self, controller: ReadableStreamController[T]) -> None:
        if not self.readers:
            controller.close()
            return
        self.pumps = [
            spawn(self._pump(reader, controller), name=f"merge.input[{index}]")
            for index, reader in enumerate(self.readers)
        ]
        self.supervisor = spawn(self._supervise(controller), name="merge.supervisor")

    async def _pump(self, reader: ReadableStreamReader[T], controller: ReadableStreamController[T]) -> None:
        try:
            while True:
                await controller.wait_for_demand()
                if not controller.is_open:
                    return
                result = await reader.read()
                if result.done or not controller.is_open:
                    return
                controller.enqueue(result.value)  # type: ignore[arg-type]
        finally:
            reader.release_lock()

    async def _supervise(self, controller: ReadableStreamController[T]) -> None:
        done, _ = await asyncio.wait(self.pumps, return_when=asyncio.FIRST_EXCEPTION)
        failures = [(self.pumps.index(task), exc) for task in done
                    if not task.cancelled() and (exc := task.exception()) is not None]
        if not failures:
            if controller.is_open:
                controller.close()
            return
        index, exc = min(failures, key=lambda failure: failure[0])
        self._log.debug("merge input failed", input=index, error=str(exc), code=classify_exception(exc))
        controller.error(exc)
        await self._abandon(exc)

    async def _abandon(self, reason: BaseException) -> None:
        for task in self.pumps:
            task.cancel()
        await asyncio.gather(*self.pumps, return_exceptions=True)
        # Pumps cancelled before their first step never reach their finally
        for reader in self.readers:
            reader.release_lock()
        outcomes = await asyncio.gather(*(stream.cancel(reason) for stream in self.streams), return_exceptions=True)
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, Exception):
                self._log.debug("merge input cancel failed", input=index, error=str(outcome),
                                code=classify_exception(outcome))

    async def cancel(self, reason: BaseException) -> None:
        if (supervisor := self.supervisor) is not None and supervisor is not asyncio.current_task():
            supervisor.cancel()
            await asyncio.gather(supervisor, return_exceptions=True)
        await self._abandon(reason)


def merge(*streams: ReadableStream[T]) -> ReadableStream[T]:
    """Interleave chunks from ``streams`` in arrival order.

    Every input is locked immediately. The result closes once all inputs
    have closed (at once for no inputs) and errors with the first input
    error, cancelling the others. Cancelling the result cancels every input
    still open.

    Raises:
        StageConfigError: If an argument is not a ReadableStream
        StreamStateError: If an input is already locked; inputs locked so far are released
    """
    for index, stream in enumerate(streams):
        if not isinstance(stream, ReadableStream):
            raise StageConfigError.create("merge", f"streams[{index}]: expected a ReadableStream (got {type(stream).__name__})")
    readers: list[ReadableStreamReader[Any]] = []
    try:
        for stream in streams:
            readers.append(stream.get_reader())
    except Exception:
        for reader in readers:
            reader.release_lock()
        raise
    fan_in = _FanIn(list(streams), readers)
    return ReadableStream(start=fan_in.start, cancel=fan_in.cancel, name="merge")
