"""Piping a readable stream into a writable stream.

The pump reads one chunk, writes it, and repeats. While waiting on the
source it also watches the destination: once the destination errors
(a terminated or cancelled transform), the pending read is abandoned
and the source is cancelled without pulling another chunk.

    source closes   -> destination closed
    source errors   -> destination aborted with that error
    dest errors     -> source cancelled with that error
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from chunkflow.foundation.errors import StreamTerminated, classify_exception

from .common import ReadResult, StreamState, log

if TYPE_CHECKING:
    from .readable import ReadableStream, ReadableStreamReader
    from .transform import ReadableWritablePair
    from .writable import WritableStream, WritableStreamWriter

T = TypeVar("T")


async def pipe_to(source: ReadableStream[T], dest: WritableStream[T]) -> None:
    """Pump every chunk of ``source`` into ``dest`` and close it.

    Raises:
        The source's error (after aborting ``dest``), or the destination's
        error (after cancelling ``source``).
    """
    reader = source.get_reader()
    try:
        writer = dest.get_writer()
    except Exception:
        reader.release_lock()
        raise
    await _pump(reader, writer, dest)


def pipe_through(source: ReadableStream[Any], transform: ReadableWritablePair) -> ReadableStream[Any]:
    """Lock ``source`` and ``transform.writable`` now; pump once ``transform.readable`` starts."""
    reader = source.get_reader()
    try:
        writer = transform.writable.get_writer()
    except Exception:
        reader.release_lock()
        raise
    label = f"{source.name} -> {transform.writable.name}"
    transform.readable._defer(lambda: _detached(_pump(reader, writer, transform.writable), label))
    return transform.readable


async def _detached(pump: Any, label: str) -> None:
    # Outcome already reached both ends through the streams themselves
    try:
        await pump
    except StreamTerminated:
        log.debug("pipe stopped by terminate", pipe=label)
    except Exception as exc:
        log.debug("pipe aborted", pipe=label, error=str(exc), code=classify_exception(exc))
    else:
        log.debug("pipe finished", pipe=label)


async def _pump(reader: ReadableStreamReader[T], writer: WritableStreamWriter[T], dest: WritableStream[T]) -> None:
    pending: asyncio.Future[ReadResult[T]] | None = None
    try:
        while True:
            if dest.state is StreamState.ERRORED:
                assert dest.stored_error is not None
                await reader.cancel(dest.stored_error)
                raise dest.stored_error
            pending = asyncio.ensure_future(reader.read())
            await asyncio.wait((pending, dest._errored()), return_when=asyncio.FIRST_COMPLETED)
            if not pending.done():
                # Destination failed first; loop top cancels the source
                pending.cancel()
                await asyncio.gather(pending, return_exceptions=True)
                pending = None
                continue
            read, pending = pending, None
            try:
                result = read.result()
            except Exception as exc:
                await writer.abort(exc)
                raise
            if result.done:
                await writer.close()
                return
            try:
                await writer.write(result.value)  # type: ignore[arg-type]
            except Exception as exc:
                await reader.cancel(exc)
                raise
    finally:
        if pending is not None and not pending.done():
            pending.cancel()
        reader.release_lock()
        writer.release_lock()
