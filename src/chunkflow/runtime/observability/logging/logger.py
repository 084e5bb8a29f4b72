"""Structured logging for stream pipelines.

Every record carries an event name plus key/value fields. Fields come from
three places, later ones winning: the scoped ``log_context``, the logger's
bound fields (``bind`` / ``bind_stage``), and the call site.

Output:
- console: one line per record, ``12:30:01.120 DEBUG [merge] input failed input=1``
- json:    JSON Lines via orjson, for log shipping
- none:    discard everything

Quick Start:
    >>> from chunkflow.runtime.observability.logging import get_logger, configure_logging
    >>>
    >>> configure_logging(format="console", level="DEBUG")
    >>> log = get_logger("ingest").bind_stage("batch", size=100)
    >>> log.debug("flushing remainder", buffered=7)
    # => 12:30:01.120 DEBUG [batch] flushing remainder buffered=7 logger=ingest size=100
"""

from __future__ import annotations

import logging
import sys
import time
import traceback
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, TextIO, runtime_checkable

Fields = dict[str, Any]

# Scoped fields; copied into every task spawned inside the scope
_scoped_fields: ContextVar[Fields] = ContextVar("chunkflow_log_fields", default={})
_active_renderer: ContextVar[LogRenderer | None] = ContextVar("chunkflow_log_renderer", default=None)
_threshold: ContextVar[int] = ContextVar("chunkflow_log_threshold", default=logging.INFO)


# ─────────────────────────────────────────────────────────────────────────────
# Records and renderers
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class LogRecord:
    """One structured log event."""

    timestamp: float
    level: str
    event: str
    fields: Fields

    @property
    def origin(self) -> str | None:
        """Stage name when bound, else the logger name."""
        return self.fields.get("stage") or self.fields.get("logger")

    def clock(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]

    def as_dict(self) -> Fields:
        return {"ts": datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat(),
                "level": self.level, "event": self.event, **self.fields}


@runtime_checkable
class LogRenderer(Protocol):
    """Anything that can write a LogRecord somewhere."""

    def render(self, record: LogRecord) -> None: ...


_RESET = "\033[0m"
_LEVEL_STYLES = {"debug": "\033[2m", "info": "\033[32m", "warning": "\033[33m", "error": "\033[31m", "critical": "\033[1;31m"}
_ORIGIN_STYLE = "\033[36m"


@dataclass(slots=True)
class ConsoleRenderer:
    """Single-line human output: ``time LEVEL [origin] event key=value ...``.

    Fields are sorted by key; ``stage`` is shown as the origin instead of a
    field, and a ``traceback`` field is printed on the following lines.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None
    show_time: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def _paint(self, text: str, style: str) -> str:
        return f"{style}{text}{_RESET}" if self.colors else text

    def render(self, record: LogRecord) -> None:
        head = [record.clock()] if self.show_time else []
        head.append(self._paint(f"{record.level.upper():<7}", _LEVEL_STYLES.get(record.level, "")))
        if origin := record.fields.get("stage"):
            head.append(self._paint(f"[{origin}]", _ORIGIN_STYLE))
        head.append(record.event)
        tail = [f"{key}={_console_value(value)}" for key, value in sorted(record.fields.items())
                if key not in ("stage", "traceback")]
        print(" ".join(head + tail), file=self.output)
        if trace := record.fields.get("traceback"):
            print(self._paint(str(trace).rstrip(), _LEVEL_STYLES["error"]), file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines output. Values orjson cannot encode are written as their repr."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, record: LogRecord) -> None:
        import orjson
        line = orjson.dumps(record.as_dict(), option=orjson.OPT_NON_STR_KEYS | orjson.OPT_APPEND_NEWLINE, default=repr)
        self.output.write(line.decode())


@dataclass(slots=True)
class NoOpRenderer:
    """Drops every record."""

    def render(self, record: LogRecord) -> None:
        return None


def _console_value(value: object) -> str:
    match value:
        case bool() | None: return str(value).lower()
        case int() | float(): return str(value)
        case str() if value and not any(ch.isspace() or ch in "\"'=" for ch in value): return value
        case _: return repr(value)


# ─────────────────────────────────────────────────────────────────────────────
# Logger
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class BoundLogger:
    """Logger carrying bound fields. ``bind`` returns a new logger, the original is untouched.

    With no explicit ``level`` the threshold set by configure_logging() is
    read at emit time, so module-level loggers follow later configuration.

    Example:
        >>> log = BoundLogger({"component": "merge"})
        >>> log.bind(inputs=3).info("merge started")
    """

    fields: Fields = field(default_factory=dict)
    renderer: LogRenderer | None = None
    level: int | None = None

    def bind(self, **fields: Any) -> BoundLogger:
        return BoundLogger({**self.fields, **fields}, self.renderer, self.level)

    def bind_stage(self, name: str, **fields: Any) -> BoundLogger:
        """Bind the stage name, shown as the record origin."""
        return self.bind(stage=name, **fields)

    def unbind(self, *keys: str) -> BoundLogger:
        return BoundLogger({k: v for k, v in self.fields.items() if k not in keys}, self.renderer, self.level)

    def is_enabled_for(self, level: int) -> bool:
        return level >= (_threshold.get() if self.level is None else self.level)

    def _emit(self, level: int, event: str, fields: Fields) -> None:
        if not self.is_enabled_for(level):
            return
        record = LogRecord(time.time(), logging.getLevelName(level).lower(), event,
                           {**_scoped_fields.get(), **self.fields, **fields})
        (self.renderer or _current_renderer()).render(record)

    def debug(self, event: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, fields)

    def exception(self, event: str, **fields: Any) -> None:
        """Error record with the active exception's traceback under ``traceback``."""
        self._emit(logging.ERROR, event, {**fields, "traceback": traceback.format_exc()})


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────


_RENDERERS: dict[str, Callable[[TextIO | None, bool | None], LogRenderer]] = {
    "console": lambda output, colors: ConsoleRenderer(output=output or sys.stderr, colors=colors),
    "json": lambda output, _: JsonRenderer(output=output or sys.stdout),
    "none": lambda *_: NoOpRenderer(),
}


def configure_logging(
    format: str | None = None,  # noqa: A002 - matches the CHUNKFLOW_LOG_FORMAT setting
    level: str | None = None,
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Install the renderer and threshold for the current context.

    Args:
        format: "console", "json" or "none" (default: LoggingSettings.format)
        level: Level name, case-insensitive (default: the settings' effective level)
        output: Stream to write to (console: stderr, json: stdout)
        colors: Force ANSI colors on or off for console output

    Raises:
        ValueError: On an unknown format
    """
    if format is None or level is None:
        from chunkflow.foundation.config import get_settings
        settings = get_settings()
        format = format or settings.logging.format
        level = level or settings.effective_log_level
    if (factory := _RENDERERS.get(format)) is None:
        raise ValueError(f"Unknown format: {format}. Use one of {', '.join(_RENDERERS)}")
    renderer = factory(output, colors)
    _threshold.set(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    _active_renderer.set(renderer)
    return renderer


def get_logger(name: str | None = None, **fields: Any) -> BoundLogger:
    """Logger with ``name`` bound as the ``logger`` field."""
    return BoundLogger({**fields, "logger": name} if name else dict(fields))


def _current_renderer() -> LogRenderer:
    if (renderer := _active_renderer.get()) is None:
        _active_renderer.set(renderer := ConsoleRenderer())
    return renderer


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Add ``fields`` to every record emitted inside the block, across awaits.

    Example:
        >>> with log_context(pipeline="ingest"):
        ...     await to_array(stream)  # runtime records carry pipeline="ingest"
    """
    token = _scoped_fields.set({**_scoped_fields.get(), **fields})
    try:
        yield
    finally:
        _scoped_fields.reset(token)
