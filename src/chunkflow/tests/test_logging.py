"""Tests for structured logging."""

from __future__ import annotations

import asyncio
import io

import orjson
import pytest

from chunkflow import clear_settings_cache, configure_logging, from_iterable, get_logger, log_context, map, to_array
from chunkflow.runtime.observability import ConsoleRenderer, JsonRenderer, NoOpRenderer


@pytest.fixture(autouse=True)
def quiet_logging() -> object:
    """Restore a silent renderer after each test."""
    yield
    configure_logging(format="none", level="INFO")


def records(buf: io.StringIO) -> list[dict]:
    return [orjson.loads(line) for line in buf.getvalue().splitlines()]


class TestBoundLogger:
    """Context binding and level filtering."""

    def test_json_record_carries_context(self) -> None:
        buf = io.StringIO()
        configure_logging(format="json", level="DEBUG", output=buf)
        get_logger("ingest", pipeline="p1").bind_stage("batch").debug("flushed", buffered=3)

        (record,) = records(buf)
        assert record["event"] == "flushed"
        assert record["level"] == "debug"
        assert record["logger"] == "ingest"
        assert record["stage"] == "batch"
        assert record["pipeline"] == "p1"
        assert record["buffered"] == 3
        assert "ts" in record

    def test_level_filters(self) -> None:
        buf = io.StringIO()
        configure_logging(format="json", level="WARNING", output=buf)
        log = get_logger("t")
        log.info("hidden")
        log.warning("shown")
        assert [r["event"] for r in records(buf)] == ["shown"]

    def test_unbind(self) -> None:
        buf = io.StringIO()
        configure_logging(format="json", level="INFO", output=buf)
        get_logger("t", secret="x", keep=1).unbind("secret").info("e")
        (record,) = records(buf)
        assert "secret" not in record and record["keep"] == 1

    def test_log_context_scopes_fields(self) -> None:
        buf = io.StringIO()
        configure_logging(format="json", level="INFO", output=buf)
        log = get_logger("t")
        with log_context(run="r1"):
            log.info("inside")
        log.info("outside")
        inside, outside = records(buf)
        assert inside["run"] == "r1"
        assert "run" not in outside

    def test_exception_includes_traceback(self) -> None:
        buf = io.StringIO()
        configure_logging(format="json", level="INFO", output=buf)
        try:
            raise ValueError("bad")
        except ValueError:
            get_logger("t").exception("failed")
        (record,) = records(buf)
        assert record["level"] == "error"
        assert "ValueError: bad" in record["traceback"]

    def test_non_json_values_use_repr(self) -> None:
        buf = io.StringIO()
        configure_logging(format="json", level="INFO", output=buf)
        get_logger("t").info("e", reason=KeyError("k"))
        (record,) = records(buf)
        assert record["reason"] == "KeyError('k')"


class TestConfigureLogging:
    """Renderer selection."""

    def test_console_plain(self) -> None:
        buf = io.StringIO()
        renderer = configure_logging(format="console", level="INFO", output=buf, colors=False)
        assert isinstance(renderer, ConsoleRenderer)
        get_logger("t").info("started", sources=3, name="ingest", note="two words")
        line = buf.getvalue().strip()
        assert "INFO    started" in line
        assert line.endswith("logger=t name=ingest note='two words' sources=3")
        assert "\033[" not in line

    def test_console_shows_stage_as_origin(self) -> None:
        buf = io.StringIO()
        configure_logging(format="console", level="DEBUG", output=buf, colors=False)
        get_logger("chunkflow.runtime").bind_stage("merge").debug("input failed", input=1)
        line = buf.getvalue().strip()
        assert "DEBUG   [merge] input failed" in line
        assert "stage=" not in line

    def test_console_prints_traceback_below(self) -> None:
        buf = io.StringIO()
        configure_logging(format="console", level="INFO", output=buf, colors=False)
        try:
            raise KeyError("k")
        except KeyError:
            get_logger("t").exception("lookup failed")
        first, *rest = buf.getvalue().splitlines()
        assert "traceback=" not in first
        assert rest[-1] == "KeyError: 'k'"

    def test_none_is_silent(self) -> None:
        assert isinstance(configure_logging(format="none", level="DEBUG"), NoOpRenderer)

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="Unknown format"):
            configure_logging(format="xml", level="INFO")

    def test_falls_back_to_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNKFLOW_LOG_FORMAT", "json")
        monkeypatch.setenv("CHUNKFLOW_LOG_LEVEL", "debug")
        clear_settings_cache()
        try:
            buf = io.StringIO()
            assert isinstance(configure_logging(output=buf), JsonRenderer)
            get_logger("t").debug("visible")
            assert records(buf)[0]["event"] == "visible"
        finally:
            clear_settings_cache()


class TestRuntimeLogging:
    """Lifecycle events emitted by the runtime at debug level."""

    @pytest.mark.asyncio
    async def test_pipe_and_stage_events(self) -> None:
        buf = io.StringIO()
        configure_logging(format="json", level="DEBUG", output=buf)

        def explode(x: int) -> int:
            raise ZeroDivisionError("x/0")

        assert await to_array(from_iterable([1, 2]).pipe_through(map(str))) == ["1", "2"]
        with pytest.raises(ZeroDivisionError):
            await to_array(from_iterable([1]).pipe_through(map(explode)))
        await asyncio.sleep(0.01)

        events = records(buf)
        assert any(r["event"] == "pipe finished" and r["pipe"] == "from_iterable -> map.writable" for r in events)
        failed = [r for r in events if r["event"] == "stage failed"]
        assert failed and failed[0]["stage"] == "map" and failed[0]["code"] == "CALLBACK_FAILED"
        assert any(r["event"] == "pipe aborted" for r in events)
