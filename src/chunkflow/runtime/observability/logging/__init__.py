"""Structured logging module: context-aware logging for stream pipelines."""

from .logger import (
    BoundLogger,
    ConsoleRenderer,
    JsonRenderer,
    LogRecord,
    LogRenderer,
    NoOpRenderer,
    configure_logging,
    get_logger,
    log_context,
)

__all__ = [
    "BoundLogger",
    "ConsoleRenderer",
    "JsonRenderer",
    "LogRecord",
    "LogRenderer",
    "NoOpRenderer",
    "configure_logging",
    "get_logger",
    "log_context",
]
