"""Foundation - Core building blocks for chunkflow.

Contains: error handling, config.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ErrorCode", "StreamError", "StreamException", "classify_exception",
    "StageConfigError", "StreamStateError", "StreamTerminated", "StreamCancelled",
    # Config
    "ChunkflowSettings", "StreamSettings", "LoggingSettings", "get_settings", "clear_settings_cache",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ErrorCode", "StreamError", "StreamException", "classify_exception",
                "StageConfigError", "StreamStateError", "StreamTerminated", "StreamCancelled"):
        from . import errors
        return getattr(errors, name)

    if name in ("ChunkflowSettings", "StreamSettings", "LoggingSettings", "get_settings", "clear_settings_cache"):
        from . import config
        return getattr(config, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
