"""Runtime defaults for chunkflow, read from CHUNKFLOW_* environment variables.

Queue sizes feed every ReadableStream and TransformStream created without an
explicit high-water mark; the logging block is what configure_logging() falls
back to. A ``.env`` file in the working directory is read as well.

Example:
    >>> from chunkflow.foundation.config import get_settings
    >>> get_settings().stream.high_water_mark
    1
    >>> get_settings().logging.format
    'console'

    # CHUNKFLOW_STREAM_HIGH_WATER_MARK=16 lets sources read further ahead
    # CHUNKFLOW_LOG_LEVEL=debug shows pipe and stage lifecycle events
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, NonNegativeInt, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StreamSettings(BaseSettings):
    """Queueing defaults for the stream runtime."""

    model_config = SettingsConfigDict(
        env_prefix="CHUNKFLOW_STREAM_",
        extra="ignore",
    )

    high_water_mark: NonNegativeInt = Field(
        default=1,
        description="Chunks a readable stream queues ahead of its reader",
    )
    transform_high_water_mark: NonNegativeInt = Field(
        default=0,
        description="Chunks a transform's readable side queues ahead of its reader",
    )


class LoggingSettings(BaseSettings):
    """Threshold and output format used by configure_logging()."""

    model_config = SettingsConfigDict(
        env_prefix="CHUNKFLOW_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class ChunkflowSettings(BaseSettings):
    """All chunkflow settings.

    Nested blocks read their own prefixes (CHUNKFLOW_STREAM_, CHUNKFLOW_LOG_).

    Example environment variables:
        CHUNKFLOW_DEBUG=true
        CHUNKFLOW_STREAM_HIGH_WATER_MARK=8
        CHUNKFLOW_LOG_LEVEL=DEBUG
        CHUNKFLOW_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="CHUNKFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")

    # Nested settings (loaded with CHUNKFLOW_STREAM_, CHUNKFLOW_LOG_)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @computed_field
    @property
    def effective_log_level(self) -> str:
        """Debug mode forces DEBUG logging."""
        return "DEBUG" if self.debug else self.logging.level


@lru_cache(maxsize=1)
def get_settings() -> ChunkflowSettings:
    """Process-wide settings, built from the environment on first use."""
    return ChunkflowSettings()


def clear_settings_cache() -> None:
    """Forget the cached settings; the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
