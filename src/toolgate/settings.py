"""Global settings for process execution and runtime defaults."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class GatewaySettings(BaseSettings):
    """Environment-driven configuration for the gateway.

    Allowed roots are deliberately absent: they only ever come from the
    command line of ``toolgate serve``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TOOLGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DEFAULT_TIMEOUT_MS: int = Field(
        default=30_000,
        gt=0,
        description="Wall-clock timeout applied when a shell call omits one.",
    )
    MAX_TIMEOUT_MS: int = Field(
        default=600_000,
        gt=0,
        description="Upper bound for caller-supplied timeouts.",
    )
    MAX_OUTPUT_BYTES: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Per-stream cap on captured process output.",
    )
    SHELL: str | None = Field(
        default=None,
        description="Execution shell on POSIX (defaults to /bin/sh).",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Log level for the stderr handler installed by `toolgate serve`.",
    )

    @model_validator(mode="after")
    def validate_levels(self) -> "GatewaySettings":
        """Normalize LOG_LEVEL and keep the default timeout within the maximum."""
        normalized = self.LOG_LEVEL.strip().upper()
        if normalized not in _LOG_LEVELS:
            raise ValueError(
                "TOOLGATE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        object.__setattr__(self, "LOG_LEVEL", normalized)
        if self.DEFAULT_TIMEOUT_MS > self.MAX_TIMEOUT_MS:
            raise ValueError("TOOLGATE_DEFAULT_TIMEOUT_MS must not exceed TOOLGATE_MAX_TIMEOUT_MS")
        return self

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.LOG_LEVEL)


@lru_cache(maxsize=1)
def get_gateway_settings() -> GatewaySettings:
    """Return cached gateway settings."""
    return GatewaySettings()


__all__ = ["GatewaySettings", "get_gateway_settings"]
