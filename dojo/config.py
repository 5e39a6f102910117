"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for all application settings,
loaded from environment variables with sensible defaults.

Usage:
    from dojo.config import get_settings
    settings = get_settings()
    timeout_ms = settings.sandbox.timeout_ms
"""

import sys
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dojo.sandbox.limits import ExecutionLimits, PoolSettings


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes")
    return bool(v)


class SandboxSettings(BaseSettings):
    """Code execution sandbox configuration."""

    model_config = SettingsConfigDict(env_prefix="SANDBOX_", extra="ignore")

    enabled: bool = Field(default=True, description="Enable the playground endpoint")
    interpreter: str = Field(default=sys.executable, description="Interpreter binary for children")
    timeout_ms: int = Field(default=10_000, gt=0, description="Wall-clock ceiling per execution")
    memory_mb: int = Field(default=64, gt=0, description="Address-space ceiling per execution")
    max_output_bytes: int = Field(default=1024 * 1024, gt=0, description="Cap per output stream")
    max_file_bytes: int = Field(default=1024 * 1024, ge=0, description="Largest file a child may write")
    kill_on_output_limit: bool = Field(default=True, description="Kill children that overflow the cap")
    max_concurrent: int = Field(default=4, ge=1, description="Children allowed to run at once")
    max_queued: int = Field(default=32, ge=0, description="Requests allowed to wait for a slot")
    backpressure: Literal["wait", "reject"] = Field(default="wait")
    max_timeout_ms: int = Field(default=30_000, gt=0, description="Upper bound for per-call timeout")
    max_memory_mb: int = Field(default=512, gt=0, description="Upper bound for per-call memory")

    @field_validator("enabled", "kill_on_output_limit", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

    def to_limits(self) -> ExecutionLimits:
        return ExecutionLimits(
            timeout_ms=self.timeout_ms,
            memory_mb=self.memory_mb,
            max_output_bytes=self.max_output_bytes,
            max_file_bytes=self.max_file_bytes,
            kill_on_output_limit=self.kill_on_output_limit,
            interpreter=self.interpreter,
        )

    def to_pool(self) -> PoolSettings:
        return PoolSettings(
            max_concurrent=self.max_concurrent,
            max_queued=self.max_queued,
            backpressure=self.backpressure,
        )

    def clamp_timeout(self, timeout_ms: int | None) -> int | None:
        if timeout_ms is None:
            return None
        return max(1, min(timeout_ms, self.max_timeout_ms))

    def clamp_memory(self, memory_mb: int | None) -> int | None:
        if memory_mb is None:
            return None
        return max(1, min(memory_mb, self.max_memory_mb))


class KataSettings(BaseSettings):
    """Lesson catalog location."""

    model_config = SettingsConfigDict(env_prefix="KATAS_", extra="ignore")

    dir: str = Field(default="katas", description="Directory holding phase-* folders")


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="*",
        validation_alias="CORS_ORIGINS",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"]


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")
    sandbox: bool = Field(default=False, alias="sandbox_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.
    """

    def __init__(self) -> None:
        self.sandbox = SandboxSettings()
        self.katas = KataSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
