"""
Centralized settings for localflow.

All values can be overridden via ``LOCALFLOW_*`` environment variables or a
``.env`` file in the working directory.

Order of precedence (highest → lowest):
    1. Explicit keyword arguments
    2. Environment variables (``LOCALFLOW_PORT``, etc.)
    3. ``.env`` file
    4. Defaults below
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalflowSettings(BaseSettings):
    """localflow configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCALFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Server ───────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, description="Bind port")
    debug: bool = Field(default=False, description="Expose exception details in 500 responses")
    api_prefix: str = Field(default="/api/v1", description="URL prefix for workflow endpoints")
    api_title: str = Field(default="localflow API", description="OpenAPI title")

    # ── Runtime ──────────────────────────────────────────────────────────
    runtime: Literal["docker", "local", "stub"] = Field(
        default="docker",
        description="Runtime adapter executing units of work",
    )
    docker_binary: str = Field(default="docker", description="docker CLI executable")
    unit_name_prefix: str = Field(default="localflow", description="Prefix of runtime unit names")
    require_healthy_runtime: bool = Field(
        default=True,
        description="Refuse to start the server when the runtime is unreachable",
    )

    # ── Engine ───────────────────────────────────────────────────────────
    max_concurrent_units: int | None = Field(
        default=None,
        ge=1,
        description="Ceiling on concurrently running units of work (None = unbounded)",
    )
    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Time active workflows get to finish on shutdown before cancellation",
    )

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")


_settings_cache: dict[str, LocalflowSettings] = {}


def get_settings() -> LocalflowSettings:
    """Load and cache settings for the process."""
    if "default" not in _settings_cache:
        _settings_cache["default"] = LocalflowSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
