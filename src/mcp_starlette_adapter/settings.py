"""Adapter settings."""

from __future__ import annotations as _annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_starlette_adapter.utilities.logging import LogLevel

SSE_PATH = "/sse"
MESSAGE_PATH = "/message"

DEFAULT_KEEPALIVE_INTERVAL = 30.0


def normalize_endpoint(endpoint: str) -> str:
    """Normalize a mount path so it starts with "/" and never ends with one.

    The root mount ("/") normalizes to the empty string, so that joining it with
    a sub-path such as "/sse" never produces a double slash.
    """
    endpoint = endpoint.strip()
    if not endpoint.startswith("/"):
        endpoint = "/" + endpoint
    return endpoint.rstrip("/")


class AdapterSettings(BaseSettings):
    """Adapter settings.

    All settings can be configured via environment variables with the prefix
    MCP_ADAPTER_. For example, MCP_ADAPTER_DEBUG=true will set debug=True.
    The port used for connection hints also honours the plain PORT variable.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_ADAPTER_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    endpoint: str = "/mcp"
    server_name: str = "mcp-server"
    server_version: str = "1.0.0"
    debug: bool = False
    log_level: LogLevel = "INFO"

    port: int = Field(default=3000, validation_alias=AliasChoices("MCP_ADAPTER_PORT", "PORT", "port"))
    """Only used to compose human-readable connection hints; binding is the host's job."""

    keepalive_interval: float = Field(default=DEFAULT_KEEPALIVE_INTERVAL, gt=0)
    """Seconds between SSE keepalive comments."""

    @field_validator("endpoint")
    @classmethod
    def _normalize_endpoint(cls, value: str) -> str:
        return normalize_endpoint(value)
