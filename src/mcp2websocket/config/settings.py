"""mcp2websocket configuration management using pydantic-settings.

Loads settings from environment variables (with MCP2WS_ prefix) and .env files.
Nested settings use '__' as delimiter (e.g., MCP2WS_LOG__FORMAT=json).
``AUTH_TOKEN`` and ``DEBUG=true`` are also honoured.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class LogSettings(BaseModel):
    """Logging settings."""

    level: str = "WARNING"
    format: str = "console"


class BridgeSettings(BaseSettings):
    """Root settings for the bridge.

    Examples:
        MCP2WS_URL=wss://example.com/mcp
        MCP2WS_TOKEN=secret  (or AUTH_TOKEN=secret)
        MCP2WS_HEARTBEAT_INTERVAL_MS=10000
        MCP2WS_LOG__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP2WS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    url: str
    token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MCP2WS_TOKEN", "AUTH_TOKEN"),
    )
    reconnect_interval_ms: float = Field(default=1000.0, gt=0)
    max_reconnect_interval_ms: float = Field(default=30000.0, gt=0)
    reconnect_decay: float = Field(default=1.5, ge=1.0)
    heartbeat_interval_ms: float = Field(default=30000.0, gt=0)
    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("MCP2WS_DEBUG", "DEBUG"),
    )
    log: LogSettings = Field(default_factory=LogSettings)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("ws", "wss") or not parts.netloc:
            raise ValueError(f"WebSocket URL must start with ws:// or wss://, got {value!r}")
        return value

    @field_validator("token", mode="before")
    @classmethod
    def _empty_token_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("debug", mode="before")
    @classmethod
    def _parse_debug(cls, value: object) -> object:
        # DEBUG is often set to non-boolean values (e.g. "app:*"); only
        # explicit truthy strings enable debug output.
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return value

    @model_validator(mode="after")
    def _check_intervals(self) -> BridgeSettings:
        if self.max_reconnect_interval_ms < self.reconnect_interval_ms:
            raise ValueError("max_reconnect_interval_ms must be >= reconnect_interval_ms")
        return self

    @property
    def log_level(self) -> str:
        """Effective log level: DEBUG when debug is on, else ``log.level``."""
        return "DEBUG" if self.debug else self.log.level.upper()


def get_settings(**overrides: object) -> BridgeSettings:
    """Create a BridgeSettings instance with optional overrides."""
    return BridgeSettings(**overrides)
