"""Configuration management for mcp2websocket."""

from mcp2websocket.config.settings import BridgeSettings, LogSettings, get_settings

__all__ = ["BridgeSettings", "LogSettings", "get_settings"]
