"""Configuration loading and management."""

from mcp_gateway.config.loader import (
    Settings,
    get_settings,
    load_server_config,
    get_configured_servers,
)

__all__ = ["Settings", "get_settings", "load_server_config", "get_configured_servers"]
