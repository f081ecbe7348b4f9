"""Utility modules: logging and HTTP client."""

from mcp_gateway.utils.logging import setup_logging, get_logger
from mcp_gateway.utils.http import create_http_client

__all__ = [
    "setup_logging",
    "get_logger",
    "create_http_client",
]
