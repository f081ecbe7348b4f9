"""HTTP client utilities for talking to HTTP-based MCP servers."""

import logging

import httpx

from mcp_gateway.config.loader import get_settings

logger = logging.getLogger(__name__)


def create_http_client(
    timeout: float | None = None,
    base_url: str | None = None,
) -> httpx.AsyncClient:
    """
    Create an async HTTP client with sensible defaults.

    Redirects are not followed: a redirecting health endpoint is reported
    with its status code like any other non-2xx answer.

    Args:
        timeout: Request timeout in seconds. Uses ``rpc_timeout`` if None.
        base_url: Optional base URL for all requests.

    Returns:
        Configured httpx.AsyncClient instance.
    """
    settings = get_settings()

    if timeout is None:
        timeout = settings.rpc_timeout

    return httpx.AsyncClient(
        base_url=base_url or "",
        timeout=httpx.Timeout(timeout),
        follow_redirects=False,
        headers={
            "User-Agent": f"{settings.server_name}/{settings.server_version}",
        },
        limits=httpx.Limits(
            max_keepalive_connections=10,
            max_connections=20,
            keepalive_expiry=30.0,
        ),
    )


def mcp_endpoint(url: str) -> str:
    """Return the JSON-RPC endpoint for a server base URL (``<url>/mcp``)."""
    base = url.rstrip("/")
    if base.endswith("/mcp"):
        return base
    return f"{base}/mcp"


def health_endpoint(url: str) -> str:
    """Return the health probe URL for a server base URL."""
    return f"{mcp_endpoint(url)}/health"


def is_success(status_code: int) -> bool:
    """True for 2xx status codes."""
    return 200 <= status_code < 300
