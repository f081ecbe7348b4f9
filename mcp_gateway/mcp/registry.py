"""Registry of backend MCP servers known to the gateway."""

import logging
import time
import uuid
from typing import Any

from mcp_gateway.mcp.models import Capabilities, Server, ServerStatus

logger = logging.getLogger(__name__)


class ServerRegistry:
    """In-memory store of servers keyed by id.

    Field updates are last-writer-wins; callers that race on the same id each
    leave a complete status/error/timestamp triple behind.
    """

    def __init__(self) -> None:
        self._servers: dict[str, Server] = {}

    def add(self, server: Server) -> Server:
        """Register a server, assigning an id if it has none."""
        if not server.id:
            server.id = str(uuid.uuid4())
        if server.id in self._servers:
            logger.warning(f"Server '{server.id}' already registered, overwriting")
        self._servers[server.id] = server
        logger.info(f"Added MCP server: {server.display_name}")
        return server

    def add_from_config(self, entry: dict[str, Any]) -> Server:
        """Register a server from a config entry."""
        server = Server(
            id=entry.get("id"),
            name=entry.get("name") or "",
            description=entry.get("description") or "",
            url=entry["url"],
        )
        return self.add(server)

    def get(self, server_id: str) -> Server | None:
        """Get a server by id."""
        return self._servers.get(server_id)

    def remove(self, server_id: str) -> Server | None:
        """Remove a server, returning it if it existed."""
        removed = self._servers.pop(server_id, None)
        if removed is not None:
            logger.info(f"Removed MCP server: {removed.display_name}")
        return removed

    def list(self) -> list[Server]:
        """List all servers in registration order."""
        return list(self._servers.values())

    def update_status(
        self,
        server_id: str,
        status: ServerStatus,
        error: str | None = None,
        touch: bool = True,
    ) -> Server | None:
        """
        Set a server's status.

        ERROR always records ``error``; other statuses leave ``last_error``
        untouched unless a new message is given.
        """
        server = self._servers.get(server_id)
        if server is None:
            return None

        if status == ServerStatus.ERROR:
            server.last_error = error or "Unknown error"
        elif error is not None:
            server.last_error = error
        server.status = status
        if touch:
            server.last_connected_at = time.time()
        logger.info(f"Updated server {server.display_name} status to {status.value}")
        return server

    def clear_error(self, server_id: str) -> None:
        server = self._servers.get(server_id)
        if server is not None:
            server.last_error = None

    def set_capabilities(self, server_id: str, capabilities: Capabilities | None) -> None:
        """Cache (or forget, with None) a server's capabilities."""
        server = self._servers.get(server_id)
        if server is not None:
            server.capabilities = capabilities

    @property
    def server_count(self) -> int:
        """Return the number of registered servers."""
        return len(self._servers)

    @property
    def connected_count(self) -> int:
        """Return the number of servers currently CONNECTED."""
        return sum(1 for s in self._servers.values() if s.status == ServerStatus.CONNECTED)
