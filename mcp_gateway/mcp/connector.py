"""Connection state machine for backend servers.

    DISCONNECTED -> CONNECTING -> CONNECTED | ERROR
    disconnect() -> DISCONNECTED (last_error is kept)

A connect is a single attempt. Failures never raise to the caller: they are
recorded as status ERROR plus a classified ``last_error``.
"""

import logging
from typing import Any

import httpx

from mcp_gateway.config.loader import Settings
from mcp_gateway.mcp.errors import GatewayError, describe_error
from mcp_gateway.mcp.events import ServerEventLog
from mcp_gateway.mcp.models import Server, ServerStatus
from mcp_gateway.mcp.processes import ProcessTable
from mcp_gateway.mcp.registry import ServerRegistry
from mcp_gateway.mcp.transports import Transport, build_transport

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Connects servers and owns the transport attached to each of them."""

    def __init__(
        self,
        registry: ServerRegistry,
        settings: Settings,
        processes: ProcessTable | None = None,
        events: ServerEventLog | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.registry = registry
        self.settings = settings
        self.processes = processes or ProcessTable(settings.process_exit_timeout)
        self.events = events or ServerEventLog()
        self.http_client = http_client
        self._transports: dict[str, Transport] = {}

    def _build(self, server: Server) -> Transport:
        return build_transport(
            server,
            self.settings,
            self.processes,
            http_client=self.http_client,
            on_notification=self.events.sink_for(server.id or ""),
        )

    async def connect(self, server_id: str) -> Server | None:
        """
        Attempt to connect a registered server.

        Returns the updated server, or None if the id is unknown.
        """
        server = self.registry.get(server_id)
        if server is None:
            return None

        self.registry.update_status(server_id, ServerStatus.CONNECTING, touch=False)
        try:
            transport = self._build(server)
            await transport.open()
        except GatewayError as e:
            return self._fail(server_id, str(e))
        except Exception as e:
            logger.exception(f"Unexpected failure connecting to {server.display_name}")
            return self._fail(server_id, describe_error(e))

        self._transports[server_id] = transport
        self.registry.clear_error(server_id)
        self.registry.update_status(server_id, ServerStatus.CONNECTED)
        self.events.log(server_id, "info", f"Connected to {server.display_name}")
        logger.info(f"Connected to {server.display_name} via {transport.scheme}")
        return server

    def _fail(self, server_id: str, message: str) -> Server | None:
        self._transports.pop(server_id, None)
        server = self.registry.update_status(server_id, ServerStatus.ERROR, error=message)
        self.events.log(server_id, "error", message)
        logger.warning(f"Connection to {server_id} failed: {message}")
        return server

    async def disconnect(self, server_id: str) -> Server | None:
        """Force DISCONNECTED, releasing any runtime handle."""
        server = self.registry.get(server_id)
        if server is None:
            return None
        await self._teardown(server_id)
        self.registry.update_status(server_id, ServerStatus.DISCONNECTED, touch=False)
        self.events.log(server_id, "info", f"Disconnected from {server.display_name}")
        return server

    async def remove_server(self, server_id: str) -> Server | None:
        """Tear down runtime handles and forget the server."""
        await self._teardown(server_id)
        self.events.clear(server_id)
        return self.registry.remove(server_id)

    async def _teardown(self, server_id: str) -> None:
        transport = self._transports.pop(server_id, None)
        if transport is not None:
            await transport.close()
        # A process may be attached without a transport after a failed reconnect
        await self.processes.release(server_id)

    def transport(self, server: Server) -> Transport | None:
        """The transport attached at connect time, if the server is connected."""
        return self._transports.get(server.id or "")

    async def ping(self, server_id: str) -> bool | None:
        """Re-check reachability without changing status. None if unknown."""
        server = self.registry.get(server_id)
        if server is None:
            return None
        transport = self._transports.get(server_id)
        if transport is None:
            try:
                transport = self._build(server)
            except GatewayError as e:
                logger.info(f"Ping of {server.display_name} failed: {e}")
                return False
        return await transport.ping()

    async def reload(self, entries: list[dict[str, Any]]) -> list[Server]:
        """Replace the registry contents with ``entries``."""
        incoming = {entry.get("id") for entry in entries if entry.get("id")}
        for server in self.registry.list():
            if server.id not in incoming:
                await self.remove_server(server.id or "")

        servers = []
        for entry in entries:
            if not entry.get("url"):
                logger.warning(f"Skipping server entry without url: {entry}")
                continue
            existing = self.registry.get(entry.get("id") or "")
            if existing is not None and existing.url == entry["url"]:
                # Same endpoint: keep status and runtime handle
                existing.name = entry.get("name") or existing.name
                existing.description = entry.get("description") or existing.description
                servers.append(existing)
                continue
            if existing is not None:
                await self.disconnect(existing.id or "")
            servers.append(self.registry.add_from_config(entry))
        logger.info(f"Reloaded {len(servers)} servers")
        return servers

    async def shutdown(self) -> None:
        for server_id in list(self._transports):
            await self._teardown(server_id)
        await self.processes.close_all()
