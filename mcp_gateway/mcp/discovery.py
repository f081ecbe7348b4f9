"""Capability, tool, resource and prompt discovery.

Every lookup degrades instead of raising: listings fall back to an empty
list and capabilities to a conservative default. An absent capability
means "unknown", not "confirmed absent".
"""

import logging
from typing import Any

from pydantic import ValidationError

from mcp_gateway.config.loader import get_settings
from mcp_gateway.mcp.errors import GatewayError
from mcp_gateway.mcp.framing import Framing
from mcp_gateway.mcp.jsonrpc import JsonRpcClient
from mcp_gateway.mcp.models import Capabilities, JsonRpcResponse, Prompt, Resource, Server, Tool
from mcp_gateway.mcp.registry import ServerRegistry

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"


def _items(result: Any, key: str) -> list[Any]:
    """Pull a listing out of ``result`` (bare list or ``{key: [...]}``)."""
    if isinstance(result, list):
        return result
    if isinstance(result, dict) and isinstance(result.get(key), list):
        return result[key]
    return []


def normalize_tools(result: Any) -> list[Tool]:
    tools = []
    for item in _items(result, "tools"):
        try:
            tools.append(Tool.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed tool entry {item!r}: {e}")
    return tools


class DiscoveryService:
    """Discovery methods layered on the JSON-RPC client."""

    def __init__(self, client: JsonRpcClient, registry: ServerRegistry):
        self.client = client
        self.registry = registry

    async def _request(
        self, server: Server, method: str, params: dict[str, Any] | None = None
    ) -> JsonRpcResponse | None:
        try:
            response = await self.client.send(server, method, params, framing=Framing.LINE)
        except GatewayError as e:
            logger.warning(f"{method} failed for {server.display_name}: {e}")
            return None
        except Exception:
            logger.exception(f"{method} failed for {server.display_name}")
            return None
        if response.is_error:
            logger.warning(
                f"{method} returned an error from {server.display_name}: {response.error.message}"  # type: ignore[union-attr]
            )
            return None
        return response

    async def get_capabilities(self, server: Server, refresh: bool = False) -> Capabilities:
        """
        Resolve a server's capabilities via initialize.

        The first successful answer is cached on the server; pass
        ``refresh=True`` to ask again.
        """
        if server.capabilities is not None and not refresh:
            return server.capabilities

        settings = get_settings()
        response = await self._request(
            server,
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": settings.server_name, "version": settings.server_version},
            },
        )
        if response is None or not isinstance(response.result, dict):
            return Capabilities.conservative_default()

        capabilities = Capabilities.from_initialize_result(response.result)
        self.registry.set_capabilities(server.id or "", capabilities)
        return capabilities

    async def list_tools(self, server: Server) -> list[Tool]:
        response = await self._request(server, "tools/list")
        if response is None:
            return []
        return normalize_tools(response.result)

    async def find_tool(self, server: Server, name: str) -> Tool | None:
        for tool in await self.list_tools(server):
            if tool.name == name:
                return tool
        return None

    async def list_resources(self, server: Server) -> list[Resource]:
        response = await self._request(server, "resources/list")
        if response is None:
            return []
        resources = []
        for item in _items(response.result, "resources"):
            try:
                resources.append(Resource.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed resource entry {item!r}: {e}")
        return resources

    async def read_resource(self, server: Server, uri: str) -> str | None:
        """Return the text of the first content entry, or None."""
        response = await self._request(server, "resources/read", {"uri": uri})
        if response is None:
            return None
        for item in _items(response.result, "contents"):
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                return item["text"]
        return None

    async def list_prompts(self, server: Server) -> list[Prompt]:
        response = await self._request(server, "prompts/list")
        if response is None:
            return []
        prompts = []
        for item in _items(response.result, "prompts"):
            try:
                prompts.append(Prompt.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed prompt entry {item!r}: {e}")
        return prompts

    async def get_prompt(
        self, server: Server, name: str, arguments: dict[str, Any] | None = None
    ) -> str | None:
        """Return the text of the first message of a rendered prompt, or None."""
        response = await self._request(
            server, "prompts/get", {"name": name, "arguments": arguments or {}}
        )
        if response is None:
            return None
        for message in _items(response.result, "messages"):
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                return content["text"]
            if isinstance(content, str):
                return content
        return None
