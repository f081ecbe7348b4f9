"""Natural language -> tool selection -> arguments -> validation -> dispatch."""

import json
import logging
from typing import Any

from mcp_gateway.agent.selection import ArgumentExtractor, ToolSelector
from mcp_gateway.mcp.discovery import DiscoveryService
from mcp_gateway.mcp.errors import ArgumentValidationError, GatewayError, describe_error
from mcp_gateway.mcp.jsonrpc import JsonRpcClient, project_result
from mcp_gateway.mcp.models import Server, TextContent, ToolCall
from mcp_gateway.mcp.validation import validate_arguments

logger = logging.getLogger(__name__)


def no_tools_message(server: Server) -> str:
    return f"No tools available on server '{server.display_name}'."


class ToolOrchestrator:
    """Maps a user message to one validated tools/call on a server."""

    def __init__(
        self,
        discovery: DiscoveryService,
        client: JsonRpcClient,
        selector: ToolSelector,
        extractor: ArgumentExtractor,
    ):
        self.discovery = discovery
        self.client = client
        self.selector = selector
        self.extractor = extractor

    async def execute_tool(self, server: Server, message: str) -> str:
        """
        Run the full pipeline for one message and return display text.

        Never raises: every failure becomes a message naming the server.
        """
        try:
            tools = await self.discovery.list_tools(server)
            if not tools:
                return no_tools_message(server)

            tool_name = await self.selector.select_best_tool(message, tools, server)
            if not tool_name:
                return (
                    f"Could not determine a suitable tool on server "
                    f"'{server.display_name}' for this request."
                )
            tool = next((t for t in tools if t.name == tool_name), None)
            if tool is None:
                return f"Tool '{tool_name}' is not available on server '{server.display_name}'."

            candidate = await self.extractor.extract_tool_arguments(
                message, tool.name, tool.inputSchema, server
            )
            validation = validate_arguments(tool.inputSchema, candidate)
            try:
                validation.raise_for_violations(tool.name)
            except ArgumentValidationError as e:
                logger.info(str(e))
                return json.dumps(e.to_payload(), ensure_ascii=False)

            logger.info(f"Executing {tool.name} on {server.display_name} with {validation.arguments}")
            call = ToolCall(toolName=tool.name, arguments=validation.arguments)
            return await self.client.call_tool(server, call)
        except Exception as e:
            logger.exception(f"Tool orchestration failed on {server.display_name}")
            return f"Error executing tool on server '{server.display_name}': {describe_error(e)}"

    async def call_tool(
        self, server: Server, tool_name: str, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """
        Call a named tool directly.

        Invalid arguments are rejected with a structured payload and never
        reach the server.
        """
        tool = await self.discovery.find_tool(server, tool_name)
        if tool is None:
            return {
                "error": "unknown_tool",
                "tool": tool_name,
                "message": f"Tool '{tool_name}' not found on server '{server.display_name}'",
                "isError": True,
            }

        validation = validate_arguments(tool.inputSchema, arguments)
        try:
            validation.raise_for_violations(tool_name)
        except ArgumentValidationError as e:
            return {**e.to_payload(), "isError": True}

        call = ToolCall(toolName=tool_name, arguments=validation.arguments)
        try:
            response = await self.client.send(server, "tools/call", call.to_params())
        except GatewayError as e:
            return {"error": "call_failed", "tool": tool_name, "message": str(e), "isError": True}

        is_error = response.is_error or (
            isinstance(response.result, dict) and bool(response.result.get("isError"))
        )
        text = project_result(response, server.display_name)
        return {
            "tool": tool_name,
            "arguments": validation.arguments,
            "content": [TextContent(text=text).model_dump()],
            "isError": is_error,
        }
