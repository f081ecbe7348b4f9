"""JSON-RPC 2.0 client for backend MCP servers."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from mcp_gateway.mcp.connector import ConnectionManager
from mcp_gateway.mcp.errors import GatewayError, McpProtocolViolation, ParseError, describe_error
from mcp_gateway.mcp.framing import Framing
from mcp_gateway.mcp.models import JsonRpcRequest, JsonRpcResponse, Server, ToolCall

logger = logging.getLogger(__name__)

NO_RESULTS = "No results found."


def parse_response(data: Any) -> JsonRpcResponse:
    """
    Interpret a decoded reply as a JSON-RPC response.

    Replies that are not envelopes (a bare object or list) are treated as
    the result itself.
    """
    if isinstance(data, dict) and ("result" in data or "error" in data):
        data = dict(data)
        error = data.get("error")
        if error is not None and not isinstance(error, dict):
            data["error"] = {"code": 0, "message": str(error)}
        try:
            return JsonRpcResponse.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Invalid JSON-RPC response: {e}") from e
    if isinstance(data, (dict, list)):
        return JsonRpcResponse(result=data)
    raise ParseError(f"unexpected JSON-RPC payload of type {type(data).__name__}")


def project_result(response: JsonRpcResponse, server_name: str) -> str:
    """Reduce a tools/call response to display text."""
    if response.error is not None:
        detail = response.error.message or "unknown error"
        if response.error.code:
            detail = f"{detail} (code {response.error.code})"
        if response.error.data is not None:
            detail = f"{detail}: {response.error.data}"
        return f"Error from MCP server '{server_name}': {detail}"

    result = response.result
    if isinstance(result, dict):
        content = result.get("content")
        if isinstance(content, list):
            texts = [
                item["text"]
                for item in content
                if isinstance(item, dict) and isinstance(item.get("text"), str)
            ]
            if texts:
                return "\n".join(texts)
        elif isinstance(content, str):
            return content

        results = result.get("results")
        if isinstance(results, list) and not results:
            return NO_RESULTS

    return json.dumps(result, ensure_ascii=False, indent=2)


class JsonRpcClient:
    """Sends JSON-RPC requests over each server's attached transport."""

    def __init__(self, connections: ConnectionManager):
        self.connections = connections

    @staticmethod
    def build_request(method: str, params: dict[str, Any] | None = None) -> JsonRpcRequest:
        """Build a request envelope with a fresh id."""
        return JsonRpcRequest(method=method, params=params or {})

    async def send(
        self,
        server: Server,
        method: str,
        params: dict[str, Any] | None = None,
        framing: Framing = Framing.CONTENT_LENGTH,
    ) -> JsonRpcResponse:
        """
        Send one request and parse the reply.

        Raises:
            GatewayError: transport, framing or parse failure.
        """
        transport = self.connections.transport(server)
        if transport is None:
            raise McpProtocolViolation(f"Server '{server.display_name}' is not connected")

        request = self.build_request(method, params)
        logger.debug(f"-> {server.display_name} {method} id={request.id}")
        raw = await transport.request(request.model_dump(), framing)
        response = parse_response(raw)
        if response.id is not None and response.id != request.id:
            raise McpProtocolViolation(
                f"Response id {response.id} from {server.display_name} does not match request {request.id}"
            )
        return response

    async def call_tool(self, server: Server, call: ToolCall) -> str:
        """Invoke tools/call and return display text. Never raises."""
        server_id = server.id or ""
        self.connections.events.log(
            server_id, "info", f"Calling tool {call.toolName}", data=call.arguments
        )
        try:
            response = await self.send(server, "tools/call", call.to_params())
        except GatewayError as e:
            self.connections.events.log(server_id, "error", str(e))
            return f"Error calling tool '{call.toolName}' on server '{server.display_name}': {e}"
        except Exception as e:
            logger.exception(f"Tool call {call.toolName} on {server.display_name} failed")
            return (
                f"Error calling tool '{call.toolName}' on server '{server.display_name}': "
                f"{describe_error(e)}"
            )
        return project_result(response, server.display_name)
