"""MCP client side: transports, JSON-RPC framing and discovery."""

from mcp_gateway.mcp.connector import ConnectionManager
from mcp_gateway.mcp.discovery import DiscoveryService
from mcp_gateway.mcp.errors import ArgumentValidationError, GatewayError
from mcp_gateway.mcp.events import ServerEventLog
from mcp_gateway.mcp.jsonrpc import JsonRpcClient
from mcp_gateway.mcp.models import (
    Capabilities,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    Server,
    ServerStatus,
    Tool,
    ToolCall,
)
from mcp_gateway.mcp.processes import ProcessTable
from mcp_gateway.mcp.registry import ServerRegistry
from mcp_gateway.mcp.validation import validate_arguments

__all__ = [
    "ArgumentValidationError",
    "Capabilities",
    "ConnectionManager",
    "DiscoveryService",
    "GatewayError",
    "JsonRpcClient",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "ProcessTable",
    "Server",
    "ServerEventLog",
    "ServerRegistry",
    "ServerStatus",
    "Tool",
    "ToolCall",
    "validate_arguments",
]
