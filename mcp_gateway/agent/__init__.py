"""Chat and tool orchestration on top of the MCP client."""

from mcp_gateway.agent.chat import ChatRequest, ChatService, ConversationStore
from mcp_gateway.agent.orchestrator import ToolOrchestrator

__all__ = ["ChatRequest", "ChatService", "ConversationStore", "ToolOrchestrator"]
