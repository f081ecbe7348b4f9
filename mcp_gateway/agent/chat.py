"""Chat pipeline: server checks, tool orchestration, answer, persistence."""

import logging

from pydantic import BaseModel

from mcp_gateway.agent.llm import GenerationError, TextGenerator
from mcp_gateway.agent.orchestrator import ToolOrchestrator
from mcp_gateway.agent.translation import Translator
from mcp_gateway.mcp.errors import describe_error
from mcp_gateway.mcp.models import Message, Role, ServerStatus
from mcp_gateway.mcp.registry import ServerRegistry

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION = "default"
ENABLE_TOOLSET = "enable_toolset"


class ChatRequest(BaseModel):
    message: str
    serverId: str | None = None
    conversationId: str | None = None


class ConversationStore:
    """In-memory conversations; messages keep insertion order."""

    def __init__(self) -> None:
        self._conversations: dict[str, list[Message]] = {}

    def get(self, conversation_id: str) -> list[Message]:
        return list(self._conversations.get(conversation_id, []))

    def append(self, conversation_id: str, message: Message) -> None:
        self._conversations.setdefault(conversation_id, []).append(message)

    def clear(self, conversation_id: str) -> bool:
        return self._conversations.pop(conversation_id, None) is not None

    def ids(self) -> list[str]:
        return list(self._conversations)


class ChatService:
    def __init__(
        self,
        registry: ServerRegistry,
        conversations: ConversationStore,
        orchestrator: ToolOrchestrator,
        generator: TextGenerator,
        translator: Translator | None = None,
    ):
        self.registry = registry
        self.conversations = conversations
        self.orchestrator = orchestrator
        self.generator = generator
        self.translator = translator

    async def send_message(self, request: ChatRequest) -> Message:
        """
        Handle one user message and return the assistant's reply.

        The USER message is always stored. The reply is stored only when the
        request reached a connected server; error replies are returned but
        not persisted. Never raises.
        """
        conversation_id = request.conversationId or DEFAULT_CONVERSATION
        self.conversations.append(
            conversation_id,
            Message(role=Role.USER, content=request.message, serverId=request.serverId),
        )

        try:
            server = self.registry.get(request.serverId) if request.serverId else None
            if server is None:
                return self._reply(f"Server not found: {request.serverId}", request.serverId)
            if server.status != ServerStatus.CONNECTED:
                return self._reply(
                    f"Server is not connected: {server.display_name}", server.id
                )

            if request.message.strip() == ENABLE_TOOLSET:
                content = (
                    f"Dynamic toolsets enabled for {server.display_name}. "
                    "Ask a question to use its tools."
                )
            else:
                query = request.message
                if self.translator is not None:
                    query = await self.translator.translate(query)

                tool_result = await self.orchestrator.execute_tool(server, query)
                try:
                    content = await self.generator.generate_with_memory(
                        conversation_id, request.message, tool_result
                    )
                except GenerationError as e:
                    logger.warning(f"Answer generation failed, returning tool output: {e}")
                    content = tool_result
        except Exception as e:
            logger.exception("Chat message processing failed")
            return self._reply(f"Error processing message: {describe_error(e)}", request.serverId)

        reply = self._reply(content, server.id)
        self.conversations.append(conversation_id, reply)
        return reply

    def _reply(self, content: str, server_id: str | None) -> Message:
        return Message(role=Role.ASSISTANT, content=content, serverId=server_id)

    def get_conversation(self, conversation_id: str) -> list[Message]:
        return self.conversations.get(conversation_id)

    def conversation_ids(self) -> list[str]:
        return self.conversations.ids()

    def clear_conversation(self, conversation_id: str) -> None:
        self.conversations.clear(conversation_id)
        self.generator.clear_conversation(conversation_id)
