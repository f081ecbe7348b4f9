"""Tests for the chat pipeline."""

import pytest

from conftest import FakeGenerator
from mcp_gateway.agent.chat import ChatRequest, ChatService, ConversationStore
from mcp_gateway.agent.orchestrator import ToolOrchestrator
from mcp_gateway.agent.selection import HeuristicArgumentExtractor
from mcp_gateway.mcp.models import Role, ServerStatus

HTTP_URL = "http://backend.test"


class ExplodingSelector:
    """Fails the test if tool selection is reached."""

    def __init__(self):
        self.calls = 0

    async def select_best_tool(self, message, tools, server):
        self.calls += 1
        raise AssertionError("tool selection must not run")


class StubOrchestrator:
    def __init__(self, result="tool output", error=None):
        self.result = result
        self.error = error
        self.messages = []

    async def execute_tool(self, server, message):
        self.messages.append(message)
        if self.error:
            raise self.error
        return self.result


class UpperTranslator:
    async def translate(self, text):
        return text.upper()


@pytest.fixture
def conversations():
    return ConversationStore()


@pytest.fixture
def connected_server(registry, add_server):
    server = add_server(HTTP_URL, name="Data Lake")
    registry.update_status(server.id, ServerStatus.CONNECTED)
    return server


def make_chat(registry, conversations, orchestrator=None, generator=None, translator=None):
    return ChatService(
        registry,
        conversations,
        orchestrator or StubOrchestrator(),
        generator or FakeGenerator(),
        translator,
    )


class TestEnableToolset:
    """Tests for the enable_toolset pre-flight message."""

    async def test_bypasses_tool_orchestration(self, registry, conversations, discovery, rpc_client, fake_http, connections, add_server):
        """Test that enable_toolset is acknowledged without selecting a tool."""
        fake_http.responses["tools/list"] = {"tools": [{"name": "list_tables", "inputSchema": {"properties": {}}}]}
        server = add_server(HTTP_URL, name="Data Lake")
        await connections.connect(server.id)
        selector = ExplodingSelector()
        orchestrator = ToolOrchestrator(discovery, rpc_client, selector, HeuristicArgumentExtractor())
        chat = make_chat(registry, conversations, orchestrator)

        reply = await chat.send_message(
            ChatRequest(message="enable_toolset", serverId=server.id, conversationId="c1")
        )

        assert reply.role == Role.ASSISTANT
        assert "Dynamic toolsets enabled" in reply.content
        assert "Data Lake" in reply.content
        assert selector.calls == 0
        assert fake_http.rpc_calls == []
        assert [m.role for m in conversations.get("c1")] == [Role.USER, Role.ASSISTANT]


class TestSendMessage:
    """Tests for regular messages."""

    async def test_successful_flow_appends_two_messages(self, registry, conversations, connected_server):
        """Test the USER then ASSISTANT persistence of a good exchange."""
        generator = FakeGenerator()
        orchestrator = StubOrchestrator(result="customers\norders")
        chat = make_chat(registry, conversations, orchestrator, generator)

        reply = await chat.send_message(ChatRequest(message="which tables?", serverId=connected_server.id))

        assert reply.content == "answer: customers\norders"
        assert reply.serverId == connected_server.id
        messages = conversations.get("default")
        assert [(m.role, m.content) for m in messages] == [
            (Role.USER, "which tables?"),
            (Role.ASSISTANT, "answer: customers\norders"),
        ]
        assert generator.calls[0]["conversation_id"] == "default"
        assert generator.calls[0]["context"] == "customers\norders"

    async def test_unknown_server(self, registry, conversations):
        """Test that an unknown server short-circuits but keeps the USER message."""
        orchestrator = StubOrchestrator()
        chat = make_chat(registry, conversations, orchestrator)

        reply = await chat.send_message(ChatRequest(message="hi", serverId="missing"))

        assert reply.role == Role.ASSISTANT
        assert reply.content == "Server not found: missing"
        assert [m.role for m in conversations.get("default")] == [Role.USER]
        assert orchestrator.messages == []

    async def test_disconnected_server(self, registry, conversations, add_server):
        """Test that a server that is not CONNECTED short-circuits."""
        add_server(HTTP_URL, name="Data Lake")
        chat = make_chat(registry, conversations)

        reply = await chat.send_message(ChatRequest(message="hi", serverId="test-server"))

        assert reply.content == "Server is not connected: Data Lake"
        assert len(conversations.get("default")) == 1

    async def test_errored_server_with_enable_toolset(self, registry, conversations, add_server):
        """Test that enable_toolset still requires a connected server."""
        add_server(HTTP_URL, name="Data Lake")
        registry.update_status("test-server", ServerStatus.ERROR, "Connection refused")
        chat = make_chat(registry, conversations)

        reply = await chat.send_message(ChatRequest(message="enable_toolset", serverId="test-server"))

        assert "not connected" in reply.content

    async def test_unexpected_error_is_rendered(self, registry, conversations, connected_server):
        """Test that failures become an error message, never an exception."""
        chat = make_chat(registry, conversations, StubOrchestrator(error=ValueError("bad state")))

        reply = await chat.send_message(ChatRequest(message="hi", serverId=connected_server.id))

        assert reply.content == "Error processing message: Unexpected error: ValueError: bad state"
        assert [m.role for m in conversations.get("default")] == [Role.USER]

    async def test_generation_failure_returns_tool_output(self, registry, conversations, connected_server):
        """Test that the tool output is used when the model is unavailable."""
        chat = make_chat(registry, conversations, StubOrchestrator(result="raw rows"), FakeGenerator(fail=True))

        reply = await chat.send_message(ChatRequest(message="hi", serverId=connected_server.id))

        assert reply.content == "raw rows"

    async def test_translation_only_affects_tool_query(self, registry, conversations, connected_server):
        """Test that the translator feeds the orchestrator, not the stored message."""
        orchestrator = StubOrchestrator()
        chat = make_chat(registry, conversations, orchestrator, translator=UpperTranslator())

        await chat.send_message(ChatRequest(message="muestra tablas", serverId=connected_server.id))

        assert orchestrator.messages == ["MUESTRA TABLAS"]
        assert conversations.get("default")[0].content == "muestra tablas"


class TestConversations:
    """Tests for conversation storage."""

    async def test_order_is_preserved(self, registry, conversations, connected_server):
        """Test that messages keep insertion order across exchanges."""
        chat = make_chat(registry, conversations)

        for text in ["one", "two", "three"]:
            await chat.send_message(ChatRequest(message=text, serverId=connected_server.id, conversationId="c"))

        users = [m.content for m in conversations.get("c") if m.role == Role.USER]
        assert users == ["one", "two", "three"]
        assert len(conversations.get("c")) == 6

    async def test_clear_also_clears_model_memory(self, registry, conversations, connected_server):
        """Test that clearing a conversation resets generator memory."""
        generator = FakeGenerator()
        chat = make_chat(registry, conversations, generator=generator)
        await chat.send_message(ChatRequest(message="hi", serverId=connected_server.id, conversationId="c"))

        chat.clear_conversation("c")

        assert chat.get_conversation("c") == []
        assert "c" not in chat.conversation_ids()
        assert generator.cleared == ["c"]

    def test_get_returns_a_copy(self, conversations):
        """Test that callers cannot mutate stored conversations."""
        assert conversations.get("nothing") == []
        conversations.get("nothing").append("x")
        assert conversations.get("nothing") == []
