"""Pytest configuration and fixtures."""

import json
import shlex
import socket
import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from mcp_gateway.agent.llm import GenerationError
from mcp_gateway.config.loader import Settings
from mcp_gateway.gateway import build_gateway
from mcp_gateway.main import create_app
from mcp_gateway.mcp.connector import ConnectionManager
from mcp_gateway.mcp.discovery import DiscoveryService
from mcp_gateway.mcp.events import ServerEventLog
from mcp_gateway.mcp.jsonrpc import JsonRpcClient
from mcp_gateway.mcp.models import Server
from mcp_gateway.mcp.processes import ProcessTable
from mcp_gateway.mcp.registry import ServerRegistry

ECHO_SERVER = Path(__file__).parent / "fixtures" / "echo_mcp_server.py"


class FakeGenerator:
    """Scripted text generator that records what it was asked."""

    def __init__(self, replies: list[str] | None = None, fail: bool = False):
        self.replies = list(replies or [])
        self.fail = fail
        self.calls: list[dict] = []
        self.cleared: list[str] = []

    def _next(self, prompt: str, context: str) -> str:
        if self.fail:
            raise GenerationError("model unavailable")
        if self.replies:
            return self.replies.pop(0)
        return f"answer: {context}" if context else f"answer: {prompt}"

    async def generate(self, prompt: str, context: str = "", system: str | None = None) -> str:
        self.calls.append({"prompt": prompt, "context": context, "system": system})
        return self._next(prompt, context)

    async def generate_with_memory(
        self, conversation_id: str, question: str, context: str = ""
    ) -> str:
        self.calls.append(
            {"conversation_id": conversation_id, "prompt": question, "context": context}
        )
        return self._next(question, context)

    def clear_conversation(self, conversation_id: str) -> None:
        self.cleared.append(conversation_id)


class FakeMcpHttpServer:
    """
    In-process HTTP MCP server behind ``httpx.MockTransport``.

    ``responses`` maps JSON-RPC method names to results (or to callables
    taking params); ``health_status``/``root_status`` drive the probe.
    """

    def __init__(
        self,
        responses: dict | None = None,
        health_status: int = 200,
        root_status: int = 200,
        rpc_status: int = 200,
    ):
        self.responses = responses or {}
        self.health_status = health_status
        self.root_status = root_status
        self.rpc_status = rpc_status
        # when set, every reply carries this id instead of the request's
        self.reply_id: str | None = None
        self.requests: list[httpx.Request] = []
        self.rpc_calls: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            if request.url.path.endswith("/health"):
                return httpx.Response(self.health_status, text="health")
            return httpx.Response(self.root_status, text="root")

        payload = json.loads(request.content)
        self.rpc_calls.append(payload)
        if self.rpc_status != 200:
            return httpx.Response(self.rpc_status, text="backend exploded")

        method = payload["method"]
        if method not in self.responses:
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": payload["id"],
                    "error": {"code": -32601, "message": f"Method not found: {method}"},
                },
            )
        result = self.responses[method]
        if callable(result):
            result = result(payload.get("params") or {})
        reply_id = self.reply_id or payload["id"]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": reply_id, "result": result})

    def methods(self) -> list[str]:
        return [call["method"] for call in self.rpc_calls]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings():
    """Settings with short timeouts and no LLM."""
    return Settings(
        _env_file=None,
        openai_api_key="",
        connect_timeout=2.0,
        rpc_timeout=5.0,
        stdio_read_timeout=5.0,
        process_exit_timeout=2.0,
        log_format="console",
    )


@pytest.fixture
def registry():
    return ServerRegistry()


@pytest.fixture
def events():
    return ServerEventLog()


@pytest.fixture
def fake_http():
    """A fake HTTP MCP server; tests fill in ``responses``."""
    return FakeMcpHttpServer()


@pytest.fixture
async def connections(registry, settings, events, fake_http):
    manager = ConnectionManager(
        registry,
        settings,
        ProcessTable(settings.process_exit_timeout),
        events,
        http_client=fake_http.client(),
    )
    yield manager
    await manager.shutdown()


@pytest.fixture
def rpc_client(connections):
    return JsonRpcClient(connections)


@pytest.fixture
def discovery(rpc_client, registry):
    return DiscoveryService(rpc_client, registry)


@pytest.fixture
def echo_server_url():
    """Factory for stdio URLs running the echo MCP server."""

    def _url(*flags: str) -> str:
        return "stdio://" + shlex.join([sys.executable, str(ECHO_SERVER), *flags])

    return _url


@pytest.fixture
def add_server(registry):
    """Register a server and return it."""

    def _add(url: str, server_id: str = "test-server", name: str = "Test Server") -> Server:
        return registry.add(Server(id=server_id, name=name, url=url))

    return _add


@pytest.fixture
def unused_port():
    """A local TCP port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def client(settings, fake_generator):
    """Synchronous test client for a gateway with no configured servers."""
    gateway = build_gateway(settings, generator=fake_generator, load_servers=False)
    with TestClient(create_app(gateway)) as test_client:
        yield test_client
