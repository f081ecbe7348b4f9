"""Tests for the HTTP API."""

from fastapi.testclient import TestClient

from mcp_gateway.gateway import build_gateway


def test_health_endpoint(client: TestClient):
    """Test that health endpoint returns ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_endpoint(client: TestClient):
    """Test that root endpoint returns gateway info."""
    response = client.get("/")
    assert response.status_code == 200

    data = response.json()
    assert "name" in data
    assert "version" in data
    assert data["endpoints"]["health"] == "/health"
    assert data["endpoints"]["servers"] == "/api/mcp/servers"
    assert data["mcp_protocol_version"] == "2024-11-05"
    assert data["servers"] == 0


def test_request_id_is_echoed(client: TestClient):
    """Test that X-Request-ID is propagated to the response."""
    response = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert client.get("/health").headers["X-Request-ID"]


class TestServerEndpoints:
    """Tests for server management endpoints."""

    def test_add_and_list(self, client: TestClient):
        """Test registering a server."""
        response = client.post(
            "/api/mcp/servers",
            json={"id": "gh", "name": "GitHub", "url": "stdio://nonexistent-command-xyz"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "DISCONNECTED"

        servers = client.get("/api/mcp/servers").json()
        assert [s["id"] for s in servers] == ["gh"]
        assert client.get("/api/mcp/servers/gh").json()["name"] == "GitHub"

    def test_unknown_server_is_404(self, client: TestClient):
        """Test that unknown ids map to 404."""
        assert client.get("/api/mcp/servers/nope").status_code == 404
        assert client.post("/api/mcp/servers/nope/connect").status_code == 404
        assert client.get("/api/mcp/servers/nope/tools").status_code == 404

    def test_failed_connect_reports_error(self, client: TestClient):
        """Test that a failed connect returns 200 with the classified error."""
        client.post("/api/mcp/servers", json={"id": "gh", "url": "stdio://nonexistent-command-xyz"})

        server = client.post("/api/mcp/servers/gh/connect").json()

        assert server["status"] == "ERROR"
        assert "Command not found" in server["last_error"]
        assert client.get("/api/mcp/servers/status").json() == {"connected": 0, "total": 1}

        logs = client.get("/api/mcp/servers/gh/logs").json()
        assert logs[-1]["level"] == "ERROR"

    def test_disconnected_server_has_no_tools(self, client: TestClient):
        """Test that discovery on a disconnected server degrades."""
        client.post("/api/mcp/servers", json={"id": "gh", "url": "stdio://nonexistent-command-xyz"})

        assert client.get("/api/mcp/servers/gh/tools").json() == []
        assert client.get("/api/mcp/servers/gh/capabilities").json()["tools"] is True

    def test_delete(self, client: TestClient):
        """Test removing a server."""
        client.post("/api/mcp/servers", json={"id": "gh", "url": "tcp://localhost:1"})

        assert client.delete("/api/mcp/servers/gh").json() == {"removed": "gh"}
        assert client.get("/api/mcp/servers/gh").status_code == 404

    def test_stdio_server_round_trip(self, client: TestClient, echo_server_url):
        """Test connect, list and call against the stdio echo server."""
        client.post("/api/mcp/servers", json={"id": "echo", "url": echo_server_url()})

        assert client.post("/api/mcp/servers/echo/connect").json()["status"] == "CONNECTED"
        tools = client.get("/api/mcp/servers/echo/tools").json()
        assert {t["name"] for t in tools} == {"echo", "list_tables", "add"}

        result = client.post(
            "/api/mcp/servers/echo/tools/call", json={"name": "echo", "arguments": {"text": "hi"}}
        ).json()
        assert result["content"][0]["text"] == "hi"

        rejected = client.post("/api/mcp/servers/echo/tools/call", json={"name": "echo"}).json()
        assert rejected["error"] == "invalid_arguments"

        assert client.get("/api/mcp/servers/echo/ping").json() == {"id": "echo", "reachable": True}
        assert client.post("/api/mcp/servers/echo/disconnect").json()["status"] == "DISCONNECTED"


class TestChatEndpoints:
    """Tests for chat endpoints."""

    def test_chat_with_unknown_server(self, client: TestClient):
        """Test that chat always returns a displayable message."""
        response = client.post("/api/chat", json={"message": "hi", "serverId": "nope"})

        assert response.status_code == 200
        assert response.json()["role"] == "ASSISTANT"
        assert response.json()["content"] == "Server not found: nope"

    def test_conversations(self, client: TestClient):
        """Test listing, reading and clearing conversations."""
        client.post("/api/chat", json={"message": "hi", "serverId": "nope", "conversationId": "c1"})

        assert client.get("/api/chat/conversations").json() == ["c1"]
        messages = client.get("/api/chat/conversations/c1").json()
        assert [m["role"] for m in messages] == ["USER"]

        client.delete("/api/chat/conversations/c1")
        assert client.get("/api/chat/conversations/c1").json() == []


class TestGatewayLifecycle:
    """Tests for the gateway's shared resources."""

    async def test_shared_http_client_is_closed_on_shutdown(self, settings, fake_generator):
        """Test that HTTP backends share one pooled client owned by the gateway."""
        gateway = build_gateway(settings, generator=fake_generator, load_servers=False)

        assert gateway.connections.http_client is gateway.http_client
        assert not gateway.http_client.is_closed

        await gateway.shutdown()

        assert gateway.http_client.is_closed
