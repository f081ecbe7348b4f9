"""MCP Gateway - FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from mcp_gateway.agent.chat import ChatRequest
from mcp_gateway.config.loader import get_configured_servers, get_settings, load_server_config
from mcp_gateway.gateway import Gateway, build_gateway
from mcp_gateway.mcp.discovery import PROTOCOL_VERSION
from mcp_gateway.mcp.models import LogEntry, Message, Notification, Prompt, Resource, Server, Tool
from mcp_gateway.utils.logging import bind_server, get_logger, set_request_id, setup_logging

logger = logging.getLogger(__name__)


# =============================================================================
# Request Models
# =============================================================================


class AddServerRequest(BaseModel):
    id: str | None = None
    name: str = ""
    description: str = ""
    url: str


class ToolCallRequest(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ReadResourceRequest(BaseModel):
    uri: str


class GetPromptRequest(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Dependencies
# =============================================================================


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def get_server(server_id: str, gateway: Gateway = Depends(get_gateway)) -> Server:
    """Resolve a path server id, 404 if unknown."""
    server = gateway.registry.get(server_id)
    if server is None:
        raise HTTPException(status_code=404, detail=f"Server not found: {server_id}")
    bind_server(server_id)
    return server


# =============================================================================
# Server Management Endpoints
# =============================================================================

servers = APIRouter(prefix="/api/mcp", tags=["servers"])


@servers.get("/servers")
async def list_servers(gateway: Gateway = Depends(get_gateway)) -> list[Server]:
    return gateway.registry.list()


@servers.get("/servers/status")
async def servers_status(gateway: Gateway = Depends(get_gateway)) -> dict:
    """Connected and total server counts."""
    return {
        "connected": gateway.registry.connected_count,
        "total": gateway.registry.server_count,
    }


@servers.post("/servers/reload")
async def reload_servers(gateway: Gateway = Depends(get_gateway)) -> list[Server]:
    """Re-read the servers file and re-register its entries."""
    config = load_server_config(gateway.settings.servers_config_path)
    return await gateway.connections.reload(get_configured_servers(config))


@servers.post("/servers")
async def add_server(body: AddServerRequest, gateway: Gateway = Depends(get_gateway)) -> Server:
    server = gateway.registry.add(Server(**body.model_dump()))
    get_logger("servers").info("Server added", server_id=server.id, url=server.url)
    return server


@servers.get("/servers/{server_id}")
async def get_server_details(server: Server = Depends(get_server)) -> Server:
    return server


@servers.delete("/servers/{server_id}")
async def remove_server(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> dict:
    await gateway.connections.remove_server(server.id or "")
    return {"removed": server.id}


@servers.post("/servers/{server_id}/connect")
async def connect_server(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> Server:
    """Attempt a connection; failures are reported in the returned status."""
    await gateway.connections.connect(server.id or "")
    get_logger("servers").info(
        "Connect attempt finished",
        server_id=server.id,
        status=server.status.value,
        error=server.last_error,
    )
    return server


@servers.post("/servers/{server_id}/disconnect")
async def disconnect_server(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> Server:
    await gateway.connections.disconnect(server.id or "")
    return server


@servers.get("/servers/{server_id}/ping")
async def ping_server(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> dict:
    reachable = await gateway.connections.ping(server.id or "")
    return {"id": server.id, "reachable": bool(reachable)}


# =============================================================================
# Discovery and Tool Endpoints
# =============================================================================


@servers.get("/servers/{server_id}/capabilities")
async def server_capabilities(
    refresh: bool = False,
    server: Server = Depends(get_server),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    capabilities = await gateway.discovery.get_capabilities(server, refresh=refresh)
    return capabilities.model_dump()


@servers.get("/servers/{server_id}/tools")
async def server_tools(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> list[Tool]:
    return await gateway.discovery.list_tools(server)


@servers.post("/servers/{server_id}/tools/call")
async def call_server_tool(
    body: ToolCallRequest,
    server: Server = Depends(get_server),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    return await gateway.orchestrator.call_tool(server, body.name, body.arguments)


@servers.get("/servers/{server_id}/resources")
async def server_resources(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> list[Resource]:
    return await gateway.discovery.list_resources(server)


@servers.post("/servers/{server_id}/resources/read")
async def read_server_resource(
    body: ReadResourceRequest,
    server: Server = Depends(get_server),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    text = await gateway.discovery.read_resource(server, body.uri)
    return {"uri": body.uri, "text": text}


@servers.get("/servers/{server_id}/prompts")
async def server_prompts(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> list[Prompt]:
    return await gateway.discovery.list_prompts(server)


@servers.post("/servers/{server_id}/prompts/get")
async def get_server_prompt(
    body: GetPromptRequest,
    server: Server = Depends(get_server),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    text = await gateway.discovery.get_prompt(server, body.name, body.arguments)
    return {"name": body.name, "text": text}


# =============================================================================
# Logs and Notifications
# =============================================================================


@servers.get("/logs")
async def all_logs(gateway: Gateway = Depends(get_gateway)) -> list[LogEntry]:
    """Every server's log entries in chronological order."""
    return gateway.events.all_logs()


@servers.get("/servers/{server_id}/logs")
async def server_logs(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> list[LogEntry]:
    return gateway.events.logs(server.id or "")


@servers.delete("/servers/{server_id}/logs")
async def clear_server_logs(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> dict:
    gateway.events.clear(server.id or "")
    return {"cleared": server.id}


@servers.get("/servers/{server_id}/notifications")
async def server_notifications(
    server: Server = Depends(get_server), gateway: Gateway = Depends(get_gateway)
) -> list[Notification]:
    return gateway.events.notifications(server.id or "")


# =============================================================================
# Chat Endpoints
# =============================================================================

chat = APIRouter(prefix="/api/chat", tags=["chat"])


@chat.post("")
async def send_chat_message(body: ChatRequest, gateway: Gateway = Depends(get_gateway)) -> Message:
    log = get_logger("chat")
    log.info(
        "Chat request",
        server_id=body.serverId,
        conversation_id=body.conversationId,
        message_length=len(body.message),
    )
    reply = await gateway.chat.send_message(body)
    log.info("Chat response", response_length=len(reply.content))
    return reply


@chat.get("/conversations")
async def list_conversations(gateway: Gateway = Depends(get_gateway)) -> list[str]:
    return gateway.chat.conversation_ids()


@chat.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str, gateway: Gateway = Depends(get_gateway)
) -> list[Message]:
    return gateway.chat.get_conversation(conversation_id)


@chat.delete("/conversations/{conversation_id}")
async def clear_conversation(conversation_id: str, gateway: Gateway = Depends(get_gateway)) -> dict:
    gateway.chat.clear_conversation(conversation_id)
    return {"cleared": conversation_id}


# =============================================================================
# Application
# =============================================================================


def create_app(gateway: Gateway | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        gateway: Pre-built gateway (tests); built from settings at startup if None.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging()
        log = get_logger("startup")
        settings = get_settings()

        app.state.gateway = gateway or build_gateway(settings)
        log.info(
            "Starting MCP gateway",
            server_name=settings.server_name,
            version=settings.server_version,
            servers=app.state.gateway.registry.server_count,
            llm_enabled=settings.llm_enabled,
        )

        yield

        log.info("Shutting down MCP gateway")
        await app.state.gateway.shutdown()

    app = FastAPI(
        title="MCP Gateway",
        description="Connects to MCP servers over stdio, HTTP, WebSocket and TCP and runs their tools",
        version=get_settings().server_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/")
    async def root(request: Request) -> dict:
        """Root endpoint with gateway info."""
        settings = get_settings()
        current: Gateway = request.app.state.gateway
        return {
            "name": settings.server_name,
            "version": settings.server_version,
            "description": "Gateway to MCP tool servers",
            "endpoints": {
                "health": "/health",
                "servers": "/api/mcp/servers",
                "chat": "/api/chat",
                "docs": "/docs",
            },
            "servers": current.registry.server_count,
            "connected": current.registry.connected_count,
            "mcp_protocol_version": PROTOCOL_VERSION,
        }

    app.include_router(servers)
    app.include_router(chat)
    return app


app = create_app()


def main() -> None:
    """Run the gateway with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mcp_gateway.main:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
