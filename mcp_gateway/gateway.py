"""Wiring: build every store and service once and hand them out explicitly."""

import logging
from dataclasses import dataclass

import httpx

from mcp_gateway.agent.chat import ChatService, ConversationStore
from mcp_gateway.agent.llm import TextGenerator, build_generator
from mcp_gateway.agent.orchestrator import ToolOrchestrator
from mcp_gateway.agent.selection import (
    FallbackArgumentExtractor,
    FallbackToolSelector,
    HeuristicArgumentExtractor,
    HeuristicToolSelector,
    LlmArgumentExtractor,
    LlmToolSelector,
)
from mcp_gateway.agent.translation import LlmTranslator
from mcp_gateway.config.loader import Settings, get_configured_servers, get_settings, load_server_config
from mcp_gateway.mcp.connector import ConnectionManager
from mcp_gateway.mcp.discovery import DiscoveryService
from mcp_gateway.mcp.events import ServerEventLog
from mcp_gateway.mcp.jsonrpc import JsonRpcClient
from mcp_gateway.mcp.processes import ProcessTable
from mcp_gateway.mcp.registry import ServerRegistry
from mcp_gateway.utils.http import create_http_client

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    settings: Settings
    registry: ServerRegistry
    processes: ProcessTable
    events: ServerEventLog
    connections: ConnectionManager
    client: JsonRpcClient
    discovery: DiscoveryService
    orchestrator: ToolOrchestrator
    conversations: ConversationStore
    chat: ChatService
    http_client: httpx.AsyncClient

    async def shutdown(self) -> None:
        await self.connections.shutdown()
        if not self.http_client.is_closed:
            await self.http_client.aclose()
            logger.debug("Closed shared HTTP client")


def build_gateway(
    settings: Settings | None = None,
    generator: TextGenerator | None = None,
    http_client: httpx.AsyncClient | None = None,
    load_servers: bool = True,
) -> Gateway:
    """
    Construct the gateway object graph.

    Args:
        settings: Settings to use (defaults to ``get_settings()``).
        generator: Text generator; chosen from settings when None.
        http_client: Pooled client shared by every HTTP backend; one is
            created from settings when None. Closed by ``Gateway.shutdown``.
        load_servers: Register servers from the YAML config.
    """
    settings = settings or get_settings()
    generator = generator or build_generator(settings)
    http_client = http_client or create_http_client(timeout=settings.rpc_timeout)

    registry = ServerRegistry()
    processes = ProcessTable(settings.process_exit_timeout)
    events = ServerEventLog()
    connections = ConnectionManager(registry, settings, processes, events, http_client)
    client = JsonRpcClient(connections)
    discovery = DiscoveryService(client, registry)

    if settings.llm_enabled:
        selector = FallbackToolSelector(LlmToolSelector(generator), HeuristicToolSelector())
        extractor = FallbackArgumentExtractor(
            LlmArgumentExtractor(generator), HeuristicArgumentExtractor()
        )
    else:
        selector = HeuristicToolSelector()
        extractor = HeuristicArgumentExtractor()

    orchestrator = ToolOrchestrator(discovery, client, selector, extractor)
    conversations = ConversationStore()
    translator = LlmTranslator(generator) if settings.translate_queries else None
    chat = ChatService(registry, conversations, orchestrator, generator, translator)

    if load_servers:
        config = load_server_config(settings.servers_config_path)
        for entry in get_configured_servers(config):
            if not entry.get("url"):
                logger.warning(f"Skipping server entry without url: {entry}")
                continue
            registry.add_from_config(entry)
        logger.info(f"Registered {registry.server_count} configured servers")

    return Gateway(
        settings=settings,
        registry=registry,
        processes=processes,
        events=events,
        connections=connections,
        client=client,
        discovery=discovery,
        orchestrator=orchestrator,
        conversations=conversations,
        chat=chat,
        http_client=http_client,
    )
