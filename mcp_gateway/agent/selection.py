"""Tool selection and argument extraction from natural language.

Each concern has a model-backed and a heuristic implementation; the
``Fallback*`` classes compose them as primary-with-fallback.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from mcp_gateway.agent.llm import GenerationError, TextGenerator
from mcp_gateway.mcp.models import Server, Tool

logger = logging.getLogger(__name__)

NO_TOOL = "NONE"

SELECTION_PROMPT = """You are a tool selector for an MCP (Model Context Protocol) server.
Analyze the user's request and pick the single most appropriate tool.

SERVER: {server}
AVAILABLE TOOLS:
{tools}

Match on tool name, on a description that fits the user's intent, and on
parameters the request can satisfy. Consider synonyms and other languages.

Respond with ONLY the exact tool name, nothing else. No formatting, no
explanation. If no tool is suitable, respond with "NONE".

Examples:
- "What tables are available?" -> list_tables
- "Show me the structure of the customers table" -> describe_table
- "Mostrar repositorios públicos" -> list_repositories
- "Search repositories about react" -> search_repositories"""

EXTRACTION_PROMPT = """You extract arguments for an MCP tool call from a natural language request.

SERVER: {server}
TOOL: {tool}
TOOL SCHEMA: {schema}

Only include parameters that are clearly mentioned or strongly implied.
Map natural language to the schema's values ("público" = "public") and
convert values to the declared types.

Respond with ONLY a JSON object of arguments, or {{}} if none apply.

Examples:
- "SELECT * FROM products LIMIT 10" -> {{"query": "SELECT * FROM products LIMIT 10"}}
- "Describe the customers table" -> {{"table": "customers"}}
- "Give me 5 rows from users" -> {{"table": "users", "limit": 5}}
- "public repositories" -> {{"type": "public"}}"""

SEARCH_KEYWORDS = ("buscar", "search", "encuentra", "find")
OWNER_REPO = re.compile(r"\b([\w.-]+)/([\w.-]+)(?:/(\S+))?")
SHORT_MESSAGE_WORDS = 5


class ToolSelector(Protocol):
    async def select_best_tool(
        self, message: str, tools: list[Tool], server: Server
    ) -> str | None: ...


class ArgumentExtractor(Protocol):
    async def extract_tool_arguments(
        self, message: str, tool_name: str, schema: dict[str, Any], server: Server
    ) -> dict[str, Any]: ...


# =============================================================================
# Selection
# =============================================================================


def clean_reply(reply: str) -> str:
    """Strip quotes, backticks and markdown emphasis from a model reply."""
    cleaned = reply.strip().replace("**", "").strip()
    return cleaned.strip("`'\"").strip()


def match_tool_name(reply: str, tools: list[Tool]) -> str | None:
    """Resolve a model reply to a tool name: exact, case-insensitive, then partial."""
    cleaned = clean_reply(reply)
    if not cleaned or cleaned.upper() == NO_TOOL:
        return None

    for tool in tools:
        if tool.name == cleaned:
            return tool.name
    for tool in tools:
        if tool.name.lower() == cleaned.lower():
            return tool.name
    # Longest name first so list_tables wins over list
    for tool in sorted(tools, key=lambda t: len(t.name), reverse=True):
        if tool.name and tool.name.lower() in cleaned.lower():
            return tool.name
    return None


class HeuristicToolSelector:
    """Deterministic selection by name, then description words, then first tool."""

    async def select_best_tool(
        self, message: str, tools: list[Tool], server: Server
    ) -> str | None:
        if not tools:
            return None
        lowered = message.lower()

        for tool in tools:
            if tool.name and tool.name.lower() in lowered:
                logger.info(f"Selected tool by name: {tool.name}")
                return tool.name

        for tool in tools:
            for word in re.split(r"\W+", tool.description.lower()):
                if len(word) > 3 and word in lowered:
                    logger.info(f"Selected tool by description: {tool.name}")
                    return tool.name

        logger.info(f"Selected first available tool: {tools[0].name}")
        return tools[0].name


class LlmToolSelector:
    """Asks the language model to name the best tool."""

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def select_best_tool(
        self, message: str, tools: list[Tool], server: Server
    ) -> str | None:
        if not tools:
            return None
        listing = json.dumps(
            [{"name": t.name, "description": t.description} for t in tools],
            ensure_ascii=False,
        )
        system = SELECTION_PROMPT.format(server=server.display_name, tools=listing)
        reply = await self.generator.generate(message, system=system)
        logger.debug(f"LLM tool selection reply: {reply!r}")

        name = match_tool_name(reply, tools)
        if name is None:
            logger.warning(f"LLM reply {reply!r} did not match any tool on {server.display_name}")
        return name


class FallbackToolSelector:
    """Use ``primary``; switch to ``fallback`` when the model is unavailable."""

    def __init__(self, primary: ToolSelector, fallback: ToolSelector):
        self.primary = primary
        self.fallback = fallback

    async def select_best_tool(
        self, message: str, tools: list[Tool], server: Server
    ) -> str | None:
        try:
            return await self.primary.select_best_tool(message, tools, server)
        except GenerationError as e:
            logger.warning(f"Model tool selection failed, using heuristics: {e}")
            return await self.fallback.select_best_tool(message, tools, server)


# =============================================================================
# Argument extraction
# =============================================================================


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the outermost ``{...}`` in ``text``; empty dict if there is none."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return {}
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        logger.warning(f"Could not parse arguments from model reply: {text[:200]!r}")
        return {}
    return data if isinstance(data, dict) else {}


def extract_search_term(message: str) -> str:
    lowered = message.lower()
    for keyword in SEARCH_KEYWORDS:
        index = lowered.find(keyword)
        if index != -1:
            remaining = message[index + len(keyword) :].split()
            if remaining:
                return remaining[0]
    return ""


class HeuristicArgumentExtractor:
    """Rule-based extraction for well-known tools and simple schemas."""

    async def extract_tool_arguments(
        self, message: str, tool_name: str, schema: dict[str, Any], server: Server
    ) -> dict[str, Any]:
        args: dict[str, Any] = {}
        lowered = message.lower()

        if tool_name == "list_repositories":
            if "público" in lowered or "public" in lowered:
                args["type"] = "public"
            if "privado" in lowered or "private" in lowered:
                args["type"] = "private"
        elif tool_name == "search_repositories":
            term = extract_search_term(message)
            if term:
                args["q"] = term
        elif tool_name == "get_file_contents":
            match = OWNER_REPO.search(message)
            if match:
                args["owner"], args["repo"] = match.group(1), match.group(2)
                if match.group(3):
                    args["path"] = match.group(3)

        properties = (schema or {}).get("properties") or {}
        query = properties.get("query")
        if isinstance(query, dict) and query.get("type") == "string" and "query" not in args:
            args["query"] = message

        required = (schema or {}).get("required") or []
        if not args and len(required) == 1:
            name = required[0]
            declared = properties.get(name) if isinstance(properties, dict) else None
            if (
                isinstance(declared, dict)
                and declared.get("type") == "string"
                and len(message.split()) <= SHORT_MESSAGE_WORDS
            ):
                args[name] = message.strip()

        return args


class LlmArgumentExtractor:
    """Asks the language model for a JSON object of arguments."""

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def extract_tool_arguments(
        self, message: str, tool_name: str, schema: dict[str, Any], server: Server
    ) -> dict[str, Any]:
        system = EXTRACTION_PROMPT.format(
            server=server.display_name,
            tool=tool_name,
            schema=json.dumps(schema or {}, ensure_ascii=False),
        )
        reply = await self.generator.generate(message, system=system)
        logger.debug(f"LLM argument extraction reply: {reply!r}")
        return extract_json_object(reply)


class FallbackArgumentExtractor:
    """Use ``primary``; ask ``fallback`` when it fails or finds nothing."""

    def __init__(self, primary: ArgumentExtractor, fallback: ArgumentExtractor):
        self.primary = primary
        self.fallback = fallback

    async def extract_tool_arguments(
        self, message: str, tool_name: str, schema: dict[str, Any], server: Server
    ) -> dict[str, Any]:
        try:
            args = await self.primary.extract_tool_arguments(message, tool_name, schema, server)
        except GenerationError as e:
            logger.warning(f"Model argument extraction failed, using heuristics: {e}")
            args = {}
        if args:
            return args
        return await self.fallback.extract_tool_arguments(message, tool_name, schema, server)
