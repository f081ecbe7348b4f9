"""Pydantic models for the MCP JSON-RPC 2.0 protocol and gateway state."""

import time
import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# JSON-RPC 2.0 Base Models
# =============================================================================


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request object."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: int | str | None = Field(default_factory=lambda: str(uuid.uuid4()))
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int = 0
    message: str = ""
    data: Any = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response object."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def model_dump(self, **kwargs: Any) -> dict[str, Any]:
        """Custom serialization to exclude None fields appropriately."""
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump()
        else:
            data["result"] = self.result
        return data


# =============================================================================
# MCP Content Types
# =============================================================================


class TextContent(BaseModel):
    """Text content returned by tools."""

    type: Literal["text"] = "text"
    text: str


# =============================================================================
# MCP Tool / Resource / Prompt Models
# =============================================================================


class Tool(BaseModel):
    """A tool as advertised by a backend server's tools/list."""

    name: str
    description: str = ""
    inputSchema: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _normalize_schema_key(cls, data: Any) -> Any:
        # Some servers advertise the schema as input_schema
        if isinstance(data, dict) and "inputSchema" not in data and "input_schema" in data:
            data = dict(data)
            data["inputSchema"] = data.pop("input_schema")
        if isinstance(data, dict) and data.get("inputSchema") is None:
            data = {**data, "inputSchema": {}}
        if isinstance(data, dict) and data.get("description") is None:
            data = {**data, "description": ""}
        return data


class ToolCall(BaseModel):
    """A validated call ready to be dispatched."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    toolName: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    def to_params(self) -> dict[str, Any]:
        return {"name": self.toolName, "arguments": self.arguments}


class Resource(BaseModel):
    """Static data or a file exposed by a backend server."""

    uri: str
    name: str | None = None
    description: str | None = None
    mimeType: str | None = None
    annotations: Any = None


class Prompt(BaseModel):
    """A prompt template exposed by a backend server."""

    name: str
    description: str | None = None
    arguments: Any = None


class Capabilities(BaseModel):
    """Feature groups a backend server reports during initialize."""

    tools: bool = False
    resources: bool = False
    prompts: bool = False
    logging: bool = False
    sampling: bool = False
    experimental: Any = None

    @classmethod
    def conservative_default(cls) -> "Capabilities":
        """Assumed when discovery fails: tools only, everything else unknown."""
        return cls(tools=True)

    @classmethod
    def from_initialize_result(cls, result: dict[str, Any]) -> "Capabilities":
        reported = result.get("capabilities") or {}
        return cls(
            tools="tools" in reported,
            resources="resources" in reported,
            prompts="prompts" in reported,
            logging="logging" in reported,
            sampling="sampling" in reported,
            experimental=reported.get("experimental"),
        )


# =============================================================================
# Gateway State
# =============================================================================


class ServerStatus(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


class Server(BaseModel):
    """A backend MCP server known to the gateway."""

    id: str | None = None
    name: str = ""
    description: str = ""
    url: str
    status: ServerStatus = ServerStatus.DISCONNECTED
    last_connected_at: float | None = None
    last_error: str | None = None
    capabilities: Capabilities | None = None

    @property
    def scheme(self) -> str:
        if "://" not in self.url:
            return ""
        return self.url.split("://", 1)[0].lower()

    @property
    def display_name(self) -> str:
        return self.name or self.id or self.url


class Role(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"


class Message(BaseModel):
    """A chat message exchanged through the gateway."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Role
    content: str
    timestamp: float = Field(default_factory=time.time)
    serverId: str | None = None


class LogEntry(BaseModel):
    """A gateway event recorded against a backend server."""

    level: str
    message: str
    data: Any = None
    timestamp: float = Field(default_factory=time.time)
    serverId: str


class Notification(BaseModel):
    """A server-initiated JSON-RPC notification."""

    method: str
    params: Any = None
    timestamp: float = Field(default_factory=time.time)
    serverId: str
