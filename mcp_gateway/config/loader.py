"""Configuration loading from environment and YAML files."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI API (for tool selection and answer generation) - supports both
    # direct OpenAI and Azure OpenAI
    openai_api_key: str = ""
    llm_model: str = "gpt-4o"

    # Azure OpenAI settings (if using Azure instead of OpenAI direct)
    azure_openai_endpoint: str = ""  # e.g., https://your-resource.openai.azure.com
    azure_openai_deployment: str = "gpt-4o"  # deployment name in Azure
    azure_openai_api_version: str = "2024-02-15-preview"

    # Translate non-English questions before tool orchestration
    translate_queries: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Timeouts (seconds)
    connect_timeout: float = 5.0
    rpc_timeout: float = 30.0
    stdio_read_timeout: float = 10.0
    process_exit_timeout: float = 5.0

    # Largest stdout line accepted from a stdio server (bytes)
    stdio_stream_limit: int = 16 * 1024 * 1024

    # Gateway info
    server_name: str = "mcp-gateway"
    server_version: str = "1.0.0"

    # Host and port
    host: str = "0.0.0.0"
    port: int = 8080

    # Backend MCP servers
    servers_config_path: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def llm_enabled(self) -> bool:
        """Check if an LLM is configured (OpenAI or Azure OpenAI)."""
        return bool(self.openai_api_key)

    @property
    def use_azure_openai(self) -> bool:
        """Check if Azure OpenAI should be used instead of direct OpenAI."""
        return bool(self.azure_openai_endpoint)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Used when no servers file exists, so a fresh install has something to show.
SAMPLE_SERVERS: list[dict[str, Any]] = [
    {
        "id": "github-mcp",
        "name": "GitHub MCP Server",
        "description": "Provides access to GitHub repositories, issues, and pull requests",
        "url": "stdio://npx @modelcontextprotocol/server-github",
    },
    {
        "id": "filesystem-mcp",
        "name": "File System MCP Server",
        "description": "Provides secure access to local file system operations",
        "url": "stdio://npx @modelcontextprotocol/server-filesystem",
    },
    {
        "id": "sqlite-mcp",
        "name": "SQLite MCP Server",
        "description": "Provides database query capabilities for SQLite databases",
        "url": "stdio://npx @modelcontextprotocol/server-sqlite",
    },
]


def load_server_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load backend server definitions from a YAML file.

    Args:
        config_path: Path to the config file. If None, uses default location.

    Returns:
        Dictionary with a ``servers`` list.
    """
    if not config_path:
        possible_paths = [
            Path("config/servers.yaml"),
            Path(__file__).parent.parent.parent / "config" / "servers.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            return {"servers": [dict(s) for s in SAMPLE_SERVERS]}

    config_path = Path(config_path)
    if not config_path.exists():
        return {"servers": [dict(s) for s in SAMPLE_SERVERS]}

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    config.setdefault("servers", [])
    return config


def get_configured_servers(config: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    """Get the list of configured server entries."""
    if config is None:
        config = load_server_config(get_settings().servers_config_path)
    return [entry for entry in config.get("servers", []) if isinstance(entry, dict)]
