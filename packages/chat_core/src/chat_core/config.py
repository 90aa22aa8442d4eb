"""Pydantic settings for the chat core, loaded from the environment."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class McpServerConfig(BaseModel, frozen=True):
    """A remote tool server reachable over MCP JSON-RPC/HTTP."""

    id: str
    url: str
    enabled: bool = True


class SamplerSettings(BaseModel, frozen=True):
    """Sampling parameters forwarded to the model endpoint."""

    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    min_p: float | None = None


class Settings(BaseModel, frozen=True):
    """Runtime configuration loaded from environment variables."""

    endpoint_url: str
    api_key: str | None = None
    model_id: str = "default"
    supports_function_calling: bool = True
    sampler: SamplerSettings = Field(default_factory=SamplerSettings)
    request_timeout: float = 120.0
    system_prompt: str | None = None
    mcp_servers: list[McpServerConfig] = Field(default_factory=list)
    storage_path: str = ".data/chat_sessions.db"
    title_generation_enabled: bool = True


def _parse_list(value: str) -> list[str]:
    """Parse comma-separated string into list."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_mcp_servers(value: str) -> list[McpServerConfig]:
    """Parse ``name=url`` pairs separated by commas."""
    servers: list[McpServerConfig] = []
    for item in _parse_list(value):
        name, sep, url = item.partition("=")
        if not sep or not name.strip() or not url.strip():
            msg = f"Invalid MCP_SERVERS entry '{item}'; expected name=url"
            raise ValueError(msg)
        servers.append(McpServerConfig(id=name.strip(), url=url.strip()))
    return servers


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    return float(raw) if raw else None


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw else None


def load_settings() -> Settings:
    """Load settings from environment variables with defaults."""
    load_dotenv()

    endpoint_url = os.getenv("LLM_ENDPOINT_URL")
    if not endpoint_url:
        msg = (
            "LLM_ENDPOINT_URL environment variable is required. "
            "Point it at an OpenAI-compatible base URL (e.g. http://localhost:8080/v1)."
        )
        raise ValueError(msg)

    return Settings(
        endpoint_url=endpoint_url.rstrip("/"),
        api_key=os.getenv("LLM_API_KEY") or None,
        model_id=os.getenv("LLM_MODEL_ID", "default"),
        supports_function_calling=os.getenv("LLM_SUPPORTS_TOOLS", "true").lower() == "true",
        sampler=SamplerSettings(
            temperature=_optional_float("LLM_TEMPERATURE"),
            top_p=_optional_float("LLM_TOP_P"),
            top_k=_optional_int("LLM_TOP_K"),
            min_p=_optional_float("LLM_MIN_P"),
        ),
        request_timeout=float(os.getenv("LLM_REQUEST_TIMEOUT", "120")),
        system_prompt=os.getenv("SYSTEM_PROMPT") or None,
        mcp_servers=_parse_mcp_servers(os.getenv("MCP_SERVERS", "")),
        storage_path=os.getenv("CHAT_STORAGE_PATH", ".data/chat_sessions.db"),
        title_generation_enabled=os.getenv("TITLE_GENERATION_ENABLED", "true").lower() == "true",
    )
