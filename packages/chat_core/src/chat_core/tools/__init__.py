"""Tool execution: client artifact tools and remote MCP tools."""

from chat_core.tools.base import ToolExecutor, ToolOutcome
from chat_core.tools.client_tools import (
    ARTIFACT_WRITE_TOOLS,
    CLIENT_TOOL_DEFINITIONS,
    CLIENT_TOOL_NAMES,
    READ_ARTIFACT,
    ClientTools,
)
from chat_core.tools.executor import CompositeToolExecutor
from chat_core.tools.mcp_client import MCPError, MCPToolClient, format_tool_result

__all__ = [
    "ARTIFACT_WRITE_TOOLS",
    "CLIENT_TOOL_DEFINITIONS",
    "CLIENT_TOOL_NAMES",
    "READ_ARTIFACT",
    "ClientTools",
    "CompositeToolExecutor",
    "MCPError",
    "MCPToolClient",
    "ToolExecutor",
    "ToolOutcome",
    "format_tool_result",
]
