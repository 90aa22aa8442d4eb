"""Composite tool executor: client artifact tools first, then MCP servers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from chat_core.tools.base import ToolOutcome
from chat_core.tools.client_tools import CLIENT_TOOL_DEFINITIONS, ClientTools
from chat_core.tools.mcp_client import MCPToolClient

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from chat_core.artifacts import ArtifactStore
    from chat_core.config import McpServerConfig
    from chat_core.session.models import ChatSession

logger = logging.getLogger(__name__)


class CompositeToolExecutor:
    """Resolve tool names against client tools, then enabled MCP servers."""

    def __init__(
        self,
        artifacts: ArtifactStore,
        servers: Iterable[McpServerConfig] = (),
        *,
        client_factory: Callable[[McpServerConfig], MCPToolClient] | None = None,
    ) -> None:
        self._client_tools = ClientTools(artifacts)
        self._servers = {server.id: server for server in servers}
        self._client_factory = client_factory or _default_client
        self._clients: dict[str, MCPToolClient] = {}
        # Session id -> tool name -> owning server id, rebuilt by list_tools().
        self._tool_owner: dict[str, dict[str, str]] = {}

    async def list_tools(self, session: ChatSession) -> list[dict[str, Any]]:
        """Return function definitions for client tools and the session's MCP tools."""
        tools = list(CLIENT_TOOL_DEFINITIONS)
        owners: dict[str, str] = {}
        for server, allowed in self._enabled_servers(session):
            try:
                remote = await self._client(server).list_tools()
            except Exception:  # noqa: BLE001 - one bad server must not hide the others
                logger.exception("Failed to load tools from MCP server %s", server.id)
                continue
            for tool in remote:
                name = tool.get("name")
                if not name or (allowed and name not in allowed):
                    continue
                owners[name] = server.id
                tools.append(
                    {
                        "type": "function",
                        "function": {
                            "name": name,
                            "description": tool.get("description"),
                            "parameters": tool.get("inputSchema") or {"type": "object", "properties": {}},
                        },
                    }
                )
        self._tool_owner[session.id] = owners
        return tools

    async def invoke(self, name: str, arguments: dict[str, Any], *, session_id: str) -> ToolOutcome:
        """Run a tool; every failure becomes an ``is_error`` outcome."""
        if self._client_tools.handles(name):
            try:
                return ToolOutcome(self._client_tools.call(name, arguments, session_id))
            except Exception as exc:  # noqa: BLE001 - surface error in tool response
                logger.warning("Client tool %s failed: %s", name, exc)
                return ToolOutcome(f"Error executing client tool: {exc}", is_error=True)

        server_id = self._tool_owner.get(session_id, {}).get(name)
        if server_id is not None:
            server = self._servers.get(server_id)
            if server is None or not server.enabled:
                return ToolOutcome("Error: MCP Server not found", is_error=True)
            try:
                text = await self._client(server).call_tool(name, arguments)
            except Exception as exc:  # noqa: BLE001 - surface error in tool response
                logger.warning("MCP tool %s on %s failed: %s", name, server_id, exc)
                return ToolOutcome(f"Error calling tool: {exc}", is_error=True)
            return ToolOutcome(text)

        return ToolOutcome(f"Error: Tool {name} not found", is_error=True)

    async def aclose(self) -> None:
        """Close all MCP connections opened by this executor."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()

    def _enabled_servers(self, session: ChatSession) -> list[tuple[McpServerConfig, set[str]]]:
        """Servers to query for this session, with the allowed tool names (empty = all)."""
        if session.enabled_mcp_tools:
            selected = []
            for entry in session.enabled_mcp_tools:
                server = self._servers.get(entry.server_id)
                if server is not None and server.enabled:
                    selected.append((server, set(entry.tool_names)))
            return selected
        return [(server, set()) for server in self._servers.values() if server.enabled]

    def _client(self, server: McpServerConfig) -> MCPToolClient:
        client = self._clients.get(server.id)
        if client is None:
            client = self._client_factory(server)
            self._clients[server.id] = client
        return client


def _default_client(server: McpServerConfig) -> MCPToolClient:
    return MCPToolClient(server.url)
