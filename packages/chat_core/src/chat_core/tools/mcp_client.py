"""MCP tool client built on the MCP Python SDK.

Every operation opens its own streamable HTTP session. Nothing stays
connected between calls, so one client can serve turns running in different
tasks.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from mcp import ClientSession
from mcp.client.streamable_http import streamable_http_client
from mcp.types import CallToolResult, TextContent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from contextlib import AbstractAsyncContextManager

logger = logging.getLogger(__name__)

TOOL_CALL_FAILED = "MCP tool call failed"


class MCPError(RuntimeError):
    """A remote tool reported a failed call."""


class MCPToolClient:
    """List and call the tools of one MCP server."""

    def __init__(
        self,
        url: str,
        *,
        session_factory: Callable[[], AbstractAsyncContextManager[ClientSession]] | None = None,
    ) -> None:
        self.url = url
        self._session_factory = session_factory or self._open_session

    @asynccontextmanager
    async def _open_session(self) -> AsyncIterator[ClientSession]:
        async with streamable_http_client(self.url) as (read_stream, write_stream, _get_session_id):
            async with ClientSession(read_stream, write_stream) as session:
                await session.initialize()
                yield session

    async def list_tools(self) -> list[dict[str, Any]]:
        """Return the server's tools as ``name``/``description``/``inputSchema`` dicts."""
        async with self._session_factory() as session:
            listing = await session.list_tools()
        logger.debug("MCP server %s offers %d tools", self.url, len(listing.tools))
        return [
            {"name": tool.name, "description": tool.description, "inputSchema": tool.inputSchema}
            for tool in listing.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Invoke a remote tool and flatten its content to text.

        Raises:
            MCPError: When the result is flagged ``isError``.
        """
        async with self._session_factory() as session:
            result = await session.call_tool(name, arguments)
        if result.isError:
            raise MCPError(_error_text(result))
        return format_tool_result(result)

    async def close(self) -> None:
        """Nothing to release; sessions close after each call."""


def format_tool_result(result: CallToolResult) -> str:
    """Join text blocks; other blocks are JSON-encoded."""
    if not result.content:
        payload = result.structuredContent if result.structuredContent is not None else {}
        return json.dumps(payload)
    return "\n".join(
        block.text
        if isinstance(block, TextContent)
        else json.dumps(block.model_dump(mode="json", by_alias=True, exclude_none=True))
        for block in result.content
    )


def _error_text(result: CallToolResult) -> str:
    for block in result.content:
        if isinstance(block, TextContent):
            return block.text
    return TOOL_CALL_FAILED
