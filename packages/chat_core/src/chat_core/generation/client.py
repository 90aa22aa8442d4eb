"""Streaming client for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from chat_core.errors import TransportError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class ToolCallFragment:
    """Incremental piece of a tool call; ``name``/``arguments`` are appended, not replaced."""

    index: int
    id: str | None = None
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True)
class StreamDelta:
    """One decoded stream event."""

    reasoning: str = ""
    content: str = ""
    tool_calls: tuple[ToolCallFragment, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not (self.reasoning or self.content or self.tool_calls)


class ChatCompletionClient:
    """Send chat requests and yield decoded deltas as they arrive."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[StreamDelta]:
        """POST ``payload`` and yield deltas until the ``[DONE]`` sentinel.

        Raises:
            TransportError: On non-2xx responses and connection failures.
        """
        try:
            async with self._client.stream(
                "POST", "/chat/completions", json=payload, headers=self._headers
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    msg = f"API Error: {response.status_code} - {body}"
                    raise TransportError(msg, status_code=response.status_code)
                async for line in response.aiter_lines():
                    data = _event_data(line)
                    if data is None:
                        continue
                    if data == DONE_SENTINEL:
                        break
                    delta = parse_chunk(data)
                    if delta is not None and not delta.is_empty:
                        yield delta
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

    async def complete(self, payload: dict[str, Any]) -> str:
        """Stream a request and return the concatenated answer text."""
        chunks = [delta.content async for delta in self.stream(payload)]
        return "".join(chunks)


def _event_data(line: str) -> str | None:
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None
    return stripped.removeprefix("data:").strip() or None


def parse_chunk(data: str) -> StreamDelta | None:
    """Decode one ``data:`` payload; malformed chunks are logged and skipped."""
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        logger.warning("Skipping malformed stream chunk: %s", data[:200])
        return None
    try:
        return _decode_delta(chunk)
    except (AttributeError, KeyError, TypeError, ValueError):
        logger.warning("Skipping stream chunk with unexpected shape: %s", data[:200])
        return None


def _decode_delta(chunk: Any) -> StreamDelta | None:
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None

    fragments: list[ToolCallFragment] = []
    raw_calls = delta.get("tool_calls")
    for raw in raw_calls if isinstance(raw_calls, list) else []:
        if not isinstance(raw, dict) or raw.get("index") is None:
            continue
        function = raw.get("function")
        if not isinstance(function, dict):
            function = {}
        fragment = ToolCallFragment(
            index=int(raw["index"]),
            id=_text(raw.get("id")) or None,
            name=_text(function.get("name")),
            arguments=_text(function.get("arguments")),
        )
        if fragment.id or fragment.name or fragment.arguments:
            fragments.append(fragment)

    return StreamDelta(
        reasoning=_text(delta.get("reasoning_content")),
        content=_text(delta.get("content")),
        tool_calls=tuple(fragments),
    )


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""
