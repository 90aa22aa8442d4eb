"""Applies streamed deltas to the in-flight assistant message for one round."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from chat_core.artifacts import ArtifactUpdate
from chat_core.generation.protocol import assistant_entry, tool_call_entry
from chat_core.partial_json import parse_partial_json
from chat_core.session.models import ReasoningPart, TextPart, ToolCall, ToolCallPart
from chat_core.tools.client_tools import ARTIFACT_WRITE_TOOLS
from chat_core.utils import new_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from chat_core.generation.client import StreamDelta, ToolCallFragment
    from chat_core.session.models import Message

logger = logging.getLogger(__name__)


@dataclass
class ToolCallBuffer:
    """Scratch state for one streamed tool call, keyed by its stream index."""

    index: int
    part: ToolCallPart
    id: str | None = None
    name: str = ""
    arguments: str = ""


class RoundAccumulator:
    """Accumulate one round of streamed output into ``message.parts``.

    Reasoning and text extend the last part when it has the same kind, else a
    new part is opened. A tool call gets its part the first time a fragment for
    its index is seen, so part order follows first observation in the stream;
    its arguments stay raw text until ``finalize_tool_calls``.
    """

    def __init__(
        self,
        message: Message,
        *,
        preview: Callable[[ArtifactUpdate], object] | None = None,
    ) -> None:
        self.message = message
        self.text = ""
        self.emitted_chars = 0
        self._preview = preview
        self._buffers: dict[int, ToolCallBuffer] = {}
        self._finalized = False

    @property
    def has_tool_calls(self) -> bool:
        return bool(self._buffers)

    def apply(self, delta: StreamDelta) -> None:
        if delta.reasoning:
            self._append(ReasoningPart, delta.reasoning)
        if delta.content:
            self.text += delta.content
            self._append(TextPart, delta.content)
        for fragment in delta.tool_calls:
            self._apply_fragment(fragment)

    def finalize_tool_calls(self) -> list[tuple[ToolCall, str]]:
        """Parse buffered arguments into the tool-call parts.

        Returns ``(call, raw_arguments)`` pairs in stream-index order. Arguments
        that fail to parse as a JSON object become ``{}``.
        """
        self._finalized = True
        finalized: list[tuple[ToolCall, str]] = []
        for index in sorted(self._buffers):
            buffer = self._buffers[index]
            call = ToolCall(
                id=buffer.id or new_id(),
                name=buffer.name,
                arguments=_parse_arguments(buffer.arguments, buffer.name),
            )
            buffer.part.tool_call = call
            finalized.append((call, buffer.arguments))
        return finalized

    def discard_unfinalized(self) -> None:
        """Drop tool-call parts of a round that ended before its calls were finalized."""
        if self._finalized or not self._buffers:
            return
        pending = {id(buffer.part) for buffer in self._buffers.values()}
        self.message.parts = [part for part in self.message.parts if id(part) not in pending]

    def history_entry(self, calls: list[tuple[ToolCall, str]]) -> dict[str, Any]:
        """Assistant protocol message for this round, carrying the raw tool calls."""
        return assistant_entry(self.text, [tool_call_entry(call, raw or None) for call, raw in calls])

    def _append(self, part_type: type[TextPart] | type[ReasoningPart], chunk: str) -> None:
        self.emitted_chars += len(chunk)
        parts = self.message.parts
        if parts and isinstance(parts[-1], part_type):
            parts[-1].content += chunk
        else:
            parts.append(part_type(content=chunk))

    def _apply_fragment(self, fragment: ToolCallFragment) -> None:
        buffer = self._buffers.get(fragment.index)
        if buffer is None:
            part = ToolCallPart(tool_call=ToolCall(id=fragment.id or "", name=fragment.name))
            buffer = ToolCallBuffer(index=fragment.index, part=part)
            self._buffers[fragment.index] = buffer
            self.message.parts.append(part)
        if fragment.id:
            buffer.id = fragment.id
            buffer.part.tool_call.id = fragment.id
        if fragment.name:
            buffer.name += fragment.name
            buffer.part.tool_call.name = buffer.name
        if fragment.arguments:
            buffer.arguments += fragment.arguments
            self.emitted_chars += len(fragment.arguments)
        if buffer.name in ARTIFACT_WRITE_TOOLS and self._preview is not None:
            self._preview_artifact(buffer)

    def _preview_artifact(self, buffer: ToolCallBuffer) -> None:
        """Best-effort live upsert from partially streamed artifact arguments."""
        partial = parse_partial_json(buffer.arguments)
        if not isinstance(partial, dict) or not partial.get("id"):
            return
        if not (partial.get("content") or partial.get("title")):
            return
        try:
            update = ArtifactUpdate(
                id=str(partial["id"]),
                title=_as_text(partial.get("title")),
                type=_as_text(partial.get("type")),
                content=_as_text(partial.get("content")),
            )
            self._preview(update)
        except Exception:  # noqa: BLE001 - previews never affect the round
            logger.debug("Artifact preview failed for call %s", buffer.id, exc_info=True)


def _parse_arguments(raw: str, name: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse arguments for tool %s; using empty arguments", name)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
