"""Conversion of the active thread into OpenAI-compatible chat messages.

One stored assistant message may expand into several protocol messages: its
parts are replayed as ``assistant(tool_calls) -> tool -> assistant`` in the
order they were produced. Reasoning is never sent back to the model.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from chat_core.session.models import Message, TextPart, ToolCallPart, ToolResultPart
from chat_core.tools.client_tools import READ_ARTIFACT

if TYPE_CHECKING:
    from collections.abc import Iterable

    from chat_core.config import SamplerSettings
    from chat_core.session.models import Attachment, ToolCall

logger = logging.getLogger(__name__)

HIDDEN_ARTIFACT_CONTENT = "(Artifact content hidden to save context. Read again if needed.)"
FILE_ATTACHMENT_TEMPLATE = "\n\n--- File: {name} ---\n{content}\n"

# Results of these tools are re-readable on demand, so they are not replayed.
REREADABLE_TOOLS = frozenset({READ_ARTIFACT})


class ChatCompletionRequest(BaseModel):
    """Body of ``POST /chat/completions``."""

    model: str
    messages: list[dict[str, Any]]
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    min_p: float | None = None
    stream: bool = True
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def build_request(
    *,
    model: str,
    messages: list[dict[str, Any]],
    sampler: SamplerSettings,
    temperature: float | None = None,
    tools: list[dict[str, Any]] | None = None,
) -> ChatCompletionRequest:
    """Assemble a streaming request; ``temperature`` overrides the sampler default."""
    return ChatCompletionRequest(
        model=model,
        messages=messages,
        temperature=temperature if temperature is not None else sampler.temperature,
        top_p=sampler.top_p,
        top_k=sampler.top_k,
        min_p=sampler.min_p,
        tools=tools or None,
        tool_choice="auto" if tools else None,
    )


def build_protocol_messages(thread: Iterable[Message], system_prompt: str | None = None) -> list[dict[str, Any]]:
    """Flatten a root-to-leaf thread into provider messages."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    for message in thread:
        if message.role == "assistant" and message.parts:
            messages.extend(_expand_assistant(message))
        elif message.role == "assistant" and not message.content:
            # Empty placeholder (e.g. the in-flight message); nothing to replay.
            continue
        else:
            messages.append({"role": message.role, "content": _user_content(message)})
    return messages


def tool_call_entry(call: ToolCall, raw_arguments: str | None = None) -> dict[str, Any]:
    """Protocol form of a tool call; ``raw_arguments`` preserves the streamed text."""
    arguments = raw_arguments if raw_arguments is not None else json.dumps(call.arguments)
    return {"id": call.id, "type": "function", "function": {"name": call.name, "arguments": arguments}}


def assistant_entry(content: str, tool_calls: list[dict[str, Any]]) -> dict[str, Any]:
    entry: dict[str, Any] = {"role": "assistant", "content": content or None}
    if tool_calls:
        entry["tool_calls"] = tool_calls
    return entry


def tool_entry(call_id: str, name: str | None, content: str, *, hide_rereadable: bool = True) -> dict[str, Any]:
    """Protocol tool message; replayed results of re-readable tools become a placeholder."""
    if hide_rereadable and name in REREADABLE_TOOLS:
        content = HIDDEN_ARTIFACT_CONTENT
    entry: dict[str, Any] = {"role": "tool", "tool_call_id": call_id, "content": content}
    if name:
        entry["name"] = name
    return entry


def _expand_assistant(message: Message) -> list[dict[str, Any]]:
    expanded: list[dict[str, Any]] = []
    pending_text = ""
    pending_calls: list[dict[str, Any]] = []
    emitted_calls: set[str] = set()
    answered = {p.tool_result.call_id for p in message.parts if isinstance(p, ToolResultPart)}

    for part in message.parts:
        if isinstance(part, TextPart):
            pending_text += part.content
        elif isinstance(part, ToolCallPart):
            # A call without a result (cancelled round) would leave the provider waiting for one.
            if part.tool_call.id in answered:
                pending_calls.append(tool_call_entry(part.tool_call))
        elif isinstance(part, ToolResultPart):
            result = part.tool_result
            call = message.find_tool_call(result.call_id)
            if call is None:
                logger.warning("Dropping tool result %s with no matching call in %s", result.call_id, message.id)
                continue
            if pending_text or pending_calls:
                expanded.append(assistant_entry(pending_text, pending_calls))
                emitted_calls.update(entry["id"] for entry in pending_calls)
                pending_text = ""
                pending_calls = []
            if result.call_id not in emitted_calls:
                logger.warning("Dropping tool result %s that precedes its call in %s", result.call_id, message.id)
                continue
            expanded.append(tool_entry(result.call_id, call.name, result.result_text()))

    if pending_text or pending_calls:
        expanded.append(assistant_entry(pending_text, pending_calls))
    return expanded


def _user_content(message: Message) -> str | list[dict[str, Any]]:
    attachments = message.attachments
    if not attachments:
        return message.content
    if any(attachment.is_image for attachment in attachments):
        content_parts: list[dict[str, Any]] = []
        if message.content:
            content_parts.append({"type": "text", "text": message.content})
        for attachment in attachments:
            if attachment.is_image:
                content_parts.append({"type": "image_url", "image_url": {"url": attachment.content}})
            else:
                content_parts.append({"type": "text", "text": _file_block(attachment)})
        return content_parts
    return message.content + "".join(_file_block(attachment) for attachment in attachments)


def _file_block(attachment: Attachment) -> str:
    return FILE_ATTACHMENT_TEMPLATE.format(name=attachment.name, content=attachment.content)
