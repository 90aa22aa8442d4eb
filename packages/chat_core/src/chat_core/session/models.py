"""Pydantic models for branching chat sessions.

Messages live in a per-session arena keyed by id. ``parent_id`` and
``children_ids`` are plain identifiers, so the tree never holds object cycles
and serializes to JSON directly. On the wire, a session's ``messages`` is an
ordered array (insertion order) using camelCase field names.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
)

from chat_core.utils import new_id, now_ms

DEFAULT_TITLE = "New Chat"

Role = Literal["user", "assistant", "system"]
PartType = Literal["text", "reasoning", "tool-call", "tool-result"]


class CoreModel(BaseModel):
    """Base model with camelCase aliases and snake_case population enabled."""

    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


class Attachment(CoreModel):
    """File attached to a user message (data URI for images, text otherwise)."""

    name: str
    type: str
    content: str

    @property
    def is_image(self) -> bool:
        return self.type.startswith("image/")


class ToolCall(CoreModel):
    """A finalized tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _coerce_arguments(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class ToolResult(CoreModel):
    """Outcome of a tool invocation; ``call_id`` references a ToolCall id."""

    call_id: str = Field(alias="callId")
    result: Any = ""
    is_error: bool = Field(default=False, alias="isError")

    def result_text(self) -> str:
        """Return the result as text, JSON-encoding structured values."""
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, ensure_ascii=False, default=str)


class TextPart(CoreModel):
    type: Literal["text"] = "text"
    id: str = Field(default_factory=new_id)
    content: str = ""


class ReasoningPart(CoreModel):
    type: Literal["reasoning"] = "reasoning"
    id: str = Field(default_factory=new_id)
    content: str = ""


class ToolCallPart(CoreModel):
    type: Literal["tool-call"] = "tool-call"
    id: str = Field(default_factory=new_id)
    tool_call: ToolCall = Field(alias="toolCall")


class ToolResultPart(CoreModel):
    type: Literal["tool-result"] = "tool-result"
    id: str = Field(default_factory=new_id)
    tool_result: ToolResult = Field(alias="toolResult")


MessagePart = Annotated[
    TextPart | ReasoningPart | ToolCallPart | ToolResultPart,
    Field(discriminator="type"),
]


class Message(CoreModel):
    """A node in the conversation tree.

    ``parts`` is authoritative. ``content`` and ``reasoning`` are aggregates of
    the text and reasoning parts, kept for display and for older readers.
    """

    id: str = ""
    role: Role
    content: str = ""
    reasoning: str | None = None
    parts: list[MessagePart] = Field(default_factory=list)
    parent_id: str | None = Field(default=None, alias="parentId")
    children_ids: list[str] = Field(default_factory=list, alias="childrenIds")
    timestamp: int = Field(default_factory=now_ms)
    model: str | None = None
    generation_time: int | None = Field(default=None, alias="generationTime")
    tokens_per_second: float | None = Field(default=None, alias="tokensPerSecond")
    attachments: list[Attachment] = Field(default_factory=list)

    def sync_aggregates(self) -> None:
        """Recompute ``content`` and ``reasoning`` from ``parts``."""
        if not self.parts:
            return
        self.content = "".join(p.content for p in self.parts if isinstance(p, TextPart))
        reasoning = "".join(p.content for p in self.parts if isinstance(p, ReasoningPart))
        self.reasoning = reasoning or None

    def ensure_parts(self) -> list[MessagePart]:
        """Rebuild parts from plain content when they were cleared (e.g. after an edit)."""
        if not self.parts and self.content:
            self.parts = [TextPart(content=self.content)]
        return self.parts

    def tool_calls(self) -> list[ToolCall]:
        return [p.tool_call for p in self.parts if isinstance(p, ToolCallPart)]

    def find_tool_call(self, call_id: str) -> ToolCall | None:
        """Return the tool call with ``call_id`` from this message's parts."""
        for call in self.tool_calls():
            if call.id == call_id:
                return call
        return None


class Artifact(CoreModel):
    """Virtual file produced by the model through the artifact tools."""

    id: str
    path: str | None = None
    type: str = "text/plain"
    title: str = ""
    content: str = ""
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")


class EnabledMcpTool(CoreModel):
    """Remote tools enabled for one session; empty ``tool_names`` enables all."""

    server_id: str = Field(alias="serverId")
    tool_names: list[str] = Field(default_factory=list, alias="toolNames")


class ChatSession(CoreModel):
    """A conversation: every message ever created plus the visible leaf."""

    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_TITLE
    model_id: str | None = Field(default=None, alias="modelId")
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    temperature: float | None = None
    messages: dict[str, Message] = Field(default_factory=dict)
    current_leaf_id: str | None = Field(default=None, alias="currentLeafId")
    artifacts: list[Artifact] = Field(default_factory=list)
    enabled_mcp_tools: list[EnabledMcpTool] = Field(default_factory=list, alias="enabledMcpTools")
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")
    # Transient: never persisted.
    is_generating: bool = Field(default=False, exclude=True)

    @field_validator("messages", mode="before")
    @classmethod
    def _index_messages(cls, value: Any) -> Any:
        if isinstance(value, list):
            indexed: dict[str, Any] = {}
            for item in value:
                message_id = item.id if isinstance(item, Message) else item.get("id")
                indexed[message_id] = item
            return indexed
        return value

    @model_serializer(mode="wrap")
    def _serialize(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        messages = data.get("messages")
        if isinstance(messages, dict):
            data["messages"] = list(messages.values())
        return data

    def get_message(self, message_id: str | None) -> Message | None:
        if message_id is None:
            return None
        return self.messages.get(message_id)

    def touch(self) -> None:
        self.updated_at = now_ms()
