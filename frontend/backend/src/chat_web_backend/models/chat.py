"""Chat turn API models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from chat_web_backend.models.base import ApiModel


class AttachmentPayload(ApiModel):
    name: str
    type: str
    content: str


class ChatRequest(ApiModel):
    """Append a user message and generate the assistant reply.

    ``parentId`` defaults to the session's current leaf.
    """

    content: str
    attachments: list[AttachmentPayload] = Field(default_factory=list)
    parent_id: str | None = Field(default=None, alias="parentId")


class RegenerateRequest(ApiModel):
    message_id: str = Field(alias="messageId")


class CancelResponse(ApiModel):
    cancelled: bool


class TurnChunk(ApiModel):
    """One JSONL line of a streamed turn: a snapshot of the in-flight message."""

    type: str
    session_id: str = Field(alias="sessionId")
    round: int
    message: dict[str, Any]
    tool_call: dict[str, Any] | None = Field(default=None, alias="toolCall")
    tool_result: dict[str, Any] | None = Field(default=None, alias="toolResult")
    outcome: str | None = None
    user_message_id: str | None = Field(default=None, alias="userMessageId")
