"""Session, thread and artifact API models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from chat_web_backend.models.base import ApiModel


class SessionSummary(ApiModel):
    """Session summary payload for list responses."""

    id: str
    title: str
    model_id: str | None = Field(default=None, alias="modelId")
    message_count: int = Field(alias="messageCount")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")
    is_generating: bool = Field(default=False, alias="isGenerating")


class SessionListResponse(ApiModel):
    sessions: list[SessionSummary]


class SessionCreateRequest(ApiModel):
    """Request payload for creating a session."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    model_id: str | None = Field(default=None, alias="modelId")
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)


class EnabledToolsPayload(ApiModel):
    server_id: str = Field(alias="serverId")
    tool_names: list[str] = Field(default_factory=list, alias="toolNames")


class SessionUpdateRequest(ApiModel):
    """Partial session update; only fields present in the body are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    model_id: str | None = Field(default=None, alias="modelId")
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    enabled_mcp_tools: list[EnabledToolsPayload] | None = Field(default=None, alias="enabledMcpTools")


class SessionDetailResponse(ApiModel):
    """Full session document (camelCase wire form) plus transient state."""

    session: dict[str, Any]
    is_generating: bool = Field(default=False, alias="isGenerating")


class ThreadMessage(ApiModel):
    """A message on the visible thread with its sibling position."""

    message: dict[str, Any]
    branch_index: int = Field(alias="branchIndex")
    branch_count: int = Field(alias="branchCount")


class ThreadResponse(ApiModel):
    session_id: str = Field(alias="sessionId")
    current_leaf_id: str | None = Field(default=None, alias="currentLeafId")
    messages: list[ThreadMessage]


class EditMessageRequest(ApiModel):
    content: str


class NavigateRequest(ApiModel):
    direction: Literal["prev", "next"]


class LeafRequest(ApiModel):
    message_id: str = Field(alias="messageId")


class DeleteMessageResponse(ApiModel):
    removed: list[str]
    thread: ThreadResponse


class ArtifactListResponse(ApiModel):
    artifacts: list[dict[str, Any]]
