"""Pydantic models for the chat web backend API."""

from chat_web_backend.models.base import ApiModel
from chat_web_backend.models.chat import (
    AttachmentPayload,
    CancelResponse,
    ChatRequest,
    RegenerateRequest,
    TurnChunk,
)
from chat_web_backend.models.sessions import (
    ArtifactListResponse,
    DeleteMessageResponse,
    EditMessageRequest,
    EnabledToolsPayload,
    LeafRequest,
    NavigateRequest,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionListResponse,
    SessionSummary,
    SessionUpdateRequest,
    ThreadMessage,
    ThreadResponse,
)

__all__ = [
    "ApiModel",
    "ArtifactListResponse",
    "AttachmentPayload",
    "CancelResponse",
    "ChatRequest",
    "DeleteMessageResponse",
    "EditMessageRequest",
    "EnabledToolsPayload",
    "LeafRequest",
    "NavigateRequest",
    "RegenerateRequest",
    "SessionCreateRequest",
    "SessionDetailResponse",
    "SessionListResponse",
    "SessionSummary",
    "SessionUpdateRequest",
    "ThreadMessage",
    "ThreadResponse",
    "TurnChunk",
]
