"""Branching conversation sessions."""

from chat_core.session import tree
from chat_core.session.migration import migrate_session, synthesize_parts
from chat_core.session.models import (
    DEFAULT_TITLE,
    Artifact,
    Attachment,
    ChatSession,
    EnabledMcpTool,
    Message,
    MessagePart,
    ReasoningPart,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolResult,
    ToolResultPart,
)
from chat_core.session.repository import SessionRepository

__all__ = [
    "DEFAULT_TITLE",
    "Artifact",
    "Attachment",
    "ChatSession",
    "EnabledMcpTool",
    "Message",
    "MessagePart",
    "ReasoningPart",
    "SessionRepository",
    "TextPart",
    "ToolCall",
    "ToolCallPart",
    "ToolResult",
    "ToolResultPart",
    "migrate_session",
    "synthesize_parts",
    "tree",
]
