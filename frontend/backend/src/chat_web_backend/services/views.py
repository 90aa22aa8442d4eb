"""Conversions from core session objects to API payloads."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chat_core import tree

from chat_web_backend.models.sessions import (
    SessionDetailResponse,
    SessionSummary,
    ThreadMessage,
    ThreadResponse,
)

if TYPE_CHECKING:
    from chat_core import ChatSession


def session_summary(session: ChatSession, *, is_generating: bool = False) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        title=session.title,
        modelId=session.model_id,
        messageCount=len(session.messages),
        createdAt=session.created_at,
        updatedAt=session.updated_at,
        isGenerating=is_generating or session.is_generating,
    )


def session_detail(session: ChatSession, *, is_generating: bool = False) -> SessionDetailResponse:
    return SessionDetailResponse(
        session=session.to_json_dict(),
        isGenerating=is_generating or session.is_generating,
    )


def thread_view(session: ChatSession) -> ThreadResponse:
    """The visible thread, each message annotated with its branch position."""
    messages = []
    for message in tree.active_thread(session):
        index, count = tree.branch_info(session, message.id)
        messages.append(
            ThreadMessage(message=message.to_json_dict(), branchIndex=index, branchCount=count)
        )
    return ThreadResponse(
        sessionId=session.id,
        currentLeafId=session.current_leaf_id,
        messages=messages,
    )
