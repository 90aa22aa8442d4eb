"""Chat turn routes: send, regenerate and cancel."""

from __future__ import annotations

import logging

from chat_core import Attachment, GenerationOrchestrator, Message, SessionRepository, tree
from chat_core.session.models import TextPart
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from chat_web_backend.dependencies import get_orchestrator, get_repository
from chat_web_backend.models.chat import CancelResponse, ChatRequest, RegenerateRequest
from chat_web_backend.routes.sessions import ensure_idle, load_session
from chat_web_backend.services.turns import start_turn_stream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

# Module-level Depends instances to satisfy B008 linter rule
_repository_dep = Depends(get_repository)
_orchestrator_dep = Depends(get_orchestrator)


@router.post("/sessions/{session_id}/chat")
async def send_message(
    session_id: str,
    payload: ChatRequest,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> StreamingResponse:
    """Append the user message and stream the assistant reply as JSONL snapshots."""
    session = load_session(session_id, repository)
    ensure_idle(session, orchestrator)
    if not payload.content.strip() and not payload.attachments:
        raise HTTPException(status_code=400, detail="Message content is empty")

    message = Message(
        role="user",
        content=payload.content,
        parts=[TextPart(content=payload.content)] if payload.content else [],
        attachments=[
            Attachment(name=item.name, type=item.type, content=item.content)
            for item in payload.attachments
        ],
    )
    parent = payload.parent_id if payload.parent_id is not None else tree.CURRENT_LEAF
    try:
        tree.add_message(session, message, parent)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    repository.save()
    logger.info("Queued user message %s in session %s", message.id, session_id)

    return StreamingResponse(
        start_turn_stream(orchestrator, session_id, user_message_id=message.id),
        media_type="application/jsonl",
    )


@router.post("/sessions/{session_id}/regenerate")
async def regenerate(
    session_id: str,
    payload: RegenerateRequest,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> StreamingResponse:
    """Generate a new sibling response for a user or assistant message."""
    session = load_session(session_id, repository)
    ensure_idle(session, orchestrator)
    target = session.get_message(payload.message_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if target.role == "assistant" and target.parent_id is None:
        raise HTTPException(status_code=400, detail="Cannot regenerate a message without a parent")

    return StreamingResponse(
        start_turn_stream(orchestrator, session_id, regenerate_from=payload.message_id),
        media_type="application/jsonl",
    )


@router.post("/sessions/{session_id}/cancel", response_model=CancelResponse)
async def cancel(
    session_id: str,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> CancelResponse:
    """Stop the running turn; partial output is kept."""
    load_session(session_id, repository)
    return CancelResponse(cancelled=orchestrator.cancel(session_id))
