"""Session, branch navigation and artifact routes.

Routes that mutate a session are coroutines, so they run on the event loop
alongside generation turns instead of on worker threads.
"""

from __future__ import annotations

import logging
from typing import Any

from chat_core import (
    DEFAULT_TITLE,
    ArtifactStore,
    ChatSession,
    GenerationOrchestrator,
    SessionRepository,
    tree,
)
from chat_core.artifacts import find_artifact
from chat_core.session.models import EnabledMcpTool
from fastapi import APIRouter, Depends, HTTPException

from chat_web_backend.dependencies import get_artifacts, get_orchestrator, get_repository
from chat_web_backend.models.sessions import (
    ArtifactListResponse,
    DeleteMessageResponse,
    EditMessageRequest,
    LeafRequest,
    NavigateRequest,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionListResponse,
    SessionUpdateRequest,
    ThreadResponse,
)
from chat_web_backend.services.views import session_detail, session_summary, thread_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sessions"])

# Module-level Depends instances to satisfy B008 linter rule
_repository_dep = Depends(get_repository)
_orchestrator_dep = Depends(get_orchestrator)
_artifacts_dep = Depends(get_artifacts)


def load_session(session_id: str, repository: SessionRepository) -> ChatSession:
    session = repository.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def ensure_idle(session: ChatSession, orchestrator: GenerationOrchestrator) -> None:
    """Reject tree mutations while a turn is writing into the session."""
    if session.is_generating or orchestrator.is_running(session.id):
        raise HTTPException(status_code=409, detail="A response is being generated for this session")


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> SessionListResponse:
    """List sessions, most recently updated first."""
    return SessionListResponse(
        sessions=[
            session_summary(session, is_generating=orchestrator.is_running(session.id))
            for session in repository.list_sessions()
        ]
    )


@router.post("/sessions", response_model=SessionDetailResponse)
async def create_session(
    payload: SessionCreateRequest,
    repository: SessionRepository = _repository_dep,
) -> SessionDetailResponse:
    session = repository.create_session(
        title=payload.title or DEFAULT_TITLE,
        model_id=payload.model_id,
        system_prompt=payload.system_prompt,
        temperature=payload.temperature,
    )
    repository.save()
    logger.info("Created session %s", session.id)
    return session_detail(session)


@router.get("/sessions/{session_id}", response_model=SessionDetailResponse)
def get_session(
    session_id: str,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> SessionDetailResponse:
    session = load_session(session_id, repository)
    return session_detail(session, is_generating=orchestrator.is_running(session_id))


@router.patch("/sessions/{session_id}", response_model=SessionDetailResponse)
async def update_session(
    session_id: str,
    payload: SessionUpdateRequest,
    repository: SessionRepository = _repository_dep,
) -> SessionDetailResponse:
    """Apply the fields present in the body; explicit nulls clear optional settings."""
    session = load_session(session_id, repository)
    provided = payload.model_fields_set
    if "title" in provided and payload.title:
        session.title = payload.title
    if "model_id" in provided:
        session.model_id = payload.model_id
    if "system_prompt" in provided:
        session.system_prompt = payload.system_prompt
    if "temperature" in provided:
        session.temperature = payload.temperature
    if "enabled_mcp_tools" in provided:
        session.enabled_mcp_tools = [
            EnabledMcpTool(server_id=item.server_id, tool_names=item.tool_names)
            for item in payload.enabled_mcp_tools or []
        ]
    session.touch()
    repository.save()
    return session_detail(session)


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> dict[str, bool]:
    session = load_session(session_id, repository)
    ensure_idle(session, orchestrator)
    repository.delete_session(session_id)
    repository.save()
    logger.info("Deleted session %s", session_id)
    return {"deleted": True}


@router.get("/sessions/{session_id}/thread", response_model=ThreadResponse)
def get_thread(session_id: str, repository: SessionRepository = _repository_dep) -> ThreadResponse:
    """Return the visible root-to-leaf thread."""
    return thread_view(load_session(session_id, repository))


@router.post("/sessions/{session_id}/messages/{message_id}/edit", response_model=ThreadResponse)
async def edit_message(
    session_id: str,
    message_id: str,
    payload: EditMessageRequest,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> ThreadResponse:
    """Fork an edited sibling of the message; the original branch is kept."""
    session = load_session(session_id, repository)
    ensure_idle(session, orchestrator)
    if tree.edit_message(session, message_id, payload.content) is None:
        raise HTTPException(status_code=404, detail="Message not found")
    repository.save()
    return thread_view(session)


@router.delete("/sessions/{session_id}/messages/{message_id}", response_model=DeleteMessageResponse)
async def delete_message(
    session_id: str,
    message_id: str,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> DeleteMessageResponse:
    """Delete the message and its whole subtree."""
    session = load_session(session_id, repository)
    ensure_idle(session, orchestrator)
    if session.get_message(message_id) is None:
        raise HTTPException(status_code=404, detail="Message not found")
    removed = tree.delete_message(session, message_id)
    repository.save()
    return DeleteMessageResponse(removed=sorted(removed), thread=thread_view(session))


@router.post("/sessions/{session_id}/messages/{message_id}/navigate", response_model=ThreadResponse)
async def navigate(
    session_id: str,
    message_id: str,
    payload: NavigateRequest,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> ThreadResponse:
    """Switch to the previous or next sibling branch of the message."""
    session = load_session(session_id, repository)
    ensure_idle(session, orchestrator)
    if session.get_message(message_id) is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if tree.navigate_branch(session, message_id, payload.direction) is not None:
        repository.save()
    return thread_view(session)


@router.post("/sessions/{session_id}/leaf", response_model=ThreadResponse)
async def set_leaf(
    session_id: str,
    payload: LeafRequest,
    repository: SessionRepository = _repository_dep,
    orchestrator: GenerationOrchestrator = _orchestrator_dep,
) -> ThreadResponse:
    """Make an arbitrary message the visible leaf."""
    session = load_session(session_id, repository)
    ensure_idle(session, orchestrator)
    try:
        tree.set_current_leaf(session, payload.message_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    repository.save()
    return thread_view(session)


@router.get("/sessions/{session_id}/artifacts", response_model=ArtifactListResponse)
def list_artifacts(
    session_id: str,
    repository: SessionRepository = _repository_dep,
    artifacts: ArtifactStore = _artifacts_dep,
) -> ArtifactListResponse:
    load_session(session_id, repository)
    return ArtifactListResponse(
        artifacts=[artifact.to_json_dict() for artifact in artifacts.list_artifacts(session_id)]
    )


@router.get("/sessions/{session_id}/artifacts/{identifier:path}")
def get_artifact(
    session_id: str,
    identifier: str,
    repository: SessionRepository = _repository_dep,
) -> dict[str, Any]:
    """Fetch one artifact by id or path."""
    artifact = find_artifact(load_session(session_id, repository), identifier)
    if artifact is None:
        raise HTTPException(status_code=404, detail="Artifact not found")
    return artifact.to_json_dict()
