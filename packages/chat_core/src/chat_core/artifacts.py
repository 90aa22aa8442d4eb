"""Virtual-file (artifact) store backed by session objects.

Artifacts are addressed by id or by path. ``upsert`` only overwrites fields
that are present in the update, which lets streaming previews apply partial
tool arguments without erasing what an earlier, fuller update wrote.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import Field

from chat_core.session.models import Artifact, ChatSession, CoreModel
from chat_core.utils import new_id, now_ms

if TYPE_CHECKING:
    from chat_core.session.repository import SessionRepository

logger = logging.getLogger(__name__)


class ArtifactUpdate(CoreModel):
    """Fields for creating or updating an artifact; ``None`` means "leave as is"."""

    id: str | None = None
    path: str | None = None
    type: str | None = None
    title: str | None = None
    content: str | None = None
    created_at: int | None = Field(default=None, alias="createdAt")


class ArtifactStore:
    """Resource collaborator used by the artifact tools and streaming previews."""

    def __init__(self, repository: SessionRepository) -> None:
        self._repository = repository

    def upsert(self, session_id: str, update: ArtifactUpdate) -> Artifact | None:
        """Create or update an artifact keyed on id (preferred) or path.

        Returns the stored artifact, or ``None`` when the session is unknown.
        """
        session = self._repository.get(session_id)
        if session is None:
            logger.debug("Artifact upsert for unknown session %s", session_id)
            return None

        existing = find_artifact(session, update.id) or find_artifact(session, update.path)
        if existing is not None:
            if update.title:
                existing.title = update.title
            if update.type:
                existing.type = update.type
            if update.content:
                existing.content = update.content
            if update.path:
                existing.path = update.path
            existing.updated_at = now_ms()
            session.touch()
            return existing

        artifact = Artifact(
            id=update.id or new_id(),
            path=update.path,
            type=update.type or "text/plain",
            title=update.title or "",
            content=update.content or "",
        )
        if update.created_at is not None:
            artifact.created_at = update.created_at
        session.artifacts.append(artifact)
        session.touch()
        return artifact

    def read(self, session_id: str, identifier: str) -> str | None:
        """Return artifact content by id or path, or ``None`` if not found."""
        session = self._repository.get(session_id)
        if session is None:
            return None
        artifact = find_artifact(session, identifier)
        return artifact.content if artifact is not None else None

    def list_artifacts(self, session_id: str) -> list[Artifact]:
        session = self._repository.get(session_id)
        return list(session.artifacts) if session is not None else []


def find_artifact(session: ChatSession, identifier: str | None) -> Artifact | None:
    """Find an artifact whose id or path matches ``identifier``."""
    if not identifier:
        return None
    for artifact in session.artifacts:
        if artifact.id == identifier:
            return artifact
    for artifact in session.artifacts:
        if artifact.path and artifact.path.lstrip("/") == identifier.lstrip("/"):
            return artifact
    return None
