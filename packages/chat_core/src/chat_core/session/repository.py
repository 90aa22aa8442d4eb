"""Session repository.

The repository is the single owner of ``ChatSession`` objects. It is passed
explicitly to the orchestrator and to host code; there is no ambient
"current session".
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from chat_core.errors import UnknownSessionError
from chat_core.session.migration import migrate_session
from chat_core.session.models import DEFAULT_TITLE, ChatSession
from chat_core.session.tree import validate_tree

if TYPE_CHECKING:
    from chat_core.storage import KeyValueStore

logger = logging.getLogger(__name__)

SESSIONS_KEY = "sessions"


class SessionRepository:
    """Load, hold and save chat sessions through a key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._sessions: dict[str, ChatSession] = {}

    def load(self) -> list[ChatSession]:
        """Load persisted sessions, upgrading legacy entries."""
        raw_sessions = self._store.get(SESSIONS_KEY) or []
        self._sessions = {}
        for raw in raw_sessions:
            session = self._decode(raw)
            if session is not None:
                self._sessions[session.id] = session
        logger.info("Loaded %d sessions", len(self._sessions))
        return self.list_sessions()

    def save(self) -> None:
        """Persist every session as one JSON array."""
        payload = [session.to_json_dict() for session in self._sessions.values()]
        self._store.set(SESSIONS_KEY, payload)

    def create_session(
        self,
        *,
        model_id: str | None = None,
        title: str = DEFAULT_TITLE,
        system_prompt: str | None = None,
        temperature: float | None = None,
    ) -> ChatSession:
        """Create an empty session and register it."""
        session = ChatSession(
            title=title,
            model_id=model_id,
            system_prompt=system_prompt,
            temperature=temperature,
        )
        self._sessions[session.id] = session
        return session

    def add(self, session: ChatSession) -> ChatSession:
        """Register an existing session object (e.g. an imported one)."""
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> ChatSession:
        """Return the session or raise ``UnknownSessionError``."""
        session = self._sessions.get(session_id)
        if session is None:
            raise UnknownSessionError(session_id)
        return session

    def delete_session(self, session_id: str) -> bool:
        """Remove a session; return whether it existed."""
        return self._sessions.pop(session_id, None) is not None

    def list_sessions(self) -> list[ChatSession]:
        """Return sessions ordered by most recent update."""
        return sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def _decode(self, raw: dict[str, Any]) -> ChatSession | None:
        try:
            session = ChatSession.model_validate(migrate_session(raw))
        except ValidationError:
            logger.exception("Skipping unreadable session %s", raw.get("id"))
            return None
        problems = validate_tree(session)
        if problems:
            logger.warning(
                "Session %s has %d tree inconsistencies: %s",
                session.id,
                len(problems),
                "; ".join(problems[:5]),
            )
        return session
