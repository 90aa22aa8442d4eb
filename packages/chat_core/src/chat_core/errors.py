"""Exception types raised by the chat core."""

from __future__ import annotations


class ChatCoreError(Exception):
    """Base class for chat core errors."""


class TransportError(ChatCoreError):
    """Model endpoint failed (non-2xx response or connection failure)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnknownSessionError(ChatCoreError, KeyError):
    """Requested session id is not present in the repository."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Unknown session id: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:
        return str(self.args[0])


class TurnInProgressError(ChatCoreError):
    """A generation turn is already running for the session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"A turn is already running for session {session_id}")
        self.session_id = session_id
