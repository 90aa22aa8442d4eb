"""Logging helpers for session correlation."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

_session_id_ctx: ContextVar[str | None] = ContextVar("chat_session_id", default=None)


def get_session_id() -> str | None:
    """Return the session id bound to the current context, if any."""
    return _session_id_ctx.get()


@contextmanager
def session_context(session_id: str) -> Iterator[None]:
    """Bind ``session_id`` to log records emitted inside the block."""
    token = _session_id_ctx.set(session_id)
    try:
        yield
    finally:
        _session_id_ctx.reset(token)


class SessionContextFilter(logging.Filter):
    """Attach the active session id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject session_id into the log record."""
        record.session_id = get_session_id() or "-"
        return True


def install_session_log_filter(loggers: Iterable[logging.Logger] | None = None) -> None:
    """Install session context filters for structured logging.

    Args:
        loggers: Optional iterable of loggers to attach the filter to. Defaults to root logger.
    """
    targets = list(loggers) if loggers is not None else [logging.getLogger()]
    for logger in targets:
        if any(isinstance(flt, SessionContextFilter) for flt in logger.filters):
            continue
        logger.addFilter(SessionContextFilter())
