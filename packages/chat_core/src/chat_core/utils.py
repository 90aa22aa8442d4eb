"""Shared utilities for the chat core."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from uuid import uuid4


def utc_timestamp() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    """Generate a new message/part identifier."""
    return str(uuid4())


def trim_text(text: str, limit: int) -> str:
    """Collapse whitespace and trim text to ``limit`` characters."""
    trimmed = " ".join(text.split())
    if len(trimmed) <= limit:
        return trimmed
    return trimmed[: limit - 3].rstrip() + "..."
