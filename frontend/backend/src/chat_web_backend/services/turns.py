"""Bridge orchestrator turn events onto a JSONL byte stream."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from chat_web_backend.models.chat import TurnChunk

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from chat_core import GenerationOrchestrator, TurnEvent, TurnResult

logger = logging.getLogger(__name__)


def encode_event(event: TurnEvent, *, user_message_id: str | None = None) -> bytes:
    """Snapshot the in-flight message as one JSONL line.

    The message keeps mutating after the event fires, so it is serialized here
    rather than when the line is written.
    """
    return TurnChunk(
        type=event.kind,
        sessionId=event.session_id,
        round=event.round,
        message=event.message.to_json_dict(),
        toolCall=event.tool_call.to_json_dict() if event.tool_call is not None else None,
        toolResult=event.tool_result.to_json_dict() if event.tool_result is not None else None,
        outcome=event.outcome.value if event.outcome is not None else None,
        userMessageId=user_message_id if event.kind == "complete" else None,
    ).to_jsonl()


def start_turn_stream(
    orchestrator: GenerationOrchestrator,
    session_id: str,
    *,
    regenerate_from: str | None = None,
    user_message_id: str | None = None,
) -> AsyncGenerator[bytes]:
    """Start the turn now and return a generator over its JSONL events.

    Must be called on the event loop. The turn is registered before the
    response body is sent, so a concurrent request sees it as running.
    """
    queue: asyncio.Queue[bytes | None] = asyncio.Queue()

    def listener(event: TurnEvent) -> None:
        queue.put_nowait(encode_event(event, user_message_id=user_message_id))

    task = orchestrator.start(session_id, listener=listener, regenerate_from=regenerate_from)
    task.add_done_callback(lambda _task: queue.put_nowait(None))
    return _drain(orchestrator, session_id, task, queue)


async def _drain(
    orchestrator: GenerationOrchestrator,
    session_id: str,
    task: asyncio.Task[TurnResult],
    queue: asyncio.Queue[bytes | None],
) -> AsyncGenerator[bytes]:
    """Yield queued lines until the turn task finishes; a client that goes away cancels the turn."""
    try:
        while True:
            line = await queue.get()
            if line is None:
                break
            yield line
    finally:
        if not task.done():
            logger.info("Client went away; cancelling turn for session %s", session_id)
            orchestrator.cancel(session_id)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Turn task for session %s failed: %s", session_id, task.exception())
