"""Generation turn orchestration.

A turn appends an empty assistant message under the current leaf, streams the
model response into it and runs up to ``MAX_TOOL_ROUNDS`` request rounds while
the model keeps asking for tools. Per-turn phases::

    IDLE -> STREAMING -> (TOOL_EXECUTING -> STREAMING)* -> SETTLED
                      \\-> ABORTED (cancelled) | FAILED (transport/unexpected error)

Partial output is never rolled back. Whatever the outcome, the message gets
its timing metrics, the session's generating flag is cleared and the session
is saved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any, Literal

from chat_core.errors import TransportError, TurnInProgressError
from chat_core.generation.accumulator import RoundAccumulator
from chat_core.generation.protocol import build_protocol_messages, build_request, tool_entry
from chat_core.logging_utils import session_context
from chat_core.session import tree
from chat_core.session.models import DEFAULT_TITLE, Message, TextPart, ToolResult, ToolResultPart
from chat_core.tools.base import ToolOutcome
from chat_core.utils import trim_text

if TYPE_CHECKING:
    from collections.abc import Callable

    from chat_core.artifacts import ArtifactStore, ArtifactUpdate
    from chat_core.config import Settings
    from chat_core.generation.client import ChatCompletionClient
    from chat_core.session.models import ChatSession, ToolCall
    from chat_core.session.repository import SessionRepository
    from chat_core.tools.base import ToolExecutor

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 5
# Rough characters-per-token ratio for the displayed throughput estimate.
CHARS_PER_TOKEN = 4
TITLE_MAX_CHARS = 60
TITLE_PROMPT = (
    "Generate a short, descriptive title (at most six words) for the conversation below. "
    "Reply with the title only."
)
REGENERATE_ROOT_ASSISTANT = "Cannot regenerate an assistant message without a parent"


class TurnPhase(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    SETTLED = "settled"
    ABORTED = "aborted"
    FAILED = "failed"


class TurnOutcome(str, Enum):
    SETTLED = "settled"
    ROUND_CAP = "round_cap"
    ABORTED = "aborted"
    FAILED = "failed"


EventKind = Literal["round_start", "delta", "tool_call", "tool_result", "complete"]


@dataclass(frozen=True)
class TurnEvent:
    """Live update about an in-flight turn. ``message`` is the mutable in-flight message."""

    kind: EventKind
    session_id: str
    message: Message
    round: int = 0
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None
    outcome: TurnOutcome | None = None


@dataclass(frozen=True)
class TurnResult:
    session_id: str
    message_id: str
    outcome: TurnOutcome
    rounds: int
    error: str | None = None


_TERMINAL_PHASE = {
    TurnOutcome.SETTLED: TurnPhase.SETTLED,
    TurnOutcome.ROUND_CAP: TurnPhase.SETTLED,
    TurnOutcome.ABORTED: TurnPhase.ABORTED,
    TurnOutcome.FAILED: TurnPhase.FAILED,
}


class GenerationOrchestrator:
    """Drive assistant turns for sessions held by a ``SessionRepository``."""

    def __init__(
        self,
        repository: SessionRepository,
        client: ChatCompletionClient,
        settings: Settings,
        *,
        tools: ToolExecutor | None = None,
        artifacts: ArtifactStore | None = None,
    ) -> None:
        self._repository = repository
        self._client = client
        self._settings = settings
        self._tools = tools
        self._artifacts = artifacts
        self._tasks: dict[str, asyncio.Task[TurnResult]] = {}
        self._phases: dict[str, TurnPhase] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()

    def phase(self, session_id: str) -> TurnPhase:
        return self._phases.get(session_id, TurnPhase.IDLE)

    def is_running(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def start(
        self,
        session_id: str,
        *,
        listener: Callable[[TurnEvent], None] | None = None,
        regenerate_from: str | None = None,
    ) -> asyncio.Task[TurnResult]:
        """Run a turn as a tracked task so it can be cancelled by session id.

        Raises:
            TurnInProgressError: If a started turn for the session is still running.
        """
        if self.is_running(session_id):
            raise TurnInProgressError(session_id)
        if regenerate_from is not None:
            coro = self.regenerate(session_id, regenerate_from, listener=listener)
        else:
            coro = self.run(session_id, listener=listener)
        task = asyncio.create_task(coro, name=f"turn-{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(partial(self._forget_task, session_id))
        return task

    def cancel(self, session_id: str) -> bool:
        """Cancel the running turn; returns ``False`` when none is running."""
        task = self._tasks.get(session_id)
        if task is None or task.done():
            return False
        logger.info("Cancelling turn for session %s", session_id)
        task.cancel()
        return True

    async def regenerate(
        self,
        session_id: str,
        message_id: str,
        *,
        listener: Callable[[TurnEvent], None] | None = None,
    ) -> TurnResult:
        """Produce a new sibling response for ``message_id``.

        For an assistant message the leaf moves to its parent; for a user
        message the leaf moves to the message itself. The new response is
        appended there, leaving earlier responses reachable as branches.
        """
        session = self._repository.require(session_id)
        target = session.get_message(message_id)
        if target is None:
            raise ValueError(tree.UNKNOWN_MESSAGE_ID)
        anchor = target.parent_id if target.role == "assistant" else target.id
        if anchor is None:
            raise ValueError(REGENERATE_ROOT_ASSISTANT)
        tree.set_current_leaf(session, anchor)
        return await self.run(session_id, listener=listener)

    async def run(
        self,
        session_id: str,
        *,
        listener: Callable[[TurnEvent], None] | None = None,
    ) -> TurnResult:
        """Generate one assistant turn under the session's current leaf.

        Transport and unexpected errors end the turn with an ``Error: ...`` text
        part instead of raising. Cancellation is finalized and re-raised.
        """
        session = self._repository.require(session_id)
        with session_context(session_id):
            return await self._run_turn(session, listener)

    async def wait_for_background(self) -> None:
        """Wait for pending title generation tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def generate_title(self, session_id: str) -> str | None:
        """Ask the model for a short title from the first user/assistant pair."""
        session = self._repository.require(session_id)
        thread = tree.active_thread(session)
        user = next((m for m in thread if m.role == "user" and m.content), None)
        assistant = next((m for m in thread if m.role == "assistant" and m.content), None)
        if user is None or assistant is None:
            return None

        conversation = (
            f"User: {trim_text(user.content, 1000)}\n"
            f"Assistant: {trim_text(assistant.content, 1000)}"
        )
        request = build_request(
            model=session.model_id or self._settings.model_id,
            messages=[
                {"role": "system", "content": TITLE_PROMPT},
                {"role": "user", "content": conversation},
            ],
            sampler=self._settings.sampler,
        )
        title = clean_title(await self._client.complete(request.to_payload()))
        if not title or session.title != DEFAULT_TITLE:
            return None
        session.title = title
        session.touch()
        self._repository.save()
        logger.info("Titled session %s: %s", session_id, title)
        return title

    async def _run_turn(
        self,
        session: ChatSession,
        listener: Callable[[TurnEvent], None] | None,
    ) -> TurnResult:
        thread = tree.active_thread(session)
        first_exchange = not any(m.role == "assistant" for m in thread)
        model_id = session.model_id or self._settings.model_id
        message = tree.add_message(session, Message(role="assistant", model=model_id))
        session.is_generating = True
        history = build_protocol_messages(thread, session.system_prompt or self._settings.system_prompt)

        started = time.monotonic()
        emitted_chars = 0
        rounds = 0
        outcome = TurnOutcome.FAILED
        error: str | None = None
        accumulator: RoundAccumulator | None = None
        try:
            tools = await self._tool_definitions(session)
            for rounds in range(1, MAX_TOOL_ROUNDS + 1):
                self._phases[session.id] = TurnPhase.STREAMING
                self._emit(listener, TurnEvent("round_start", session.id, message, round=rounds))
                accumulator = RoundAccumulator(message, preview=self._artifact_preview(session.id))
                request = build_request(
                    model=model_id,
                    messages=history,
                    sampler=self._settings.sampler,
                    temperature=session.temperature,
                    tools=tools,
                )
                try:
                    async for delta in self._client.stream(request.to_payload()):
                        accumulator.apply(delta)
                        message.sync_aggregates()
                        self._emit(listener, TurnEvent("delta", session.id, message, round=rounds))
                finally:
                    emitted_chars += accumulator.emitted_chars

                if not accumulator.has_tool_calls:
                    outcome = TurnOutcome.SETTLED
                    break

                self._phases[session.id] = TurnPhase.TOOL_EXECUTING
                calls = accumulator.finalize_tool_calls()
                history.append(accumulator.history_entry(calls))
                for call, _raw in calls:
                    await self._execute_tool(session.id, message, call, history, listener, rounds)
            else:
                outcome = TurnOutcome.ROUND_CAP
                logger.warning("Tool round cap of %d reached", MAX_TOOL_ROUNDS)
        except asyncio.CancelledError:
            outcome = TurnOutcome.ABORTED
            logger.info("Turn aborted after %d round(s)", rounds)
            raise
        except TransportError as exc:
            outcome = TurnOutcome.FAILED
            error = str(exc)
            logger.warning("Model request failed: %s", error)
            message.parts.append(error_part(message, error))
        except Exception as exc:
            outcome = TurnOutcome.FAILED
            error = str(exc) or exc.__class__.__name__
            logger.exception("Generation turn failed")
            message.parts.append(error_part(message, error))
        finally:
            if accumulator is not None:
                accumulator.discard_unfinalized()
            self._finish_turn(session, message, started, emitted_chars, outcome)
            self._emit(listener, TurnEvent("complete", session.id, message, round=rounds, outcome=outcome))

        if first_exchange and outcome in (TurnOutcome.SETTLED, TurnOutcome.ROUND_CAP):
            self._maybe_schedule_title(session)
        return TurnResult(session.id, message.id, outcome, rounds, error)

    async def _execute_tool(
        self,
        session_id: str,
        message: Message,
        call: ToolCall,
        history: list[dict[str, Any]],
        listener: Callable[[TurnEvent], None] | None,
        round_number: int,
    ) -> None:
        self._emit(listener, TurnEvent("tool_call", session_id, message, round=round_number, tool_call=call))
        if self._tools is None:
            outcome = ToolOutcome(f"Error: Tool {call.name} not found", is_error=True)
        else:
            outcome = await self._tools.invoke(call.name, call.arguments, session_id=session_id)
        result = ToolResult(call_id=call.id, result=outcome.text, is_error=outcome.is_error)
        message.parts.append(ToolResultPart(tool_result=result))
        history.append(tool_entry(call.id, call.name, outcome.text, hide_rereadable=False))
        self._emit(
            listener,
            TurnEvent("tool_result", session_id, message, round=round_number, tool_call=call, tool_result=result),
        )

    async def _tool_definitions(self, session: ChatSession) -> list[dict[str, Any]] | None:
        if self._tools is None or not self._settings.supports_function_calling:
            return None
        return await self._tools.list_tools(session) or None

    def _artifact_preview(self, session_id: str) -> Callable[[ArtifactUpdate], object] | None:
        if self._artifacts is None:
            return None
        return partial(self._artifacts.upsert, session_id)

    def _finish_turn(
        self,
        session: ChatSession,
        message: Message,
        started: float,
        emitted_chars: int,
        outcome: TurnOutcome,
    ) -> None:
        elapsed = time.monotonic() - started
        message.generation_time = int(elapsed * 1000)
        message.tokens_per_second = round(emitted_chars / CHARS_PER_TOKEN / elapsed, 2) if elapsed > 0 else None
        message.sync_aggregates()
        session.is_generating = False
        session.touch()
        self._phases[session.id] = _TERMINAL_PHASE[outcome]
        self._repository.save()
        logger.info(
            "Turn finished: outcome=%s time_ms=%d tokens_per_second=%s",
            outcome.value,
            message.generation_time,
            message.tokens_per_second,
        )

    def _maybe_schedule_title(self, session: ChatSession) -> None:
        if not self._settings.title_generation_enabled or session.title != DEFAULT_TITLE:
            return
        task = asyncio.create_task(self._title_in_background(session.id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _title_in_background(self, session_id: str) -> None:
        with session_context(session_id):
            try:
                await self.generate_title(session_id)
            except Exception:  # noqa: BLE001 - titles are cosmetic
                logger.exception("Title generation failed")

    def _forget_task(self, session_id: str, task: asyncio.Task[TurnResult]) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]

    def _emit(self, listener: Callable[[TurnEvent], None] | None, event: TurnEvent) -> None:
        if listener is None:
            return
        try:
            listener(event)
        except Exception:  # noqa: BLE001 - a broken listener must not end the turn
            logger.exception("Turn listener failed on %s event", event.kind)


def error_part(message: Message, error: str) -> TextPart:
    """Visible error text, set apart from any partial answer already streamed."""
    separator = "\n\n" if message.content else ""
    return TextPart(content=f"{separator}Error: {error}")


def clean_title(raw: str) -> str:
    """Reduce a model reply to a single-line title."""
    line = next((candidate.strip() for candidate in raw.splitlines() if candidate.strip()), "")
    line = line.removeprefix("Title:").strip().strip("\"'`*").rstrip(".").strip()
    return trim_text(line, TITLE_MAX_CHARS)
