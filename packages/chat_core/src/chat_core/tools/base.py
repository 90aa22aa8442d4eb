"""Tool execution contract used by the generation orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from chat_core.session.models import ChatSession


@dataclass(frozen=True)
class ToolOutcome:
    """Textual result of one tool invocation."""

    text: str
    is_error: bool = False


class ToolExecutor(Protocol):
    """Resolve a tool name to a handler and run it.

    ``invoke`` must not raise; failures are reported as ``is_error`` outcomes
    so the model can react to them on the next round.
    """

    async def list_tools(self, session: ChatSession) -> list[dict[str, Any]]: ...

    async def invoke(
        self,
        name: str,
        arguments: dict[str, Any],
        *,
        session_id: str,
    ) -> ToolOutcome: ...
