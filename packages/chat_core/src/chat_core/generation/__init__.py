"""Streaming generation: protocol codec, endpoint client and turn orchestration."""

from chat_core.generation.accumulator import RoundAccumulator
from chat_core.generation.client import ChatCompletionClient, StreamDelta, ToolCallFragment, parse_chunk
from chat_core.generation.orchestrator import (
    MAX_TOOL_ROUNDS,
    GenerationOrchestrator,
    TurnEvent,
    TurnOutcome,
    TurnPhase,
    TurnResult,
    clean_title,
)
from chat_core.generation.protocol import (
    HIDDEN_ARTIFACT_CONTENT,
    ChatCompletionRequest,
    build_protocol_messages,
    build_request,
)

__all__ = [
    "HIDDEN_ARTIFACT_CONTENT",
    "MAX_TOOL_ROUNDS",
    "ChatCompletionClient",
    "ChatCompletionRequest",
    "GenerationOrchestrator",
    "RoundAccumulator",
    "StreamDelta",
    "ToolCallFragment",
    "TurnEvent",
    "TurnOutcome",
    "TurnPhase",
    "TurnResult",
    "build_protocol_messages",
    "build_request",
    "clean_title",
    "parse_chunk",
]
