from chat_core.artifacts import ArtifactStore, ArtifactUpdate
from chat_core.config import McpServerConfig, SamplerSettings, Settings, load_settings
from chat_core.errors import ChatCoreError, TransportError, TurnInProgressError, UnknownSessionError
from chat_core.generation import (
    MAX_TOOL_ROUNDS,
    ChatCompletionClient,
    GenerationOrchestrator,
    StreamDelta,
    TurnEvent,
    TurnOutcome,
    TurnPhase,
    TurnResult,
    build_protocol_messages,
)
from chat_core.logging_utils import SessionContextFilter, install_session_log_filter, session_context
from chat_core.partial_json import parse_partial_json, repair_json
from chat_core.session import (
    DEFAULT_TITLE,
    Artifact,
    Attachment,
    ChatSession,
    Message,
    SessionRepository,
    migrate_session,
    tree,
)
from chat_core.storage import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from chat_core.tools import CompositeToolExecutor, MCPToolClient, ToolExecutor, ToolOutcome

__all__ = [
    "DEFAULT_TITLE",
    "MAX_TOOL_ROUNDS",
    "Artifact",
    "ArtifactStore",
    "ArtifactUpdate",
    "Attachment",
    "ChatCompletionClient",
    "ChatCoreError",
    "ChatSession",
    "CompositeToolExecutor",
    "GenerationOrchestrator",
    "KeyValueStore",
    "MCPToolClient",
    "McpServerConfig",
    "MemoryKeyValueStore",
    "Message",
    "SQLiteKeyValueStore",
    "SamplerSettings",
    "SessionContextFilter",
    "SessionRepository",
    "Settings",
    "StreamDelta",
    "ToolExecutor",
    "ToolOutcome",
    "TransportError",
    "TurnEvent",
    "TurnInProgressError",
    "TurnOutcome",
    "TurnPhase",
    "TurnResult",
    "UnknownSessionError",
    "build_protocol_messages",
    "install_session_log_filter",
    "load_settings",
    "migrate_session",
    "parse_partial_json",
    "repair_json",
    "session_context",
    "tree",
]
