"""Artifact tools handled in-process against the session's artifact store."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from chat_core.artifacts import ArtifactUpdate
from chat_core.utils import now_ms

if TYPE_CHECKING:
    from chat_core.artifacts import ArtifactStore

CREATE_ARTIFACT = "create_artifact"
UPDATE_ARTIFACT = "update_artifact"
LIST_ARTIFACTS = "list_artifacts"
READ_ARTIFACT = "read_artifact"

# Tools whose streamed arguments are previewed into the artifact store.
ARTIFACT_WRITE_TOOLS = frozenset({CREATE_ARTIFACT, UPDATE_ARTIFACT})

UNKNOWN_CLIENT_TOOL = "Unknown client tool: {name}"


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


CLIENT_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _function(
        CREATE_ARTIFACT,
        "Create a new artifact (virtual file) in the chat. Use this to generate code, HTML, "
        "or other content that should be displayed in a separate pane.",
        {
            "id": {
                "type": "string",
                "description": 'Unique identifier for the artifact (e.g., "weather-app", "todo-list-script").',
            },
            "type": {
                "type": "string",
                "description": 'MIME type of the content (e.g., "text/html", "text/markdown").',
            },
            "title": {"type": "string", "description": "Title of the artifact."},
            "content": {"type": "string", "description": "The content of the artifact."},
        },
        ["id", "type", "title", "content"],
    ),
    _function(
        UPDATE_ARTIFACT,
        "Update the content of an existing artifact.",
        {
            "id": {"type": "string", "description": "The ID of the artifact to update."},
            "content": {"type": "string", "description": "The new content of the artifact."},
        },
        ["id", "content"],
    ),
    _function(LIST_ARTIFACTS, "List all artifacts available in the current chat session.", {}, []),
    _function(
        READ_ARTIFACT,
        "Read the content of a specific artifact.",
        {"id": {"type": "string", "description": "The ID of the artifact to read."}},
        ["id"],
    ),
]

CLIENT_TOOL_NAMES = frozenset(tool["function"]["name"] for tool in CLIENT_TOOL_DEFINITIONS)


class ClientTools:
    """Handlers for the artifact tools. Errors propagate to the executor."""

    def __init__(self, artifacts: ArtifactStore) -> None:
        self._artifacts = artifacts

    def handles(self, name: str) -> bool:
        return name in CLIENT_TOOL_NAMES

    def call(self, name: str, arguments: dict[str, Any], session_id: str) -> str:
        if name == CREATE_ARTIFACT:
            return self._create(arguments, session_id)
        if name == UPDATE_ARTIFACT:
            return self._update(arguments, session_id)
        if name == LIST_ARTIFACTS:
            return self._list(session_id)
        if name == READ_ARTIFACT:
            return self._read(arguments, session_id)
        msg = UNKNOWN_CLIENT_TOOL.format(name=name)
        raise ValueError(msg)

    def _create(self, arguments: dict[str, Any], session_id: str) -> str:
        update = ArtifactUpdate(
            id=_optional_str(arguments.get("id")),
            path=_optional_str(arguments.get("path")),
            type=_optional_str(arguments.get("type")),
            title=_optional_str(arguments.get("title")),
            content=_optional_str(arguments.get("content")),
            created_at=now_ms(),
        )
        if self._artifacts.upsert(session_id, update) is None:
            return "Error: Session not found."
        return f'Artifact "{update.title or update.id}" created successfully.'

    def _update(self, arguments: dict[str, Any], session_id: str) -> str:
        identifier = _optional_str(arguments.get("id")) or _optional_str(arguments.get("path"))
        if not identifier:
            msg = "update_artifact requires an 'id'"
            raise ValueError(msg)
        update = ArtifactUpdate(
            id=identifier,
            title=_optional_str(arguments.get("title")),
            content=_optional_str(arguments.get("content")),
        )
        if self._artifacts.upsert(session_id, update) is None:
            return "Error: Session not found."
        return "Artifact updated successfully."

    def _list(self, session_id: str) -> str:
        summaries = [
            {"id": a.id, "title": a.title, "type": a.type, "createdAt": a.created_at}
            for a in self._artifacts.list_artifacts(session_id)
        ]
        return json.dumps(summaries)

    def _read(self, arguments: dict[str, Any], session_id: str) -> str:
        identifier = _optional_str(arguments.get("id")) or _optional_str(arguments.get("path")) or ""
        content = self._artifacts.read(session_id, identifier)
        if content is None:
            return f'Error: Artifact with ID "{identifier}" not found.'
        return content


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
