"""Import of sessions persisted before tree and parts support.

Older sessions stored ``messages`` as a flat array in conversation order, with
``reasoning``, ``toolCalls`` and ``toolResults`` as separate fields. The
original interleaving was not recorded, so parts are synthesized in the fixed
order reasoning, tool-call/tool-result pairs, then text.
"""

from __future__ import annotations

from typing import Any

from chat_core.utils import new_id


def migrate_session(raw: dict[str, Any]) -> dict[str, Any]:
    """Return ``raw`` upgraded in place to the tree schema."""
    messages = raw.get("messages")
    if not isinstance(messages, list):
        # Already arena-shaped (or empty); nothing to infer.
        raw.setdefault("messages", messages or [])
        return raw

    previous_id: str | None = None
    for message in messages:
        if not message.get("id"):
            message["id"] = new_id()
        if message.get("parts") is None:
            message["parts"] = synthesize_parts(message)
        if not _has_tree_fields(message):
            message["parentId"] = previous_id
        if message.get("childrenIds") is None and message.get("children_ids") is None:
            message["childrenIds"] = []
        previous_id = message["id"]

    by_id = {message["id"]: message for message in messages}
    for message in messages:
        parent_id = message.get("parentId") or message.get("parent_id")
        parent = by_id.get(parent_id or "")
        if parent is None:
            if parent_id:
                # Dangling reference: promote to a root so the thread still terminates.
                message.pop("parent_id", None)
                message["parentId"] = None
            continue
        children = parent.get("childrenIds")
        if children is None:
            children = parent.setdefault("children_ids", [])
        if message["id"] not in children:
            children.append(message["id"])

    if "currentLeafId" not in raw and "current_leaf_id" not in raw and messages:
        raw["currentLeafId"] = messages[-1]["id"]
    return raw


def synthesize_parts(message: dict[str, Any]) -> list[dict[str, Any]]:
    """Build a parts array from legacy ``reasoning``/``toolCalls``/``toolResults``/``content``."""
    parts: list[dict[str, Any]] = []
    if message.get("reasoning"):
        parts.append({"id": new_id(), "type": "reasoning", "content": message["reasoning"]})

    results = message.get("toolResults") or []
    for call in message.get("toolCalls") or []:
        parts.append({"id": new_id(), "type": "tool-call", "toolCall": call})
        result = next((r for r in results if r.get("callId") == call.get("id")), None)
        if result is not None:
            parts.append({"id": new_id(), "type": "tool-result", "toolResult": result})

    if message.get("content"):
        parts.append({"id": new_id(), "type": "text", "content": message["content"]})
    return parts


def _has_tree_fields(message: dict[str, Any]) -> bool:
    keys = ("parentId", "parent_id", "childrenIds", "children_ids")
    return any(key in message for key in keys)
