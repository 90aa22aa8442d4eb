"""Conversation tree operations.

Every function here mutates a ``ChatSession`` in place and keeps the tree
invariants: parent/child links are symmetric, the graph is a forest, and
``current_leaf_id`` is either ``None`` or an id present in the session.
Operations that receive an unknown id for a delete or navigate are no-ops.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from chat_core.session.models import ChatSession, Message
from chat_core.utils import new_id, now_ms

logger = logging.getLogger(__name__)

UNKNOWN_PARENT_ID = "Unknown parent message id"
UNKNOWN_MESSAGE_ID = "Unknown message id"
DUPLICATE_MESSAGE_ID = "Duplicate message id"

Direction = Literal["prev", "next"]

# Default for ``add_message``: append under the visible tip. Passing ``None``
# explicitly creates a new root instead.
CURRENT_LEAF: Any = object()


def add_message(
    session: ChatSession,
    message: Message,
    parent_id: str | None = CURRENT_LEAF,
) -> Message:
    """Register ``message`` under ``parent_id`` and make it the new leaf."""
    parent = session.current_leaf_id if parent_id is CURRENT_LEAF else parent_id
    if parent is not None and parent not in session.messages:
        raise ValueError(UNKNOWN_PARENT_ID)
    if not message.id:
        message.id = new_id()
    if message.id in session.messages:
        raise ValueError(DUPLICATE_MESSAGE_ID)

    message.parent_id = parent
    message.children_ids = []
    if parent is not None:
        session.messages[parent].children_ids.append(message.id)
    session.messages[message.id] = message
    session.current_leaf_id = message.id
    session.touch()
    return message


def edit_message(session: ChatSession, message_id: str, new_content: str) -> Message | None:
    """Fork a sibling of ``message_id`` carrying ``new_content``.

    The original message and its subtree are left untouched. The sibling starts
    with no parts (they are rebuilt lazily from ``content``) and no children.
    """
    original = session.messages.get(message_id)
    if original is None:
        logger.debug("edit_message: unknown message %s in session %s", message_id, session.id)
        return None

    sibling = original.model_copy(
        update={
            "id": new_id(),
            "content": new_content,
            "parts": [],
            "reasoning": None,
            "children_ids": [],
            "timestamp": now_ms(),
            "generation_time": None,
            "tokens_per_second": None,
        },
        deep=True,
    )
    parent = session.get_message(original.parent_id)
    if parent is not None:
        parent.children_ids.append(sibling.id)
    session.messages[sibling.id] = sibling
    session.current_leaf_id = sibling.id
    session.touch()
    return sibling


def delete_message(session: ChatSession, message_id: str) -> set[str]:
    """Delete ``message_id`` and its whole subtree; return the removed ids.

    If the visible leaf was removed, the thread now ends at the deleted
    message's former parent. No surviving sibling is selected automatically.
    """
    target = session.messages.get(message_id)
    if target is None:
        logger.debug("delete_message: unknown message %s in session %s", message_id, session.id)
        return set()

    parent = session.get_message(target.parent_id)
    if parent is not None:
        parent.children_ids = [cid for cid in parent.children_ids if cid != message_id]

    doomed = subtree_ids(session, message_id)
    for doomed_id in doomed:
        session.messages.pop(doomed_id, None)

    if session.current_leaf_id in doomed:
        session.current_leaf_id = parent.id if parent is not None else None
    session.touch()
    return doomed


def prune_after(session: ChatSession, message_id: str, *, inclusive: bool = False) -> set[str]:
    """Delete every branch below ``message_id`` (and the message itself if ``inclusive``)."""
    message = session.messages.get(message_id)
    if message is None:
        return set()
    if inclusive:
        return delete_message(session, message_id)
    removed: set[str] = set()
    for child_id in list(message.children_ids):
        removed |= delete_message(session, child_id)
    return removed


def navigate_branch(session: ChatSession, message_id: str, direction: Direction) -> str | None:
    """Switch to the previous/next sibling of ``message_id`` (wrapping around).

    The new leaf is found by descending from the chosen sibling through the
    most recently created child at each level. Returns the new leaf id, or
    ``None`` when nothing changed.
    """
    message = session.messages.get(message_id)
    if message is None or message.parent_id is None:
        return None
    parent = session.messages.get(message.parent_id)
    if parent is None or message_id not in parent.children_ids:
        return None

    siblings = parent.children_ids
    index = siblings.index(message_id)
    index = index - 1 if direction == "prev" else index + 1
    if index < 0:
        index = len(siblings) - 1
    if index >= len(siblings):
        index = 0

    leaf_id = descend_to_leaf(session, siblings[index])
    if leaf_id is None:
        return None
    session.current_leaf_id = leaf_id
    session.touch()
    return leaf_id


def descend_to_leaf(session: ChatSession, message_id: str) -> str | None:
    """Follow the last child from ``message_id`` until a leaf is reached."""
    current = session.messages.get(message_id)
    steps = 0
    while current is not None and current.children_ids and steps <= len(session.messages):
        child = session.messages.get(current.children_ids[-1])
        if child is None:
            break
        current = child
        steps += 1
    return current.id if current is not None else None


def set_current_leaf(session: ChatSession, message_id: str) -> None:
    """Jump directly to ``message_id`` (e.g. picked from a tree map)."""
    if message_id not in session.messages:
        raise ValueError(UNKNOWN_MESSAGE_ID)
    session.current_leaf_id = message_id
    session.touch()


def active_thread(session: ChatSession) -> list[Message]:
    """Return the root-to-leaf path ending at ``current_leaf_id``."""
    thread: list[Message] = []
    seen: set[str] = set()
    current = session.get_message(session.current_leaf_id)
    while current is not None:
        if current.id in seen:
            logger.warning("Cycle detected at message %s in session %s", current.id, session.id)
            break
        seen.add(current.id)
        thread.append(current)
        current = session.get_message(current.parent_id)
    thread.reverse()
    return thread


def roots(session: ChatSession) -> list[str]:
    """Return ids of messages without a parent, in creation order."""
    return [m.id for m in session.messages.values() if m.parent_id is None]


def branch_info(session: ChatSession, message_id: str) -> tuple[int, int]:
    """Return ``(index, count)`` of ``message_id`` among its siblings.

    Root messages are compared against the other roots. Unknown ids yield ``(0, 0)``.
    """
    message = session.messages.get(message_id)
    if message is None:
        return 0, 0
    parent = session.get_message(message.parent_id)
    siblings = parent.children_ids if parent is not None else roots(session)
    if message_id not in siblings:
        return 0, len(siblings)
    return siblings.index(message_id), len(siblings)


def subtree_ids(session: ChatSession, message_id: str) -> set[str]:
    """Collect ``message_id`` and all descendants reachable through ``children_ids``."""
    collected: set[str] = set()
    stack = [message_id]
    while stack:
        current_id = stack.pop()
        if current_id in collected:
            continue
        collected.add(current_id)
        message = session.messages.get(current_id)
        if message is not None:
            stack.extend(message.children_ids)
    return collected


def validate_tree(session: ChatSession) -> list[str]:
    """Return a list of invariant violations (empty when the tree is consistent)."""
    problems: list[str] = []
    messages = session.messages
    for message in messages.values():
        if message.parent_id is not None:
            parent = messages.get(message.parent_id)
            if parent is None:
                problems.append(f"{message.id}: parent {message.parent_id} missing")
            elif message.id not in parent.children_ids:
                problems.append(f"{message.id}: not listed in parent {parent.id} children")
        problems.extend(_check_children(session, message))
        if not _reaches_root(session, message):
            problems.append(f"{message.id}: ancestor chain does not reach a root")
    leaf = session.current_leaf_id
    if leaf is not None and leaf not in messages:
        problems.append(f"current leaf {leaf} missing")
    return problems


def _check_children(session: ChatSession, message: Message) -> list[str]:
    problems: list[str] = []
    for child_id in message.children_ids:
        child = session.messages.get(child_id)
        if child is None:
            problems.append(f"{message.id}: child {child_id} missing")
        elif child.parent_id != message.id:
            problems.append(f"{message.id}: child {child_id} points to {child.parent_id}")
    return problems


def _reaches_root(session: ChatSession, message: Message) -> bool:
    current: Message | None = message
    for _ in range(len(session.messages) + 1):
        if current is None:
            return False
        if current.parent_id is None:
            return True
        current = session.messages.get(current.parent_id)
    return False
