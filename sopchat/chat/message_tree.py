"""
Message Tree

Read-only queries over one chat's message DAG: thread reconstruction, sibling
(branch) navigation and latest-leaf resolution. Nothing here touches storage.

Ordering is always ``(created_at, id)``. Store ids are monotonic, so two
messages with the same timestamp are ordered by insertion.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel

from sopchat.history.models import Message


class BranchInfo(BaseModel):
    """Position of a message among its siblings (``index`` is 1-based)."""

    index: int
    total: int
    prev_sibling_id: int | None = None
    next_sibling_id: int | None = None


def _order_key(message: Message) -> tuple[object, int]:
    return (message.created_at, message.id)


def _by_id(messages: Iterable[Message]) -> dict[int, Message]:
    return {m.id: m for m in messages}


def children_of(messages: Iterable[Message]) -> dict[int | None, list[Message]]:
    """
    Group messages by parent id, each group in creation order.

    Roots are keyed under ``None``. A message whose parent is not in the set is
    treated as a root.
    """
    by_id = _by_id(messages)
    groups: dict[int | None, list[Message]] = {}
    for message in by_id.values():
        parent_id = message.parent_message_id
        if parent_id is not None and parent_id not in by_id:
            parent_id = None
        groups.setdefault(parent_id, []).append(message)
    for group in groups.values():
        group.sort(key=_order_key)
    return groups


def thread(leaf_id: int, messages: Iterable[Message]) -> list[Message]:
    """
    Walk parent pointers from ``leaf_id`` to the root and return root-first.

    A missing parent truncates the thread at that point instead of failing.
    """
    by_id = _by_id(messages)
    chain: list[Message] = []
    seen: set[int] = set()
    current = by_id.get(leaf_id)
    while current is not None and current.id not in seen:
        seen.add(current.id)
        chain.append(current)
        if current.parent_message_id is None:
            break
        current = by_id.get(current.parent_message_id)
    chain.reverse()
    return chain


def _descend(start: Message, groups: dict[int | None, list[Message]]) -> Message:
    current = start
    while groups.get(current.id):
        current = groups[current.id][-1]
    return current


def latest_leaf(messages: Iterable[Message]) -> int | None:
    """Newest root, then newest child at each level, until a leaf is reached."""
    groups = children_of(messages)
    roots = groups.get(None)
    if not roots:
        return None
    return _descend(roots[-1], groups).id


def branch_leaf(message_id: int, messages: Iterable[Message]) -> int | None:
    """Like :func:`latest_leaf` but scoped to the subtree rooted at ``message_id``."""
    messages = list(messages)
    start = _by_id(messages).get(message_id)
    if start is None:
        return None
    return _descend(start, children_of(messages)).id


def siblings(message_id: int, messages: Iterable[Message]) -> list[Message]:
    """All messages sharing ``message_id``'s parent (itself included), in order."""
    messages = list(messages)
    by_id = _by_id(messages)
    target = by_id.get(message_id)
    if target is None:
        return []
    parent_id = target.parent_message_id
    if parent_id is not None and parent_id not in by_id:
        parent_id = None
    return children_of(messages).get(parent_id, [])


def branch_info(message_id: int, messages: Iterable[Message]) -> BranchInfo | None:
    """Sibling position of a message, or ``None`` when it has no siblings."""
    group = siblings(message_id, messages)
    if len(group) <= 1:
        return None
    ids = [m.id for m in group]
    position = ids.index(message_id)
    return BranchInfo(
        index=position + 1,
        total=len(ids),
        prev_sibling_id=ids[position - 1] if position > 0 else None,
        next_sibling_id=ids[position + 1] if position < len(ids) - 1 else None,
    )
