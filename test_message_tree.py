#!/usr/bin/env python3
"""
Tests for the message DAG queries: threads, latest leaf, branches.
"""

from datetime import UTC, datetime, timedelta

from sopchat.chat.message_tree import (
    branch_info,
    branch_leaf,
    children_of,
    latest_leaf,
    siblings,
    thread,
)
from sopchat.history.models import Message

BASE = datetime(2026, 1, 1, tzinfo=UTC)


def msg(message_id, parent=None, seconds=None, role="user"):
    return Message(
        id=message_id,
        chat_id=1,
        role=role,
        content=f"m{message_id}",
        parent_message_id=parent,
        created_at=BASE + timedelta(seconds=message_id if seconds is None else seconds),
    )


def sample_tree():
    """
    1 -> 2 -> 3
           -> 4 -> 5
      -> 6
    """
    return [msg(1), msg(2, 1), msg(3, 2), msg(4, 2), msg(5, 4), msg(6, 1)]


def test_thread_is_root_first_and_parent_linked():
    print("Testing thread walk...")
    messages = sample_tree()
    chain = thread(5, messages)
    assert [m.id for m in chain] == [1, 2, 4, 5]
    assert chain[0].parent_message_id is None
    for parent, child in zip(chain, chain[1:], strict=False):
        assert child.parent_message_id == parent.id


def test_thread_truncates_at_missing_parent():
    messages = [msg(10, 99), msg(11, 10)]
    assert [m.id for m in thread(11, messages)] == [10, 11]


def test_thread_unknown_leaf_is_empty():
    assert thread(42, sample_tree()) == []


def test_latest_leaf_follows_newest_children():
    print("Testing latest leaf...")
    messages = sample_tree()
    # 6 is the newest child of 1 and has no children
    assert latest_leaf(messages) == 6

    leaf = latest_leaf(messages)
    assert not any(m.parent_message_id == leaf for m in messages)


def test_latest_leaf_empty_chat():
    assert latest_leaf([]) is None


def test_branch_leaf_scoped_to_subtree():
    messages = sample_tree()
    assert branch_leaf(2, messages) == 5
    assert branch_leaf(3, messages) == 3
    assert branch_leaf(99, messages) is None


def test_equal_timestamps_tie_break_on_id():
    messages = [msg(1, seconds=0), msg(3, 1, seconds=5), msg(2, 1, seconds=5)]
    assert [m.id for m in children_of(messages)[1]] == [2, 3]
    assert latest_leaf(messages) == 3


def test_branch_info_reports_sibling_position():
    print("Testing branch info...")
    messages = sample_tree()
    info = branch_info(4, messages)
    assert info is not None
    assert (info.index, info.total) == (2, 2)
    assert info.prev_sibling_id == 3
    assert info.next_sibling_id is None

    # Only child
    assert branch_info(5, messages) is None


def test_orphans_are_treated_as_roots():
    messages = [msg(1), msg(2, 77)]
    assert [m.id for m in siblings(2, messages)] == [1, 2]
    groups = children_of(messages)
    assert [m.id for m in groups[None]] == [1, 2]


if __name__ == "__main__":
    test_thread_is_root_first_and_parent_linked()
    test_thread_truncates_at_missing_parent()
    test_thread_unknown_leaf_is_empty()
    test_latest_leaf_follows_newest_children()
    test_latest_leaf_empty_chat()
    test_branch_leaf_scoped_to_subtree()
    test_equal_timestamps_tie_break_on_id()
    test_branch_info_reports_sibling_position()
    test_orphans_are_treated_as_roots()
    print("✅ Message tree tests passed!")
