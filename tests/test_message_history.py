"""
Tests for the bounded chat history.
"""

import pytest

from relay_gateway.components.history.message_history import ChatMessage, MessageHistory


def _msg(i: int) -> ChatMessage:
    return ChatMessage(username="alice", message=f"m{i}", timestamp=i)


class TestMessageHistory:
    """Ordering and eviction of the rolling history."""

    def test_starts_empty(self):
        history = MessageHistory()
        assert len(history) == 0
        assert history.snapshot() == []
        assert history.capacity == 100

    def test_keeps_insertion_order(self):
        history = MessageHistory(capacity=5)
        for i in range(3):
            history.append(_msg(i))
        assert [m.message for m in history.snapshot()] == ["m0", "m1", "m2"]

    def test_evicts_oldest_when_full(self):
        """The 101st message evicts the first one."""
        history = MessageHistory()
        for i in range(101):
            history.append(_msg(i))
        snapshot = history.snapshot()
        assert len(snapshot) == 100
        assert snapshot[0].message == "m1"
        assert snapshot[-1].message == "m100"

    def test_snapshot_is_a_copy(self):
        history = MessageHistory(capacity=3)
        history.append(_msg(0))
        snapshot = history.snapshot()
        history.append(_msg(1))
        assert len(snapshot) == 1

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            MessageHistory(capacity=0)


class TestChatMessage:
    def test_wire_representation(self):
        message = ChatMessage(username="Bob", message="hi", timestamp=42)
        assert message.to_dict() == {
            "type": "message",
            "username": "Bob",
            "message": "hi",
            "timestamp": 42,
        }

    def test_is_immutable(self):
        message = _msg(0)
        with pytest.raises(AttributeError):
            message.message = "changed"
