"""
Bounded chat history.

Keeps the most recent chat messages in insertion order and replays them
to every new connection.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any

from relay_gateway.components.core.constants import RelayConstants


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """
    Immutable accepted chat post.

    Attributes:
        username: Resolved display name.
        message: Trimmed, non-empty text.
        timestamp: Server creation time in epoch milliseconds.
    """

    username: str
    message: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (also used inside history replays)."""
        return {
            "type": "message",
            "username": self.username,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class MessageHistory:
    """
    FIFO-evicting ordered log of recent chat messages.

    >>> h = MessageHistory(capacity=2)
    >>> for i in range(3):
    ...     h.append(ChatMessage("a", str(i), i))
    >>> [m.message for m in h.snapshot()]
    ['1', '2']
    """

    def __init__(self, capacity: int = RelayConstants.MAX_HISTORY) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self._messages: deque[ChatMessage] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """Maximum number of retained messages."""
        return self._messages.maxlen  # type: ignore[return-value]

    def append(self, message: ChatMessage) -> None:
        """Add a message, evicting the oldest one when full."""
        self._messages.append(message)

    def snapshot(self) -> list[ChatMessage]:
        """Current contents, oldest first."""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)
