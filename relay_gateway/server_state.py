"""
Process-wide relay state.

One ServerState is built per application and passed explicitly to the
components that need it; tests build a fresh one each time.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from relay_gateway.components.connection.registry import ConnectionRegistry
from relay_gateway.components.core.constants import RelayConstants
from relay_gateway.components.history.message_history import MessageHistory


@dataclass
class ServerState:
    """
    Aggregate owning the connection registry and the chat history.

    Attributes:
        registry: Active connections.
        history: Rolling chat history.
        started_at: Monotonic start time used for uptime.
        shutting_down: Set once graceful shutdown begins.
    """

    registry: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    history: MessageHistory = field(default_factory=MessageHistory)
    started_at: float = field(default_factory=time.monotonic)
    shutting_down: bool = False

    @classmethod
    def create(cls, max_history: int = RelayConstants.MAX_HISTORY) -> "ServerState":
        return cls(history=MessageHistory(capacity=max_history))

    @property
    def client_count(self) -> int:
        return self.registry.count()

    @property
    def uptime_seconds(self) -> int:
        """Whole seconds since the state was created."""
        return int(time.monotonic() - self.started_at)

    def status(self) -> dict[str, Any]:
        """Read-only counters for the status log and the health endpoint."""
        return {
            "clients": self.client_count,
            "messages": len(self.history),
            "uptime": self.uptime_seconds,
        }
