"""
Connection Registry for the relay.

Tracks every active connection and its metadata, keyed by an opaque
connection id rather than by the transport object itself.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterator

from relay_gateway.components.core.clock import now_ms
from relay_gateway.components.core.constants import RelayConstants

if TYPE_CHECKING:
    from relay_gateway.components.connection.transport import Transport

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def generate_connection_id(timestamp_ms: int | None = None) -> str:
    """
    Build a connection id from a millisecond timestamp plus a random
    base36 suffix, e.g. ``1718000000000_k3j9x0q2a``.

    Uniqueness is probabilistic; the dispatcher re-draws on a live collision.
    """
    ts = timestamp_ms if timestamp_ms is not None else now_ms()
    suffix = "".join(
        secrets.choice(_BASE36_ALPHABET)
        for _ in range(RelayConstants.CONNECTION_ID_SUFFIX_LENGTH)
    )
    return f"{ts}_{suffix}"


@dataclass(slots=True)
class ConnectionInfo:
    """
    Metadata for one live transport session.

    Attributes:
        id: Opaque connection id assigned at accept time.
        remote_address: Forwarded-for value or socket peer address.
        connected_at: Acceptance time in epoch milliseconds.
        transport: Handle used to send, probe, close or terminate.
        username: Display name, unset until the first set_username.
        is_alive: Liveness flag owned by the heartbeat monitor.
    """

    id: str
    remote_address: str
    connected_at: int
    transport: "Transport"
    username: str | None = None
    is_alive: bool = True

    @property
    def display_name(self) -> str:
        """Username when set, otherwise the connection id (for logs)."""
        return self.username or self.id


class ConnectionRegistry:
    """
    Registry of active connections.

    All access happens on the event loop thread, one event at a time,
    so no locking is needed.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionInfo] = {}

    def add(self, info: ConnectionInfo) -> None:
        """Register a connection. Replaces any entry with the same id."""
        self._connections[info.id] = info

    def remove(self, connection_id: str) -> ConnectionInfo | None:
        """
        Unregister a connection.

        Pure bookkeeping: no notifications are sent.

        Returns:
            The removed metadata, or None if the id was not registered.
        """
        return self._connections.pop(connection_id, None)

    def lookup(self, connection_id: str) -> ConnectionInfo | None:
        """Get metadata for a connection, or None if absent."""
        return self._connections.get(connection_id)

    def count(self) -> int:
        """Number of registered connections."""
        return len(self._connections)

    def for_each(self, visitor: Callable[[ConnectionInfo], None]) -> None:
        """
        Call ``visitor`` for every registered connection.

        Iterates over a snapshot, so the visitor may add or remove entries.
        """
        for info in self.connections():
            visitor(info)

    def connections(self) -> list[ConnectionInfo]:
        """Snapshot of registered connections in registration order."""
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __iter__(self) -> Iterator[ConnectionInfo]:
        return iter(self.connections())
