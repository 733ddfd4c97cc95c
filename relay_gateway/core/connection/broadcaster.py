"""
Connection Broadcaster.

Sends serialized events to relay connections.

Sends are fire-and-forget: each transport queues the frame and delivers
it on its own writer task, so one slow or failing recipient never holds
up or aborts delivery to the others.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.events.types import online_count_event, serialize_event

if TYPE_CHECKING:
    from relay_gateway.components.connection.registry import ConnectionInfo, ConnectionRegistry

logger = get_logger(__name__)


class Broadcaster:
    """
    Fans events out to registered connections.

    Responsibilities:
    - Serialize each event once per fan-out
    - Skip transports that are no longer open
    - Optionally exclude a single connection
    - Isolate per-recipient send failures
    """

    def __init__(self, registry: "ConnectionRegistry") -> None:
        self._registry = registry

    def broadcast(self, event: dict[str, Any], excluding: str | None = None) -> int:
        """
        Send an event to every open connection.

        Args:
            event: Event payload.
            excluding: Optional connection id that must not receive it.

        Returns:
            Number of connections the frame was handed to.
        """
        text = serialize_event(event)
        sent = 0
        for info in self._registry.connections():
            if info.id == excluding:
                continue
            if self._deliver(info, text):
                sent += 1
        return sent

    def send(self, info: "ConnectionInfo", event: dict[str, Any]) -> bool:
        """Send an event to one connection. Returns False if it was skipped."""
        return self._deliver(info, serialize_event(event))

    def broadcast_online_count(self) -> int:
        """Send the current connection count to every open connection."""
        return self.broadcast(online_count_event(self._registry.count()))

    def _deliver(self, info: "ConnectionInfo", text: str) -> bool:
        transport = info.transport
        if not transport.is_open:
            return False
        try:
            transport.send(text)
            return True
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception as e:
            logger.debug(
                "Send failed",
                connection_id=info.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
