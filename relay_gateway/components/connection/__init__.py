"""
Connection management components.

Handles connection tracking, transport and liveness.
"""

from relay_gateway.components.connection.registry import (
    ConnectionInfo,
    ConnectionRegistry,
    generate_connection_id,
)
from relay_gateway.components.connection.transport import (
    StarletteTransport,
    Transport,
    is_ws_connected,
)
from relay_gateway.components.connection.heartbeat import HeartbeatMonitor

__all__ = [
    "ConnectionInfo",
    "ConnectionRegistry",
    "generate_connection_id",
    "StarletteTransport",
    "Transport",
    "is_ws_connected",
    "HeartbeatMonitor",
]
