"""
Relay Core Module.

- connection/: Broadcasting, protocol dispatch and shutdown
"""

from relay_gateway.core.connection import (
    Broadcaster,
    ProtocolDispatcher,
    ShutdownCoordinator,
)

__all__ = [
    "Broadcaster",
    "ProtocolDispatcher",
    "ShutdownCoordinator",
]
