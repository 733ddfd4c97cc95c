"""
Connection Core Module.

- broadcaster.py: Fan-out of events to connections
- dispatcher.py: Accept, inbound frames and close
- shutdown.py: Graceful shutdown with a bounded grace period
"""

from relay_gateway.core.connection.broadcaster import Broadcaster
from relay_gateway.core.connection.dispatcher import ProtocolDispatcher
from relay_gateway.core.connection.shutdown import ShutdownCoordinator, terminate_process

__all__ = [
    "Broadcaster",
    "ProtocolDispatcher",
    "ShutdownCoordinator",
    "terminate_process",
]
