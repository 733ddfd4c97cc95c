"""
WebSocket endpoints.
"""

from relay_gateway.components.endpoints.handlers import RelayEndpoint

__all__ = ["RelayEndpoint"]
