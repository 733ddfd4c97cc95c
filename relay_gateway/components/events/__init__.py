"""
Event handling components.

Frame types, event builders and the wire codec.
"""

from relay_gateway.components.events.types import (
    ClientMessageType,
    ServerEventType,
    frame_type,
    parse_frame,
    serialize_event,
)

__all__ = [
    "ClientMessageType",
    "ServerEventType",
    "frame_type",
    "parse_frame",
    "serialize_event",
]
