"""
Relay event catalogue.

Frame type names for both directions, builders for every server event,
and the JSON codec used on the wire. Builders return plain dicts so the
broadcaster can serialize an event once for all recipients.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterable

from shared.config.logging import get_logger
from relay_gateway.components.core.constants import SHUTDOWN_MESSAGE, WELCOME_MESSAGE
from relay_gateway.components.core.context import sanitize_log_data
from relay_gateway.components.history.message_history import ChatMessage

logger = get_logger(__name__)


class ClientMessageType(str, Enum):
    """Frame types a client may send."""

    MESSAGE = "message"
    SET_USERNAME = "set_username"
    PING = "ping"
    # Optional reply to a server ping; consumed by the endpoint
    PONG = "pong"


class ServerEventType(str, Enum):
    """Frame types the relay sends."""

    CONNECTED = "connected"
    HISTORY = "history"
    ONLINE_COUNT = "online_count"
    MESSAGE = "message"
    USERNAME_SET = "username_set"
    SYSTEM_MESSAGE = "system_message"
    PONG = "pong"
    PING = "ping"
    SERVER_SHUTDOWN = "server_shutdown"


# =============================================================================
# Codec
# =============================================================================


def serialize_event(event: dict[str, Any]) -> str:
    """Compact JSON text for one event."""
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False)


def parse_frame(raw: str) -> dict[str, Any] | None:
    """
    Parse one inbound text frame.

    Returns None for invalid JSON and for JSON that is not an object.

    >>> parse_frame('{"type":"ping"}')
    {'type': 'ping'}
    >>> parse_frame('not json') is None
    True
    >>> parse_frame('[1, 2]') is None
    True
    """
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        logger.debug("Malformed frame dropped", frame=sanitize_log_data(raw))
        return None
    if not isinstance(parsed, dict):
        logger.debug("Non-object frame dropped", frame=sanitize_log_data(raw))
        return None
    return parsed


def frame_type(frame: dict[str, Any]) -> str | None:
    """The ``type`` discriminator of a parsed frame, if it is a string."""
    value = frame.get("type")
    return value if isinstance(value, str) else None


# =============================================================================
# Server event builders
# =============================================================================


def connected_event(client_id: str, server_time: int) -> dict[str, Any]:
    return {
        "type": ServerEventType.CONNECTED.value,
        "clientId": client_id,
        "serverTime": server_time,
        "message": WELCOME_MESSAGE,
    }


def history_event(messages: Iterable[ChatMessage]) -> dict[str, Any]:
    return {
        "type": ServerEventType.HISTORY.value,
        "messages": [m.to_dict() for m in messages],
    }


def online_count_event(count: int) -> dict[str, Any]:
    return {"type": ServerEventType.ONLINE_COUNT.value, "count": count}


def chat_message_event(message: ChatMessage) -> dict[str, Any]:
    return message.to_dict()


def username_set_event(username: str) -> dict[str, Any]:
    return {"type": ServerEventType.USERNAME_SET.value, "username": username}


def system_message_event(message: str, timestamp: int) -> dict[str, Any]:
    return {
        "type": ServerEventType.SYSTEM_MESSAGE.value,
        "message": message,
        "timestamp": timestamp,
    }


def joined_event(username: str, timestamp: int) -> dict[str, Any]:
    """System announcement for a connection's first username."""
    return system_message_event(f"{username} joined the chat", timestamp)


def left_event(username: str, timestamp: int) -> dict[str, Any]:
    """System announcement for a named connection going away."""
    return system_message_event(f"{username} left the chat", timestamp)


def pong_event(timestamp: int) -> dict[str, Any]:
    return {"type": ServerEventType.PONG.value, "timestamp": timestamp}


def probe_event(timestamp: int) -> dict[str, Any]:
    """Liveness probe sent by the heartbeat monitor."""
    return {"type": ServerEventType.PING.value, "timestamp": timestamp}


def server_shutdown_event() -> dict[str, Any]:
    return {"type": ServerEventType.SERVER_SHUTDOWN.value, "message": SHUTDOWN_MESSAGE}
