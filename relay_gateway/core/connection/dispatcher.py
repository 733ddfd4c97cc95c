"""
Protocol Dispatcher.

Per-connection protocol handling: accept, inbound frames and close.

Every handler runs synchronously inside one event-loop callback, so
registry and history mutations never interleave. Invalid input fails
closed: the frame is ignored and nothing is sent back.

Connection states:
    Connected  from on_accept() for the whole life of the connection
               (the username may go from unset to set, or change)
    Closed     after on_close(), reached only through transport close
"""

from __future__ import annotations

from typing import Any, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.connection.registry import ConnectionInfo, generate_connection_id
from relay_gateway.components.core.clock import now_ms
from relay_gateway.components.core.constants import ANONYMOUS_USERNAME, RelayConstants
from relay_gateway.components.core.context import sanitize_log_data
from relay_gateway.components.events.types import (
    ClientMessageType,
    chat_message_event,
    connected_event,
    frame_type,
    history_event,
    joined_event,
    left_event,
    pong_event,
    username_set_event,
)
from relay_gateway.components.history.message_history import ChatMessage

if TYPE_CHECKING:
    from relay_gateway.components.connection.registry import ConnectionRegistry
    from relay_gateway.components.connection.transport import Transport
    from relay_gateway.components.history.message_history import MessageHistory
    from relay_gateway.core.connection.broadcaster import Broadcaster

logger = get_logger(__name__)


class _Invalid:
    """Marker for a field whose value has the wrong type."""


INVALID = _Invalid()


# Whitespace str.strip() keeps but clients treat as blank
_EXTRA_BLANKS = "\ufeff"


def trim_text(value: str) -> str:
    """
    Strip leading and trailing whitespace, byte order marks included.

    >>> trim_text("\\ufeff  hi \\ufeff")
    'hi'
    """
    trimmed = value.strip()
    while trimmed and (trimmed[0] in _EXTRA_BLANKS or trimmed[-1] in _EXTRA_BLANKS):
        trimmed = trimmed.strip(_EXTRA_BLANKS).strip()
    return trimmed


def normalize_text(value: Any, max_length: int) -> str | None | _Invalid:
    """
    Trim and truncate a client-supplied string.

    Returns:
        The normalized string (possibly empty), None when the value is
        absent, or INVALID when it is present but not a string.

    >>> normalize_text("  Alice  ", 20)
    'Alice'
    >>> normalize_text(None, 20) is None
    True
    >>> normalize_text(42, 20) is INVALID
    True
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return INVALID
    return trim_text(value)[:max_length]


class ProtocolDispatcher:
    """
    Interprets inbound frames and drives registry, history and broadcaster.

    Usage:
        info = dispatcher.on_accept(transport, remote_address)
        dispatcher.dispatch(info.id, {"type": "message", "message": "hi"})
        dispatcher.on_close(info.id)
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        history: "MessageHistory",
        broadcaster: "Broadcaster",
        max_message_length: int = RelayConstants.MAX_MESSAGE_LENGTH,
        max_username_length: int = RelayConstants.MAX_USERNAME_LENGTH,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = generate_connection_id,
    ) -> None:
        """
        Args:
            registry: Active connections.
            history: Rolling chat history.
            broadcaster: Fan-out to connections.
            max_message_length: Characters kept from a chat message.
            max_username_length: Characters kept from a username.
            clock: Epoch-millisecond time source.
            id_factory: Connection id generator.
        """
        self._registry = registry
        self._history = history
        self._broadcaster = broadcaster
        self._max_message_length = max_message_length
        self._max_username_length = max_username_length
        self._clock = clock
        self._id_factory = id_factory

        self._handlers: dict[str, Callable[[ConnectionInfo, dict[str, Any]], None]] = {
            ClientMessageType.MESSAGE.value: self._handle_chat_message,
            ClientMessageType.SET_USERNAME.value: self._handle_set_username,
            ClientMessageType.PING.value: self._handle_ping,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def allocate_id(self) -> str:
        """Draw a connection id that no live connection is using."""
        connection_id = self._id_factory()
        while connection_id in self._registry:
            connection_id = self._id_factory()
        return connection_id

    def on_accept(
        self,
        transport: "Transport",
        remote_address: str,
        connection_id: str | None = None,
    ) -> ConnectionInfo:
        """
        Register a freshly accepted transport and greet it.

        Sends ``connected`` and ``history`` to the new connection, then the
        updated online count to everyone, the new connection included.
        A missing or already registered ``connection_id`` is replaced by a
        freshly allocated one.
        """
        if connection_id is None or connection_id in self._registry:
            connection_id = self.allocate_id()

        info = ConnectionInfo(
            id=connection_id,
            remote_address=remote_address,
            connected_at=self._clock(),
            transport=transport,
        )
        self._registry.add(info)

        logger.info(
            "New connection",
            connection_id=connection_id,
            remote_address=remote_address,
            total=self._registry.count(),
        )

        self._broadcaster.send(info, connected_event(connection_id, self._clock()))
        self._broadcaster.send(info, history_event(self._history.snapshot()))
        self._broadcaster.broadcast_online_count()
        return info

    def on_close(self, connection_id: str) -> None:
        """
        Unregister a closed connection and notify the remaining ones.

        Announces the departure when the connection had a username, then
        sends the updated online count. A second call for the same id
        does nothing.
        """
        info = self._registry.remove(connection_id)
        if info is None:
            return

        logger.info(
            "Client disconnected",
            connection_id=connection_id,
            client=info.display_name,
            total=self._registry.count(),
        )

        if info.username:
            self._broadcaster.broadcast(left_event(info.username, self._clock()))
        self._broadcaster.broadcast_online_count()

    # =========================================================================
    # Inbound frames
    # =========================================================================

    def dispatch(self, connection_id: str, frame: dict[str, Any]) -> None:
        """
        Handle one parsed inbound frame.

        Unknown types are logged and ignored. Frames for connections that
        are no longer registered are ignored.
        """
        info = self._registry.lookup(connection_id)
        if info is None:
            logger.debug("Frame for unknown connection ignored", connection_id=connection_id)
            return

        msg_type = frame_type(frame)
        handler = self._handlers.get(msg_type) if msg_type is not None else None
        if handler is None:
            logger.warning(
                "Unknown message type",
                connection_id=connection_id,
                message_type=sanitize_log_data(str(frame.get("type"))),
            )
            return
        handler(info, frame)

    def _handle_chat_message(self, info: ConnectionInfo, frame: dict[str, Any]) -> None:
        raw_message = frame.get("message")
        if not raw_message or not isinstance(raw_message, str):
            return

        text = trim_text(raw_message)[: self._max_message_length]
        if not text:
            return

        supplied_name = normalize_text(frame.get("username"), self._max_username_length)
        if supplied_name is INVALID:
            logger.debug("Chat message with non-string username dropped", connection_id=info.id)
            return
        username = supplied_name or info.username or ANONYMOUS_USERNAME

        message = ChatMessage(username=username, message=text, timestamp=self._clock())
        logger.info(
            "Chat message",
            connection_id=info.id,
            username=username,
            message=sanitize_log_data(text),
        )

        self._history.append(message)
        self._broadcaster.broadcast(chat_message_event(message))

    def _handle_set_username(self, info: ConnectionInfo, frame: dict[str, Any]) -> None:
        new_username = normalize_text(frame.get("username"), self._max_username_length)
        if not new_username or new_username is INVALID:
            return

        old_username = info.username
        info.username = new_username
        logger.info("Username set", connection_id=info.id, username=new_username)

        self._broadcaster.send(info, username_set_event(new_username))

        # Only the first assignment is announced
        if not old_username:
            self._broadcaster.broadcast(
                joined_event(new_username, self._clock()),
                excluding=info.id,
            )

    def _handle_ping(self, info: ConnectionInfo, frame: dict[str, Any]) -> None:
        self._broadcaster.send(info, pong_event(self._clock()))
