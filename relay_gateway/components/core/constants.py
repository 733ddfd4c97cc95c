"""
Relay Gateway Constants.

Centralized constants with documentation explaining each value.
Runtime-tunable values are mirrored in shared.config.settings; the
settings take precedence when the application is built.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "RelayConstants",
    "ANONYMOUS_USERNAME",
    "WELCOME_MESSAGE",
    "SHUTDOWN_MESSAGE",
    "SHUTDOWN_CLOSE_REASON",
    "HEARTBEAT_CLOSE_REASON",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the relay.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or connection dropped by the server


class RelayConstants:
    """
    Relay operational constants.

    These are the defaults used when no settings object is supplied.
    """

    # MAX_HISTORY: 100 messages
    # Bounded rolling window replayed to every new connection.
    MAX_HISTORY: Final[int] = 100

    # MAX_MESSAGE_LENGTH: 500 characters, applied after trimming.
    MAX_MESSAGE_LENGTH: Final[int] = 500

    # MAX_USERNAME_LENGTH: 20 characters, applied after trimming.
    MAX_USERNAME_LENGTH: Final[int] = 20

    # HEARTBEAT_INTERVAL: 30 seconds
    # A connection that misses one full period after being probed is
    # terminated, so silent clients are dropped after 30-60 seconds.
    HEARTBEAT_INTERVAL: Final[float] = 30.0

    # SHUTDOWN_GRACE_PERIOD: 5 seconds
    # Upper bound on graceful shutdown before forcing a failure exit.
    SHUTDOWN_GRACE_PERIOD: Final[float] = 5.0

    # STATUS_LOG_INTERVAL: 60 seconds between "Server alive" lines.
    STATUS_LOG_INTERVAL: Final[float] = 60.0

    # CONNECTION_ID_SUFFIX_LENGTH: random base36 characters after the timestamp.
    CONNECTION_ID_SUFFIX_LENGTH: Final[int] = 9


# Fallback display name for messages from connections without a username
ANONYMOUS_USERNAME: Final[str] = "Anonymous"

WELCOME_MESSAGE: Final[str] = "Connected to Global Chat Server"
SHUTDOWN_MESSAGE: Final[str] = "Server is shutting down..."
SHUTDOWN_CLOSE_REASON: Final[str] = "Server shutting down"
HEARTBEAT_CLOSE_REASON: Final[str] = "Heartbeat timeout"

# Process exit statuses used by the shutdown coordinator
EXIT_SUCCESS: Final[int] = 0
EXIT_FAILURE: Final[int] = 1
