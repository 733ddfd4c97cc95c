"""
Connection context helpers for logging and bookkeeping.

Keeps client-supplied data out of log lines verbatim and resolves the
best-effort remote address of a WebSocket peer.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starlette.websockets import WebSocket


# Control characters, zero-width marks and bidirectional overrides
_CONTROL_CHAR_PATTERN = re.compile(
    r'[\x00-\x1f\x7f-\x9f'  # ASCII control characters
    r'\u200b-\u200f'  # Zero-width and direction marks
    r'\u202a-\u202e'  # Bidirectional text formatting (RTL override, etc.)
    r'\u2066-\u2069'  # Isolate formatting characters
    r'\ufeff]'  # BOM / Zero-width no-break space
)

FORWARDED_FOR_HEADER = "x-forwarded-for"
UNKNOWN_ADDRESS = "unknown"


def sanitize_log_data(data: str, max_length: int = 100) -> str:
    """
    Sanitize user-provided data before logging.

    Truncates first so escaping never cuts an escape sequence in half,
    then removes control characters and escapes JSON-dangerous ones.

    Args:
        data: Raw user data.
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string safe for structured logging.
    """
    truncated = data[:max_length] if len(data) > max_length else data
    was_truncated = len(data) > max_length

    # Remove control characters and direction overrides
    sanitized = _CONTROL_CHAR_PATTERN.sub('', truncated)

    # Replace backslashes first to avoid double-escaping
    sanitized = sanitized.replace('\\', '\\\\')
    sanitized = sanitized.replace('"', '\\"')

    if was_truncated:
        return sanitized + "..."
    return sanitized


def resolve_remote_address(websocket: "WebSocket") -> str:
    """
    Best-effort client address.

    Uses the first entry of X-Forwarded-For when a proxy sets it,
    otherwise the socket peer host.
    """
    forwarded = websocket.headers.get(FORWARDED_FOR_HEADER)
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if websocket.client is not None:
        return websocket.client.host
    return UNKNOWN_ADDRESS
