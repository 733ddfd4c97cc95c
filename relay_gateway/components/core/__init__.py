"""
Core constants and helpers shared by every relay component.
"""

from relay_gateway.components.core.clock import now_ms
from relay_gateway.components.core.constants import (
    ANONYMOUS_USERNAME,
    RelayConstants,
    WSCloseCode,
)
from relay_gateway.components.core.context import (
    resolve_remote_address,
    sanitize_log_data,
)

__all__ = [
    "now_ms",
    "ANONYMOUS_USERNAME",
    "RelayConstants",
    "WSCloseCode",
    "resolve_remote_address",
    "sanitize_log_data",
]
