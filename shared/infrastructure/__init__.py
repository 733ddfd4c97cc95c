"""
Infrastructure helpers shared by the gateway.
"""

from shared.infrastructure.correlation import (
    CorrelationIdFilter,
    connection_id_var,
    get_connection_id,
)

__all__ = [
    "CorrelationIdFilter",
    "connection_id_var",
    "get_connection_id",
]
