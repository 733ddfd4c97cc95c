"""
Connection correlation for log records.

Every WebSocket connection is handled by its own task; the endpoint sets
the connection id in a context variable so that every log line emitted
while that task runs carries it.
"""

from contextvars import ContextVar

# Context variable for the connection being handled (task-local)
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


def get_connection_id() -> str:
    """Get the id of the connection handled by the current task."""
    return connection_id_var.get()


class CorrelationIdFilter:
    """
    Logging filter that adds connection_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.connection_id = get_connection_id() or "-"
        return True
