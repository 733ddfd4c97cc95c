"""
Structured logging for the relay.

Every logger handed out by get_logger() accepts keyword fields:

    logger.info("Username set", username="Alice")

Fields travel on the record as ``extra_data``. Records also carry the id
of the connection being handled (see shared.infrastructure.correlation),
so one client's activity can be followed across lines. Production emits
JSON lines; development emits coloured single lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

SERVICE_NAME = "global-chat-relay"

# Third-party loggers and the level they are capped at
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "websockets": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _connection_id(record: logging.LogRecord) -> str | None:
    value = getattr(record, "connection_id", None)
    return value if value and value != "-" else None


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        connection_id = _connection_id(record)
        if connection_id:
            entry["connection_id"] = connection_id

        fields = getattr(record, "extra_data", None)
        if fields:
            entry["data"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            entry["source"] = f"{record.pathname}:{record.lineno}"

        return json.dumps(entry, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """Coloured single-line output for a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        parts = [f"{color}{clock} {record.levelname:<8}{self.RESET}"]
        connection_id = _connection_id(record)
        if connection_id:
            parts.append(f"{self.DIM}<{connection_id}>{self.RESET}")
        parts.append(f"{record.name}: {record.getMessage()}")

        fields = getattr(record, "extra_data", None)
        if fields:
            parts.append(" ".join(f"{key}={value!r}" for key, value in fields.items()))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept arbitrary keyword fields.

    Standard keywords (exc_info, extra, stack_info, stacklevel) keep their
    meaning; everything else is collected into ``record.extra_data``.
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **fields: Any,
    ) -> None:
        merged = dict(extra) if extra else {}
        merged["extra_data"] = fields or None
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=merged,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging(level: int | None = None, json_output: bool | None = None) -> None:
    """
    Install the relay's stdout handler on the root logger.

    Args:
        level: Log level; DEBUG when settings.debug is set, else INFO.
        json_output: JSON lines; defaults to True in production.

    Call once at startup. Calling again replaces the handler.
    """
    from shared.infrastructure.correlation import CorrelationIdFilter

    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO
    if json_output is None:
        json_output = settings.environment == "production"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(StructuredFormatter() if json_output else DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, cap in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(cap, level))


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)
        logger.warning("Outbound queue full", queue_limit=100)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


relay_logger = get_logger("relay_gateway")
