"""
Shutdown Coordinator.

Bounded-time graceful drain on a termination signal:

1. broadcast ``server_shutdown`` to every connection (no acknowledgement)
2. request a normal closure (1000) on every connection
3. close the listening transport and exit with status 0 once it is closed

A grace timer runs in parallel; if it fires first the process exits
immediately with status 1. Whichever exit comes first wins.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.core.constants import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    SHUTDOWN_CLOSE_REASON,
    RelayConstants,
    WSCloseCode,
)
from relay_gateway.components.events.types import server_shutdown_event

if TYPE_CHECKING:
    from relay_gateway.core.connection.broadcaster import Broadcaster
    from relay_gateway.server_state import ServerState

logger = get_logger(__name__)


def terminate_process(status: int) -> None:
    """Flush logging and exit the process immediately."""
    logging.shutdown()
    os._exit(status)


class ShutdownCoordinator:
    """
    Orchestrates graceful shutdown with a bounded grace period.

    Usage:
        coordinator = ShutdownCoordinator(state, broadcaster, close_listener)
        await coordinator.shutdown("SIGTERM")
    """

    def __init__(
        self,
        state: "ServerState",
        broadcaster: "Broadcaster",
        close_listener: Callable[[], Awaitable[None]],
        grace_period: float = RelayConstants.SHUTDOWN_GRACE_PERIOD,
        exit_process: Callable[[int], None] = terminate_process,
    ) -> None:
        """
        Args:
            state: Server state; its registry lists the connections to close.
            broadcaster: Used for the shutdown notice.
            close_listener: Stops accepting connections and returns once
                the listening transport is fully closed.
            grace_period: Seconds before a forced failure exit.
            exit_process: Called once with the exit status.
        """
        self._state = state
        self._broadcaster = broadcaster
        self._close_listener = close_listener
        self._grace_period = grace_period
        self._exit_process = exit_process
        self._grace_handle: asyncio.TimerHandle | None = None
        self._exit_status: int | None = None

    @property
    def is_shutting_down(self) -> bool:
        return self._state.shutting_down

    @property
    def exit_status(self) -> int | None:
        """Status passed to exit_process, or None before exit."""
        return self._exit_status

    async def shutdown(self, reason: str = "signal") -> None:
        """
        Run the shutdown sequence. Later calls return immediately.
        """
        if self._state.shutting_down:
            return
        self._state.shutting_down = True

        registry = self._state.registry
        logger.warning(
            "Shutting down gracefully",
            reason=reason,
            clients=registry.count(),
        )

        self._broadcaster.broadcast(server_shutdown_event())
        for info in registry.connections():
            info.transport.close(WSCloseCode.NORMAL, SHUTDOWN_CLOSE_REASON)

        loop = asyncio.get_running_loop()
        self._grace_handle = loop.call_later(self._grace_period, self._force_exit)

        try:
            await self._close_listener()
        except Exception as e:
            # The grace timer still bounds the shutdown
            logger.error("Error closing listener", error=str(e), exc_info=True)
            return

        logger.info("Server closed")
        self._exit(EXIT_SUCCESS)

    def _force_exit(self) -> None:
        logger.error(
            "Forced shutdown",
            grace_period=self._grace_period,
            remaining=self._state.registry.count(),
        )
        self._exit(EXIT_FAILURE)

    def _exit(self, status: int) -> None:
        if self._exit_status is not None:
            return
        self._exit_status = status
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None
        self._exit_process(status)
