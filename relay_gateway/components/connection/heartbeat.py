"""
Heartbeat Monitor for the relay.

Periodically sweeps the registry: connections that stayed silent since
the previous probe are terminated, all others are marked unanswered and
probed again. A connection therefore survives a sweep only if its
transport received some frame since the sweep before.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.core.constants import RelayConstants

if TYPE_CHECKING:
    from relay_gateway.components.connection.registry import ConnectionRegistry

logger = get_logger(__name__)


class HeartbeatMonitor:
    """
    Liveness sweep over every registered connection.

    The liveness flag starts True on accept, is cleared by each sweep and
    is set again only by acknowledge(), which the endpoint calls for every
    frame the transport receives.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        interval_seconds: float = RelayConstants.HEARTBEAT_INTERVAL,
    ) -> None:
        """
        Initialize heartbeat monitor.

        Args:
            registry: Connections to sweep.
            interval_seconds: Seconds between sweeps.
        """
        self._registry = registry
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def interval(self) -> float:
        """Get the sweep interval in seconds."""
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def acknowledge(self, connection_id: str) -> None:
        """Mark a connection as heard from since the last sweep."""
        info = self._registry.lookup(connection_id)
        if info is not None:
            info.is_alive = True

    def sweep(self) -> int:
        """
        Run one liveness pass.

        Returns:
            Number of connections terminated.
        """
        terminated = 0
        for info in self._registry.connections():
            if not info.is_alive:
                logger.info(
                    "Terminating unresponsive connection",
                    connection_id=info.id,
                    client=info.display_name,
                )
                info.transport.terminate()
                terminated += 1
                continue
            info.is_alive = False
            info.transport.probe()
        return terminated

    def start(self) -> None:
        """Start the periodic sweep task."""
        if self.is_running:
            logger.warning("Heartbeat monitor already running")
            return
        self._task = asyncio.create_task(self._run(), name="heartbeat_monitor")
        logger.info("Heartbeat monitor started", interval=self._interval)

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Heartbeat monitor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                terminated = self.sweep()
                if terminated > 0:
                    logger.info("Terminated stale connections", count=terminated)
            except Exception as e:
                logger.error("Error in heartbeat sweep", error=str(e), exc_info=True)
