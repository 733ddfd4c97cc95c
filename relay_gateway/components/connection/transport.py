"""
Transport layer for relay connections.

The core talks to connections only through the ``Transport`` protocol:
fire-and-forget sends, a liveness probe, a normal close request and a
forced termination. ``StarletteTransport`` implements it on top of a
FastAPI/Starlette WebSocket with one outbound queue and writer task per
connection, so sends never block the caller and frames for one
connection keep their order.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from shared.config.logging import get_logger
from relay_gateway.components.core.clock import now_ms
from relay_gateway.components.core.constants import HEARTBEAT_CLOSE_REASON, WSCloseCode
from relay_gateway.components.events.types import probe_event, serialize_event

logger = get_logger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Primitives the relay core needs from a connection."""

    @property
    def is_open(self) -> bool:
        """Whether frames can still be sent."""
        ...

    def send(self, text: str) -> None:
        """Queue one text frame. Never blocks and never reports delivery."""
        ...

    def probe(self) -> None:
        """Issue a liveness probe."""
        ...

    def close(self, code: int, reason: str) -> None:
        """Request a normal closure after already queued frames."""
        ...

    def terminate(self) -> None:
        """Drop the connection immediately, discarding queued frames."""
        ...


def is_ws_connected(ws: WebSocket) -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette only exposes CONNECTING, CONNECTED and DISCONNECTED;
    a connection may still look connected briefly after the peer left.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class StarletteTransport:
    """
    Transport over an accepted Starlette WebSocket.

    Outbound frames go through an asyncio.Queue drained by a writer task.
    The probe is a ``ping`` frame. Any frame the client sends back, a
    ``pong`` or anything else, counts as an answer to the heartbeat monitor.

    Usage:
        transport = StarletteTransport(websocket)
        transport.start()
        ...
        text = await transport.receive()  # None once closed or terminated
        ...
        await transport.aclose()
    """

    _CLOSE = object()

    def __init__(self, websocket: WebSocket, queue_limit: int = 0) -> None:
        """
        Args:
            websocket: An accepted WebSocket.
            queue_limit: Max queued outbound frames; 0 means unbounded.
                Frames beyond the limit are dropped.
        """
        self._websocket = websocket
        self._queue_limit = queue_limit
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._writer: asyncio.Task | None = None
        self._terminated = asyncio.Event()
        self._terminated_waiter: asyncio.Future | None = None
        self._closing = False
        self._dropped_frames = 0

    @property
    def is_open(self) -> bool:
        return (
            not self._closing
            and not self._terminated.is_set()
            and is_ws_connected(self._websocket)
        )

    @property
    def is_terminated(self) -> bool:
        return self._terminated.is_set()

    @property
    def dropped_frames(self) -> int:
        """Frames discarded because the outbound queue was full."""
        return self._dropped_frames

    def start(self) -> None:
        """Start the writer task. Must be called from the event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name="relay_writer")
            self._terminated_waiter = asyncio.ensure_future(self._terminated.wait())

    def send(self, text: str) -> None:
        if not self.is_open:
            return
        if self._queue_limit and self._outbox.qsize() >= self._queue_limit:
            self._dropped_frames += 1
            logger.warning(
                "Outbound queue full, frame dropped",
                queue_limit=self._queue_limit,
                dropped=self._dropped_frames,
            )
            return
        self._outbox.put_nowait(text)

    def probe(self) -> None:
        self.send(serialize_event(probe_event(now_ms())))

    def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None:
        if self._closing or self._terminated.is_set():
            return
        self._closing = True
        self._outbox.put_nowait((self._CLOSE, int(code), reason))

    def terminate(self) -> None:
        if self._terminated.is_set():
            return
        self._terminated.set()
        while not self._outbox.empty():
            self._outbox.get_nowait()

    async def receive(self) -> str | None:
        """
        Wait for the next inbound text frame.

        Returns:
            The frame text, or None when the transport was terminated or
            the application side already closed the socket.

        Raises:
            WebSocketDisconnect: When the peer closes the connection.
        """
        if self._terminated.is_set():
            return None
        if self._websocket.application_state != WebSocketState.CONNECTED:
            return None
        if self._terminated_waiter is None:
            return await self._read_frame()

        receive_task = asyncio.ensure_future(self._read_frame())
        await asyncio.wait(
            {receive_task, self._terminated_waiter},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if receive_task.done():
            return receive_task.result()
        receive_task.cancel()
        return None

    async def _read_frame(self) -> str:
        """Next data frame as text; binary frames are decoded as UTF-8."""
        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", WSCloseCode.NORMAL), message.get("reason"))
        text = message.get("text")
        if text is None:
            text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
        return text

    async def aclose(self) -> None:
        """
        Stop the writer task and release the socket.

        After a termination the socket is closed with GOING_AWAY if it is
        still connected.
        """
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
        if self._terminated_waiter is not None:
            self._terminated_waiter.cancel()
            self._terminated_waiter = None

        if self._terminated.is_set() and is_ws_connected(self._websocket):
            try:
                await self._websocket.close(
                    code=WSCloseCode.GOING_AWAY,
                    reason=HEARTBEAT_CLOSE_REASON,
                )
            except (ConnectionError, RuntimeError, OSError) as e:
                logger.debug("Close after termination failed", error=str(e))

    async def _drain(self) -> None:
        """Writer loop: send queued frames in order until closed."""
        while True:
            item = await self._outbox.get()
            if self._terminated.is_set():
                return
            try:
                if isinstance(item, tuple) and item[0] is self._CLOSE:
                    _, code, reason = item
                    await self._websocket.close(code=code, reason=reason)
                    return
                await self._websocket.send_text(item)
            except (KeyboardInterrupt, SystemExit):
                raise
            except Exception as e:
                # The reader sees the disconnect and runs the close path
                self._closing = True
                logger.debug(
                    "Send failed, writer stopped",
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return
