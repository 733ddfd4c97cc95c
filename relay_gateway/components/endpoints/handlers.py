"""
Relay WebSocket Endpoint.

Runs one connection from accept to close: wraps the socket in a
transport, hands it to the dispatcher, feeds it inbound frames and runs
the close path exactly once, whatever ended the connection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.logging import get_logger
from shared.infrastructure.correlation import connection_id_var
from relay_gateway.components.connection.transport import StarletteTransport
from relay_gateway.components.core.constants import SHUTDOWN_CLOSE_REASON, WSCloseCode
from relay_gateway.components.core.context import resolve_remote_address
from relay_gateway.components.events.types import ClientMessageType, frame_type, parse_frame

if TYPE_CHECKING:
    from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
    from relay_gateway.core.connection.dispatcher import ProtocolDispatcher
    from relay_gateway.server_state import ServerState

logger = get_logger(__name__)


class RelayEndpoint:
    """
    Handler for one relay WebSocket connection.

    Lifecycle:
    1. Reject when shutting down
    2. Accept and start the transport writer
    3. Register through the dispatcher (greeting, history, online count)
    4. Message loop: every frame marks the connection alive; pong
       replies stop there, everything else goes to the dispatcher
    5. Close path through the dispatcher

    Usage:
        endpoint = RelayEndpoint(websocket, state, dispatcher, heartbeat)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        state: "ServerState",
        dispatcher: "ProtocolDispatcher",
        heartbeat: "HeartbeatMonitor",
        outbound_queue_limit: int = 0,
    ) -> None:
        self.websocket = websocket
        self.state = state
        self.dispatcher = dispatcher
        self.heartbeat = heartbeat
        self.outbound_queue_limit = outbound_queue_limit
        self.connection_id: str | None = None

    async def run(self) -> None:
        """Main entry point - run the connection until it closes."""
        if self.state.shutting_down:
            await self.websocket.close(code=WSCloseCode.GOING_AWAY, reason=SHUTDOWN_CLOSE_REASON)
            return

        await self.websocket.accept()
        self.connection_id = self.dispatcher.allocate_id()
        # Set before the writer task starts so it inherits the id too
        token = connection_id_var.set(self.connection_id)

        transport = StarletteTransport(self.websocket, queue_limit=self.outbound_queue_limit)
        transport.start()
        info = self.dispatcher.on_accept(
            transport,
            resolve_remote_address(self.websocket),
            connection_id=self.connection_id,
        )

        try:
            await self._message_loop(transport)
        except WebSocketDisconnect as e:
            logger.debug("Client closed connection", code=e.code)
        except Exception as e:
            # Transport-level error: no core state changes here, the
            # close path below does the bookkeeping
            logger.error(
                "WebSocket error",
                error_type=type(e).__name__,
                error=str(e),
            )
        finally:
            await transport.aclose()
            self.dispatcher.on_close(info.id)
            connection_id_var.reset(token)

    async def _message_loop(self, transport: StarletteTransport) -> None:
        """
        Receive frames until the peer leaves or the transport is closed.

        Malformed frames are dropped without a reply.
        """
        while True:
            data = await transport.receive()
            if data is None:
                if transport.is_terminated:
                    logger.info("Connection terminated")
                return

            # Any inbound frame proves the peer is still there
            self.heartbeat.acknowledge(self.connection_id)

            frame = parse_frame(data)
            if frame is None or frame_type(frame) == ClientMessageType.PONG.value:
                continue

            self.dispatcher.dispatch(self.connection_id, frame)
