"""
Global chat relay main application.

One HTTP server carries both the WebSocket relay (path ``/``) and a small
HTTP surface (health check and a banner). The relay core is built per
application by create_app(); main() wires it to uvicorn and to the
shutdown coordinator.
"""

from __future__ import annotations

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from shared.config.settings import Settings, get_settings
from shared.config.logging import setup_logging, relay_logger as logger
from relay_gateway import __version__
from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
from relay_gateway.components.core.clock import now_ms
from relay_gateway.components.core.constants import EXIT_FAILURE
from relay_gateway.components.endpoints.handlers import RelayEndpoint
from relay_gateway.core.connection.broadcaster import Broadcaster
from relay_gateway.core.connection.dispatcher import ProtocolDispatcher
from relay_gateway.core.connection.shutdown import ShutdownCoordinator, terminate_process
from relay_gateway.server_state import ServerState

BANNER = "🌍 Global Chat WebSocket Server is Running!"


# =============================================================================
# Background tasks
# =============================================================================


async def run_status_log(state: ServerState, interval: float) -> None:
    """Periodically log client count, history length and uptime."""
    while True:
        try:
            await asyncio.sleep(interval)
            logger.info("Server alive", **state.status())
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in status log", error=str(e))


# =============================================================================
# FastAPI Application
# =============================================================================


def create_app(
    settings: Settings | None = None,
    state: ServerState | None = None,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        settings: Configuration; defaults to the cached environment settings.
        state: Relay state; a fresh one is built when omitted.

    The relay components are stored on ``app.state`` as ``settings``,
    ``relay_state``, ``broadcaster``, ``dispatcher`` and ``heartbeat``.
    """
    settings = settings or get_settings()
    state = state or ServerState.create(max_history=settings.relay_max_history)

    broadcaster = Broadcaster(state.registry)
    dispatcher = ProtocolDispatcher(
        state.registry,
        state.history,
        broadcaster,
        max_message_length=settings.relay_max_message_length,
        max_username_length=settings.relay_max_username_length,
    )
    heartbeat = HeartbeatMonitor(state.registry, settings.relay_heartbeat_interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts:
        - Heartbeat sweep over all connections
        - Periodic status log
        """
        logger.info(
            "Starting Global Chat relay",
            port=settings.port,
            env=settings.environment,
        )
        heartbeat.start()
        status_task = asyncio.create_task(
            run_status_log(state, settings.relay_status_log_interval),
            name="status_log",
        )

        yield

        logger.info("Stopping background tasks")
        await heartbeat.stop()
        status_task.cancel()
        try:
            await status_task
        except asyncio.CancelledError:
            pass

    app = FastAPI(
        title="Global Chat Relay",
        description="Real-time broadcast chat over WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.relay_state = state
    app.state.broadcaster = broadcaster
    app.state.dispatcher = dispatcher
    app.state.heartbeat = heartbeat

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/health")
    def health_check():
        """Liveness endpoint with current client count and uptime."""
        return {
            "status": "online",
            "clients": state.client_count,
            "uptime": state.uptime_seconds,
            "timestamp": now_ms(),
        }

    @app.get("/", response_class=PlainTextResponse)
    def banner():
        return BANNER

    @app.websocket("/")
    async def relay_websocket(websocket: WebSocket):
        """
        Global chat relay.

        Client frames: ``message``, ``set_username``, ``ping`` and ``pong``
        (answer to the server's liveness ``ping``). Everything a client
        sends is relayed to every connected client.
        """
        endpoint = RelayEndpoint(
            websocket,
            state,
            dispatcher,
            heartbeat,
            outbound_queue_limit=settings.relay_outbound_queue_limit,
        )
        await endpoint.run()

    return app


# =============================================================================
# Server
# =============================================================================


class RelayServer(uvicorn.Server):
    """
    uvicorn server whose SIGINT/SIGTERM handling is delegated.

    A termination signal calls ``on_signal(signal_name)`` on the event loop
    instead of stopping the server directly. stop() asks uvicorn to exit
    and returns once its shutdown has completed.
    """

    def __init__(
        self,
        config: uvicorn.Config,
        on_signal: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__(config)
        self.on_signal = on_signal
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped = asyncio.Event()
        self._signal_task: asyncio.Task | None = None

    async def startup(self, sockets=None) -> None:
        self._loop = asyncio.get_running_loop()
        await super().startup(sockets=sockets)

    async def shutdown(self, sockets=None) -> None:
        try:
            await super().shutdown(sockets=sockets)
        finally:
            self._stopped.set()

    def handle_exit(self, sig, frame) -> None:
        if self._loop is None or self.on_signal is None:
            super().handle_exit(sig, frame)
            return
        self._loop.call_soon_threadsafe(self._dispatch_signal, signal.Signals(sig).name)

    def _dispatch_signal(self, name: str) -> None:
        if self._signal_task is not None:
            logger.info("Shutdown already in progress", signal=name)
            return
        self._signal_task = asyncio.create_task(self.on_signal(name), name="shutdown")

    async def stop(self) -> None:
        """Stop accepting connections and wait for uvicorn to finish."""
        self.should_exit = True
        await self._stopped.wait()


def build_server(
    app: FastAPI,
    settings: Settings,
    exit_process: Callable[[int], None] = terminate_process,
) -> tuple[RelayServer, ShutdownCoordinator]:
    """
    Wire an application built by create_app() to uvicorn.

    Termination signals received by the returned server run the
    coordinator, whose listener-close step stops the server.
    """
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        lifespan="on",
    )
    server = RelayServer(config)
    coordinator = ShutdownCoordinator(
        app.state.relay_state,
        app.state.broadcaster,
        close_listener=server.stop,
        grace_period=settings.relay_shutdown_grace_period,
        exit_process=exit_process,
    )
    server.on_signal = coordinator.shutdown
    return server, coordinator


def main() -> None:
    """Console entry point: run the relay until a termination signal."""
    setup_logging()
    settings = get_settings()

    errors = settings.validate_relay_limits()
    if errors:
        for error in errors:
            logger.critical("Invalid configuration", error=error)
        raise SystemExit(EXIT_FAILURE)

    server, _ = build_server(create_app(settings), settings)

    logger.info(
        "Launching Global Chat relay",
        host=settings.host,
        port=settings.port,
        health=f"http://localhost:{settings.port}/health",
    )
    asyncio.run(server.serve())


if __name__ == "__main__":
    main()
