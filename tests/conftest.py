"""
Pytest configuration and fixtures for relay tests.
"""

import itertools
import json

import pytest
from fastapi.testclient import TestClient

from shared.config.settings import Settings
from relay_gateway.core.connection.broadcaster import Broadcaster
from relay_gateway.core.connection.dispatcher import ProtocolDispatcher
from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
from relay_gateway.main import create_app
from relay_gateway.server_state import ServerState


class FakeTransport:
    """
    In-memory transport that records everything the core asks of it.

    Sent frames are decoded back to dicts so tests can assert on content.
    """

    def __init__(self, fail_on_send: bool = False):
        self.frames: list[dict] = []
        self.open = True
        self.terminated = False
        self.probes = 0
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.fail_on_send = fail_on_send

    @property
    def is_open(self) -> bool:
        return self.open

    def send(self, text: str) -> None:
        if self.fail_on_send:
            raise ConnectionError("peer went away")
        self.frames.append(json.loads(text))

    def probe(self) -> None:
        self.probes += 1

    def close(self, code: int, reason: str) -> None:
        self.close_code = code
        self.close_reason = reason
        self.open = False

    def terminate(self) -> None:
        self.terminated = True
        self.open = False

    def of_type(self, frame_type: str) -> list[dict]:
        return [f for f in self.frames if f.get("type") == frame_type]

    def clear(self) -> None:
        self.frames.clear()


class FakeClock:
    """Monotonic epoch-ms clock advancing one millisecond per reading."""

    def __init__(self, start: int = 1_700_000_000_000):
        self._counter = itertools.count(start)

    def __call__(self) -> int:
        return next(self._counter)


@pytest.fixture
def state():
    """Fresh relay state per test."""
    return ServerState.create()


@pytest.fixture
def broadcaster(state):
    return Broadcaster(state.registry)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher(state, broadcaster, clock):
    return ProtocolDispatcher(
        state.registry,
        state.history,
        broadcaster,
        clock=clock,
    )


@pytest.fixture
def heartbeat(state):
    return HeartbeatMonitor(state.registry, interval_seconds=0.01)


@pytest.fixture
def connect(dispatcher):
    """
    Connect a fake client through the dispatcher.

    Returns (connection_info, transport).
    """
    def _connect(remote_address: str = "127.0.0.1"):
        transport = FakeTransport()
        info = dispatcher.on_accept(transport, remote_address)
        return info, transport

    return _connect


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        environment="test",
        relay_heartbeat_interval=3600.0,
        relay_status_log_interval=3600.0,
    )


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app):
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client
