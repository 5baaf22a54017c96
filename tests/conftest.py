"""Test configuration and fixtures."""
import json

import pytest

from relay.context import RelayContext


class FakePongWaiter:
    """Future-like pong waiter that a test completes by calling `answer`."""

    def __init__(self):
        self.callbacks = []
        self.answered = False

    def add_done_callback(self, callback):
        self.callbacks.append(callback)

    def cancelled(self) -> bool:
        return False

    def exception(self):
        return None

    def answer(self):
        self.answered = True
        for callback in self.callbacks:
            callback(self)


class FakeConnection:
    """Stands in for relay.connection.Connection; keeps sent frames in memory."""

    def __init__(self, name: str = "conn"):
        self.name = name
        self.remote = f"test:{name}"
        self.connection_id = name
        self.is_open = True
        self.awaiting_probe = False
        self.probe_sent_at = None
        self.sent = []
        self.close_calls = []
        self.pings = []
        self.supports_ping = True

    def send(self, frame: dict) -> bool:
        if not self.is_open:
            return False
        self.sent.append(frame)
        return True

    def ping(self):
        if not self.is_open or not self.supports_ping:
            return None
        waiter = FakePongWaiter()
        self.pings.append(waiter)
        return waiter

    def answer_pings(self):
        for waiter in self.pings:
            if not waiter.answered:
                waiter.answer()

    async def close(self, code: int = 1000, reason: str = ""):
        self.close_calls.append(code)
        self.is_open = False

    def frames(self, frame_type: str) -> list:
        return [f for f in self.sent if f["type"] == frame_type]

    def __repr__(self):
        return f"<FakeConnection {self.name}>"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def relay(clock):
    return RelayContext(ping_interval=30, check_interval=10, clock=clock)


@pytest.fixture
def connect(relay):
    """Attach a fresh fake connection to the relay."""
    def _connect(name: str) -> FakeConnection:
        connection = FakeConnection(name)
        relay.attach(connection)
        return connection
    return _connect


@pytest.fixture
def send(relay):
    """Feed one frame (dict or raw string) through the relay's router."""
    def _send(connection, frame):
        raw = frame if isinstance(frame, (str, bytes)) else json.dumps(frame)
        relay.handle_frame(connection, raw)
    return _send


@pytest.fixture
def joined(connect, send):
    """Register a client and put it in a room; returns its connection."""
    def _joined(client_id: str, room_id: str = "r1", public_key=None):
        connection = connect(client_id)
        send(connection, {"type": "register", "clientId": client_id, "kyberPublicKey": public_key or [1, 2, 3]})
        send(connection, {"type": "join_room", "roomId": room_id, "authToken": "x"})
        connection.sent.clear()
        return connection
    return _joined
