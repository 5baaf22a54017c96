"""End-to-end tests over the ASGI app with FastAPI's TestClient."""
import asyncio
import threading

import pytest
from fastapi.testclient import TestClient

import backend
from app import create_app
from relay.connection import Connection


class FakeRedis:
    """In-memory stand-in for the handful of redis commands the backend issues."""

    def __init__(self):
        self.hashes = {}
        self.ttls = {}

    def ping(self):
        return True

    def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})
        return len(mapping)

    def expire(self, key, ttl):
        self.ttls[key] = ttl
        return True

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def delete(self, key):
        return 1 if self.hashes.pop(key, None) is not None else 0


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(backend.redis_backend, "redis_client", fake)
    return fake


@pytest.fixture
def client(fake_redis):
    with TestClient(create_app()) as test_client:
        yield test_client


def register(ws, client_id, public_key):
    ws.send_json({"type": "register", "clientId": client_id, "kyberPublicKey": public_key})
    return ws.receive_json()


def join(ws, room_id="r1", token="x"):
    ws.send_json({"type": "join_room", "roomId": room_id, "authToken": token})
    return ws.receive_json()


# -----------------------------
# Relay socket
# -----------------------------

def test_full_chat_scenario(client):
    with client.websocket_connect("/") as alice, client.websocket_connect("/") as bob:
        assert register(alice, "alice", [1, 2]) == {"type": "registered", "clientId": "alice"}
        assert register(bob, "bob", [3, 4]) == {"type": "registered", "clientId": "bob"}

        assert join(alice) == {
            "type": "room_joined",
            "roomId": "r1",
            "users": [{"id": "alice", "publicKey": [1, 2]}],
        }
        assert join(bob) == {
            "type": "room_joined",
            "roomId": "r1",
            "users": [{"id": "alice", "publicKey": [1, 2]}, {"id": "bob", "publicKey": [3, 4]}],
        }
        assert alice.receive_json() == {"type": "user_joined", "userId": "bob", "publicKey": [3, 4]}

        bob.send_json({"type": "key_exchange", "recipientId": "alice", "publicKey": [5, 6]})
        assert alice.receive_json() == {"type": "key_exchange", "senderId": "bob", "publicKey": [5, 6]}

        bob.send_json({
            "type": "message",
            "roomId": "r1",
            "timestamp": 1700000000000,
            "messages": [
                {"recipientId": "alice", "encryptedData": {"ciphertext": [1], "iv": [2]}},
                {"recipientId": "bob", "encryptedData": {"ciphertext": [3], "iv": [4]}},
            ],
        })
        assert alice.receive_json() == {
            "type": "message",
            "senderId": "bob",
            "encryptedData": {"ciphertext": [1], "iv": [2]},
            "timestamp": 1700000000000,
            "publicKey": [3, 4],
        }

        # Frames to one connection arrive in order, so a message echoed to bob
        # would show up ahead of this pong.
        bob.send_json({"type": "ping"})
        assert bob.receive_json() == {"type": "pong"}


def test_disconnect_announces_user_left(client):
    with client.websocket_connect("/") as alice:
        register(alice, "alice", [1])
        join(alice)

        with client.websocket_connect("/") as bob:
            register(bob, "bob", [2])
            join(bob)
            assert alice.receive_json()["type"] == "user_joined"

        assert alice.receive_json() == {"type": "user_left", "userId": "bob"}
        assert client.app.state.relay.rooms.members_of("r1") == {"alice"}


def test_malformed_frame_keeps_connection_open(client):
    with client.websocket_connect("/") as ws:
        ws.send_text("{not json")
        reply = ws.receive_json()
        assert reply["type"] == "error"
        assert reply["message"].startswith("Invalid frame")

        assert register(ws, "still-here", [])["type"] == "registered"


def test_binary_frames_are_accepted(client):
    with client.websocket_connect("/") as ws:
        ws.send_bytes(b'{"type": "register", "clientId": "bin", "kyberPublicKey": [7]}')
        assert ws.receive_json() == {"type": "registered", "clientId": "bin"}


def test_unregistered_join_is_refused(client):
    with client.websocket_connect("/") as ws:
        assert join(ws) == {"type": "error", "message": "Not registered"}


def test_subprotocol_is_negotiated(client):
    with client.websocket_connect("/", subprotocols=["pqchat"]) as ws:
        assert ws.accepted_subprotocol == "pqchat"
    with client.websocket_connect("/") as ws:
        assert ws.accepted_subprotocol is None


def test_client_that_stops_answering_pings_is_evicted(fake_redis, monkeypatch):
    app = create_app(ping_interval=0.1, check_interval=0.3)
    relay = app.state.relay

    def transport_ping(self):
        # alice's transport answers every control-frame ping; bob's goes silent once registered
        waiter = asyncio.get_running_loop().create_future()
        record = relay.registry.lookup_by_connection(self)
        if record is None or record.id != "bob":
            waiter.set_result(None)
        return waiter

    monkeypatch.setattr(Connection, "ping", transport_ping)

    with TestClient(app) as client:
        with client.websocket_connect("/") as alice, client.websocket_connect("/") as bob:
            register(alice, "alice", [1])
            join(alice)
            register(bob, "bob", [2])
            join(bob)
            assert alice.receive_json()["type"] == "user_joined"

            # alice sends nothing further and never a JSON pong, yet stays
            assert alice.receive_json() == {"type": "user_left", "userId": "bob"}

            assert relay.rooms.members_of("r1") == {"alice"}
            assert relay.registry.lookup_by_id("bob") is None
            assert relay.registry.lookup_by_id("alice") is not None


# -----------------------------
# HTTP endpoints
# -----------------------------

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "open_connections": 0, "registered_clients": 0, "rooms": 0}


def test_create_room(client, fake_redis):
    response = client.post("/api/rooms", json={"roomId": "r1", "password": "secret"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "roomId": "r1"}
    stored = fake_redis.hashes["room:meta:r1"]
    assert stored["room_id"] == "r1"
    assert "secret" not in stored.values()
    assert fake_redis.ttls["room:meta:r1"] > 0


@pytest.mark.parametrize("body", [{}, {"roomId": "r1"}, {"password": "p"}, {"roomId": "", "password": "p"}])
def test_create_room_requires_id_and_password(client, body):
    response = client.post("/api/rooms", json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == "Room ID and password are required"


def test_create_room_redis_failure(client, fake_redis, monkeypatch):
    def broken(*args, **kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(fake_redis, "hset", broken)
    response = client.post("/api/rooms", json={"roomId": "r1", "password": "p"})
    assert response.status_code == 500


def test_room_details_combines_provisioning_and_live_members(client):
    client.post("/api/rooms", json={"roomId": "r1", "password": "p"})

    with client.websocket_connect("/") as alice:
        register(alice, "alice", [1])
        join(alice)

        response = client.get("/api/rooms/r1")
        assert response.status_code == 200
        details = response.json()
        assert details["provisioned"] is True
        assert details["online_users_count"] == 1
        assert details["online_users"] == ["alice"]
        assert "password_hash" not in details

        # Rooms that only exist on the relay are reported too
        join(alice, "adhoc")
        details = client.get("/api/rooms/adhoc").json()
        assert details["provisioned"] is False
        assert details["online_users"] == ["alice"]


def test_room_details_unknown_room(client):
    assert client.get("/api/rooms/nope").status_code == 404


def test_close_room_checks_password(client, fake_redis):
    client.post("/api/rooms", json={"roomId": "r1", "password": "p"})

    assert client.post("/api/rooms/r1/close", json={"password": "wrong"}).status_code == 401
    assert client.post("/api/rooms/r1/close", json={}).status_code == 401
    assert "room:meta:r1" in fake_redis.hashes

    assert client.post("/api/rooms/r1/close", json={"password": "p"}).status_code == 200
    assert "room:meta:r1" not in fake_redis.hashes
    assert client.post("/api/rooms/r1/close", json={"password": "p"}).status_code == 404


def test_frames_are_handled_while_a_room_is_being_created(client, fake_redis, monkeypatch):
    entered = threading.Event()
    release = threading.Event()
    store = fake_redis.hset

    def slow_hset(key, mapping):
        entered.set()
        assert release.wait(5)
        return store(key, mapping)

    monkeypatch.setattr(fake_redis, "hset", slow_hset)

    responses = []
    creator = threading.Thread(
        target=lambda: responses.append(client.post("/api/rooms", json={"roomId": "r1", "password": "p"}))
    )
    creator.start()
    try:
        assert entered.wait(5)
        # The room creation is parked inside redis; the relay socket still answers
        with client.websocket_connect("/") as ws:
            assert register(ws, "alice", [1]) == {"type": "registered", "clientId": "alice"}
            assert not responses
    finally:
        release.set()
        creator.join(5)

    assert responses[0].status_code == 200
    assert "room:meta:r1" in fake_redis.hashes
