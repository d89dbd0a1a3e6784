"""
Tests for the WebSocket router.

Drives both sockets end to end through FastAPI's TestClient.
"""

import time
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from codecollab.core.security import create_access_token
from codecollab.main import app
from codecollab.websocket.router import execution_manager, room_router, router


def receive_until_done(websocket, limit=500):
    """Messages up to and including the next done message."""
    messages = []
    for _ in range(limit):
        message = websocket.receive_json()
        messages.append(message)
        if message["type"] == "done":
            return messages
    raise AssertionError("no done message received")


def receive_until_output(websocket, text, limit=500):
    output = ""
    for _ in range(limit):
        message = websocket.receive_json()
        if message["type"] == "output":
            output += message["data"]
            if text in output:
                return output
    raise AssertionError(f"{text!r} never arrived")


def wait_until(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def client(toolchain):
    """One app event loop shared by every socket the test opens."""
    with patch("codecollab.main.init_db", new=AsyncMock()), patch("codecollab.main.close_db", new=AsyncMock()):
        with TestClient(app) as test_client:
            yield test_client


class TestWebSocketRouter:
    """Test WebSocket router configuration."""

    def test_router_has_both_endpoints(self):
        paths = {route.path for route in router.routes}
        assert {"/ws/execute", "/ws/rooms"} <= paths


class TestExecutionSocket:
    """Test the /ws/execute endpoint."""

    def test_run_python(self, client):
        with client.websocket_connect("/ws/execute") as websocket:
            websocket.send_json({"type": "run", "code": 'print("hi")', "language": "python"})
            messages = receive_until_done(websocket)

        assert messages[-1] == {"type": "done"}
        assert "".join(m["data"] for m in messages if m["type"] == "output") == (
            "hi\n\n✔ Finished with exit code 0\n"
        )

    def test_interactive_input(self, client):
        with client.websocket_connect("/ws/execute") as websocket:
            websocket.send_json({"type": "run", "code": 'n = input("n? ")\nprint(int(n) * 2)', "language": "python"})
            receive_until_output(websocket, "n? ")
            websocket.send_json({"type": "input", "data": "21"})
            messages = receive_until_done(websocket)

        assert "".join(m["data"] for m in messages if m["type"] == "output").startswith("42\n")

    def test_invalid_json_keeps_connection(self, client):
        with client.websocket_connect("/ws/execute") as websocket:
            websocket.send_text("{nope")
            assert websocket.receive_json() == {"type": "error", "data": "Invalid JSON"}

            websocket.send_json({"type": "kill"})
            assert websocket.receive_json() == {"type": "error", "data": "No active process to kill."}

    def test_unsupported_language(self, client):
        with client.websocket_connect("/ws/execute") as websocket:
            websocket.send_json({"type": "run", "code": "1", "language": "cobol"})
            assert websocket.receive_json() == {"type": "error", "data": "Unsupported language: cobol"}

    def test_disconnect_kills_process(self, client):
        with client.websocket_connect("/ws/execute") as websocket:
            websocket.send_json({
                "type": "run",
                "code": 'import time\nprint("ready", flush=True)\ntime.sleep(30)',
                "language": "python",
            })
            receive_until_output(websocket, "ready")
            (process,) = [
                s.supervisor.active_run.process
                for s in execution_manager.sessions.values() if s.supervisor.active_run
            ]

        assert wait_until(lambda: process.returncode is not None)
        assert process.returncode == -9
        assert wait_until(lambda: not execution_manager.sessions)

    def test_valid_token_accepted(self, client):
        token = create_access_token("user-1")
        with client.websocket_connect(f"/ws/execute?token={token}") as websocket:
            websocket.send_json({"type": "input", "data": "x"})
            assert websocket.receive_json()["type"] == "error"

    def test_invalid_token_rejected(self, client):
        with client.websocket_connect("/ws/execute?token=not-a-jwt") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == 1008


class TestRoomSocket:
    """Test the /ws/rooms endpoint."""

    def test_two_participants_share_a_room(self, client):
        with client.websocket_connect("/ws/rooms") as alice:
            alice.send_json({"event": "join", "data": {"roomId": "abc123", "username": "Alice"}})
            assert alice.receive_json()["data"]["joinedUsername"] == "Alice"

            with client.websocket_connect("/ws/rooms") as bob:
                bob.send_json({"event": "join", "data": {"roomId": "abc123", "username": "Bob"}})
                joined = bob.receive_json()
                assert alice.receive_json() == joined
                assert [c["username"] for c in joined["data"]["clients"]] == ["Alice", "Bob"]

                alice.send_json({"event": "code-change", "data": {"roomId": "abc123", "code": "print(1)"}})
                assert bob.receive_json() == {"event": "code-update", "data": {"code": "print(1)"}}

                # Alice's next frame is Bob's event, not an echo of her own
                bob.send_json({"event": "language-change", "data": {"roomId": "abc123", "language": "c"}})
                assert alice.receive_json() == {"event": "language-update", "data": {"language": "c"}}

            left = alice.receive_json()

        assert left["event"] == "disconnected"
        assert left["data"]["leftUsername"] == "Bob"
        assert [c["username"] for c in left["data"]["clients"]] == ["Alice"]

    def test_invalid_frame_reports_error(self, client):
        with client.websocket_connect("/ws/rooms") as websocket:
            websocket.send_text("garbage")
            assert websocket.receive_json() == {"event": "error", "data": {"message": "Invalid JSON"}}

    def test_connection_released_on_close(self, client):
        with client.websocket_connect("/ws/rooms") as websocket:
            websocket.send_json({"event": "join", "data": {"roomId": "solo", "username": "Sam"}})
            websocket.receive_json()

        assert wait_until(lambda: room_router.registry.members("solo") == [])
