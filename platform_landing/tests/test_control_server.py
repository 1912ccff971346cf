"""Integration tests for the WebSocket control API."""

import json

import pytest
import pytest_asyncio
import websockets

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from platform_landing.server.config import Config
from platform_landing.server.session import Session
from platform_landing.server.websocket_server import ControlServer


class RecordingTransport:
    def __init__(self):
        self.frames = []

    def write(self, data: bytes) -> None:
        self.frames.append(bytes(data))

    def read(self, timeout=None) -> bytes:
        return b""

    def close(self) -> None:
        pass


@pytest.fixture
def session():
    return Session([RecordingTransport()], None, config=Config(input_filter=0.0))


@pytest_asyncio.fixture
async def server(session):
    server = ControlServer(session, host="127.0.0.1", port=0)
    await server.start()
    yield server
    await server.stop()


async def request(ws, payload) -> dict:
    await ws.send(json.dumps(payload) if not isinstance(payload, str) else payload)
    return json.loads(await ws.recv())


class TestRequestDispatch:
    """Test request handling without a connection."""

    def test_unknown_action(self, session):
        server = ControlServer(session)
        response = server.handle_request(json.dumps({"action": "fly"}))
        assert response["status"] == "error"
        assert "fly" in response["message"]

    def test_invalid_json(self, session):
        server = ControlServer(session)
        assert server.handle_request("{not json")["status"] == "error"

    def test_non_object(self, session):
        server = ControlServer(session)
        assert server.handle_request("[1, 2]")["status"] == "error"

    def test_bad_pose(self, session):
        """Test missing pose fields are reported."""
        server = ControlServer(session)
        response = server.handle_request(json.dumps({"action": "pose", "marker_visible": True}))
        assert response["status"] == "error"

    def test_preflight_refusal(self):
        """Test refused arming returns the pre-flight error."""
        session = Session(
            [RecordingTransport()], None, config=Config(preflight_checks_enabled=True)
        )
        server = ControlServer(session)
        response = server.handle_request(json.dumps({"action": "execute"}))

        assert response["status"] == "error"
        assert "Pre-flight checks failed" in response["message"]


class TestControlServer:
    """Test the API over a WebSocket connection."""

    @pytest.mark.asyncio
    async def test_start_stop(self, session):
        """Test server can start and stop."""
        server = ControlServer(session, host="127.0.0.1", port=0)
        await server.start()
        assert server.is_running
        assert server.bound_port > 0

        await server.stop()
        assert not server.is_running

    @pytest.mark.asyncio
    async def test_landing_actions(self, server):
        """Test execute, pose, telemetry and abort."""
        async with websockets.connect(f"ws://127.0.0.1:{server.bound_port}") as ws:
            response = await request(ws, {"action": "execute"})
            assert response == {"status": "ok", "phase": "IDLE"}

            response = await request(
                ws, {"action": "pose", "marker_visible": True, "x": 0, "y": 0, "z": 500, "yaw": 0}
            )
            assert response == {"status": "ok", "phase": "STAB"}

            response = await request(ws, {"action": "telemetry"})
            assert response["status"] == "ok"
            assert response["telemetry"]["status"] == "STAB"
            assert response["telemetry"]["armed"] is True

            response = await request(ws, {"action": "abort"})
            assert response == {"status": "ok", "phase": "IDLE"}

            response = await request(ws, {"action": "disarm"})
            assert response["status"] == "ok"

    @pytest.mark.asyncio
    async def test_error_response(self, server):
        """Test errors keep the connection open."""
        async with websockets.connect(f"ws://127.0.0.1:{server.bound_port}") as ws:
            response = await request(ws, "garbage")
            assert response["status"] == "error"

            response = await request(ws, {"action": "telemetry"})
            assert response["status"] == "ok"

    @pytest.mark.asyncio
    async def test_client_connected(self, server):
        """Test client tracking."""
        async with websockets.connect(f"ws://127.0.0.1:{server.bound_port}") as ws:
            await request(ws, {"action": "telemetry"})
            assert server.is_connected
