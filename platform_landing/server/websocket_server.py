"""WebSocket control API for the landing session.

This module implements the async WebSocket server that:
- Receives JSON actions from the operator panel (execute, disarm, abort)
- Returns the JSON telemetry summary on request
- Accepts marker poses from a remote vision process

Note: This server supports only ONE client at a time (single operator).
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from .config import Config, default_config
from .position_controller import MarkerPose
from .session import Session

logger = logging.getLogger(__name__)


@dataclass
class ClientState:
    """Tracks state for the connected client."""

    websocket: ServerConnection
    client_id: str
    connected_at: float = field(default_factory=time.time)
    requests: int = 0
    errors: int = 0


class ControlServer:
    """
    Async WebSocket server exposing the session control actions.

    Request:  {"action": "<name>", ...}
    Response: {"status": "ok", ...} or {"status": "error", "message": "..."}

    Actions:
        execute    Arm the landing sequence
        disarm     Disarm the landing sequence
        abort      Send ABORT to the drone and disarm
        telemetry  Telemetry summary
        pose       Report a vision frame: {"marker_visible": bool,
                   "x": float, "y": float, "z": float, "yaw": float}
    """

    def __init__(
        self,
        session: Session,
        host: str = "0.0.0.0",
        port: int = 8765,
        config: Optional[Config] = None,
    ):
        """
        Initialize control server.

        Args:
            session: Landing session to control.
            host: Host address to bind to.
            port: Port number for WebSocket connections.
            config: Configuration object.
        """
        self.session = session
        self.host = host
        self.port = port
        self.config = config or default_config

        # Single client connection (only one operator at a time)
        self._client: Optional[ClientState] = None

        self._server: Optional[Server] = None
        self._running = False

        self._handlers = {
            "execute": self._handle_execute,
            "disarm": self._handle_disarm,
            "abort": self._handle_abort,
            "telemetry": self._handle_telemetry,
            "pose": self._handle_pose,
        }

    async def start(self) -> None:
        """Start the WebSocket server."""
        self._running = True

        self._server = await serve(
            self._handle_connection,
            self.host,
            self.port,
            ping_interval=20,
            ping_timeout=10,
        )

        logger.info(f"Control server started on ws://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the WebSocket server."""
        self._running = False

        if self._client:
            try:
                await self._client.websocket.close()
            except websockets.WebSocketException as e:
                logger.error(f"Error closing client: {e}")
            self._client = None

        if self._server:
            self._server.close()
            await self._server.wait_closed()

        logger.info("Control server stopped")

    @property
    def bound_port(self) -> int:
        """Actual listening port (useful when started with port 0)."""
        if self._server is None:
            return self.port
        return next(iter(self._server.sockets)).getsockname()[1]

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """
        Handle a client connection.

        A new client replaces the existing one.

        Args:
            websocket: Client WebSocket connection.
        """
        remote = websocket.remote_address
        client_id = f"{remote[0]}:{remote[1]}" if remote else "unknown"

        if self._client is not None:
            logger.warning(
                f"New client {client_id} connecting, disconnecting existing client"
            )
            await self._client.websocket.close()

        self._client = ClientState(websocket=websocket, client_id=client_id)
        logger.info(f"Client connected: {client_id}")

        try:
            async for message in websocket:
                response = self.handle_request(message)
                await websocket.send(json.dumps(response))
        except websockets.ConnectionClosed as e:
            logger.info(f"Client {client_id} disconnected: {e}")
        finally:
            if self._client and self._client.client_id == client_id:
                logger.info(
                    f"Client {client_id} removed. "
                    f"Stats: {self._client.requests} requests, "
                    f"{self._client.errors} errors"
                )
                self._client = None

    def handle_request(self, message) -> dict:
        """
        Dispatch one request.

        Args:
            message: Raw JSON text (or bytes).

        Returns:
            Response dictionary.
        """
        if self._client:
            self._client.requests += 1

        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return self._error(f"Invalid JSON: {e}")

        if not isinstance(data, dict):
            return self._error("Request must be a JSON object")

        action = data.get("action", "")
        handler = self._handlers.get(action)
        if handler is None:
            return self._error(f"Unknown action: {action!r}")

        logger.debug(f"Action received: {action}")
        try:
            return handler(data)
        except (KeyError, TypeError, ValueError) as e:
            return self._error(f"Bad {action} request: {e}")

    def _error(self, message: str) -> dict:
        if self._client:
            self._client.errors += 1
        logger.warning(message)
        return {"status": "error", "message": message}

    def _handle_execute(self, data: dict) -> dict:
        if not self.session.execute():
            return self._error(
                f"Pre-flight checks failed: {self.session.controller.preflight_error}"
            )
        return {"status": "ok", "phase": self.session.controller.phase.name}

    def _handle_disarm(self, data: dict) -> dict:
        self.session.disarm()
        return {"status": "ok", "phase": self.session.controller.phase.name}

    def _handle_abort(self, data: dict) -> dict:
        self.session.abort()
        return {"status": "ok", "phase": self.session.controller.phase.name}

    def _handle_telemetry(self, data: dict) -> dict:
        return {"status": "ok", "telemetry": self.session.telemetry_summary()}

    def _handle_pose(self, data: dict) -> dict:
        marker_visible = bool(data.get("marker_visible", False))
        pose = None
        if marker_visible:
            pose = MarkerPose(
                x=float(data["x"]),
                y=float(data["y"]),
                z=float(data["z"]),
                yaw=float(data.get("yaw", 0.0)),
            )
        phase = self.session.report_frame(marker_visible, pose)
        return {"status": "ok", "phase": phase.name}

    @property
    def is_connected(self) -> bool:
        """Whether a client is connected."""
        return self._client is not None

    @property
    def is_running(self) -> bool:
        """Whether server is running."""
        return self._running
