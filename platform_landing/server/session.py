"""Landing session: wires the links, loops and the controller together."""

import logging
import threading
import time
from typing import Callable, List, Optional

from ..protocol.link_codec import LinkCodec
from ..protocol.platform_protocol import PlatformProtocol
from ..protocol.telemetry_decoder import TelemetryDecoder
from .config import Config, ConfigError, default_config
from .link_sender import LinkSender
from .position_controller import MarkerPose, PositionController
from .state import (
    BlackboxSignal,
    PlatformState,
    PositionState,
    StateHolder,
    TelemetryState,
)
from .state_machine import FlightPhase
from .transports import UDPTransport, open_transports
from .workers import PlatformWorker, TelemetryWorker

logger = logging.getLogger(__name__)


class Session:
    """
    One landing session.

    Owns the state records, the drone link sender, the telemetry and
    platform loops and the position controller. The vision side reports
    frames through report_frame(); the control API arms, disarms and
    aborts through execute(), disarm() and abort().
    """

    def __init__(
        self,
        link_transports: Optional[List] = None,
        platform_transport=None,
        config: Config = None,
        exposure_callback: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize session.

        Args:
            link_transports: Drone link transports (frames go to all of them).
            platform_transport: Platform link transport.
            config: Configuration object.
            exposure_callback: Applies a new exposure to the camera.
            clock: Monotonic time source in seconds.
        """
        self.config = config or default_config
        self.link_transports = list(link_transports or [])
        self.platform_transport = platform_transport
        self.stop_event = threading.Event()

        self.platform = StateHolder(PlatformState())
        self.telemetry = StateHolder(TelemetryState())
        self.blackbox = BlackboxSignal()

        codec = LinkCodec(self.config.link_suffix_1, self.config.link_suffix_2)
        self.link = LinkSender(codec, self.link_transports)
        self.controller = PositionController(
            self.link,
            self.platform,
            self.telemetry,
            blackbox=self.blackbox,
            config=self.config,
        )

        self.telemetry_worker: Optional[TelemetryWorker] = None
        telemetry_transport = self._telemetry_transport()
        if telemetry_transport is not None:
            self.telemetry_worker = TelemetryWorker(
                telemetry_transport,
                TelemetryDecoder(self.config.link_suffix_1, self.config.link_suffix_2),
                self.telemetry,
                config=self.config,
                stop_event=self.stop_event,
                clock=clock,
            )

        self.platform_worker: Optional[PlatformWorker] = None
        if platform_transport is not None:
            self.platform_worker = PlatformWorker(
                PlatformProtocol(
                    platform_transport, self.config.platform_reply_timeout_s, clock
                ),
                self.platform,
                phase_source=lambda: self.controller.phase,
                config=self.config,
                exposure_callback=exposure_callback,
                stop_event=self.stop_event,
                clock=clock,
            )

        self._started = False

    @classmethod
    def open(
        cls,
        config: Config,
        exposure_callback: Optional[Callable[[float], None]] = None,
    ) -> "Session":
        """
        Open the configured transports and create a session.

        Raises:
            ConfigError: If the configuration is invalid or a link has no transport.
            TransportError: If a transport cannot be opened.
        """
        config.validate()
        if not (config.link_serial_port or config.link_udp):
            raise ConfigError("No drone link transport configured")
        if not (config.platform_serial_port or config.platform_udp):
            raise ConfigError("No platform link transport configured")

        link_transports = open_transports(
            config.link_serial_port,
            config.link_baudrate,
            config.link_udp,
            config.link_udp_bind_port,
            config.transport_read_timeout_s,
        )
        try:
            platform_transports = open_transports(
                config.platform_serial_port,
                config.platform_baudrate,
                config.platform_udp,
                config.platform_udp_bind_port,
                config.transport_read_timeout_s,
            )
        except Exception:
            for transport in link_transports:
                transport.close()
            raise

        # The platform protocol is synchronous, one transport is enough
        for transport in platform_transports[1:]:
            transport.close()

        return cls(
            link_transports,
            platform_transports[0],
            config=config,
            exposure_callback=exposure_callback,
        )

    def _telemetry_transport(self):
        """Telemetry is read from the UDP link if configured, else serial."""
        for transport in self.link_transports:
            if isinstance(transport, UDPTransport):
                return transport
        return self.link_transports[0] if self.link_transports else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the telemetry and platform loops."""
        if self._started:
            return
        for worker in (self.telemetry_worker, self.platform_worker):
            if worker is not None:
                worker.start()
        self._started = True
        logger.info("Session started")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the loops and close the transports."""
        self.stop_event.set()
        for worker in (self.telemetry_worker, self.platform_worker):
            if worker is not None:
                worker.stop(timeout)

        for transport in self.link_transports:
            transport.close()
        if self.platform_transport is not None:
            self.platform_transport.close()
        self._started = False
        logger.info("Session stopped")

    @property
    def running(self) -> bool:
        return self._started and not self.stop_event.is_set()

    # =========================================================================
    # Vision and control API
    # =========================================================================

    def report_frame(self, marker_visible: bool, pose: Optional[MarkerPose] = None) -> FlightPhase:
        """Process one vision frame (called at the camera frame rate)."""
        return self.controller.proceed(marker_visible, pose)

    def execute(self) -> bool:
        """Arm the landing sequence."""
        return self.controller.set_armed(True)

    def disarm(self) -> bool:
        """Disarm the landing sequence."""
        return self.controller.set_armed(False)

    def abort(self) -> None:
        """Abort the flight and disarm."""
        self.controller.abort()

    # =========================================================================
    # Snapshots
    # =========================================================================

    def position_snapshot(self) -> PositionState:
        return self.controller.position.snapshot()

    def platform_snapshot(self) -> PlatformState:
        return self.platform.snapshot()

    def telemetry_snapshot(self) -> TelemetryState:
        return self.telemetry.snapshot()

    def telemetry_summary(self) -> dict:
        """JSON-serializable summary for the control panel."""
        position = self.position_snapshot()
        platform = self.platform_snapshot()
        telemetry = self.telemetry_snapshot()

        return {
            "status": position.phase.name,
            "armed": position.armed,
            "distance": int(position.distance),
            "preflight_error": self.controller.preflight_error,
            "drone_telemetry_lost": telemetry.lost,
            "drone_packets": telemetry.packets,
            "flight_mode": telemetry.flight_mode,
            "drone_voltage": round(telemetry.voltage, 2),
            "drone_altitude": telemetry.altitude,
            "drone_satellites": telemetry.gps.satellites,
            "drone_lat": telemetry.gps.lat,
            "drone_lon": telemetry.gps.lon,
            "platform_lost": platform.lost,
            "platform_packets": platform.replies,
            "platform_pressure": platform.pressure,
            "platform_satellites": platform.gps.satellites,
            "platform_lat": platform.gps.lat,
            "platform_lon": platform.gps.lon,
            "platform_speed": round(platform.speed_kmh, 2),
            "platform_illumination": platform.illumination,
        }
