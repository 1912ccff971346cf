"""Background loops for the telemetry and platform links."""

import logging
import threading
import time
from typing import Callable, Optional

from ..protocol.messages import TelemetryFrame
from ..protocol.platform_protocol import PlatformProtocol, compute_exposure
from ..protocol.telemetry_decoder import TelemetryDecoder
from .config import Config, default_config
from .gps import SpeedMeter
from .state import PlatformState, StateHolder, TelemetryState

logger = logging.getLogger(__name__)


class LoopWorker(threading.Thread):
    """
    Thread running run_once() until stopped.

    The stop flag is checked once per iteration; the current unit of work
    always finishes before the thread exits.
    """

    def __init__(self, name: str, stop_event: Optional[threading.Event] = None):
        super().__init__(name=name, daemon=True)
        self.stop_event = stop_event or threading.Event()
        self.iterations = 0

    def run(self) -> None:
        logger.info(f"{self.name} started")
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"{self.name} iteration failed: {e}")
            self.iterations += 1
        logger.info(f"{self.name} stopped")

    def run_once(self) -> None:
        raise NotImplementedError

    def stop(self, timeout: Optional[float] = None) -> None:
        """Request the loop to stop and wait for it."""
        self.stop_event.set()
        if self.is_alive():
            self.join(timeout)


class TelemetryWorker(LoopWorker):
    """Reads the drone link and decodes telemetry frames into TelemetryState."""

    def __init__(
        self,
        transport,
        decoder: TelemetryDecoder,
        telemetry: StateHolder[TelemetryState],
        config: Config = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize telemetry worker.

        Args:
            transport: Object with read(timeout).
            decoder: Telemetry frame decoder.
            telemetry: Telemetry state holder (written here only).
            config: Configuration object.
            stop_event: Shared session stop flag.
            clock: Monotonic time source in seconds.
        """
        super().__init__("TelemetryWorker", stop_event)
        self.config = config or default_config
        self.transport = transport
        self.decoder = decoder
        self.telemetry = telemetry
        self._clock = clock

    def run_once(self) -> None:
        """Read one chunk, decode it and update the lost flag."""
        try:
            data = self.transport.read(self.config.transport_read_timeout_s)
        except OSError as e:
            logger.error(f"Error reading telemetry from the drone: {e}")
            data = b""

        for frame in self.decoder.feed(data):
            self.apply_frame(frame)

        if self.decoder.checksum_errors:
            with self.telemetry.write() as telemetry:
                telemetry.checksum_errors = self.decoder.checksum_errors

        self.check_lost()

    def apply_frame(self, frame: TelemetryFrame) -> None:
        """Store a decoded frame and mark the telemetry alive."""
        with self.telemetry.write() as telemetry:
            telemetry.error_status = frame.error_status
            telemetry.flight_mode = frame.flight_mode
            telemetry.voltage = frame.voltage
            telemetry.temperature = frame.temperature
            telemetry.roll = frame.roll
            telemetry.pitch = frame.pitch
            telemetry.start_status = frame.start_status
            telemetry.altitude = frame.altitude
            telemetry.takeoff_throttle = frame.takeoff_throttle
            telemetry.takeoff_detected = frame.takeoff_detected
            telemetry.yaw = frame.yaw
            telemetry.heading_lock = frame.heading_lock
            telemetry.gps.set_from_int(frame.lat_int, frame.lon_int)
            telemetry.gps.satellites = frame.satellites
            telemetry.gps.fix_type = frame.fix_type
            telemetry.waypoint_step = frame.waypoint_step
            telemetry.altitude_waypoint_acked = frame.altitude_waypoint_acked
            telemetry.gps_waypoint_acked = frame.gps_waypoint_acked

            telemetry.packets += 1
            telemetry.last_frame_time = self._clock()
            if telemetry.lost:
                logger.warning("Drone telemetry restored")
            telemetry.lost = False

    def check_lost(self) -> bool:
        """Set the lost flag when no valid frame arrived in time."""
        now = self._clock()
        with self.telemetry.write() as telemetry:
            if (
                not telemetry.lost
                and now - telemetry.last_frame_time >= self.config.telemetry_lost_time_s
            ):
                logger.error("Drone telemetry lost")
                telemetry.lost = True
            return telemetry.lost


class PlatformWorker(LoopWorker):
    """
    Polls the platform once per period.

    Poll cycle: illumination query -> light decision -> exposure
    recompute -> position query -> status push. A step whose reply timed
    out is skipped for this cycle.
    """

    def __init__(
        self,
        protocol: PlatformProtocol,
        platform: StateHolder[PlatformState],
        phase_source: Callable[[], int],
        config: Config = None,
        exposure_callback: Optional[Callable[[float], None]] = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize platform worker.

        Args:
            protocol: Platform request/reply client.
            platform: Platform state holder (written here only).
            phase_source: Returns the current flight phase.
            config: Configuration object.
            exposure_callback: Applies a new exposure to the camera.
            stop_event: Shared session stop flag.
            clock: Monotonic time source in seconds.
        """
        super().__init__("PlatformWorker", stop_event)
        self.config = config or default_config
        self.protocol = protocol
        self.platform = platform
        self.phase_source = phase_source
        self.exposure_callback = exposure_callback
        self._clock = clock
        self._speed_meter = SpeedMeter(self.config.speed_filter, self.config.planet_radius_km)
        self._applied_exposure: Optional[float] = None

    def run(self) -> None:
        logger.info(f"{self.name} started")
        while not self.stop_event.is_set():
            started = self._clock()
            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"{self.name} iteration failed: {e}")
            self.iterations += 1

            elapsed = self._clock() - started
            self.stop_event.wait(max(0.0, self.config.platform_loop_period_s - elapsed))
        logger.info(f"{self.name} stopped")

    def run_once(self) -> None:
        """Run one poll cycle."""
        illumination = self.protocol.query_illumination()
        if illumination is not None:
            self._reply_received()
            with self.platform.write() as platform:
                platform.illumination = illumination
            self._update_light(illumination)
            try:
                self._update_exposure(illumination)
            except Exception as e:
                logger.exception(f"Camera exposure update failed: {e}")

        reading = self.protocol.query_position()
        if reading is not None:
            self._reply_received()
            with self.platform.write() as platform:
                platform.gps.set_from_int(reading.lat_int, reading.lon_int)
                platform.gps.satellites = reading.satellites
                platform.pressure = reading.pressure
                platform.fix_counter += 1
                platform.speed_kmh = self._speed_meter.update(platform.gps, self._clock())
                platform.heading = self._speed_meter.heading_deg

        if self.protocol.push_status(int(self.phase_source())):
            self._reply_received()

        self.check_lost()

    def _reply_received(self) -> None:
        with self.platform.write() as platform:
            platform.replies += 1
            platform.last_reply_time = self._clock()
            if platform.lost:
                logger.warning("Platform communication restored")
            platform.lost = False

    def _update_light(self, illumination: float) -> None:
        """Switch the light with hysteresis between two thresholds."""
        light_enabled = self.platform.snapshot().light_enabled

        if illumination < self.config.platform_light_enable_threshold and not light_enabled:
            target = True
        elif illumination > self.config.platform_light_disable_threshold and light_enabled:
            target = False
        else:
            return

        if self.protocol.set_light(target):
            self._reply_received()
            with self.platform.write() as platform:
                platform.light_enabled = target
            logger.info(f"Platform light {'on' if target else 'off'}")

    def _update_exposure(self, illumination: float) -> None:
        """Recompute the exposure and apply it when it changed enough."""
        exposure = compute_exposure(illumination)
        if (
            self._applied_exposure is not None
            and abs(exposure - self._applied_exposure) <= self.config.exposure_min_delta
        ):
            return

        self._applied_exposure = exposure
        with self.platform.write() as platform:
            platform.exposure = exposure
        if self.exposure_callback is not None:
            self.exposure_callback(exposure)
        logger.debug(f"Camera exposure set to {exposure:.2f}")

    def check_lost(self) -> bool:
        """Set the lost flag when the platform stopped replying."""
        now = self._clock()
        with self.platform.write() as platform:
            if (
                not platform.lost
                and now - platform.last_reply_time >= self.config.platform_lost_time_s
            ):
                logger.warning("Platform communication lost")
                platform.lost = True
            return platform.lost
