"""Flight phase controller driven by the marker pose."""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Optional

from ..protocol.messages import NEUTRAL_DDC
from .config import Config, default_config
from .gps import GPSCoordinate, distance_on_geoid
from .gps_estimation import GPSEstimator, GPSPredictor
from .link_sender import LinkSender
from .pid_controller import MultiAxisPIDController
from .state import (
    BlackboxSignal,
    PlatformState,
    PositionState,
    StateHolder,
    TelemetryState,
)
from .state_machine import OPTICAL_PHASES, FlightPhase, StateMachine

logger = logging.getLogger(__name__)


@dataclass
class MarkerPose:
    """Marker pose relative to the drone camera (cm, degrees)."""

    x: float
    y: float
    z: float
    yaw: float


def _is_finite_pose(pose: MarkerPose) -> bool:
    return all(math.isfinite(value) for value in (pose.x, pose.y, pose.z, pose.yaw))


class PositionController:
    """
    Main controller of the landing sequence.

    Called once per vision frame with the marker pose (or None when the
    marker is not in sight). Depending on the flight phase it either runs
    the optical PID correction loop and sends direct control frames, or
    drives the waypoint handshake and the marker-loss escalation:

        IDLE -> TAKEOFF -> WAYPOINT -> STAB <-> LAND -> DONE
                                        |  \\     |
                                        |   PREV <
                                        |    |
                                        +<- LOST

    Platform and telemetry state are read-only here; the position state is
    owned by this controller.
    """

    def __init__(
        self,
        link: LinkSender,
        platform: StateHolder[PlatformState],
        telemetry: StateHolder[TelemetryState],
        blackbox: Optional[BlackboxSignal] = None,
        config: Config = None,
    ):
        """
        Initialize position controller.

        Args:
            link: Link frame sender.
            platform: Platform state holder (read-only).
            telemetry: Telemetry state holder (read-only).
            blackbox: Blackbox new-entry signal.
            config: Configuration object.
        """
        self.config = config or default_config
        self.link = link
        self.platform = platform
        self.telemetry = telemetry
        self.blackbox = blackbox or BlackboxSignal()

        self.state_machine = StateMachine()
        self.pid = MultiAxisPIDController(self.config.pid_axes())
        self.predictor = GPSPredictor()
        self.estimator = GPSEstimator(
            history_size=self.config.estimator_history_size,
            min_samples=self.config.estimator_min_samples,
            alpha_lat=self.config.estimator_alpha_lat,
            alpha_lon=self.config.estimator_alpha_lon,
        )

        initial = PositionState(
            setpoint_abs_x=self.config.setpoint_x,
            setpoint_abs_y=self.config.setpoint_y,
            setpoint_x=self.config.setpoint_x,
            setpoint_y=self.config.setpoint_y,
            setpoint_yaw=self.config.setpoint_yaw,
        )
        self.position = StateHolder(initial)

        self.armed = False
        self.preflight_error = ""
        self._last_fix_counter = 0
        self._lock = threading.RLock()

    @property
    def phase(self) -> FlightPhase:
        return self.state_machine.state

    # =========================================================================
    # Main entry point
    # =========================================================================

    def proceed(self, marker_visible: bool, pose: Optional[MarkerPose] = None) -> FlightPhase:
        """
        Process one vision frame.

        Args:
            marker_visible: True if the marker was detected.
            pose: Marker pose, required when marker_visible is True.

        Returns:
            Flight phase after this frame.
        """
        if not marker_visible:
            pose = None
        elif pose is not None and not _is_finite_pose(pose):
            logger.warning(f"Discarding non-finite marker pose: {pose}")
            pose = None

        with self._lock:
            platform = self.platform.snapshot()
            telemetry = self.telemetry.snapshot()
            links_live = not platform.lost and not telemetry.lost
            self._update_gps_history(platform)

            frames_before = self.link.frames_sent

            with self.position.write() as position:
                if links_live and platform.gps.initialized and telemetry.gps.initialized:
                    position.distance = distance_on_geoid(
                        telemetry.gps, platform.gps, self.config.planet_radius_km
                    )

                position.marker_visible = pose is not None

                # Neutral outputs
                position.reset_ddc()

                if self.phase == FlightPhase.IDLE or self.phase >= FlightPhase.LOST:
                    self.pid.reset()

                if self.armed and self.phase == FlightPhase.IDLE and links_live:
                    self._set_phase(position, FlightPhase.TAKEOFF)

                entered_stab = False
                if pose is not None:
                    self._filter_pose(position, pose)

                    if (
                        self.armed
                        and self.phase == FlightPhase.LAND
                        and position.z <= self.config.landing_alt
                        and not telemetry.takeoff_detected
                    ):
                        logger.info("Landed, turning off the motors")
                        self.link.send_motors_stop()
                        self._set_phase(position, FlightPhase.DONE)
                    elif self.armed and self.phase not in (
                        FlightPhase.DONE,
                        FlightPhase.STAB,
                        FlightPhase.LAND,
                    ):
                        self._enter_stab(position)
                        entered_stab = True

                if self.armed and self.phase in OPTICAL_PHASES:
                    self._optical_stabilization(position, check_landing=not entered_stab and pose is not None)

                if pose is None:
                    self._handle_no_marker(position, platform, telemetry, links_live)

                if self.link.frames_sent == frames_before:
                    self.link.send_idle()

                position.armed = self.armed
                position.phase = self.phase

                if self.phase != FlightPhase.DONE and self.armed:
                    self.blackbox.enabled = self.config.blackbox_enabled
                    self.blackbox.notify()
                else:
                    self.blackbox.enabled = False

            return self.phase

    # =========================================================================
    # Arming
    # =========================================================================

    def set_armed(self, armed: bool) -> bool:
        """
        Arm or disarm the landing sequence.

        A rising edge sends ABORT if the drone is in flight, IDLE otherwise.
        A falling edge sends IDLE. Both reset the phase and the waypoint step.

        Args:
            armed: New armed state.

        Returns:
            False if the pre-flight checks refused arming.
        """
        with self._lock:
            if armed == self.armed:
                return True

            telemetry = self.telemetry.snapshot()

            if armed:
                if self.config.preflight_checks_enabled:
                    error = self.preflight_check(self.platform.snapshot(), telemetry)
                    if error:
                        self.preflight_error = error
                        logger.error(f"Pre-flight check failed: {error}")
                        return False
                self.preflight_error = ""

                if telemetry.takeoff_detected and not telemetry.lost:
                    logger.warning("Drone is in flight, sending abort")
                    self.link.send_abort()
                else:
                    self.link.send_idle()
                logger.info("Landing sequence armed")
            else:
                self.link.send_idle()
                self.blackbox.enabled = False
                logger.info("Landing sequence disarmed")

            self.armed = armed
            self._reset_sequence()
            return True

    def abort(self) -> None:
        """Abort the flight: send ABORT and disarm."""
        with self._lock:
            logger.error("Landing sequence aborted")
            self.link.send_abort()
            self.armed = False
            self.blackbox.enabled = False
            self._reset_sequence()

    def preflight_check(self, platform: PlatformState, telemetry: TelemetryState) -> str:
        """
        Check that the sequence can be started.

        Returns:
            Error message, empty if all checks passed.
        """
        if self.phase != FlightPhase.IDLE:
            return "Initial phase is not IDLE"
        if platform.lost:
            return "No communication with the platform"
        if telemetry.lost:
            return "No telemetry from the drone"
        if platform.gps.satellites < self.config.min_satellites_start:
            return f"Not enough platform satellites: {platform.gps.satellites}"
        if telemetry.gps.satellites < self.config.min_satellites_start:
            return f"Not enough drone satellites: {telemetry.gps.satellites}"
        if platform.speed_kmh > self.config.max_platform_speed_kmh:
            return f"Platform is moving too fast: {platform.speed_kmh:.1f} km/h"
        return ""

    def _reset_sequence(self) -> None:
        self.state_machine.reset()
        self.pid.reset()
        with self.position.write() as position:
            position.phase = FlightPhase.IDLE
            position.waypoint_step = 0
            position.lost_counter = 0
            position.armed = self.armed
            position.reset_ddc()

    # =========================================================================
    # Optical stabilization
    # =========================================================================

    def _filter_pose(self, position: PositionState, pose: MarkerPose) -> None:
        """Blend the new pose into the filtered one (STAB/LAND only)."""
        if self.phase in (FlightPhase.STAB, FlightPhase.LAND):
            f = self.config.input_filter
            position.x = position.x * f + pose.x * (1 - f)
            position.y = position.y * f + pose.y * (1 - f)
            position.z = position.z * f + pose.z * (1 - f)
            position.yaw = position.yaw * f + pose.yaw * (1 - f)
        else:
            position.x = pose.x
            position.y = pose.y
            position.z = pose.z
            position.yaw = pose.yaw

    def _enter_stab(self, position: PositionState) -> None:
        """Hold the current pose and start optical stabilization."""
        position.setpoint_x = position.x
        position.setpoint_y = position.y
        position.setpoint_z = position.z
        position.setpoint_yaw = self.config.setpoint_yaw
        position.entry_z = position.z
        position.lost_counter = 0
        self.pid.reset()

        logger.warning(
            f"Marker in sight, setpoints fixed at X={position.setpoint_x:.0f} "
            f"Y={position.setpoint_y:.0f} Z={position.setpoint_z:.0f}"
        )
        self._set_phase(position, FlightPhase.STAB)

    def _in_landing_range(self, position: PositionState) -> bool:
        return (
            abs(position.x - position.setpoint_abs_x) < self.config.allowed_landing_range_xy
            and abs(position.y - position.setpoint_abs_y) < self.config.allowed_landing_range_xy
            and abs(position.yaw - position.setpoint_yaw) < self.config.allowed_landing_range_yaw
        )

    def _optical_stabilization(self, position: PositionState, check_landing: bool) -> None:
        """Run the PID loop on the filtered pose and send direct control."""
        a = self.config.setpoint_alignment_factor
        position.setpoint_x = position.setpoint_x * a + position.setpoint_abs_x * (1 - a)
        position.setpoint_y = position.setpoint_y * a + position.setpoint_abs_y * (1 - a)

        if check_landing:
            if self.config.landing_allowed and self._in_landing_range(position):
                if position.setpoint_z > 1:
                    position.setpoint_z -= self.config.landing_decrement
                if self.phase == FlightPhase.STAB:
                    self._set_phase(position, FlightPhase.LAND)
            elif self.phase == FlightPhase.LAND:
                self._set_phase(position, FlightPhase.STAB)

        self.pid.set_setpoints(
            position.setpoint_x,
            position.setpoint_y,
            position.setpoint_z,
            position.setpoint_yaw,
        )
        output = self.pid.compute(position.x, position.y, position.z, position.yaw)

        position.ddc_x = int(NEUTRAL_DDC + output["x"])
        position.ddc_y = int(NEUTRAL_DDC + output["y"])
        position.ddc_z = int(NEUTRAL_DDC + output["z"])
        position.ddc_yaw = int(NEUTRAL_DDC + output["yaw"])

        # Rotate X/Y corrections into the drone frame
        yaw_sin = math.sin(math.radians(-position.yaw))
        yaw_cos = math.cos(math.radians(-position.yaw))
        dx = position.ddc_x - NEUTRAL_DDC
        dy = position.ddc_y - NEUTRAL_DDC
        position.ddc_roll = int(dx * yaw_sin + dy * yaw_cos + NEUTRAL_DDC)
        position.ddc_pitch = int(dx * yaw_cos - dy * yaw_sin + NEUTRAL_DDC)

        self.link.send_direct_control(
            position.ddc_roll, position.ddc_pitch, position.ddc_yaw, position.ddc_z
        )

    # =========================================================================
    # Marker loss and waypoints
    # =========================================================================

    def _handle_no_marker(
        self,
        position: PositionState,
        platform: PlatformState,
        telemetry: TelemetryState,
        links_live: bool,
    ) -> None:
        """Escalate marker loss or drive the waypoint handshake."""
        phase = self.phase

        if phase in (FlightPhase.STAB, FlightPhase.LAND):
            logger.warning(
                f"Marker lost, holding the previous position for "
                f"{self.config.allowed_lost_frames} frames"
            )
            position.lost_counter = 1
            self._set_phase(position, FlightPhase.PREV)
            self._check_lost_frames(position)

        elif phase == FlightPhase.PREV:
            position.lost_counter += 1
            self._check_lost_frames(position)

        elif phase == FlightPhase.LOST:
            if links_live:
                self.link.send_idle()
                self._set_phase(position, FlightPhase.WAYPOINT)
            else:
                self.link.send_abort()

        elif phase in (FlightPhase.TAKEOFF, FlightPhase.WAYPOINT):
            self._waypoint_handshake(position, platform, telemetry, links_live)

        else:
            self.link.send_idle()

    def _check_lost_frames(self, position: PositionState) -> None:
        if position.lost_counter < self.config.allowed_lost_frames:
            return

        logger.error("Marker completely lost, aborting optical stabilization")
        position.reset_ddc()
        self.pid.reset()
        self.link.send_abort()
        self._set_phase(position, FlightPhase.LOST)

    def _waypoint_handshake(
        self,
        position: PositionState,
        platform: PlatformState,
        telemetry: TelemetryState,
        links_live: bool,
    ) -> None:
        """Send altitude waypoint, then GPS waypoint, then start the sequence."""
        if not links_live:
            self.link.send_idle()
            return

        if not telemetry.altitude_waypoint_acked:
            position.waypoint_step = 0
            self.link.send_pressure_waypoint(
                platform.pressure - self.config.pressure_term_above_platform
            )

        elif not telemetry.gps_waypoint_acked:
            position.waypoint_step = 1
            target = self.gps_target(platform, position.distance)
            if target.initialized:
                self.link.send_gps_waypoint(target.lat_int, target.lon_int)
            else:
                logger.warning("No platform GPS fix for the waypoint")
                self.link.send_idle()

        elif self.phase == FlightPhase.TAKEOFF:
            position.waypoint_step = 2
            if not telemetry.takeoff_detected:
                self.link.send_start_sequence()
            else:
                logger.info("Takeoff detected, flying to the platform")
                self._set_phase(position, FlightPhase.WAYPOINT)

        else:
            self.link.send_idle()

    def gps_target(self, platform: PlatformState, distance: float) -> GPSCoordinate:
        """
        Waypoint to send to the drone.

        The live platform fix is used unless prediction is enabled and the
        platform is farther than the threshold; then the estimator output,
        or the linear prediction, is used when available.
        """
        if (
            self.config.gps_prediction_enabled
            and distance > self.config.gps_prediction_distance_m
        ):
            if self.estimator.ready:
                return self.estimator.estimate
            prediction = self.predictor.predict()
            if prediction is not None:
                return prediction
        return platform.gps

    def _update_gps_history(self, platform: PlatformState) -> None:
        """Feed new platform fixes to the predictor and the estimator."""
        if platform.fix_counter == self._last_fix_counter or not platform.gps.initialized:
            return
        self._last_fix_counter = platform.fix_counter
        self.predictor.update(platform.gps)
        self.estimator.add_true_fix(platform.gps)

    def _set_phase(self, position: PositionState, target: FlightPhase) -> None:
        if self.state_machine.transition_to(target):
            position.phase = target
