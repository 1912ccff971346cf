"""Shared state records and their lock-guarded holders."""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Generic, Iterator, TypeVar

from ..protocol.messages import NEUTRAL_DDC
from .gps import GPSCoordinate
from .state_machine import FlightPhase


@dataclass
class PositionState:
    """Filtered marker pose, setpoints and direct control outputs."""

    # Filtered marker pose (cm, degrees)
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0

    # Optical setpoints
    setpoint_x: float = 0.0
    setpoint_y: float = 0.0
    setpoint_z: float = 0.0
    setpoint_yaw: float = 0.0

    # Platform-aligned absolute setpoints
    setpoint_abs_x: float = 0.0
    setpoint_abs_y: float = 0.0

    # Direct control outputs
    ddc_x: int = NEUTRAL_DDC
    ddc_y: int = NEUTRAL_DDC
    ddc_z: int = NEUTRAL_DDC
    ddc_yaw: int = NEUTRAL_DDC
    ddc_roll: int = NEUTRAL_DDC
    ddc_pitch: int = NEUTRAL_DDC

    phase: FlightPhase = FlightPhase.IDLE
    entry_z: float = 0.0
    marker_visible: bool = False
    lost_counter: int = 0
    waypoint_step: int = 0
    distance: float = 0.0  # Platform to drone, meters
    armed: bool = False

    def reset_ddc(self) -> None:
        """Reset all outputs to neutral."""
        self.ddc_x = NEUTRAL_DDC
        self.ddc_y = NEUTRAL_DDC
        self.ddc_z = NEUTRAL_DDC
        self.ddc_yaw = NEUTRAL_DDC
        self.ddc_roll = NEUTRAL_DDC
        self.ddc_pitch = NEUTRAL_DDC


@dataclass
class PlatformState:
    """Last readings of the landing platform."""

    illumination: float = 0.0
    exposure: float = 0.0
    light_enabled: bool = False
    pressure: int = 0  # Pa
    gps: GPSCoordinate = field(default_factory=GPSCoordinate)
    speed_kmh: float = 0.0
    heading: float = 0.0  # Course over ground, degrees
    fix_counter: int = 0  # Incremented on every new GPS fix
    replies: int = 0
    last_reply_time: float = 0.0
    lost: bool = True


@dataclass
class TelemetryState:
    """Decoded drone telemetry."""

    error_status: int = 0
    flight_mode: int = 0
    voltage: float = 0.0
    temperature: float = 0.0
    roll: int = 0
    pitch: int = 0
    start_status: int = 0
    altitude: int = 0
    takeoff_throttle: int = 0
    takeoff_detected: bool = False
    yaw: int = 0
    heading_lock: bool = False
    gps: GPSCoordinate = field(default_factory=GPSCoordinate)
    waypoint_step: int = 0
    altitude_waypoint_acked: bool = False
    gps_waypoint_acked: bool = False
    packets: int = 0
    checksum_errors: int = 0
    last_frame_time: float = 0.0
    lost: bool = True


T = TypeVar("T")


class StateHolder(Generic[T]):
    """
    Single-writer, multi-reader container for a state record.

    Writers mutate the record inside ``write()``; readers receive deep
    copies from ``snapshot()`` and never see a half-written record.
    """

    def __init__(self, state: T):
        self._state = state
        self._lock = threading.Lock()

    def snapshot(self) -> T:
        """Return a deep copy of the current record."""
        with self._lock:
            return copy.deepcopy(self._state)

    @contextmanager
    def write(self) -> Iterator[T]:
        """Yield the live record for mutation under the lock."""
        with self._lock:
            yield self._state


class BlackboxSignal:
    """New-entry notification for the blackbox logger."""

    def __init__(self):
        self._new_entry = threading.Event()
        self.enabled = False
        self.entries = 0

    def notify(self) -> None:
        """Signal that a new entry is available."""
        self.entries += 1
        self._new_entry.set()

    def wait(self, timeout: float = None) -> bool:
        """
        Block until a new entry is available.

        Args:
            timeout: Max seconds to wait, None to wait forever.

        Returns:
            True if an entry was signaled, False on timeout.
        """
        signaled = self._new_entry.wait(timeout)
        if signaled:
            self._new_entry.clear()
        return signaled
