"""Message definitions for the drone link and telemetry protocols."""

from dataclasses import dataclass
from enum import IntEnum

LINK_FRAME_SIZE = 12  # 8 payload + command + checksum + 2 suffix bytes
LINK_PAYLOAD_SIZE = 8

TELEMETRY_BUFFER_SIZE = 30  # 27 data bytes + checksum + 2 suffix bytes
TELEMETRY_CHECKSUM_INDEX = 27

NEUTRAL_DDC = 1500  # RC-style neutral actuation value


class LinkCommand(IntEnum):
    """Command codes carried in byte 8 of a link frame."""

    IDLE = 0  # Keep-alive, no action
    DIRECT_CONTROL = 1  # roll, pitch, yaw, throttle corrections
    PRESSURE_WAYPOINT = 2  # Target barometric pressure (Pa)
    GPS_WAYPOINT = 3  # Target lat/lon (1e-6 degrees)
    MOTORS_STOP = 4  # Landed, turn the motors off
    START_SEQUENCE = 5  # Start the takeoff sequence
    ABORT = 6  # Abort the flight


@dataclass
class LinkFrame:
    """Decoded link frame."""

    command: LinkCommand
    payload: bytes  # 8 bytes, big-endian fields


@dataclass
class DirectControl:
    """Direct drone control values (centered at 1500)."""

    roll: int
    pitch: int
    yaw: int
    throttle: int


@dataclass
class TelemetryFrame:
    """Decoded drone telemetry frame."""

    error_status: int
    flight_mode: int
    voltage: float  # V
    temperature: float  # deg C
    roll: int  # deg
    pitch: int  # deg
    start_status: int
    altitude: int  # relative units, 0 at takeoff
    takeoff_throttle: int
    takeoff_detected: bool
    yaw: int  # deg
    heading_lock: bool
    satellites: int
    fix_type: int
    lat_int: int  # 1e-6 degrees
    lon_int: int  # 1e-6 degrees
    waypoint_step: int
    altitude_waypoint_acked: bool
    gps_waypoint_acked: bool
