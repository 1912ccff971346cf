"""Self-synchronizing decoder of the drone telemetry stream."""

import logging
import struct
from typing import List, Optional

from .link_codec import xor_checksum
from .messages import TELEMETRY_BUFFER_SIZE, TELEMETRY_CHECKSUM_INDEX, TelemetryFrame

logger = logging.getLogger(__name__)


class TelemetryDecoder:
    """
    Byte-stream scanner for drone telemetry frames.

    Frame format (big-endian):
    ┌──────────────────────────────────────────────────────────────┐
    │ Offset │ Type │ Field                                        │
    ├────────┼──────┼──────────────────────────────────────────────┤
    │ 0      │ u8   │ error status                                 │
    │ 1      │ u8   │ flight mode                                  │
    │ 2      │ u8   │ battery voltage * 10                         │
    │ 3      │ i16  │ temperature raw (raw / 340 + 36.53 deg C)    │
    │ 5      │ u8   │ roll + 100                                   │
    │ 6      │ u8   │ pitch + 100                                  │
    │ 7      │ u8   │ start status                                 │
    │ 8      │ u16  │ altitude + 1000                              │
    │ 10     │ u16  │ takeoff throttle                             │
    │ 12     │ u8   │ takeoff detected (> 0)                       │
    │ 13     │ u16  │ yaw                                          │
    │ 15     │ u8   │ heading lock (> 0)                           │
    │ 16     │ u8   │ satellites                                   │
    │ 17     │ u8   │ fix type                                     │
    │ 18     │ i32  │ latitude (1e-6 deg)                          │
    │ 22     │ i32  │ longitude (1e-6 deg)                         │
    │ 26     │ u8   │ waypoint info: step = v % 10, flags = v // 10│
    │ 27     │ u8   │ checksum (XOR of bytes 0..26)                │
    │ 28     │ u8   │ suffix_1                                     │
    │ 29     │ u8   │ suffix_2                                     │
    └──────────────────────────────────────────────────────────────┘

    Bytes are stored at a write cursor. When the last two bytes match the
    suffix the candidate frame at 0..27 is validated and the cursor is
    reset, whether or not the checksum matched. A cursor running past the
    buffer without a sync is reset to 0.
    """

    FRAME_FORMAT = ">BBBhBBBHHBHBBBiiB"
    FRAME_DATA_SIZE = struct.calcsize(FRAME_FORMAT)

    def __init__(self, suffix_1: int, suffix_2: int):
        """
        Initialize decoder.

        Args:
            suffix_1: First frame suffix byte.
            suffix_2: Second frame suffix byte.
        """
        self.suffix_1 = suffix_1 & 0xFF
        self.suffix_2 = suffix_2 & 0xFF

        self._buffer = bytearray(TELEMETRY_BUFFER_SIZE)
        self._cursor = 0
        self._previous: Optional[int] = None

        self.valid_frames = 0
        self.checksum_errors = 0

    @property
    def cursor(self) -> int:
        """Current write position in the working buffer."""
        return self._cursor

    def feed(self, data: bytes) -> List[TelemetryFrame]:
        """
        Feed a chunk of received bytes.

        Args:
            data: Any number of bytes, in arrival order.

        Returns:
            Frames completed by this chunk (possibly empty).
        """
        frames = []
        for byte in data:
            frame = self.feed_byte(byte)
            if frame is not None:
                frames.append(frame)
        return frames

    def feed_byte(self, byte: int) -> Optional[TelemetryFrame]:
        """
        Feed a single byte.

        Returns:
            Decoded frame if this byte completed a valid one, else None.
        """
        self._buffer[self._cursor] = byte

        if self._previous == self.suffix_1 and byte == self.suffix_2:
            self._cursor = 0
            self._previous = None

            expected = xor_checksum(self._buffer[0:TELEMETRY_CHECKSUM_INDEX])
            if expected != self._buffer[TELEMETRY_CHECKSUM_INDEX]:
                self.checksum_errors += 1
                logger.warning(
                    f"Wrong telemetry checksum: {self._buffer[TELEMETRY_CHECKSUM_INDEX]:#04x} "
                    f"!= {expected:#04x}"
                )
                return None

            self.valid_frames += 1
            return self.parse_frame(bytes(self._buffer[0:TELEMETRY_CHECKSUM_INDEX]))

        self._previous = byte
        self._cursor += 1
        if self._cursor >= TELEMETRY_BUFFER_SIZE:
            self._cursor = 0
        return None

    def reset(self) -> None:
        """Drop any partial frame."""
        self._cursor = 0
        self._previous = None

    @classmethod
    def parse_frame(cls, data: bytes) -> TelemetryFrame:
        """
        Decode the 27 data bytes of a telemetry frame.

        Args:
            data: Frame bytes 0..26.

        Returns:
            Decoded TelemetryFrame.
        """
        (
            error_status,
            flight_mode,
            voltage_raw,
            temperature_raw,
            roll_raw,
            pitch_raw,
            start_status,
            altitude_raw,
            takeoff_throttle,
            takeoff_detected,
            yaw,
            heading_lock,
            satellites,
            fix_type,
            lat_int,
            lon_int,
            waypoint_info,
        ) = struct.unpack(cls.FRAME_FORMAT, data[: cls.FRAME_DATA_SIZE])

        flags = waypoint_info // 10
        return TelemetryFrame(
            error_status=error_status,
            flight_mode=flight_mode,
            voltage=voltage_raw / 10.0,
            temperature=temperature_raw / 340.0 + 36.53,
            roll=roll_raw - 100,
            pitch=pitch_raw - 100,
            start_status=start_status,
            altitude=altitude_raw - 1000,
            takeoff_throttle=takeoff_throttle,
            takeoff_detected=takeoff_detected > 0,
            yaw=yaw,
            heading_lock=heading_lock > 0,
            satellites=satellites,
            fix_type=fix_type,
            lat_int=lat_int,
            lon_int=lon_int,
            waypoint_step=waypoint_info % 10,
            altitude_waypoint_acked=flags in (1, 3),
            gps_waypoint_acked=flags in (2, 3),
        )

    @classmethod
    def build_frame(
        cls, frame: TelemetryFrame, suffix_1: int, suffix_2: int
    ) -> bytes:
        """
        Encode a telemetry frame as the drone sends it.

        Used by simulators and tests.

        Returns:
            30-byte frame including checksum and suffix.
        """
        flags = int(frame.altitude_waypoint_acked) + 2 * int(frame.gps_waypoint_acked)
        data = struct.pack(
            cls.FRAME_FORMAT,
            frame.error_status,
            frame.flight_mode,
            int(round(frame.voltage * 10)),
            int(round((frame.temperature - 36.53) * 340.0)),
            frame.roll + 100,
            frame.pitch + 100,
            frame.start_status,
            frame.altitude + 1000,
            frame.takeoff_throttle,
            1 if frame.takeoff_detected else 0,
            frame.yaw,
            1 if frame.heading_lock else 0,
            frame.satellites,
            frame.fix_type,
            frame.lat_int,
            frame.lon_int,
            flags * 10 + frame.waypoint_step % 10,
        )
        return data + bytes([xor_checksum(data), suffix_1 & 0xFF, suffix_2 & 0xFF])
