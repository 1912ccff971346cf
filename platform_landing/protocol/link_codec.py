"""Binary encoding/decoding of the 12-byte drone link frame."""

import struct
from typing import Tuple

from .messages import (
    LINK_FRAME_SIZE,
    LINK_PAYLOAD_SIZE,
    DirectControl,
    LinkCommand,
    LinkFrame,
)

INT16_MIN = -32768
INT16_MAX = 32767


def xor_checksum(data: bytes) -> int:
    """XOR of all bytes in data."""
    check = 0
    for byte in data:
        check ^= byte
    return check


class LinkCodec:
    """
    Codec for the ground -> drone command frame.

    Frame format:
    ┌────────────────────────────────────────────────────────────────┐
    │ Byte Offset │ Size    │ Field            │ Description         │
    ├─────────────┼─────────┼──────────────────┼─────────────────────┤
    │ 0           │ 8       │ payload          │ big-endian fields   │
    │ 8           │ 1       │ command          │ LinkCommand code    │
    │ 9           │ 1       │ checksum         │ XOR of bytes 0..8   │
    │ 10          │ 1       │ suffix_1         │ configured constant │
    │ 11          │ 1       │ suffix_2         │ configured constant │
    └────────────────────────────────────────────────────────────────┘

    Payload by command:
        DIRECT_CONTROL     roll:i16 pitch:i16 yaw:i16 throttle:i16
        PRESSURE_WAYPOINT  pressure:i32, 4 zero bytes
        GPS_WAYPOINT       lat:i32 lon:i32 (1e-6 degrees)
        others             8 zero bytes
    """

    DIRECT_CONTROL_FORMAT = ">4h"
    PRESSURE_FORMAT = ">i4x"
    GPS_FORMAT = ">2i"

    def __init__(self, suffix_1: int, suffix_2: int):
        """
        Initialize codec.

        Args:
            suffix_1: First frame suffix byte.
            suffix_2: Second frame suffix byte.
        """
        self.suffix_1 = suffix_1 & 0xFF
        self.suffix_2 = suffix_2 & 0xFF

    def encode(self, command: int, payload: bytes = bytes(LINK_PAYLOAD_SIZE)) -> bytes:
        """
        Encode a command and its payload into a link frame.

        Args:
            command: Command code (0-255).
            payload: Exactly 8 payload bytes.

        Returns:
            12-byte frame.
        """
        if len(payload) != LINK_PAYLOAD_SIZE:
            raise ValueError(
                f"Payload must be {LINK_PAYLOAD_SIZE} bytes, got {len(payload)}"
            )
        frame = bytearray(LINK_FRAME_SIZE)
        frame[0:8] = payload
        frame[8] = int(command) & 0xFF
        frame[9] = xor_checksum(frame[0:9])
        frame[10] = self.suffix_1
        frame[11] = self.suffix_2
        return bytes(frame)

    def decode(self, data: bytes) -> Tuple[int, bytes]:
        """
        Decode a link frame.

        Args:
            data: 12-byte frame.

        Returns:
            (command, payload) tuple.
        """
        if len(data) != LINK_FRAME_SIZE:
            raise ValueError(f"Frame must be {LINK_FRAME_SIZE} bytes, got {len(data)}")

        if data[10] != self.suffix_1 or data[11] != self.suffix_2:
            raise ValueError(
                f"Suffix mismatch: {data[10]:#04x} {data[11]:#04x}"
            )

        expected = xor_checksum(data[0:9])
        if data[9] != expected:
            raise ValueError(f"Checksum mismatch: {data[9]:#04x} != {expected:#04x}")

        return data[8], bytes(data[0:8])

    def decode_frame(self, data: bytes) -> LinkFrame:
        """Decode a link frame with a known command code."""
        command, payload = self.decode(data)
        return LinkFrame(command=LinkCommand(command), payload=payload)

    # =========================================================================
    # Payload packers
    # =========================================================================

    @staticmethod
    def pack_direct_control(roll: int, pitch: int, yaw: int, throttle: int) -> bytes:
        """Pack direct control values, clamped to the int16 range."""
        values = [
            max(INT16_MIN, min(INT16_MAX, int(value)))
            for value in (roll, pitch, yaw, throttle)
        ]
        return struct.pack(LinkCodec.DIRECT_CONTROL_FORMAT, *values)

    @staticmethod
    def unpack_direct_control(payload: bytes) -> DirectControl:
        """Unpack a direct control payload."""
        roll, pitch, yaw, throttle = struct.unpack(
            LinkCodec.DIRECT_CONTROL_FORMAT, payload
        )
        return DirectControl(roll=roll, pitch=pitch, yaw=yaw, throttle=throttle)

    @staticmethod
    def pack_pressure(pressure: int) -> bytes:
        """Pack a pressure waypoint (Pa)."""
        return struct.pack(LinkCodec.PRESSURE_FORMAT, int(pressure))

    @staticmethod
    def unpack_pressure(payload: bytes) -> int:
        """Unpack a pressure waypoint (Pa)."""
        return struct.unpack(LinkCodec.PRESSURE_FORMAT, payload)[0]

    @staticmethod
    def pack_gps(lat_int: int, lon_int: int) -> bytes:
        """Pack a GPS waypoint in 1e-6 degree units."""
        return struct.pack(LinkCodec.GPS_FORMAT, int(lat_int), int(lon_int))

    @staticmethod
    def unpack_gps(payload: bytes) -> Tuple[int, int]:
        """Unpack a GPS waypoint into (lat_int, lon_int)."""
        return struct.unpack(LinkCodec.GPS_FORMAT, payload)
