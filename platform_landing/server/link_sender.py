"""Serialized transmission of link frames to the drone."""

import logging
import threading
from typing import List, Optional

from ..protocol.link_codec import LinkCodec
from ..protocol.messages import LinkCommand

logger = logging.getLogger(__name__)


class LinkSender:
    """
    Builds link frames and writes them to every drone transport.

    Frames go to all configured transports (serial and UDP) as a redundant
    broadcast. Construction and transmission are serialized so frames from
    concurrent callers never interleave. Transport failures are logged and
    the frame is dropped for that transport; there is no retry.
    """

    def __init__(self, codec: LinkCodec, transports: Optional[List] = None):
        """
        Initialize sender.

        Args:
            codec: Link frame codec.
            transports: Objects with a write(data) method.
        """
        self.codec = codec
        self.transports = list(transports or [])
        self._lock = threading.Lock()

        self.frames_sent = 0
        self.send_errors = 0
        self.last_frame: Optional[bytes] = None
        self.last_command: Optional[LinkCommand] = None

    def send(self, command: LinkCommand, payload: Optional[bytes] = None) -> bytes:
        """
        Encode and broadcast one frame.

        Args:
            command: Link command.
            payload: 8 payload bytes, zeros if None.

        Returns:
            The transmitted frame.
        """
        with self._lock:
            if payload is None:
                frame = self.codec.encode(command)
            else:
                frame = self.codec.encode(command, payload)

            for transport in self.transports:
                try:
                    transport.write(frame)
                except OSError as e:
                    self.send_errors += 1
                    logger.error(f"Link frame {command.name} not sent: {e}")

            self.frames_sent += 1
            self.last_frame = frame
            self.last_command = command
            logger.debug(f"Link frame sent: {command.name} {frame.hex()}")
            return frame

    def send_idle(self) -> bytes:
        return self.send(LinkCommand.IDLE)

    def send_direct_control(self, roll: int, pitch: int, yaw: int, throttle: int) -> bytes:
        """Send direct control values (centered at 1500)."""
        payload = LinkCodec.pack_direct_control(roll, pitch, yaw, throttle)
        return self.send(LinkCommand.DIRECT_CONTROL, payload)

    def send_pressure_waypoint(self, pressure: int) -> bytes:
        """Send the target barometric pressure (Pa)."""
        return self.send(LinkCommand.PRESSURE_WAYPOINT, LinkCodec.pack_pressure(pressure))

    def send_gps_waypoint(self, lat_int: int, lon_int: int) -> bytes:
        """Send the target GPS position (1e-6 degrees)."""
        return self.send(LinkCommand.GPS_WAYPOINT, LinkCodec.pack_gps(lat_int, lon_int))

    def send_motors_stop(self) -> bytes:
        return self.send(LinkCommand.MOTORS_STOP)

    def send_start_sequence(self) -> bytes:
        return self.send(LinkCommand.START_SEQUENCE)

    def send_abort(self) -> bytes:
        return self.send(LinkCommand.ABORT)
