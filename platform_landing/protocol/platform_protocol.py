"""Text request/reply protocol of the landing platform."""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

REPLY_TERMINATOR = b">"

CMD_ILLUMINATION = "L0"
CMD_POSITION = "L1"
CMD_STATUS = "L2"
CMD_LIGHT_ON = "M3"
CMD_LIGHT_OFF = "M5"

# Below the math.exp overflow limit (~709.78)
MAX_EXPOSURE_EXPONENT = 700.0


def parse_value(reply: str, code: str, default: Optional[float] = None) -> Optional[float]:
    """
    Extract the number that follows a one-character code.

    The reply is split on spaces and the first token starting with the
    code whose remainder parses as a number is used.

    Args:
        reply: Reply text without the terminator.
        code: One-character field code, e.g. "I".
        default: Value returned when the code is absent.

    Returns:
        Parsed value, or default.
    """
    for token in reply.split(" "):
        if not token.startswith(code):
            continue
        try:
            return float(token[len(code):])
        except ValueError:
            continue
    return default


def compute_exposure(illumination: float) -> float:
    """
    Camera exposure for a platform illumination reading.

    The exponent is capped so direct sunlight gives a very short but
    finite exposure.
    """
    exponent = min((illumination - 760.0) / 130.0, MAX_EXPOSURE_EXPONENT)
    return -(math.exp(exponent) + 8.0)


@dataclass
class PositionReading:
    """Reply to the position query."""

    lat_int: int
    lon_int: int
    satellites: int
    pressure: int


class PlatformProtocol:
    """
    Synchronous request/reply client for the platform.

    Commands are newline-terminated ASCII, replies are ASCII terminated by
    '>'. Every request blocks until the terminator arrives or the reply
    timeout elapses; a timeout returns None and is not retried.
    """

    def __init__(
        self,
        transport,
        reply_timeout_s: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize protocol client.

        Args:
            transport: Object with write(data), read(timeout) and flush_input().
            reply_timeout_s: Max time to wait for a reply.
            clock: Monotonic time source in seconds.
        """
        self.transport = transport
        self.reply_timeout_s = reply_timeout_s
        self._clock = clock
        self.timeouts = 0

    def request(self, command: str) -> Optional[str]:
        """
        Send a command and wait for its reply.

        Args:
            command: Command text without the newline.

        Returns:
            Reply text without the terminator, or None on timeout or I/O error.
        """
        try:
            self.transport.flush_input()
            self.transport.write(f"{command}\n".encode("ascii"))

            deadline = self._clock() + self.reply_timeout_s
            buffer = bytearray()
            while True:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    self.timeouts += 1
                    logger.warning(f"No platform reply to {command!r}")
                    return None

                buffer.extend(self.transport.read(remaining))
                end = buffer.find(REPLY_TERMINATOR)
                if end >= 0:
                    return buffer[:end].decode("ascii", errors="replace").strip()

        except OSError as e:
            logger.error(f"Platform request {command!r} failed: {e}")
            return None

    def query_illumination(self) -> Optional[float]:
        """Query the platform illumination (lux)."""
        reply = self.request(CMD_ILLUMINATION)
        if reply is None:
            return None
        return parse_value(reply, "I")

    def query_position(self) -> Optional[PositionReading]:
        """Query the platform GPS fix and barometric pressure."""
        reply = self.request(CMD_POSITION)
        if reply is None:
            return None

        lat = parse_value(reply, "A")
        lon = parse_value(reply, "O")
        if lat is None or lon is None:
            logger.warning(f"Malformed platform position reply: {reply!r}")
            return None

        return PositionReading(
            lat_int=int(lat),
            lon_int=int(lon),
            satellites=int(parse_value(reply, "N", 0)),
            pressure=int(parse_value(reply, "P", 0)),
        )

    def push_status(self, phase: int) -> bool:
        """Report the current flight phase. Returns True if acknowledged."""
        return self.request(f"{CMD_STATUS} S{int(phase)}") is not None

    def set_light(self, enabled: bool) -> bool:
        """Switch the platform light. Returns True if acknowledged."""
        return self.request(CMD_LIGHT_ON if enabled else CMD_LIGHT_OFF) is not None
