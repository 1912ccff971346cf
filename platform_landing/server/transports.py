"""Serial and UDP byte transports for the drone and platform links."""

import logging
import socket
from typing import Optional, Tuple

import serial

logger = logging.getLogger(__name__)

UDP_BUFFER_SIZE = 4096


class TransportError(OSError):
    """Raised when a transport cannot be opened or fails during I/O."""


def parse_host_port(value: str) -> Tuple[str, int]:
    """Split a "host:port" string."""
    host, _, port = value.rpartition(":")
    if not host or not port:
        raise TransportError(f"Expected 'host:port', got {value!r}")
    try:
        return host, int(port)
    except ValueError as e:
        raise TransportError(f"Invalid port in {value!r}") from e


class SerialTransport:
    """Serial port transport (pyserial)."""

    def __init__(self, port: str, baudrate: int, read_timeout_s: float = 0.1):
        """
        Open the serial port.

        Args:
            port: Serial device, e.g. '/dev/ttyUSB0'.
            baudrate: Baud rate.
            read_timeout_s: Default read timeout.

        Raises:
            TransportError: If the port cannot be opened.
        """
        self.name = f"serial:{port}"
        try:
            self._serial = serial.Serial(
                port=port,
                baudrate=baudrate,
                timeout=read_timeout_s,
                write_timeout=read_timeout_s,
            )
            self._serial.reset_input_buffer()
            self._serial.reset_output_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Cannot open serial port {port}: {e}") from e

        logger.info(f"Serial port opened: {port} @ {baudrate}")

    def write(self, data: bytes) -> None:
        """Write all bytes."""
        try:
            self._serial.write(data)
            self._serial.flush()
        except serial.SerialException as e:
            raise TransportError(f"{self.name} write failed: {e}") from e

    def read(self, timeout: Optional[float] = None) -> bytes:
        """
        Read the available bytes, waiting at most timeout for the first one.

        Returns:
            Received bytes, empty on timeout.
        """
        try:
            if timeout is not None:
                self._serial.timeout = timeout
            data = self._serial.read(1)
            if data and self._serial.in_waiting:
                data += self._serial.read(self._serial.in_waiting)
            return data
        except serial.SerialException as e:
            raise TransportError(f"{self.name} read failed: {e}") from e

    def flush_input(self) -> None:
        """Drop unread bytes."""
        try:
            self._serial.reset_input_buffer()
        except serial.SerialException as e:
            raise TransportError(f"{self.name} flush failed: {e}") from e

    def close(self) -> None:
        if self._serial.is_open:
            self._serial.close()
            logger.info(f"Serial port closed: {self.name}")


class UDPTransport:
    """
    UDP datagram transport.

    Datagrams are sent to the remote "host:port"; replies are received on
    the local socket, bound to bind_port (0 picks any free port).
    """

    def __init__(
        self,
        remote: str,
        bind_port: int = 0,
        read_timeout_s: float = 0.1,
    ):
        """
        Open the UDP socket.

        Args:
            remote: Remote "host:port".
            bind_port: Local port to receive on.
            read_timeout_s: Default read timeout.

        Raises:
            TransportError: If the address is malformed or the bind fails.
        """
        self.address = parse_host_port(remote)
        self.name = f"udp:{remote}"
        self.read_timeout_s = read_timeout_s

        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind(("0.0.0.0", bind_port))
        except OSError as e:
            self._sock.close()
            raise TransportError(f"Cannot bind UDP port {bind_port}: {e}") from e

        logger.info(f"UDP transport opened: {remote} (local port {self.local_port})")

    @property
    def local_port(self) -> int:
        return self._sock.getsockname()[1]

    def write(self, data: bytes) -> None:
        """Send one datagram."""
        try:
            self._sock.sendto(data, self.address)
        except OSError as e:
            raise TransportError(f"{self.name} send failed: {e}") from e

    def read(self, timeout: Optional[float] = None) -> bytes:
        """
        Receive one datagram.

        Returns:
            Datagram payload, empty on timeout.
        """
        self._sock.settimeout(self.read_timeout_s if timeout is None else timeout)
        try:
            data, _ = self._sock.recvfrom(UDP_BUFFER_SIZE)
            return data
        except socket.timeout:
            return b""
        except OSError as e:
            raise TransportError(f"{self.name} receive failed: {e}") from e

    def flush_input(self) -> None:
        """Drop queued datagrams."""
        self._sock.setblocking(False)
        try:
            while True:
                self._sock.recvfrom(UDP_BUFFER_SIZE)
        except (BlockingIOError, InterruptedError):
            pass
        except OSError as e:
            raise TransportError(f"{self.name} flush failed: {e}") from e
        finally:
            self._sock.setblocking(True)

    def close(self) -> None:
        self._sock.close()
        logger.info(f"UDP transport closed: {self.name}")


def open_transports(
    serial_port: str,
    baudrate: int,
    udp: str,
    udp_bind_port: int = 0,
    read_timeout_s: float = 0.1,
) -> list:
    """
    Open the configured serial and/or UDP transports of one link.

    Args:
        serial_port: Serial device, empty to skip.
        baudrate: Serial baud rate.
        udp: Remote "host:port", empty to skip.
        udp_bind_port: Local UDP port to receive on.
        read_timeout_s: Default read timeout.

    Returns:
        List of opened transports (serial first).

    Raises:
        TransportError: If a configured transport cannot be opened.
    """
    transports = []
    try:
        if serial_port:
            transports.append(SerialTransport(serial_port, baudrate, read_timeout_s))
        if udp:
            transports.append(UDPTransport(udp, udp_bind_port, read_timeout_s))
    except TransportError:
        for transport in transports:
            transport.close()
        raise
    return transports
