"""Tests for the platform text protocol."""

import math
import time

import pytest

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from platform_landing.protocol.platform_protocol import (
    PlatformProtocol,
    compute_exposure,
    parse_value,
)


class FakePlatform:
    """In-memory platform answering commands from a reply table."""

    def __init__(self, replies=None):
        self.replies = dict(replies or {})
        self.written = []
        self._rx = bytearray()
        self.flushes = 0
        self.fail_writes = False

    def write(self, data: bytes) -> None:
        if self.fail_writes:
            raise OSError("port gone")
        self.written.append(data)
        command = data.decode("ascii").strip().split(" ")[0]
        reply = self.replies.get(command)
        if reply is not None:
            self._rx.extend(reply)

    def read(self, timeout=None) -> bytes:
        if not self._rx:
            time.sleep(min(timeout or 0.01, 0.01))
            return b""
        # Deliver replies in two pieces
        half = max(1, len(self._rx) // 2)
        data = bytes(self._rx[:half])
        del self._rx[:half]
        return data

    def flush_input(self) -> None:
        self.flushes += 1
        self._rx.clear()


class TestParseValue:
    """Test the reply tokenizer."""

    def test_single_value(self):
        """Test value after the code is parsed."""
        assert parse_value("I523", "I") == 523.0

    def test_value_among_tokens(self):
        """Test value is read up to the next space."""
        reply = "A55751244 O37618423 N9 P101325"
        assert parse_value(reply, "A") == 55751244
        assert parse_value(reply, "O") == 37618423
        assert parse_value(reply, "N") == 9
        assert parse_value(reply, "P") == 101325

    def test_negative_and_float(self):
        """Test signed and fractional numbers."""
        assert parse_value("X-12.5 Y3", "X") == -12.5

    def test_missing_code_returns_default(self):
        """Test default on absence."""
        assert parse_value("A1 O2", "N") is None
        assert parse_value("A1 O2", "N", 0) == 0

    def test_non_numeric_token_skipped(self):
        """Test tokens that start with the code but are not numbers."""
        assert parse_value("Ifoo I42", "I") == 42


class TestRequests:
    """Test blocking request/reply."""

    def test_request_returns_reply(self):
        """Test the reply text up to the terminator."""
        transport = FakePlatform({"L0": b"I523>"})
        protocol = PlatformProtocol(transport, reply_timeout_s=0.2)

        assert protocol.request("L0") == "I523"
        assert transport.written == [b"L0\n"]
        assert transport.flushes == 1

    def test_request_timeout(self):
        """Test timeout returns None without retry."""
        transport = FakePlatform()
        protocol = PlatformProtocol(transport, reply_timeout_s=0.05)

        started = time.monotonic()
        assert protocol.request("L0") is None
        assert time.monotonic() - started < 1.0
        assert transport.written == [b"L0\n"]
        assert protocol.timeouts == 1

    def test_io_error_returns_none(self):
        """Test transport failures are reported as missing data."""
        transport = FakePlatform({"L0": b"I1>"})
        transport.fail_writes = True
        protocol = PlatformProtocol(transport, reply_timeout_s=0.05)

        assert protocol.request("L0") is None

    def test_query_illumination(self):
        """Test illumination query."""
        protocol = PlatformProtocol(FakePlatform({"L0": b"I523 >"}), reply_timeout_s=0.2)
        assert protocol.query_illumination() == 523.0

    def test_query_position(self):
        """Test position query fields."""
        transport = FakePlatform({"L1": b"A55751244 O37618423 N9 P101325>"})
        protocol = PlatformProtocol(transport, reply_timeout_s=0.2)

        reading = protocol.query_position()
        assert reading.lat_int == 55751244
        assert reading.lon_int == 37618423
        assert reading.satellites == 9
        assert reading.pressure == 101325

    def test_query_position_malformed(self):
        """Test reply without coordinates is rejected."""
        protocol = PlatformProtocol(FakePlatform({"L1": b"N9>"}), reply_timeout_s=0.2)
        assert protocol.query_position() is None

    def test_push_status(self):
        """Test status command format."""
        transport = FakePlatform({"L2": b"OK>"})
        protocol = PlatformProtocol(transport, reply_timeout_s=0.2)

        assert protocol.push_status(6)
        assert transport.written == [b"L2 S6\n"]

    def test_set_light(self):
        """Test light commands."""
        transport = FakePlatform({"M3": b">", "M5": b">"})
        protocol = PlatformProtocol(transport, reply_timeout_s=0.2)

        assert protocol.set_light(True)
        assert protocol.set_light(False)
        assert transport.written == [b"M3\n", b"M5\n"]


class TestExposure:
    """Test camera exposure law."""

    def test_exposure_formula(self):
        """Test exposure = -(exp((I - 760) / 130) + 8)."""
        assert compute_exposure(760) == pytest.approx(-9.0)
        assert compute_exposure(890) == pytest.approx(-(math.e + 8))

    def test_exposure_decreases_with_light(self):
        """Test brighter scenes give shorter exposure."""
        assert compute_exposure(1000) < compute_exposure(100)

    @pytest.mark.parametrize("illumination", [93_000.0, 1e5, 121_000.0])
    def test_direct_sunlight_is_finite(self, illumination):
        """Test readings at the top of the lux meter range give a finite exposure."""
        exposure = compute_exposure(illumination)
        assert math.isfinite(exposure)
        assert exposure < compute_exposure(1000)
