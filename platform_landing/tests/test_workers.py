"""Tests for the telemetry and platform loops."""

import math
import threading
import time

import pytest

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from platform_landing.protocol.messages import TelemetryFrame
from platform_landing.protocol.platform_protocol import PlatformProtocol, compute_exposure
from platform_landing.protocol.telemetry_decoder import TelemetryDecoder
from platform_landing.server.config import Config
from platform_landing.server.state import PlatformState, StateHolder, TelemetryState
from platform_landing.server.workers import PlatformWorker, TelemetryWorker


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class ChunkTransport:
    """Returns scripted chunks, then nothing."""

    def __init__(self, chunks=None):
        self.chunks = list(chunks or [])

    def read(self, timeout=None) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        return b""


class BrokenTransport:
    def read(self, timeout=None) -> bytes:
        raise OSError("device unplugged")


class ScriptedPlatform:
    """Platform replying from a table; missing commands time out."""

    def __init__(self, replies):
        self.replies = dict(replies)
        self.commands = []
        self._rx = b""

    def write(self, data: bytes) -> None:
        command = data.decode("ascii").strip()
        self.commands.append(command)
        self._rx = self.replies.get(command.split(" ")[0], b"")

    def read(self, timeout=None) -> bytes:
        data, self._rx = self._rx, b""
        return data

    def flush_input(self) -> None:
        self._rx = b""


def telemetry_frame(**overrides) -> TelemetryFrame:
    values = dict(
        error_status=0, flight_mode=2, voltage=11.8, temperature=30.0, roll=0, pitch=0,
        start_status=0, altitude=50, takeoff_throttle=1400, takeoff_detected=False, yaw=90,
        heading_lock=True, satellites=9, fix_type=3, lat_int=55751244, lon_int=37618423,
        waypoint_step=1, altitude_waypoint_acked=True, gps_waypoint_acked=False,
    )
    values.update(overrides)
    return TelemetryFrame(**values)


class TestTelemetryWorker:
    """Test telemetry decoding into shared state."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    def make_worker(self, transport, clock, config=None):
        holder = StateHolder(TelemetryState())
        worker = TelemetryWorker(
            transport,
            TelemetryDecoder(0xEE, 0xEF),
            holder,
            config=config or Config(),
            clock=clock,
        )
        return worker, holder

    def test_frame_applied(self, clock):
        """Test decoded frames update the telemetry record."""
        data = TelemetryDecoder.build_frame(telemetry_frame(), 0xEE, 0xEF)
        worker, holder = self.make_worker(ChunkTransport([data[:10], data[10:]]), clock)

        worker.run_once()
        assert holder.snapshot().lost is True
        worker.run_once()

        telemetry = holder.snapshot()
        assert telemetry.lost is False
        assert telemetry.packets == 1
        assert telemetry.altitude == 50
        assert telemetry.gps.initialized
        assert telemetry.gps.lat_int == 55751244
        assert telemetry.gps.satellites == 9
        assert telemetry.altitude_waypoint_acked is True
        assert telemetry.last_frame_time == 100.0

    def test_lost_after_timeout(self, clock):
        """Test lost flag is raised when frames stop."""
        worker, holder = self.make_worker(ChunkTransport(), clock)
        worker.apply_frame(telemetry_frame())

        clock.now += 0.5
        assert worker.check_lost() is False
        clock.now += 0.5
        assert worker.check_lost() is True
        assert holder.snapshot().lost is True

        worker.apply_frame(telemetry_frame())
        assert holder.snapshot().lost is False

    def test_checksum_errors_reported(self, clock):
        """Test corrupted frames are counted in the record."""
        data = bytearray(TelemetryDecoder.build_frame(telemetry_frame(), 0xEE, 0xEF))
        data[4] ^= 0xFF
        worker, holder = self.make_worker(ChunkTransport([bytes(data)]), clock)

        worker.run_once()
        assert holder.snapshot().checksum_errors == 1
        assert holder.snapshot().packets == 0

    def test_read_error_not_fatal(self, clock):
        """Test transport errors are treated as missing data."""
        worker, holder = self.make_worker(BrokenTransport(), clock)
        worker.run_once()
        assert holder.snapshot().lost is True

    def test_thread_stops(self):
        """Test the loop exits on the stop flag."""
        stop_event = threading.Event()
        worker = TelemetryWorker(
            ChunkTransport(),
            TelemetryDecoder(0xEE, 0xEF),
            StateHolder(TelemetryState()),
            config=Config(),
            stop_event=stop_event,
        )
        worker.start()
        time.sleep(0.05)
        worker.stop(timeout=1.0)

        assert not worker.is_alive()
        assert worker.iterations > 0


class TestPlatformWorker:
    """Test the platform poll cycle."""

    REPLIES = {
        "L0": b"I100>",
        "L1": b"A55751244 O37618423 N10 P101325>",
        "L2": b"OK>",
        "M3": b">",
        "M5": b">",
    }

    def make_worker(self, replies, clock, phase=6, config=None):
        transport = ScriptedPlatform(replies)
        holder = StateHolder(PlatformState())
        exposures = []
        worker = PlatformWorker(
            PlatformProtocol(transport, reply_timeout_s=0.05, clock=clock),
            holder,
            phase_source=lambda: phase,
            config=config or Config(),
            exposure_callback=exposures.append,
            clock=clock,
        )
        return worker, holder, transport, exposures

    def test_poll_cycle(self):
        """Test command order and stored readings."""
        worker, holder, transport, exposures = self.make_worker(self.REPLIES, FakeClock())

        worker.run_once()

        # Dark scene switches the light on
        assert transport.commands == ["L0", "M3", "L1", "L2 S6"]

        platform = holder.snapshot()
        assert platform.lost is False
        assert platform.illumination == 100
        assert platform.light_enabled is True
        assert platform.gps.lat_int == 55751244
        assert platform.gps.satellites == 10
        assert platform.pressure == 101325
        assert platform.fix_counter == 1
        assert platform.replies == 4
        assert exposures == [pytest.approx(compute_exposure(100))]

    def test_light_hysteresis(self):
        """Test light is toggled only outside the thresholds."""
        replies = dict(self.REPLIES)
        worker, holder, transport, _ = self.make_worker(replies, FakeClock())

        worker.run_once()
        assert holder.snapshot().light_enabled is True

        replies["L0"] = b"I300>"
        transport.replies = replies
        transport.commands.clear()
        worker.run_once()
        assert "M5" not in transport.commands
        assert holder.snapshot().light_enabled is True

        replies["L0"] = b"I500>"
        transport.commands.clear()
        worker.run_once()
        assert "M5" in transport.commands
        assert holder.snapshot().light_enabled is False

    def test_exposure_applied_on_change_only(self):
        """Test small exposure changes are not applied."""
        replies = dict(self.REPLIES)
        replies["L0"] = b"I200>"
        worker, _, transport, exposures = self.make_worker(replies, FakeClock())

        worker.run_once()
        transport.replies["L0"] = b"I201>"
        worker.run_once()
        assert len(exposures) == 1

        transport.replies["L0"] = b"I900>"
        worker.run_once()
        assert len(exposures) == 2

    def test_timed_out_step_skipped(self):
        """Test a missing reply skips only its step."""
        replies = dict(self.REPLIES)
        del replies["L0"]
        worker, holder, transport, exposures = self.make_worker(replies, time.monotonic)

        worker.run_once()
        assert transport.commands == ["L0", "L1", "L2 S6"]
        assert exposures == []
        assert holder.snapshot().fix_counter == 1

    def test_lost_after_silence(self):
        """Test lost flag after the platform stops replying."""
        clock = FakeClock()
        worker, holder, _, _ = self.make_worker(self.REPLIES, clock)
        worker.run_once()
        assert holder.snapshot().lost is False

        clock.now += 2.5
        assert worker.check_lost() is True

    def test_lost_at_exact_timeout(self):
        """Test the platform is lost once the silence reaches the timeout."""
        clock = FakeClock()
        worker, holder, _, _ = self.make_worker(self.REPLIES, clock)
        worker.run_once()

        clock.now = 101.5
        assert worker.check_lost() is False
        clock.now = 102.0
        assert worker.check_lost() is True

    def test_direct_sunlight(self):
        """Test full-scale illumination keeps the poll cycle running."""
        replies = dict(self.REPLIES)
        replies["L0"] = b"I121000>"
        worker, holder, transport, exposures = self.make_worker(replies, FakeClock())

        worker.run_once()

        assert transport.commands == ["L0", "L1", "L2 S6"]
        assert len(exposures) == 1
        assert math.isfinite(exposures[0])
        assert holder.snapshot().fix_counter == 1

    def test_exposure_failure_does_not_skip_cycle(self):
        """Test a failing camera update still runs the position and status steps."""
        clock = FakeClock()
        worker, holder, transport, _ = self.make_worker(self.REPLIES, clock)

        def broken_camera(exposure):
            raise RuntimeError("camera busy")

        worker.exposure_callback = broken_camera
        worker.run_once()

        assert transport.commands == ["L0", "M3", "L1", "L2 S6"]
        assert holder.snapshot().fix_counter == 1

        clock.now += 2.5
        worker.run_once()
        assert holder.snapshot().lost is False
