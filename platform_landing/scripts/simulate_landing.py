#!/usr/bin/env python3
"""
Simulated landing run.

Drives a full landing session against a simulated drone and platform,
without serial ports or a camera: waypoint handshake, takeoff, approach,
optical stabilization, descent and motor stop. Useful to tune the PID
gains and the landing parameters offline.

Usage:
    python platform_landing/scripts/simulate_landing.py
    python platform_landing/scripts/simulate_landing.py --offset-x 40 --altitude 150
"""

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from platform_landing.protocol.link_codec import LinkCodec
from platform_landing.protocol.messages import NEUTRAL_DDC, LinkCommand, TelemetryFrame
from platform_landing.protocol.telemetry_decoder import TelemetryDecoder
from platform_landing.server.config import Config
from platform_landing.server.position_controller import MarkerPose
from platform_landing.server.session import Session
from platform_landing.server.state_machine import FlightPhase

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PLATFORM_LAT = 55_751_244
PLATFORM_LON = 37_618_423
TOUCHDOWN_ALT_CM = 40.0


class SimulatedDrone:
    """
    Drone side of the link.

    Consumes link frames, integrates direct control into a marker pose
    and answers with one telemetry frame per read.
    """

    def __init__(self, config: Config, x: float, y: float, z: float, yaw: float, response: float):
        self.codec = LinkCodec(config.link_suffix_1, config.link_suffix_2)
        self.suffix = (config.link_suffix_1, config.link_suffix_2)
        self.x = x
        self.y = y
        self.z = z
        self.yaw = yaw
        self.response = response

        self.altitude_acked = False
        self.gps_acked = False
        self.flying = False
        self.landed = False
        self.commands = Counter()

    def write(self, data: bytes) -> None:
        command, payload = self.codec.decode(data)
        self.commands[command.name] += 1

        if command == LinkCommand.PRESSURE_WAYPOINT:
            self.altitude_acked = True
        elif command == LinkCommand.GPS_WAYPOINT:
            self.gps_acked = True
        elif command == LinkCommand.START_SEQUENCE:
            self.flying = True
            self.z = 1000.0  # Cruise altitude
        elif command == LinkCommand.MOTORS_STOP:
            self.flying = False
            self.landed = True
        elif command == LinkCommand.ABORT:
            logger.warning("Drone received ABORT")
        elif command == LinkCommand.DIRECT_CONTROL:
            control = LinkCodec.unpack_direct_control(payload)
            # Marker frame with yaw = 0: pitch moves X, roll moves Y
            self.x += (control.pitch - NEUTRAL_DDC) * self.response
            self.y += (control.roll - NEUTRAL_DDC) * self.response
            self.z += (control.throttle - NEUTRAL_DDC) * self.response
            self.yaw += (control.yaw - NEUTRAL_DDC) * self.response
            self.z = max(self.z, 0.0)

    def read(self, timeout=None) -> bytes:
        frame = TelemetryFrame(
            error_status=0,
            flight_mode=3 if self.flying else 0,
            voltage=12.4,
            temperature=31.0,
            roll=0,
            pitch=0,
            start_status=1 if self.flying else 0,
            altitude=int(self.z / 100),
            takeoff_throttle=1450,
            takeoff_detected=self.flying and self.z > TOUCHDOWN_ALT_CM,
            yaw=int(self.yaw) % 360,
            heading_lock=False,
            satellites=12,
            fix_type=3,
            lat_int=PLATFORM_LAT + 2000,
            lon_int=PLATFORM_LON,
            waypoint_step=2 if self.gps_acked else (1 if self.altitude_acked else 0),
            altitude_waypoint_acked=self.altitude_acked,
            gps_waypoint_acked=self.gps_acked,
        )
        return TelemetryDecoder.build_frame(frame, *self.suffix)

    def marker_pose(self) -> MarkerPose:
        return MarkerPose(self.x, self.y, self.z, self.yaw)

    def close(self) -> None:
        pass


class SimulatedPlatform:
    """Platform answering the text protocol while driving north."""

    def __init__(self, illumination: float, step: int):
        self.illumination = illumination
        self.step = step
        self.lat_int = PLATFORM_LAT
        self._reply = b""

    def write(self, data: bytes) -> None:
        command = data.decode("ascii").strip().split(" ")[0]
        if command == "L0":
            self._reply = f"I{self.illumination:.0f}>".encode("ascii")
        elif command == "L1":
            self.lat_int += self.step
            self._reply = f"A{self.lat_int} O{PLATFORM_LON} N11 P101325>".encode("ascii")
        else:
            self._reply = b">"

    def read(self, timeout=None) -> bytes:
        data, self._reply = self._reply, b""
        return data

    def flush_input(self) -> None:
        self._reply = b""

    def close(self) -> None:
        pass


def main():
    parser = argparse.ArgumentParser(description="Simulate a landing session")
    parser.add_argument("--offset-x", type=float, default=30.0, help="Initial marker X (cm)")
    parser.add_argument("--offset-y", type=float, default=-20.0, help="Initial marker Y (cm)")
    parser.add_argument("--altitude", type=float, default=120.0, help="Marker altitude at sight (cm)")
    parser.add_argument("--yaw", type=float, default=10.0, help="Initial marker yaw (degrees)")
    parser.add_argument("--approach-frames", type=int, default=20, help="Frames flown before the marker is seen")
    parser.add_argument("--response", type=float, default=0.02, help="Drone response (cm per DDC unit per frame)")
    parser.add_argument("--max-frames", type=int, default=3000, help="Give up after this many frames")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = Config(
        platform_reply_timeout_s=0.05,
        preflight_checks_enabled=False,
    )

    drone = SimulatedDrone(config, args.offset_x, args.offset_y, 0.0, args.yaw, args.response)
    platform = SimulatedPlatform(illumination=320.0, step=30)
    session = Session(
        [drone],
        platform,
        config=config,
        exposure_callback=lambda exposure: logger.info(f"Camera exposure -> {exposure:.2f}"),
    )

    phases = []
    approach_left = args.approach_frames

    session.execute()
    for frame_number in range(args.max_frames):
        session.telemetry_worker.run_once()
        session.platform_worker.run_once()

        phase = session.controller.phase
        marker_visible = False
        if phase == FlightPhase.WAYPOINT:
            approach_left -= 1
            if approach_left <= 0:
                drone.z = args.altitude
                marker_visible = True
        elif phase in (FlightPhase.STAB, FlightPhase.LAND, FlightPhase.PREV):
            marker_visible = True

        phase = session.report_frame(
            marker_visible, drone.marker_pose() if marker_visible else None
        )
        if not phases or phases[-1][1] != phase:
            phases.append((frame_number, phase))

        if phase == FlightPhase.DONE:
            break

    position = session.position_snapshot()

    print("\n" + "=" * 60)
    print("SIMULATED LANDING")
    print("=" * 60)
    print("\nPhase sequence:")
    for frame_number, phase in phases:
        print(f"  frame {frame_number:5d}: {phase.name}")

    print("\nFrames sent to the drone:")
    for name, count in sorted(drone.commands.items()):
        print(f"  {name:18s} {count}")

    print("\nFinal marker pose:")
    print(f"  X={drone.x:+.1f} cm, Y={drone.y:+.1f} cm, Z={drone.z:.1f} cm, yaw={drone.yaw:+.1f} deg")
    print(f"  Distance to platform: {position.distance:.1f} m")
    print("=" * 60 + "\n")

    if session.controller.phase != FlightPhase.DONE:
        logger.error(f"Landing not completed in {args.max_frames} frames")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
