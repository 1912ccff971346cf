#!/usr/bin/env python3
"""
Platform Landing Controller - Main Entry Point

Opens the drone and platform links, starts the telemetry and platform
loops and serves the control API over WebSocket. Marker poses are
reported by the vision process through the API "pose" action.

Usage:
    # Drone link over serial, platform over UDP:
    python run_controller.py --link-serial /dev/ttyUSB0 --platform-udp 192.168.4.1:4210

    # Both links over UDP, custom API port:
    python run_controller.py --link-udp 192.168.4.2:8888 --platform-udp 192.168.4.1:4210 --port 9000

    # Verbose logging:
    python run_controller.py --link-serial /dev/ttyUSB0 --platform-serial /dev/ttyUSB1 -v
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from platform_landing.server.config import Config, ConfigError
from platform_landing.server.session import Session
from platform_landing.server.transports import TransportError
from platform_landing.server.websocket_server import ControlServer

logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace) -> Config:
    """Apply command line overrides to the default configuration."""
    config = Config()
    config.link_serial_port = args.link_serial or ""
    config.link_baudrate = args.link_baudrate
    config.link_udp = args.link_udp or ""
    config.link_udp_bind_port = args.link_udp_bind
    config.platform_serial_port = args.platform_serial or ""
    config.platform_baudrate = args.platform_baudrate
    config.platform_udp = args.platform_udp or ""
    config.platform_udp_bind_port = args.platform_udp_bind
    config.api_host = args.host
    config.api_port = args.port
    config.preflight_checks_enabled = args.preflight
    return config


async def run_controller(session: Session, config: Config) -> None:
    """Run the loops and the control API until a shutdown signal."""
    server = ControlServer(session, host=config.api_host, port=config.api_port, config=config)

    session.start()
    await server.start()

    logger.info(f"Control API listening on ws://{config.api_host}:{config.api_port}")

    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=10)
            except asyncio.TimeoutError:
                summary = session.telemetry_summary()
                logger.info(
                    f"Phase: {summary['status']}, "
                    f"drone lost: {summary['drone_telemetry_lost']}, "
                    f"platform lost: {summary['platform_lost']}, "
                    f"distance: {summary['distance']}m"
                )
    finally:
        await server.stop()
        if session.controller.armed:
            session.disarm()
        session.stop()


def main():
    parser = argparse.ArgumentParser(
        description="Platform Landing Controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--link-serial", help="Drone link serial port")
    parser.add_argument("--link-baudrate", type=int, default=57600, help="Drone link baud rate (default: 57600)")
    parser.add_argument("--link-udp", help="Drone link UDP address host:port")
    parser.add_argument("--link-udp-bind", type=int, default=0, help="Local UDP port for telemetry (default: any)")
    parser.add_argument("--platform-serial", help="Platform serial port")
    parser.add_argument("--platform-baudrate", type=int, default=115200, help="Platform baud rate (default: 115200)")
    parser.add_argument("--platform-udp", help="Platform UDP address host:port")
    parser.add_argument("--platform-udp-bind", type=int, default=0, help="Local UDP port for platform replies (default: any)")
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Control API host address (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8765,
        help="Control API port (default: 8765)",
    )
    parser.add_argument(
        "--preflight",
        action="store_true",
        help="Refuse to arm when the pre-flight checks fail",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Suppress noisy loggers
    logging.getLogger("websockets").setLevel(logging.WARNING)

    try:
        config = build_config(args)
        session = Session.open(config)
    except (ConfigError, TransportError) as e:
        logger.critical(f"Cannot start: {e}")
        sys.exit(1)

    try:
        asyncio.run(run_controller(session, config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
