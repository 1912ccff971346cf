"""Wire protocols of the drone and platform links."""

from .messages import (
    DirectControl,
    LinkCommand,
    LinkFrame,
    TelemetryFrame,
)
from .link_codec import LinkCodec
from .telemetry_decoder import TelemetryDecoder
from .platform_protocol import PlatformProtocol, compute_exposure, parse_value

__all__ = [
    "DirectControl",
    "LinkCommand",
    "LinkFrame",
    "TelemetryFrame",
    "LinkCodec",
    "TelemetryDecoder",
    "PlatformProtocol",
    "compute_exposure",
    "parse_value",
]
