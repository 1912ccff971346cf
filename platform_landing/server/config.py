"""Configuration for the Platform Landing Controller."""

from dataclasses import dataclass, field


class ConfigError(ValueError):
    """Raised when the configuration is malformed."""


@dataclass
class PIDAxisConfig:
    """PID parameters of one axis."""

    p: float = 0.0
    i: float = 0.0
    d: float = 0.0
    f: float = 0.0
    reversed: bool = False
    ramp: float = 0.0  # Max output change per frame (0 disables)
    limit: float = 0.0  # Symmetric output limit (0 disables)


@dataclass
class Config:
    """Configuration for the Platform Landing Controller."""

    # PID Gains (marker pose units: cm and degrees)
    pid_x: PIDAxisConfig = field(
        default_factory=lambda: PIDAxisConfig(p=1.2, i=0.01, d=4.0, ramp=40.0, limit=300.0)
    )
    pid_y: PIDAxisConfig = field(
        default_factory=lambda: PIDAxisConfig(p=1.2, i=0.01, d=4.0, ramp=40.0, limit=300.0)
    )
    pid_z: PIDAxisConfig = field(
        default_factory=lambda: PIDAxisConfig(p=1.0, i=0.005, d=2.0, ramp=30.0, limit=250.0)
    )
    pid_yaw: PIDAxisConfig = field(
        default_factory=lambda: PIDAxisConfig(p=2.0, i=0.0, d=1.0, ramp=40.0, limit=200.0)
    )

    # Marker tracking
    allowed_lost_frames: int = 15  # Consecutive missed frames before LOST
    input_filter: float = 0.6  # Exponential filter of the marker pose (0-1)
    setpoint_alignment_factor: float = 0.95  # Setpoint blend toward absolute (0-1)

    # Absolute setpoints (where the marker should be under the drone)
    setpoint_x: float = 0.0
    setpoint_y: float = 0.0
    setpoint_yaw: float = 0.0

    # Landing
    landing_allowed: bool = True
    landing_alt: float = 25.0  # Motors stop at or below this marker altitude
    landing_decrement: float = 0.5  # Altitude setpoint decrement per frame
    allowed_landing_range_xy: float = 8.0
    allowed_landing_range_yaw: float = 5.0

    # Drone link
    link_suffix_1: int = 0xEE
    link_suffix_2: int = 0xEF
    link_serial_port: str = ""
    link_baudrate: int = 57600
    link_udp: str = ""  # "host:port"
    link_udp_bind_port: int = 0  # Local port for telemetry (0: any)

    # Platform link
    platform_serial_port: str = ""
    platform_baudrate: int = 115200
    platform_udp: str = ""  # "host:port"
    platform_udp_bind_port: int = 0
    platform_light_enable_threshold: float = 150.0  # Illumination (lux)
    platform_light_disable_threshold: float = 400.0
    exposure_min_delta: float = 0.2

    # Waypoints
    pressure_term_above_platform: int = 250  # Pa below platform pressure

    # GPS prediction
    gps_prediction_enabled: bool = True
    gps_prediction_distance_m: float = 10.0  # Use estimation above this distance
    estimator_history_size: int = 8
    estimator_min_samples: int = 5
    estimator_alpha_lat: float = 1.0
    estimator_alpha_lon: float = 1.0
    planet_radius_km: float = 6371.0
    speed_filter: float = 0.5

    # Timing (seconds)
    telemetry_lost_time_s: float = 1.0
    platform_lost_time_s: float = 2.0
    platform_reply_timeout_s: float = 0.3
    platform_loop_period_s: float = 0.1
    transport_read_timeout_s: float = 0.1

    # Pre-flight checks
    preflight_checks_enabled: bool = False
    min_satellites_start: int = 8
    max_platform_speed_kmh: float = 15.0

    # Blackbox
    blackbox_enabled: bool = True

    # Control API
    api_host: str = "0.0.0.0"
    api_port: int = 8765

    def pid_axes(self) -> dict:
        """PID parameters by axis name."""
        return {
            "x": self.pid_x,
            "y": self.pid_y,
            "z": self.pid_z,
            "yaw": self.pid_yaw,
        }

    def validate(self) -> "Config":
        """
        Check value ranges.

        Returns:
            self, for chaining.

        Raises:
            ConfigError: On the first invalid value.
        """
        for name in ("input_filter", "setpoint_alignment_factor", "speed_filter"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be within 0..1, got {value}")

        for name in ("link_suffix_1", "link_suffix_2"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ConfigError(f"{name} must be a byte, got {value}")

        if self.allowed_lost_frames < 1:
            raise ConfigError(
                f"allowed_lost_frames must be >= 1, got {self.allowed_lost_frames}"
            )

        if self.estimator_min_samples < 3:
            raise ConfigError("estimator_min_samples must be >= 3")
        if self.estimator_history_size < self.estimator_min_samples:
            raise ConfigError(
                "estimator_history_size must not be smaller than estimator_min_samples"
            )

        for name in (
            "telemetry_lost_time_s",
            "platform_lost_time_s",
            "platform_reply_timeout_s",
            "platform_loop_period_s",
            "transport_read_timeout_s",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

        for name in ("link_udp", "platform_udp"):
            value = getattr(self, name)
            if value and ":" not in value:
                raise ConfigError(f"{name} must be 'host:port', got {value!r}")

        return self


# Default configuration instance
default_config = Config()
