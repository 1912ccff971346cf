"""Server-side components of the Platform Landing Controller."""

from .config import Config, ConfigError, PIDAxisConfig
from .gps import GPSCoordinate, distance_on_geoid
from .gps_estimation import GPSEstimator, GPSPredictor
from .state_machine import FlightPhase, StateMachine
from .pid_controller import PIDController, MultiAxisPIDController
from .position_controller import MarkerPose, PositionController
from .session import Session

__all__ = [
    "Config",
    "ConfigError",
    "PIDAxisConfig",
    "GPSCoordinate",
    "distance_on_geoid",
    "GPSEstimator",
    "GPSPredictor",
    "FlightPhase",
    "StateMachine",
    "PIDController",
    "MultiAxisPIDController",
    "MarkerPose",
    "PositionController",
    "Session",
]
