"""GPS coordinate value type and geodesic utilities."""

import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_KM = 6371.0
GPS_SCALE = 1_000_000  # integer units per degree


@dataclass
class GPSCoordinate:
    """
    GPS fix stored as 1e-6 degree integers with derived float degrees.

    The integer and float views are kept consistent by the setters. An
    unset coordinate has initialized=False and is distinct from (0, 0).
    """

    lat_int: int = 0
    lon_int: int = 0
    lat: float = 0.0
    lon: float = 0.0
    initialized: bool = False
    satellites: int = 0
    fix_type: int = 0

    @classmethod
    def from_int(cls, lat_int: int, lon_int: int) -> "GPSCoordinate":
        """Create an initialized coordinate from 1e-6 degree integers."""
        coordinate = cls()
        coordinate.set_from_int(lat_int, lon_int)
        return coordinate

    @classmethod
    def from_degrees(cls, lat: float, lon: float) -> "GPSCoordinate":
        """Create an initialized coordinate from float degrees."""
        coordinate = cls()
        coordinate.set_from_degrees(lat, lon)
        return coordinate

    def set_from_int(self, lat_int: int, lon_int: int) -> None:
        """Store coordinates from 1e-6 degree integers."""
        self.lat_int = int(lat_int)
        self.lon_int = int(lon_int)
        self.lat = self.lat_int / GPS_SCALE
        self.lon = self.lon_int / GPS_SCALE
        self.initialized = True

    def set_from_degrees(self, lat: float, lon: float) -> None:
        """Store coordinates from float degrees (integer view truncates)."""
        self.lat_int = int(lat * GPS_SCALE)
        self.lon_int = int(lon * GPS_SCALE)
        self.lat = self.lat_int / GPS_SCALE
        self.lon = self.lon_int / GPS_SCALE
        self.initialized = True

    def clear(self) -> None:
        """Reset to the uninitialized state."""
        self.lat_int = 0
        self.lon_int = 0
        self.lat = 0.0
        self.lon = 0.0
        self.initialized = False

    def same_position(self, other: "GPSCoordinate") -> bool:
        """Check if both coordinates point to the same integer position."""
        return (
            self.initialized == other.initialized
            and self.lat_int == other.lat_int
            and self.lon_int == other.lon_int
        )


def distance_on_geoid(
    a: GPSCoordinate,
    b: GPSCoordinate,
    planet_radius_km: float = EARTH_RADIUS_KM,
) -> float:
    """
    Great-circle (haversine) distance between two fixes.

    Args:
        a: First coordinate.
        b: Second coordinate.
        planet_radius_km: Planet radius in kilometers.

    Returns:
        Distance in meters, 0 if either coordinate is not initialized.
    """
    if not (a.initialized and b.initialized):
        return 0.0

    lat_1 = math.radians(a.lat)
    lat_2 = math.radians(b.lat)
    d_lat = lat_2 - lat_1
    d_lon = math.radians(b.lon - a.lon)

    h = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(lat_1) * math.cos(lat_2) * math.sin(d_lon / 2.0) ** 2
    )
    h = min(1.0, max(0.0, h))
    return planet_radius_km * 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h)) * 1000.0


def initial_bearing(a: GPSCoordinate, b: GPSCoordinate) -> float:
    """Course from a to b in degrees (0 = north, 90 = east)."""
    lat_1 = math.radians(a.lat)
    lat_2 = math.radians(b.lat)
    d_lon = math.radians(b.lon - a.lon)

    y = math.sin(d_lon) * math.cos(lat_2)
    x = math.cos(lat_1) * math.sin(lat_2) - math.sin(lat_1) * math.cos(lat_2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


class SpeedMeter:
    """
    Ground speed from consecutive fixes.

    Speed is filtered exponentially:
        speed = last * filter + new * (1 - filter)
    """

    def __init__(self, speed_filter: float = 0.5, planet_radius_km: float = EARTH_RADIUS_KM):
        """
        Initialize speed meter.

        Args:
            speed_filter: Exponential filter factor (0-1).
            planet_radius_km: Planet radius in kilometers.
        """
        self.speed_filter = speed_filter
        self.planet_radius_km = planet_radius_km
        self._last_fix: Optional[GPSCoordinate] = None
        self._last_time: Optional[float] = None
        self._speed_kmh = 0.0
        self._heading_deg = 0.0

    def update(self, fix: GPSCoordinate, timestamp: float) -> float:
        """
        Feed a new fix.

        Args:
            fix: New GPS fix.
            timestamp: Fix time in seconds.

        Returns:
            Filtered speed in km/h.
        """
        if self._last_fix is not None and self._last_time is not None:
            dt = timestamp - self._last_time
            if dt > 0:
                distance = distance_on_geoid(self._last_fix, fix, self.planet_radius_km)
                speed_kmh = distance / dt * 3.6
                self._speed_kmh = (
                    self._speed_kmh * self.speed_filter
                    + speed_kmh * (1 - self.speed_filter)
                )
                if distance > 0:
                    self._heading_deg = initial_bearing(self._last_fix, fix)

        self._last_fix = GPSCoordinate.from_int(fix.lat_int, fix.lon_int)
        self._last_time = timestamp
        return self._speed_kmh

    @property
    def speed_kmh(self) -> float:
        """Last filtered speed in km/h."""
        return self._speed_kmh

    @property
    def heading_deg(self) -> float:
        """Course over ground of the last movement, degrees."""
        return self._heading_deg
