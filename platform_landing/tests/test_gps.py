"""Tests for GPS coordinates, distance and speed."""

import pytest

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from platform_landing.server.gps import (
    GPSCoordinate,
    SpeedMeter,
    distance_on_geoid,
    initial_bearing,
)


class TestGPSCoordinate:
    """Test the coordinate value type."""

    def test_uninitialized_differs_from_zero(self):
        """Test an unset coordinate is not (0, 0)."""
        unset = GPSCoordinate()
        zero = GPSCoordinate.from_int(0, 0)

        assert not unset.initialized
        assert zero.initialized
        assert not unset.same_position(zero)

    def test_int_and_float_views(self):
        """Test integer and float views stay consistent."""
        coordinate = GPSCoordinate.from_int(55751244, -37618423)
        assert coordinate.lat == pytest.approx(55.751244)
        assert coordinate.lon == pytest.approx(-37.618423)

        coordinate.set_from_degrees(10.5, 20.25)
        assert coordinate.lat_int == 10500000
        assert coordinate.lon_int == 20250000
        assert coordinate.lat == coordinate.lat_int / 1_000_000

    def test_degrees_truncated(self):
        """Test float degrees are truncated to 1e-6 units."""
        coordinate = GPSCoordinate.from_degrees(1.0000019, -1.0000019)
        assert coordinate.lat_int == 1000001
        assert coordinate.lon_int == -1000001
        assert coordinate.lat == pytest.approx(1.000001)

    def test_clear(self):
        """Test clear returns to the unset state."""
        coordinate = GPSCoordinate.from_int(1, 2)
        coordinate.clear()
        assert not coordinate.initialized
        assert coordinate.lat_int == 0


class TestDistance:
    """Test haversine distance."""

    def test_distance_to_self(self):
        """Test distance(a, a) == 0."""
        a = GPSCoordinate.from_degrees(55.751244, 37.618423)
        assert distance_on_geoid(a, a) == pytest.approx(0.0, abs=1e-9)

    def test_symmetric(self):
        """Test distance(a, b) == distance(b, a)."""
        a = GPSCoordinate.from_degrees(55.751244, 37.618423)
        b = GPSCoordinate.from_degrees(55.760000, 37.600000)
        assert distance_on_geoid(a, b) == pytest.approx(distance_on_geoid(b, a))

    def test_one_degree_of_latitude(self):
        """Test one degree along a meridian is ~111.2 km."""
        a = GPSCoordinate.from_degrees(0.0, 0.0)
        b = GPSCoordinate.from_degrees(1.0, 0.0)
        assert distance_on_geoid(a, b) == pytest.approx(111195, rel=1e-3)

    def test_longitude_scaled_by_latitude(self):
        """Test one degree of longitude at 60 deg is half of the equator one."""
        equator = distance_on_geoid(
            GPSCoordinate.from_degrees(0.0, 0.0), GPSCoordinate.from_degrees(0.0, 1.0)
        )
        north = distance_on_geoid(
            GPSCoordinate.from_degrees(60.0, 0.0), GPSCoordinate.from_degrees(60.0, 1.0)
        )
        assert north == pytest.approx(equator / 2, rel=1e-3)

    def test_uninitialized_is_zero(self):
        """Test missing fixes give zero distance."""
        a = GPSCoordinate.from_degrees(1.0, 1.0)
        assert distance_on_geoid(a, GPSCoordinate()) == 0.0


class TestSpeedMeter:
    """Test platform speed estimation."""

    def test_first_fix_has_no_speed(self):
        meter = SpeedMeter(speed_filter=0.0)
        assert meter.update(GPSCoordinate.from_degrees(0.0, 0.0), 0.0) == 0.0

    def test_unfiltered_speed(self):
        """Test 111.2 m in 10 s is ~40 km/h."""
        meter = SpeedMeter(speed_filter=0.0)
        meter.update(GPSCoordinate.from_degrees(0.0, 0.0), 0.0)
        speed = meter.update(GPSCoordinate.from_degrees(0.001, 0.0), 10.0)
        assert speed == pytest.approx(40.03, rel=1e-2)

    def test_filtered_speed(self):
        """Test the exponential filter halves a step with factor 0.5."""
        meter = SpeedMeter(speed_filter=0.5)
        meter.update(GPSCoordinate.from_degrees(0.0, 0.0), 0.0)
        speed = meter.update(GPSCoordinate.from_degrees(0.001, 0.0), 10.0)
        assert speed == pytest.approx(20.0, rel=1e-2)
        assert meter.speed_kmh == speed

    def test_heading(self):
        """Test course over ground of the last movement."""
        meter = SpeedMeter(speed_filter=0.0)
        meter.update(GPSCoordinate.from_degrees(0.0, 0.0), 0.0)
        meter.update(GPSCoordinate.from_degrees(0.0, 0.001), 1.0)
        assert meter.heading_deg == pytest.approx(90.0)


class TestBearing:
    """Test initial bearing."""

    @pytest.mark.parametrize(
        "lat, lon, expected",
        [(1.0, 0.0, 0.0), (0.0, 1.0, 90.0), (-1.0, 0.0, 180.0), (0.0, -1.0, 270.0)],
    )
    def test_cardinal_directions(self, lat, lon, expected):
        origin = GPSCoordinate.from_degrees(0.0, 0.0)
        target = GPSCoordinate.from_degrees(lat, lon)
        assert initial_bearing(origin, target) == pytest.approx(expected)
