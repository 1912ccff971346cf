"""Tests for platform GPS prediction and estimation."""

import pytest

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from platform_landing.server.gps import GPSCoordinate
from platform_landing.server.gps_estimation import GPSEstimator, GPSPredictor


class TestGPSPredictor:
    """Test linear dead-reckoning."""

    def test_not_ready_with_one_fix(self):
        """Test no prediction before two fixes."""
        predictor = GPSPredictor()
        assert predictor.predict() is None

        predictor.update(GPSCoordinate.from_int(100, 100))
        assert not predictor.ready
        assert predictor.predict() is None

    def test_north_motion(self):
        """Test motion along latitude is continued."""
        predictor = GPSPredictor()
        predictor.update(GPSCoordinate.from_int(1000, 2000))
        predictor.update(GPSCoordinate.from_int(1010, 2000))

        prediction = predictor.predict()
        assert prediction.lat_int == pytest.approx(1020, abs=1)
        assert prediction.lon_int == pytest.approx(2000, abs=1)

    def test_east_motion(self):
        """Test motion along longitude is continued."""
        predictor = GPSPredictor()
        predictor.update(GPSCoordinate.from_int(1000, 2000))
        predictor.update(GPSCoordinate.from_int(1000, 2010))

        prediction = predictor.predict()
        assert prediction.lat_int == pytest.approx(1000, abs=1)
        assert prediction.lon_int == pytest.approx(2020, abs=1)

    @pytest.mark.parametrize("d_lat, d_lon", [(30, 40), (-30, 40), (-25, -25), (50, -5)])
    def test_diagonal_motion(self, d_lat, d_lon):
        """Test prediction equals current + (current - last)."""
        predictor = GPSPredictor()
        predictor.update(GPSCoordinate.from_int(55_000_000, 37_000_000))
        predictor.update(GPSCoordinate.from_int(55_000_000 + d_lat, 37_000_000 + d_lon))

        prediction = predictor.predict()
        assert prediction.lat_int == pytest.approx(55_000_000 + 2 * d_lat, abs=1)
        assert prediction.lon_int == pytest.approx(37_000_000 + 2 * d_lon, abs=1)

    def test_stationary(self):
        """Test no movement predicts the same position."""
        predictor = GPSPredictor()
        predictor.update(GPSCoordinate.from_int(500, 600))
        predictor.update(GPSCoordinate.from_int(500, 600))

        prediction = predictor.predict()
        assert (prediction.lat_int, prediction.lon_int) == (500, 600)

    def test_reset(self):
        predictor = GPSPredictor()
        predictor.update(GPSCoordinate.from_int(1, 1))
        predictor.update(GPSCoordinate.from_int(2, 2))
        predictor.reset()
        assert not predictor.ready


class TestGPSEstimator:
    """Test history based estimation."""

    @staticmethod
    def linear_track(count, lat0=55_000_000, lon0=37_000_000, d_lat=100, d_lon=-50):
        return [
            GPSCoordinate.from_int(lat0 + d_lat * k, lon0 + d_lon * k)
            for k in range(count)
        ]

    def test_needs_min_samples(self):
        """Test no estimate before min_samples true fixes."""
        estimator = GPSEstimator(history_size=8, min_samples=5)
        track = self.linear_track(5)

        for fix in track[:4]:
            assert estimator.add_true_fix(fix) is None
            assert not estimator.ready
        assert estimator.estimate is None

        assert estimator.add_true_fix(track[4]) is not None
        assert estimator.ready

    def test_linear_track_extrapolated(self):
        """Test estimate is close to the next point of a straight track."""
        estimator = GPSEstimator(history_size=8, min_samples=5)
        track = self.linear_track(12)

        for k, fix in enumerate(track[:-1]):
            estimate = estimator.add_true_fix(fix)
            if estimate is None:
                continue
            expected = track[k + 1]
            assert abs(estimate.lat_int - expected.lat_int) <= 5
            assert abs(estimate.lon_int - expected.lon_int) <= 5

    def test_history_bounded(self):
        """Test history never exceeds its size."""
        estimator = GPSEstimator(history_size=6, min_samples=5)
        for fix in self.linear_track(40):
            estimator.add_true_fix(fix)
        assert estimator.samples == 6

    def test_zero_coordinate_does_not_raise(self):
        """Test a zero longitude history is handled."""
        estimator = GPSEstimator(history_size=8, min_samples=3)
        for k in range(5):
            estimate = estimator.add_true_fix(GPSCoordinate.from_int(1_000_000 + k, 0))
        assert estimate is not None
        assert estimate.lon_int == 0

    def test_reset(self):
        estimator = GPSEstimator(history_size=8, min_samples=3)
        for fix in self.linear_track(4):
            estimator.add_true_fix(fix)
        estimator.reset()
        assert estimator.samples == 0
        assert not estimator.ready
