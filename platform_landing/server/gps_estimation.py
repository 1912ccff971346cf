"""Platform GPS prediction from recent fixes."""

import logging
import math
from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np

from .gps import GPSCoordinate

logger = logging.getLogger(__name__)


class GPSPredictor:
    """
    Linear dead-reckoning from the last two fixes.

    The heading and step between the previous and the current fix are
    computed in 1e-6 degree units and the current fix is moved one more
    step along that heading.
    """

    def __init__(self):
        self._last: Optional[Tuple[int, int]] = None
        self._current: Optional[Tuple[int, int]] = None
        self.heading = 0.0  # radians

    @property
    def ready(self) -> bool:
        """Check if two fixes are known."""
        return self._last is not None and self._current is not None

    def update(self, fix: GPSCoordinate) -> None:
        """Push a new fix, the current one becomes the previous."""
        self._last = self._current
        self._current = (fix.lat_int, fix.lon_int)

        if self.ready:
            d_lat = self._last[0] - self._current[0]
            d_lon = self._last[1] - self._current[1]
            # Heading is kept when the position did not change
            if d_lat != 0 or d_lon != 0:
                self.heading = math.atan2(d_lat, d_lon) + math.pi / 2

    def predict(self) -> Optional[GPSCoordinate]:
        """
        Extrapolate the next fix.

        Returns:
            Predicted coordinate, or None with fewer than two fixes.
        """
        if not self.ready:
            return None

        d_lat = self._last[0] - self._current[0]
        d_lon = self._last[1] - self._current[1]
        step = math.sqrt(d_lat * d_lat + d_lon * d_lon)

        return GPSCoordinate.from_int(
            self._current[0] + int(step * math.cos(self.heading)),
            self._current[1] + int(step * -math.sin(self.heading)),
        )

    def reset(self) -> None:
        """Forget all fixes."""
        self._last = None
        self._current = None
        self.heading = 0.0


class GPSEstimator:
    """
    Short-history estimator of the next platform fix.

    For each axis (lat, lon) and each new true fix:
        ratio_k   = true_k / true_(k-1)
        omega     = ratio_last - mean(ratio)
        velocity  = true_last - true_(last-1)
        error     = true_last - estimate made for it
        estimate  = (true_last * mean(ratio) + true_last + velocity) / 2
                    - alpha * omega + error

    Histories are bounded ring buffers; at least min_samples true fixes are
    needed before an estimate is produced.
    """

    def __init__(
        self,
        history_size: int = 8,
        min_samples: int = 5,
        alpha_lat: float = 1.0,
        alpha_lon: float = 1.0,
    ):
        """
        Initialize estimator.

        Args:
            history_size: Number of fixes kept per history.
            min_samples: True fixes required before estimating.
            alpha_lat: Weight of the latitude ratio deviation.
            alpha_lon: Weight of the longitude ratio deviation.
        """
        self.min_samples = min_samples
        self.alpha = np.array([alpha_lat, alpha_lon], dtype=np.float64)

        self._true: Deque[Tuple[int, int]] = deque(maxlen=history_size)
        self._estimated: Deque[Tuple[int, int]] = deque(maxlen=history_size)

    @property
    def ready(self) -> bool:
        """Check if an estimate is available."""
        return len(self._estimated) > 0

    @property
    def samples(self) -> int:
        """Number of true fixes in the history."""
        return len(self._true)

    @property
    def estimate(self) -> Optional[GPSCoordinate]:
        """Last estimated fix."""
        if not self._estimated:
            return None
        lat_int, lon_int = self._estimated[-1]
        return GPSCoordinate.from_int(lat_int, lon_int)

    def add_true_fix(self, fix: GPSCoordinate) -> Optional[GPSCoordinate]:
        """
        Add a measured fix and recompute the estimate.

        Args:
            fix: New true platform fix.

        Returns:
            New estimate, or None while the history is too short.
        """
        self._true.append((fix.lat_int, fix.lon_int))
        if len(self._true) < self.min_samples:
            return None

        history = np.array(self._true, dtype=np.float64)
        previous = history[:-1]
        ratios = np.divide(
            history[1:],
            previous,
            out=np.ones_like(previous),
            where=previous != 0,
        )
        average = ratios.mean(axis=0)
        omega = ratios[-1] - average

        last = history[-1]
        velocity = last - history[-2]

        if self._estimated:
            error = last - np.array(self._estimated[-1], dtype=np.float64)
        else:
            error = np.zeros(2)

        estimate = (last * average + (last + velocity)) / 2.0 - self.alpha * omega + error
        lat_int, lon_int = (int(value) for value in estimate)

        self._estimated.append((lat_int, lon_int))
        logger.debug(f"GPS estimate: {lat_int}, {lon_int} (error {error[0]:.0f}, {error[1]:.0f})")
        return GPSCoordinate.from_int(lat_int, lon_int)

    def reset(self) -> None:
        """Clear both histories."""
        self._true.clear()
        self._estimated.clear()
