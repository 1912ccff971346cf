"""PID controller for direct drone control corrections."""

from typing import Dict, Optional


def _clamp(value: float, low: float, high: float) -> float:
    if value > high:
        return high
    if value < low:
        return low
    return value


def _bounded(value: float, low: float, high: float) -> bool:
    return low < value < high


class PIDController:
    """
    PID controller for single-axis control.

    Implements a per-call discrete PID controller with feed-forward,
    derivative on measurement, output ramp limiting and symmetric output
    limits. The integral sum is reset to the current error whenever the
    output saturates (anti-windup).
    """

    def __init__(
        self,
        kp: float = 0.0,
        ki: float = 0.0,
        kd: float = 0.0,
        kf: float = 0.0,
        reversed: bool = False,
        ramp_rate: float = 0.0,
        output_limit: float = 0.0,
    ):
        """
        Initialize PID controller.

        Args:
            kp: Proportional gain.
            ki: Integral gain.
            kd: Derivative gain.
            kf: Feed-forward gain.
            reversed: Invert the sign of all gains.
            ramp_rate: Max output change per call (0 disables).
            output_limit: Symmetric output limit (0 disables).
        """
        self.kp = 0.0
        self.ki = 0.0
        self.kd = 0.0
        self.kf = 0.0
        self.reversed = reversed
        self.ramp_rate = ramp_rate
        self.setpoint = 0.0

        self._min_output = 0.0
        self._max_output = 0.0
        self._max_i_output = 0.0
        self._max_error = 0.0

        # State
        self._error_sum = 0.0
        self._last_actual = 0.0
        self._last_output = 0.0
        self._first_run = True

        self.set_gains(kp, ki, kd, kf)
        self.set_output_limit(output_limit)

    def compute(self, actual: float, setpoint: Optional[float] = None) -> float:
        """
        Compute PID output.

        Args:
            actual: Current measurement.
            setpoint: New setpoint. If None, uses the stored setpoint.

        Returns:
            PID output value.
        """
        if setpoint is not None:
            self.setpoint = setpoint

        error = self.setpoint - actual

        f_term = self.kf * self.setpoint
        p_term = self.kp * error

        if self._first_run:
            self._last_actual = actual
            self._last_output = p_term + f_term
            self._first_run = False

        # Derivative on measurement avoids kicks on setpoint changes
        d_term = -self.kd * (actual - self._last_actual)
        self._last_actual = actual

        i_term = self.ki * self._error_sum
        if self._max_i_output != 0:
            i_term = _clamp(i_term, -self._max_i_output, self._max_i_output)

        output = f_term + p_term + i_term + d_term

        limited = self._min_output != self._max_output
        ramp_low = self._last_output - self.ramp_rate
        ramp_high = self._last_output + self.ramp_rate

        # Anti-windup
        if limited and not _bounded(output, self._min_output, self._max_output):
            self._error_sum = error
        elif self.ramp_rate != 0 and not _bounded(output, ramp_low, ramp_high):
            self._error_sum = error
        elif self._max_i_output != 0:
            self._error_sum = _clamp(
                self._error_sum + error, -self._max_error, self._max_error
            )
        else:
            self._error_sum += error

        if self.ramp_rate != 0:
            output = _clamp(output, ramp_low, ramp_high)
        if limited:
            output = _clamp(output, self._min_output, self._max_output)

        self._last_output = output
        return output

    def reset(self) -> None:
        """Reset controller state."""
        self._first_run = True
        self._error_sum = 0.0
        self._last_actual = 0.0
        self._last_output = 0.0

    def set_gains(self, kp: float, ki: float, kd: float, kf: float = 0.0) -> None:
        """Update PID gains. Signs follow the controller direction."""
        sign = -1.0 if self.reversed else 1.0
        self.kp = sign * abs(kp)
        self.ki = sign * abs(ki)
        self.kd = sign * abs(kd)
        self.kf = sign * abs(kf)
        if self._max_i_output != 0 and self.ki != 0:
            self._max_error = self._max_i_output / abs(self.ki)

    def set_direction(self, reversed: bool) -> None:
        """Set controller direction (reversed inverts all gains)."""
        self.reversed = reversed
        self.set_gains(self.kp, self.ki, self.kd, self.kf)

    def set_output_limit(self, limit: float) -> None:
        """Set symmetric output limits (0 disables)."""
        limit = abs(limit)
        self._min_output = -limit
        self._max_output = limit
        if limit and (self._max_i_output == 0 or self._max_i_output > 2 * limit):
            self.set_max_i_output(2 * limit)

    def set_max_i_output(self, maximum: float) -> None:
        """Set integral term limit (anti-windup)."""
        self._max_i_output = abs(maximum)
        if self.ki != 0:
            self._max_error = self._max_i_output / abs(self.ki)

    def get_state(self) -> dict:
        """Get current controller state for debugging."""
        return {
            "error_sum": self._error_sum,
            "last_actual": self._last_actual,
            "last_output": self._last_output,
            "first_run": self._first_run,
        }


class MultiAxisPIDController:
    """
    Four-axis PID controller for direct drone control.

    Manages separate PID controllers for the X, Y, Z and yaw axes of the
    marker pose with coordinated reset.
    """

    AXES = ("x", "y", "z", "yaw")

    def __init__(self, axis_config: Optional[Dict[str, object]] = None):
        """
        Initialize multi-axis PID controller.

        Args:
            axis_config: Mapping of axis name to PIDAxisConfig.
        """
        self.x = PIDController()
        self.y = PIDController()
        self.z = PIDController()
        self.yaw = PIDController()

        if axis_config:
            for axis, params in axis_config.items():
                self.configure(axis, params)

    def configure(self, axis: str, params) -> None:
        """
        Apply PIDAxisConfig parameters to one axis.

        Args:
            axis: One of "x", "y", "z", "yaw".
            params: PIDAxisConfig with p, i, d, f, reversed, ramp, limit.
        """
        if axis not in self.AXES:
            raise ValueError(f"Unknown PID axis: {axis}")
        pid: PIDController = getattr(self, axis)
        pid.set_direction(params.reversed)
        pid.set_gains(params.p, params.i, params.d, params.f)
        pid.ramp_rate = params.ramp
        pid.set_output_limit(params.limit)

    def set_setpoints(self, x: float, y: float, z: float, yaw: float) -> None:
        """Set setpoints of all axes."""
        self.x.setpoint = x
        self.y.setpoint = y
        self.z.setpoint = z
        self.yaw.setpoint = yaw

    def compute(self, x: float, y: float, z: float, yaw: float) -> Dict[str, float]:
        """
        Compute corrections for all axes against their setpoints.

        Returns:
            Dictionary with per-axis outputs.
        """
        return {
            "x": self.x.compute(x),
            "y": self.y.compute(y),
            "z": self.z.compute(z),
            "yaw": self.yaw.compute(yaw),
        }

    def reset(self) -> None:
        """Reset all controllers."""
        self.x.reset()
        self.y.reset()
        self.z.reset()
        self.yaw.reset()
