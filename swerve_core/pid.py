"""PID feedback controller used by the module controllers and the follower.

Adds two things on top of a textbook PID:
- Anti-windup: the integral term is clamped to +/- integral_limit.
- Continuous input: for angle control the error is wrapped to (-pi, pi],
  so the controller always turns the short way around.
"""

from typing import Dict

from .geometry import wrap_angle


class PIDController:
    """PID controller with anti-windup and optional continuous (angle) input.

    Control law:
        output = kp * e + ki * integral(e) + kd * de/dt

    Attributes:
        kp: Proportional gain.
        ki: Integral gain.
        kd: Derivative gain.
        integral_limit: Clamp on the accumulated integral error.
        continuous: If True, error is the wrapped angular distance.
    """

    def __init__(
        self,
        kp: float,
        ki: float = 0.0,
        kd: float = 0.0,
        integral_limit: float = 0.5,
        continuous: bool = False,
    ):
        self.kp = kp
        self.ki = ki
        self.kd = kd
        self.integral_limit = integral_limit
        self.continuous = continuous

        # Integral state (accumulated error)
        self.integral: float = 0.0

        # Previous error for derivative computation
        self.prev_error: float = 0.0
        self._has_prev = False

        self.last_error: float = 0.0
        self.last_output: float = 0.0

    def error(self, measurement: float, setpoint: float) -> float:
        """Signed error, wrapped for continuous input."""
        err = setpoint - measurement
        if self.continuous:
            err = wrap_angle(err)
        return err

    def calculate(self, measurement: float, setpoint: float, dt: float) -> float:
        """Compute the controller output for one step.

        Args:
            measurement: Current process value.
            setpoint: Desired process value.
            dt: Time step since the previous call (seconds).

        Returns:
            Controller output (unclamped).
        """
        err = self.error(measurement, setpoint)

        if dt > 0 and self._has_prev:
            derivative = (err - self.prev_error) / dt
        else:
            derivative = 0.0

        if dt > 0:
            self.integral += err * dt
            self.integral = max(-self.integral_limit, min(self.integral_limit, self.integral))

        self.prev_error = err
        self._has_prev = True
        self.last_error = err
        self.last_output = self.kp * err + self.ki * self.integral + self.kd * derivative
        return self.last_output

    def reset(self) -> None:
        """Reset integral and derivative state."""
        self.integral = 0.0
        self.prev_error = 0.0
        self._has_prev = False
        self.last_error = 0.0
        self.last_output = 0.0

    def get_diagnostics(self) -> Dict[str, float]:
        return {
            "error": self.last_error,
            "integral": self.integral,
            "output": self.last_output,
        }
