"""Planar geometry types shared by the kinematics, estimator and drive.

All quantities are SI: meters, radians, seconds. Headings are continuous
floats and are only wrapped where a shortest angular distance is needed.
"""

import math
from dataclasses import dataclass


def wrap_angle(angle: float) -> float:
    """Wrap an angle to (-pi, pi]."""
    wrapped = math.atan2(math.sin(angle), math.cos(angle))
    if wrapped == -math.pi:
        return math.pi
    return wrapped


def rotate(x: float, y: float, angle: float) -> tuple[float, float]:
    """Rotate the vector (x, y) counter-clockwise by angle."""
    c, s = math.cos(angle), math.sin(angle)
    return x * c - y * s, x * s + y * c


@dataclass(frozen=True)
class Twist:
    """Body-frame displacement (dx, dy) and rotation dtheta."""

    dx: float = 0.0
    dy: float = 0.0
    dtheta: float = 0.0

    def scaled(self, kx: float, ky: float, ktheta: float) -> "Twist":
        return Twist(self.dx * kx, self.dy * ky, self.dtheta * ktheta)


@dataclass(frozen=True)
class ChassisVelocity:
    """Planar velocity of the chassis.

    Attributes:
        vx: Velocity along x (m/s).
        vy: Velocity along y (m/s).
        omega: Angular velocity (rad/s), counter-clockwise positive.
    """

    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0

    @classmethod
    def from_field_relative(
        cls, vx: float, vy: float, omega: float, heading: float
    ) -> "ChassisVelocity":
        """Convert a field-relative request into a robot-relative velocity.

        Args:
            vx: Field x velocity (m/s).
            vy: Field y velocity (m/s).
            omega: Angular velocity (rad/s), identical in both frames.
            heading: Current robot heading in the field frame (radians).

        Returns:
            The same motion expressed in the robot frame.
        """
        rx, ry = rotate(vx, vy, -heading)
        return cls(rx, ry, omega)

    def to_field_relative(self, heading: float) -> "ChassisVelocity":
        """Express this robot-relative velocity in the field frame."""
        fx, fy = rotate(self.vx, self.vy, heading)
        return ChassisVelocity(fx, fy, self.omega)

    def linear_speed(self) -> float:
        return math.hypot(self.vx, self.vy)


@dataclass(frozen=True)
class Pose:
    """Field-frame pose (x, y, heading).

    Pose objects are immutable snapshots; the estimator replaces its pose
    rather than mutating it, so readers can hold on to a returned value.
    """

    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0

    def distance_to(self, other: "Pose") -> float:
        """Euclidean distance between the translations of two poses."""
        return math.hypot(other.x - self.x, other.y - self.y)

    def exp(self, twist: Twist) -> "Pose":
        """Integrate a body-frame twist along a constant-curvature arc.

        This is the exact SE(2) exponential map, so a rotating chassis does
        not accumulate the curvature error of a straight-line update.
        """
        theta = twist.dtheta
        sin_t = math.sin(theta)
        cos_t = math.cos(theta)
        if abs(theta) < 1e-9:
            s = 1.0 - theta * theta / 6.0
            c = 0.5 * theta
        else:
            s = sin_t / theta
            c = (1.0 - cos_t) / theta

        local_x = twist.dx * s - twist.dy * c
        local_y = twist.dx * c + twist.dy * s
        field_x, field_y = rotate(local_x, local_y, self.heading)
        return Pose(self.x + field_x, self.y + field_y, self.heading + theta)

    def log(self, end: "Pose") -> Twist:
        """Twist that maps this pose onto end (inverse of exp).

        The rotation component is the shortest angular distance.
        """
        dtheta = wrap_angle(end.heading - self.heading)
        tx, ty = rotate(end.x - self.x, end.y - self.y, -self.heading)

        half_dtheta = dtheta / 2.0
        cos_minus_one = math.cos(dtheta) - 1.0
        if abs(cos_minus_one) < 1e-9:
            half_theta_by_tan = 1.0 - dtheta * dtheta / 12.0
        else:
            half_theta_by_tan = -(half_dtheta * math.sin(dtheta)) / cos_minus_one

        scale = math.hypot(half_theta_by_tan, half_dtheta)
        rx, ry = rotate(tx, ty, math.atan2(-half_dtheta, half_theta_by_tan))
        return Twist(rx * scale, ry * scale, dtheta)

    def interpolate(self, end: "Pose", t: float) -> "Pose":
        """Linear interpolation towards end, t in [0, 1]."""
        t = max(0.0, min(1.0, t))
        return Pose(
            self.x + (end.x - self.x) * t,
            self.y + (end.y - self.y) * t,
            self.heading + (end.heading - self.heading) * t,
        )
