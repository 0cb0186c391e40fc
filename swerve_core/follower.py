"""Trajectory follower contract and a holonomic PID follower.

The drive exposes exactly four bound functions to a follower:
get_pose, reset_pose, get_robot_relative_velocity and drive_robot_relative,
plus static configuration and an alliance predicate used for path mirroring.
HolonomicFollower is a reference consumer of that contract:
- Samples a time-parameterized reference trajectory
- Mirrors it across the field for the red alliance
- Adds per-axis PID feedback to the reference velocity (feedforward)
- Converts the field-relative result into a robot-relative command
"""

import math
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .config import (
    AUTO_DRIVE_BASE_RADIUS,
    AUTO_MAX_SPEED,
    AUTO_ROTATION_PID,
    AUTO_TRANSLATION_PID,
    FIELD_LENGTH,
)
from .geometry import ChassisVelocity, Pose, wrap_angle
from .pid import PIDController


@dataclass(frozen=True)
class PIDConstants:
    kp: float
    ki: float = 0.0
    kd: float = 0.0
    integral_limit: float = 1.0

    def build(self, continuous: bool = False) -> PIDController:
        return PIDController(
            self.kp, self.ki, self.kd, integral_limit=self.integral_limit, continuous=continuous
        )


@dataclass(frozen=True)
class FollowerConfig:
    """Static follower configuration.

    Attributes:
        translation: PID gains for x and y position error.
        rotation: PID gains for heading error.
        max_module_speed: Speed limit while following (m/s).
        drive_base_radius: Distance from center to the furthest module (m).
    """

    translation: PIDConstants = PIDConstants(*AUTO_TRANSLATION_PID)
    rotation: PIDConstants = PIDConstants(*AUTO_ROTATION_PID)
    max_module_speed: float = AUTO_MAX_SPEED
    drive_base_radius: float = AUTO_DRIVE_BASE_RADIUS


@dataclass(frozen=True)
class FollowerBindings:
    """Everything a follower may touch on the drive."""

    get_pose: Callable[[], Pose]
    reset_pose: Callable[[Pose], None]
    get_robot_relative_velocity: Callable[[], ChassisVelocity]
    drive_robot_relative: Callable[[ChassisVelocity], None]
    config: FollowerConfig
    should_flip: Callable[[], bool]


@dataclass(frozen=True)
class TrajectoryState:
    """Reference pose and field-relative velocity at a point in time."""

    time: float
    pose: Pose
    velocity: ChassisVelocity

    def mirrored(self, field_length: float = FIELD_LENGTH) -> "TrajectoryState":
        """Mirror across the field center line (blue <-> red alliance)."""
        pose = Pose(field_length - self.pose.x, self.pose.y, math.pi - self.pose.heading)
        velocity = ChassisVelocity(-self.velocity.vx, self.velocity.vy, -self.velocity.omega)
        return TrajectoryState(self.time, pose, velocity)


class Trajectory(Protocol):
    """Time-parameterized reference produced by an external planner."""

    duration: float

    def sample(self, t: float) -> TrajectoryState:
        ...


class HolonomicFollower:
    """Follow a trajectory through the drive's follower bindings.

    Control law (field frame):
        vx = vx_ref + PID_x(x, x_ref)
        vy = vy_ref + PID_y(y, y_ref)
        omega = omega_ref + PID_theta(theta, theta_ref)   (wrapped error)

    The linear part is scaled down uniformly if it exceeds max_module_speed.
    """

    def __init__(
        self,
        bindings: FollowerBindings,
        trajectory: Trajectory,
        reset_pose_on_start: bool = True,
        field_length: float = FIELD_LENGTH,
    ):
        self.bindings = bindings
        self.trajectory = trajectory
        self.reset_pose_on_start = reset_pose_on_start
        self.field_length = field_length

        config = bindings.config
        self.x_pid = config.translation.build()
        self.y_pid = config.translation.build()
        self.theta_pid = config.rotation.build(continuous=True)

        self.start_time: Optional[float] = None
        self._prev_time: Optional[float] = None
        self._flip = False
        self.last_reference: Optional[TrajectoryState] = None

    def _reference(self, t: float) -> TrajectoryState:
        state = self.trajectory.sample(t)
        return state.mirrored(self.field_length) if self._flip else state

    def start(self, timestamp: float) -> None:
        """Begin following; the alliance is latched here."""
        self.start_time = timestamp
        self._prev_time = None
        self._flip = bool(self.bindings.should_flip())
        for pid in (self.x_pid, self.y_pid, self.theta_pid):
            pid.reset()
        if self.reset_pose_on_start:
            self.bindings.reset_pose(self._reference(0.0).pose)

    def elapsed(self, timestamp: float) -> float:
        if self.start_time is None:
            return 0.0
        return max(0.0, timestamp - self.start_time)

    def is_finished(self, timestamp: float) -> bool:
        return self.start_time is not None and self.elapsed(timestamp) >= self.trajectory.duration

    def execute(self, timestamp: float) -> ChassisVelocity:
        """Compute and send one robot-relative command.

        Args:
            timestamp: Current control tick time (seconds).

        Returns:
            The robot-relative velocity handed to drive_robot_relative.
        """
        if self.start_time is None:
            self.start(timestamp)

        dt = timestamp - self._prev_time if self._prev_time is not None else 0.0
        self._prev_time = timestamp

        reference = self._reference(min(self.elapsed(timestamp), self.trajectory.duration))
        self.last_reference = reference
        pose = self.bindings.get_pose()

        vx = reference.velocity.vx + self.x_pid.calculate(pose.x, reference.pose.x, dt)
        vy = reference.velocity.vy + self.y_pid.calculate(pose.y, reference.pose.y, dt)
        omega = reference.velocity.omega + self.theta_pid.calculate(
            wrap_angle(pose.heading), wrap_angle(reference.pose.heading), dt
        )

        # Clamp linear speed, preserving direction
        max_speed = self.bindings.config.max_module_speed
        speed = math.hypot(vx, vy)
        if speed > max_speed > 0:
            vx, vy = vx * max_speed / speed, vy * max_speed / speed

        command = ChassisVelocity.from_field_relative(vx, vy, omega, pose.heading)
        self.bindings.drive_robot_relative(command)
        return command
