"""Swerve drive kinematic model.

This module provides the forward and inverse kinematics for a four-module
swerve drive, converting a chassis velocity into per-module (speed, angle)
targets and back.

For a module mounted at offset (x, y) from the rotation center, the wheel
velocity vector for a chassis velocity (vx, vy, omega) is:
    v_wheel_x = vx - omega * y
    v_wheel_y = vy + omega * x

Stacking these rows for every module gives a fixed (2N x 3) matrix. The
reverse direction uses its pseudo-inverse, which is the least-squares best
fit chassis velocity for a set of measured module vectors.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .geometry import ChassisVelocity, Twist, wrap_angle


@dataclass(frozen=True)
class ModuleState:
    """Wheel speed (m/s) and steering angle (rad).

    Used for both commanded targets and sensor-measured states. A negative
    speed means the wheel drives backwards along the given angle.
    """

    speed: float = 0.0
    angle: float = 0.0


@dataclass(frozen=True)
class ModulePosition:
    """Cumulative signed drive distance (m) and current steering angle (rad)."""

    distance: float = 0.0
    angle: float = 0.0


def optimize(state: ModuleState, current_angle: float) -> ModuleState:
    """Minimize steering travel for a target state.

    If reaching the target angle would require turning the module by more
    than 90 degrees, the wheel is instead pointed the opposite way and the
    drive direction is reversed. The physical wheel velocity is identical.

    Args:
        state: Desired module state.
        current_angle: Angle the module is currently pointing at (rad).

    Returns:
        Equivalent state whose angle is within 90 degrees of current_angle,
        with the angle wrapped to (-pi, pi].
    """
    delta = wrap_angle(state.angle - current_angle)
    if abs(delta) > math.pi / 2.0:
        return ModuleState(-state.speed, wrap_angle(state.angle + math.pi))
    return ModuleState(state.speed, wrap_angle(state.angle))


def desaturate_wheel_speeds(
    states: Sequence[ModuleState], max_speed: float
) -> List[ModuleState]:
    """Scale all module speeds uniformly so none exceeds max_speed.

    Every speed is multiplied by the same ratio (max_speed / observed max),
    so the direction of the commanded chassis velocity is preserved and only
    its magnitude is reduced.

    Args:
        states: Module states, possibly saturated.
        max_speed: Hardware speed limit (m/s), must be positive.

    Returns:
        New list of module states with |speed| <= max_speed.
    """
    if max_speed <= 0:
        raise ValueError(f"max_speed must be positive, got {max_speed}")

    observed_max = max((abs(s.speed) for s in states), default=0.0)
    if observed_max <= max_speed:
        return list(states)

    ratio = max_speed / observed_max
    return [ModuleState(s.speed * ratio, s.angle) for s in states]


class SwerveKinematics:
    """Fixed linear map between chassis velocity and module velocities.

    The matrix is built once from the module offsets and never changes for
    the lifetime of the robot. All methods are pure.

    Attributes:
        module_offsets: Tuple of (x, y) offsets, one per module (meters).
        num_modules: Number of modules.
    """

    def __init__(self, module_offsets: Sequence[Tuple[float, float]]):
        """Build the kinematics matrices.

        Args:
            module_offsets: (x, y) offset of each wheel from the rotation
                center, in meters. Order defines module indices.

        Raises:
            ValueError: If fewer than two modules are given or the geometry
                is degenerate (e.g. all offsets coincide), which would make
                the inverse transform undefined.
        """
        if len(module_offsets) < 2:
            raise ValueError(f"Swerve kinematics needs at least 2 modules, got {len(module_offsets)}")

        self.module_offsets: Tuple[Tuple[float, float], ...] = tuple(
            (float(x), float(y)) for x, y in module_offsets
        )
        self.num_modules = len(self.module_offsets)

        # Inverse kinematics matrix: rows [1, 0, -y] and [0, 1, x] per module
        inverse = np.zeros((2 * self.num_modules, 3))
        for i, (x, y) in enumerate(self.module_offsets):
            inverse[2 * i] = [1.0, 0.0, -y]
            inverse[2 * i + 1] = [0.0, 1.0, x]

        if np.linalg.matrix_rank(inverse) < 3:
            raise ValueError(
                f"Degenerate module geometry {self.module_offsets}: "
                "offsets must not all coincide"
            )

        self._inverse_matrix = inverse
        self._forward_matrix = np.linalg.pinv(inverse)

    def to_module_states(
        self,
        velocity: ChassisVelocity,
        current_angles: Optional[Sequence[float]] = None,
        max_speed: Optional[float] = None,
    ) -> List[ModuleState]:
        """Convert a robot-relative chassis velocity into module targets.

        Args:
            velocity: Desired robot-relative chassis velocity.
            current_angles: Current module angles (rad). When given, each
                target is optimized against its module's angle, and a
                module with zero commanded speed keeps its angle instead of
                snapping to atan2(0, 0).
            max_speed: When given, the states are desaturated to this limit.

        Returns:
            One ModuleState per module, in module order.
        """
        chassis = np.array([velocity.vx, velocity.vy, velocity.omega])
        wheel_vectors = (self._inverse_matrix @ chassis).reshape(self.num_modules, 2)

        states: List[ModuleState] = []
        for i, (wx, wy) in enumerate(wheel_vectors):
            speed = math.hypot(wx, wy)
            if current_angles is not None and speed < 1e-9:
                states.append(ModuleState(0.0, wrap_angle(current_angles[i])))
                continue

            state = ModuleState(float(speed), math.atan2(wy, wx))
            if current_angles is not None:
                state = optimize(state, current_angles[i])
            states.append(state)

        if max_speed is not None:
            states = desaturate_wheel_speeds(states, max_speed)
        return states

    def to_chassis_velocity(self, states: Sequence[ModuleState]) -> ChassisVelocity:
        """Best-fit robot-relative chassis velocity for measured module states."""
        self._check_count(states)
        wheel_vectors = np.array(
            [[s.speed * math.cos(s.angle), s.speed * math.sin(s.angle)] for s in states]
        ).reshape(-1)
        vx, vy, omega = self._forward_matrix @ wheel_vectors
        return ChassisVelocity(float(vx), float(vy), float(omega))

    def to_twist(self, distance_deltas: Sequence[float], angles: Sequence[float]) -> Twist:
        """Best-fit body-frame twist for per-module distance increments.

        Args:
            distance_deltas: Signed distance each wheel travelled (m).
            angles: Angle each wheel pointed at while travelling (rad).

        Returns:
            Chassis displacement in the robot frame.
        """
        self._check_count(distance_deltas)
        displacements = np.array(
            [[d * math.cos(a), d * math.sin(a)] for d, a in zip(distance_deltas, angles)]
        ).reshape(-1)
        dx, dy, dtheta = self._forward_matrix @ displacements
        return Twist(float(dx), float(dy), float(dtheta))

    def lock_angles(self) -> List[float]:
        """Angles that point every module along its radial line.

        With zero speed this X formation resists being pushed in any direction.
        """
        return [math.atan2(y, x) for x, y in self.module_offsets]

    def _check_count(self, items: Sequence) -> None:
        if len(items) != self.num_modules:
            raise ValueError(f"Expected {self.num_modules} module values, got {len(items)}")
