"""Swerve module controllers.

A module owns one wheel's drive and steering actuators. The motion core is
written only against the SwerveModule interface; concrete backends are
chosen at construction:

- MotorSwerveModule: closed-loop control over two motor backends (hardware).
- SimulatedSwerveModule (sim.py): idealized module dynamics for testing.

Commands are fire-and-forget: set_target() records the request, update()
issues it once per tick, and measurements reflect the previous command.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Optional

from .config import (
    DRIVE_KD,
    DRIVE_KI,
    DRIVE_KP,
    DRIVE_KS,
    DRIVE_KV,
    DRIVE_ROTATION_TO_METER,
    DRIVE_RPM_TO_METER_PER_SECOND,
    MAX_SPEED,
    PID_INTEGRAL_LIMIT,
    STEER_KD,
    STEER_KI,
    STEER_KP,
    STEER_ROTATION_TO_RADIAN,
)
from .geometry import wrap_angle
from .kinematics import ModulePosition, ModuleState
from .pid import PIDController


class SwerveModule(ABC):
    """Capability set every module backend provides."""

    def __init__(self, name: str = "module"):
        self.name = name
        self._target = ModuleState()
        self._open_loop = False

    def set_target(self, state: ModuleState, open_loop: bool = False) -> None:
        """Record the desired (speed, angle) for the next update().

        Args:
            state: Target state. Speed in m/s, angle in radians.
            open_loop: If True, drive speed is applied as a duty fraction of
                max speed instead of closed-loop velocity control.
        """
        self._target = state
        self._open_loop = open_loop

    def get_target(self) -> ModuleState:
        return self._target

    def is_open_loop(self) -> bool:
        return self._open_loop

    def stop(self) -> None:
        """Zero the drive speed while holding the current target angle."""
        self._target = ModuleState(0.0, self._target.angle)

    def reset_encoders(self) -> None:
        """Reset both drive-distance and steering-angle accumulators.

        Only valid while the module is stationary at a known reference;
        resetting while moving corrupts odometry for this wheel.
        """
        self.reset_drive_encoder()
        self.reset_turning_encoder()

    @abstractmethod
    def update(self, dt: float) -> None:
        """Issue the latest command and sample sensors."""

    @abstractmethod
    def get_measured_state(self) -> ModuleState:
        """Most recently sampled (speed, angle)."""

    @abstractmethod
    def get_position(self) -> ModulePosition:
        """Most recently sampled (distance, angle)."""

    @abstractmethod
    def get_current(self) -> float:
        """Total current draw (amps) for external fault watchdogs."""

    @abstractmethod
    def reset_drive_encoder(self) -> None:
        """Zero the drive distance accumulator."""

    @abstractmethod
    def reset_turning_encoder(self) -> None:
        """Re-align the steering angle accumulator."""


class MotorBackend(ABC):
    """Minimal motor controller interface (one physical motor + encoder)."""

    @abstractmethod
    def set_output(self, duty: float) -> None:
        """Apply a duty cycle in [-1, 1]."""

    @abstractmethod
    def get_position(self) -> float:
        """Encoder position in motor rotations."""

    @abstractmethod
    def get_velocity(self) -> float:
        """Encoder velocity in motor RPM."""

    @abstractmethod
    def set_position(self, rotations: float) -> None:
        """Overwrite the encoder position."""

    def get_current(self) -> float:
        return 0.0


class AbsoluteEncoder(ABC):
    """Absolute steering angle sensor used to align the relative encoder."""

    @abstractmethod
    def get_angle(self) -> float:
        """Module angle in radians, offset already applied."""


def _clamp(value: float, limit: float = 1.0) -> float:
    return max(-limit, min(limit, value))


class MotorSwerveModule(SwerveModule):
    """Module controller over a drive motor and a steering motor.

    Steering: PID position control with the error taken as the shortest
    angular distance between target and measured angle, which is what makes
    the kinematic 180 degree flip actually save travel.

    Drive: closed-loop velocity (feedforward kS/kV plus PID) or open-loop
    duty, selectable per set_target() call.
    """

    def __init__(
        self,
        drive_motor: MotorBackend,
        steer_motor: MotorBackend,
        absolute_encoder: Optional[AbsoluteEncoder] = None,
        name: str = "module",
        max_speed: float = MAX_SPEED,
        drive_rotation_to_meter: float = DRIVE_ROTATION_TO_METER,
        drive_rpm_to_mps: float = DRIVE_RPM_TO_METER_PER_SECOND,
        steer_rotation_to_radian: float = STEER_ROTATION_TO_RADIAN,
    ):
        super().__init__(name)
        if max_speed <= 0:
            raise ValueError(f"max_speed must be positive, got {max_speed}")

        self.drive_motor = drive_motor
        self.steer_motor = steer_motor
        self.absolute_encoder = absolute_encoder
        self.max_speed = max_speed

        # Encoder conversion factors
        self.drive_rotation_to_meter = drive_rotation_to_meter
        self.drive_rpm_to_mps = drive_rpm_to_mps
        self.steer_rotation_to_radian = steer_rotation_to_radian

        self.steer_pid = PIDController(
            STEER_KP, STEER_KI, STEER_KD, integral_limit=PID_INTEGRAL_LIMIT, continuous=True
        )
        self.drive_pid = PIDController(
            DRIVE_KP, DRIVE_KI, DRIVE_KD, integral_limit=PID_INTEGRAL_LIMIT
        )
        self.drive_ks = DRIVE_KS
        self.drive_kv = DRIVE_KV

        # Last outputs (useful for diagnostics)
        self.last_drive_output: float = 0.0
        self.last_steer_output: float = 0.0

        self.reset_turning_encoder()

    def _angle(self) -> float:
        return self.steer_motor.get_position() * self.steer_rotation_to_radian

    def _speed(self) -> float:
        return self.drive_motor.get_velocity() * self.drive_rpm_to_mps

    def get_measured_state(self) -> ModuleState:
        return ModuleState(self._speed(), wrap_angle(self._angle()))

    def get_position(self) -> ModulePosition:
        return ModulePosition(
            self.drive_motor.get_position() * self.drive_rotation_to_meter,
            wrap_angle(self._angle()),
        )

    def get_current(self) -> float:
        return self.drive_motor.get_current() + self.steer_motor.get_current()

    def update(self, dt: float) -> None:
        """Run both control loops once and write the motor outputs."""
        target = self._target
        measured_angle = self._angle()

        self.last_steer_output = _clamp(
            self.steer_pid.calculate(measured_angle, target.angle, dt)
        )

        if self._open_loop:
            self.last_drive_output = _clamp(target.speed / self.max_speed)
        else:
            feedforward = self.drive_kv * target.speed
            if abs(target.speed) > 1e-6:
                feedforward += math.copysign(self.drive_ks, target.speed)
            feedback = self.drive_pid.calculate(self._speed(), target.speed, dt)
            self.last_drive_output = _clamp(feedforward + feedback)

        self.steer_motor.set_output(self.last_steer_output)
        self.drive_motor.set_output(self.last_drive_output)

    def stop(self) -> None:
        super().stop()
        self.drive_pid.reset()
        self.drive_motor.set_output(0.0)
        self.last_drive_output = 0.0

    def reset_drive_encoder(self) -> None:
        self.drive_motor.set_position(0.0)

    def reset_turning_encoder(self) -> None:
        """Align steering to the absolute encoder, or zero it if none is fitted."""
        if self.absolute_encoder is not None:
            angle = self.absolute_encoder.get_angle()
        else:
            angle = 0.0
        self.steer_motor.set_position(angle / self.steer_rotation_to_radian)
        self.steer_pid.reset()
        logging.debug(f"{self.name}: steering encoder reset to {math.degrees(angle):.1f} deg")
