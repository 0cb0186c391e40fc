"""Drive facade: the single entry point of the motion & localization core.

Callers state their intent (field-relative drive, robot-relative drive,
lock, stop, follow a trajectory) and an external scheduler calls
periodic() once per control period. Every tick runs in the same fixed
order regardless of the mode:

    1. Command: mode -> robot-relative velocity -> kinematics -> targets
    2. Modules: set targets, update (actuate + report)
    3. Heading source sample
    4. Pose estimator odometry update
    5. Vision correction (opportunistic)
    6. Snapshot -> optional telemetry sink
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .component_modes import DriveFeatures
from .config import CONTROL_PERIOD, INITIAL_POSE, MAX_SPEED, MODULE_OFFSETS
from .follower import FollowerBindings, FollowerConfig, HolonomicFollower
from .geometry import ChassisVelocity, Pose
from .heading import Gyro
from .kinematics import ModulePosition, ModuleState, SwerveKinematics, optimize
from .module import SwerveModule
from .pose_estimator import SwervePoseEstimator
from .telemetry import TelemetrySink
from .vision import TrustTier, VisionAdvisory, VisionCorrector, VisionSource


class DriveMode(Enum):
    """Caller intent for the current tick."""

    IDLE = "idle"
    FIELD_RELATIVE = "field_relative"
    ROBOT_RELATIVE = "robot_relative"
    LOCKED = "locked"
    AUTONOMOUS_FOLLOW = "autonomous_follow"


@dataclass(frozen=True)
class DriveSnapshot:
    """Immutable per-tick state for telemetry and external readers."""

    timestamp: float
    mode: DriveMode
    heading: float
    pose: Pose
    commanded_velocity: ChassisVelocity
    robot_velocity: ChassisVelocity
    field_velocity: ChassisVelocity
    target_states: Tuple[ModuleState, ...]
    measured_states: Tuple[ModuleState, ...]
    module_currents: Tuple[float, ...]
    vision_tier: Optional[TrustTier] = None
    advisories: Tuple[VisionAdvisory, ...] = ()


class SwerveDrive:
    """Composes kinematics, module controllers and pose estimation.

    Attributes:
        modules: The four module controllers (FL, FR, BL, BR).
        gyro: Heading source.
        kinematics: Drive kinematics (fixed for the robot's lifetime).
        estimator: The robot's pose estimator, owned by this object.
        vision: Vision corrector, or None when vision is disabled.
        telemetry: Optional sink receiving one snapshot per tick.
        features: Active feature flags.
        max_speed: Module speed limit used for desaturation (m/s).
    """

    def __init__(
        self,
        modules: Sequence[SwerveModule],
        gyro: Gyro,
        kinematics: Optional[SwerveKinematics] = None,
        estimator: Optional[SwervePoseEstimator] = None,
        vision_source: Optional[VisionSource] = None,
        telemetry: Optional[TelemetrySink] = None,
        features: Optional[DriveFeatures] = None,
        max_speed: float = MAX_SPEED,
        initial_pose: Pose = Pose(*INITIAL_POSE),
    ):
        """Wire up the drive.

        Args:
            modules: Module controllers, same order as the kinematics offsets.
            gyro: Heading source. It is zeroed to the initial pose heading.
            kinematics: Defaults to the configured robot geometry.
            estimator: Pre-built estimator, re-anchored to initial_pose; built
                from the modules if None.
            vision_source: Source of vision frames; vision is disabled if None
                or if features.use_vision is False.
            telemetry: Optional snapshot sink.
            features: Feature flags (default: everything enabled).
            max_speed: Desaturation limit (m/s).
            initial_pose: Starting field pose.

        Raises:
            ValueError: If the module count does not match the kinematics or
                max_speed is not positive.
        """
        self.kinematics = kinematics or SwerveKinematics(MODULE_OFFSETS)
        if len(modules) != self.kinematics.num_modules:
            raise ValueError(
                f"Expected {self.kinematics.num_modules} modules, got {len(modules)}"
            )
        if max_speed <= 0:
            raise ValueError(f"max_speed must be positive, got {max_speed}")

        self.modules: List[SwerveModule] = list(modules)
        self.gyro = gyro
        self.features = features or DriveFeatures()
        self.max_speed = max_speed
        self.telemetry = telemetry

        # Hold each wheel where it is until an angle is commanded
        for module in self.modules:
            module.set_target(
                ModuleState(0.0, module.get_measured_state().angle), self.features.use_open_loop
            )

        self.gyro.reset(initial_pose.heading)
        if estimator is None:
            estimator = SwervePoseEstimator(
                self.kinematics,
                self.gyro.get_heading(),
                self.get_module_positions(),
                initial_pose,
            )
        else:
            # The gyro reading just changed under the estimator's baseline
            estimator.reset_pose(initial_pose, self.gyro.get_heading(), self.get_module_positions())
        self.estimator = estimator

        self.vision: Optional[VisionCorrector] = None
        if vision_source is not None and self.features.use_vision:
            self.vision = VisionCorrector(self.estimator, vision_source)

        self.mode = DriveMode.IDLE
        self._request = ChassisVelocity()
        self._open_loop = self.features.use_open_loop
        self._commanded = ChassisVelocity()
        self._follower: Optional[HolonomicFollower] = None
        self._last_timestamp: Optional[float] = None
        self.last_snapshot: Optional[DriveSnapshot] = None

    # ------------------------------------------------------------------
    # Intent
    # ------------------------------------------------------------------

    def drive_field_relative(
        self, velocity: ChassisVelocity, open_loop: Optional[bool] = None
    ) -> None:
        """Drive with a velocity expressed in field axes."""
        self._set_intent(DriveMode.FIELD_RELATIVE, velocity, open_loop)

    def drive_robot_relative(
        self, velocity: ChassisVelocity, open_loop: Optional[bool] = None
    ) -> None:
        """Drive with a velocity expressed in robot axes."""
        self._set_intent(DriveMode.ROBOT_RELATIVE, velocity, open_loop)

    def lock(self) -> None:
        """Hold an X formation at zero speed to resist being pushed."""
        self._set_intent(DriveMode.LOCKED, ChassisVelocity(), None)

    def stop(self) -> None:
        """Zero all module speeds while holding the last commanded angles."""
        self._set_intent(DriveMode.IDLE, ChassisVelocity(), None)
        for module in self.modules:
            module.stop()

    def follow(self, follower: HolonomicFollower) -> None:
        """Hand velocity computation to a trajectory follower each tick."""
        self._follower = follower
        self._set_intent(DriveMode.AUTONOMOUS_FOLLOW, ChassisVelocity(), None)

    def _set_intent(
        self, mode: DriveMode, velocity: ChassisVelocity, open_loop: Optional[bool]
    ) -> None:
        if mode is not self.mode:
            logging.debug(f"Drive mode {self.mode.value} -> {mode.value}")
        if mode is not DriveMode.AUTONOMOUS_FOLLOW:
            self._follower = None
        self.mode = mode
        self._request = velocity
        self._open_loop = self.features.use_open_loop if open_loop is None else open_loop

    def _set_follower_command(self, velocity: ChassisVelocity) -> None:
        if self.mode is not DriveMode.AUTONOMOUS_FOLLOW:
            logging.debug("Ignoring follower command outside autonomous follow")
            return
        self._request = velocity

    def follower_bindings(
        self, config: Optional[FollowerConfig] = None, should_flip=lambda: False
    ) -> FollowerBindings:
        """Bound functions and configuration handed to a trajectory follower.

        The bound drive function feeds the follow mode without changing it.
        """
        return FollowerBindings(
            get_pose=self.get_pose,
            reset_pose=self.reset_pose,
            get_robot_relative_velocity=self.get_robot_relative_velocity,
            drive_robot_relative=self._set_follower_command,
            config=config or FollowerConfig(),
            should_flip=should_flip,
        )

    # ------------------------------------------------------------------
    # Control tick
    # ------------------------------------------------------------------

    def _compute_targets(self, measured_angles: Sequence[float]) -> List[ModuleState]:
        if self.mode is DriveMode.IDLE:
            self._commanded = ChassisVelocity()
            return [ModuleState(0.0, m.get_target().angle) for m in self.modules]

        if self.mode is DriveMode.LOCKED:
            self._commanded = ChassisVelocity()
            return [
                optimize(ModuleState(0.0, angle), current)
                for angle, current in zip(self.kinematics.lock_angles(), measured_angles)
            ]

        if self.mode is DriveMode.FIELD_RELATIVE:
            request = self._request
            self._commanded = ChassisVelocity.from_field_relative(
                request.vx, request.vy, request.omega, self.gyro.get_heading()
            )
        else:
            self._commanded = self._request

        return self.kinematics.to_module_states(
            self._commanded, current_angles=measured_angles, max_speed=self.max_speed
        )

    def periodic(self, timestamp: float) -> DriveSnapshot:
        """Run one control tick.

        Args:
            timestamp: Current time (seconds), non-decreasing between calls.

        Returns:
            Snapshot of the drive state after this tick.
        """
        if self._last_timestamp is None:
            dt = CONTROL_PERIOD
        else:
            dt = max(0.0, timestamp - self._last_timestamp)
        self._last_timestamp = timestamp

        if self.mode is DriveMode.AUTONOMOUS_FOLLOW and self._follower is not None:
            self._follower.execute(timestamp)

        measured_angles = [m.get_measured_state().angle for m in self.modules]
        targets = self._compute_targets(measured_angles)
        for module, target in zip(self.modules, targets):
            module.set_target(target, self._open_loop)

        for module in self.modules:
            module.update(dt)
        self.gyro.update(dt)

        measured = self.get_module_measured_states()
        self.estimator.update(
            timestamp, self.gyro.get_heading(), self.get_module_positions(), measured
        )

        tier: Optional[TrustTier] = None
        advisories: Tuple[VisionAdvisory, ...] = ()
        if self.vision is not None:
            tier = self.vision.update(timestamp)
            advisories = tuple(self.vision.drain_advisories())

        snapshot = DriveSnapshot(
            timestamp=timestamp,
            mode=self.mode,
            heading=self.gyro.get_heading(),
            pose=self.estimator.get_pose(),
            commanded_velocity=self._commanded,
            robot_velocity=self.estimator.get_robot_relative_velocity(),
            field_velocity=self.estimator.get_field_relative_velocity(),
            target_states=tuple(self.get_module_target_states()),
            measured_states=tuple(measured),
            module_currents=tuple(m.get_current() for m in self.modules),
            vision_tier=tier,
            advisories=advisories,
        )
        self.last_snapshot = snapshot
        if self.telemetry is not None:
            self.telemetry.publish(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_pose(self) -> Pose:
        return self.estimator.get_pose()

    def get_heading(self) -> float:
        return self.gyro.get_heading()

    def get_robot_relative_velocity(self) -> ChassisVelocity:
        return self.estimator.get_robot_relative_velocity()

    def get_field_relative_velocity(self) -> ChassisVelocity:
        return self.estimator.get_field_relative_velocity()

    def get_commanded_velocity(self) -> ChassisVelocity:
        """Robot-relative velocity commanded on the last tick."""
        return self._commanded

    def get_module_target_states(self) -> List[ModuleState]:
        return [m.get_target() for m in self.modules]

    def get_module_measured_states(self) -> List[ModuleState]:
        return [m.get_measured_state() for m in self.modules]

    def get_module_positions(self) -> List[ModulePosition]:
        return [m.get_position() for m in self.modules]

    # ------------------------------------------------------------------
    # Resets (caller obligation: robot stationary)
    # ------------------------------------------------------------------

    def reset_pose(self, pose: Optional[Pose] = None) -> None:
        """Override the pose estimate (default: the configured initial pose)."""
        pose = pose if pose is not None else Pose(*INITIAL_POSE)
        self.estimator.reset_pose(pose, self.gyro.get_heading(), self.get_module_positions())

    def zero_heading(self) -> None:
        """Zero the heading source; the pose heading is reset to match."""
        pose = self.estimator.get_pose()
        self.gyro.reset(0.0)
        self.estimator.reset_pose(
            Pose(pose.x, pose.y, 0.0), self.gyro.get_heading(), self.get_module_positions()
        )

    def _warn_if_moving(self, operation: str) -> None:
        velocity = self.estimator.get_robot_relative_velocity()
        if velocity.linear_speed() > 1e-3 or abs(velocity.omega) > 1e-3:
            logging.warning(
                f"{operation} while moving ({velocity.linear_speed():.2f}m/s, "
                f"{math.degrees(velocity.omega):.1f}deg/s): odometry may be corrupted"
            )

    def _rebase_odometry(self) -> None:
        self.estimator.reset_pose(
            self.estimator.get_pose(), self.gyro.get_heading(), self.get_module_positions()
        )

    def reset_encoders(self) -> None:
        """Reset drive and steering encoders of every module."""
        self._warn_if_moving("Encoder reset")
        for module in self.modules:
            module.reset_encoders()
        self._rebase_odometry()

    def reset_drive_encoders(self) -> None:
        self._warn_if_moving("Drive encoder reset")
        for module in self.modules:
            module.reset_drive_encoder()
        self._rebase_odometry()

    def reset_turning_encoders(self) -> None:
        self._warn_if_moving("Turning encoder reset")
        for module in self.modules:
            module.reset_turning_encoder()
        self._rebase_odometry()
