"""Pose estimation for the swerve drive.

Fuses wheel odometry and gyro heading with latency-delayed vision poses:
- Odometry (every control tick): module distance deltas go through the
  inverse kinematics to a body-frame twist; the rotation comes from the
  gyro; the twist is integrated with the exact SE(2) exponential map.
- Vision (opportunistic): the measurement is applied at its capture time
  inside the retained odometry history, weighted by a per-axis Kalman
  gain, and every later odometry step is replayed on top of it.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from .config import ENCODER_STD_DEVS, POSE_HISTORY_SECONDS
from .geometry import ChassisVelocity, Pose, Twist, wrap_angle
from .kinematics import ModulePosition, ModuleState, SwerveKinematics


@dataclass(frozen=True)
class OdometryRecord:
    """One odometry step: the pose and the raw inputs that produced it."""

    timestamp: float
    pose: Pose
    gyro_angle: float
    positions: Tuple[ModulePosition, ...]


@dataclass(frozen=True)
class VisionRecord:
    """A fused vision measurement, kept so later fusions can re-apply it."""

    timestamp: float
    pose: Pose
    std_devs: Tuple[float, float, float]


def _kalman_gain(q: float, r: float) -> float:
    """Closed-form steady-state gain for one axis (q, r are variances)."""
    if q == 0.0:
        return 0.0
    return q / (q + math.sqrt(q * r))


class SwervePoseEstimator:
    """Owns the robot's single live field pose.

    The pose is replaced (never mutated) on each update, so a pose returned
    by get_pose() is a stable snapshot.

    Attributes:
        kinematics: Kinematics used for the odometry twist and velocities.
        history_seconds: Length of the retained odometry history (seconds).
        vision_updates_applied: Count of fused vision measurements.
        vision_updates_rejected: Count of vision measurements rejected as stale.
    """

    def __init__(
        self,
        kinematics: SwerveKinematics,
        gyro_angle: float,
        module_positions: Sequence[ModulePosition],
        initial_pose: Pose = Pose(),
        state_std_devs: Sequence[float] = ENCODER_STD_DEVS,
        history_seconds: float = POSE_HISTORY_SECONDS,
    ):
        """Initialize the estimator.

        Args:
            kinematics: Drive kinematics.
            gyro_angle: Current raw heading from the heading source (rad).
            module_positions: Current module positions.
            initial_pose: Starting field pose.
            state_std_devs: Odometry std devs (m, m, rad). Larger values let
                vision measurements pull the estimate harder.
            history_seconds: Odometry history retained for latency
                compensation (seconds).
        """
        if len(state_std_devs) != 3:
            raise ValueError(f"state_std_devs needs 3 values, got {len(state_std_devs)}")

        self.kinematics = kinematics
        self.history_seconds = history_seconds
        self._q: List[float] = [s * s for s in state_std_devs]

        self._history: Deque[OdometryRecord] = deque()
        self._vision: List[VisionRecord] = []
        self._robot_velocity = ChassisVelocity()

        # Diagnostics
        self.vision_updates_applied = 0
        self.vision_updates_rejected = 0
        self.last_correction = Twist()

        self._reset(initial_pose, gyro_angle, module_positions)

    def _reset(
        self, pose: Pose, gyro_angle: float, module_positions: Sequence[ModulePosition]
    ) -> None:
        positions = tuple(module_positions)
        self._check_positions(positions)
        self._pose = pose
        self._gyro_offset = pose.heading - gyro_angle
        self._prev_gyro = gyro_angle
        self._prev_positions = positions
        self._last_timestamp: Optional[float] = None
        self._history.clear()
        self._vision.clear()

    def _check_positions(self, positions: Sequence[ModulePosition]) -> None:
        if len(positions) != self.kinematics.num_modules:
            raise ValueError(
                f"Expected {self.kinematics.num_modules} module positions, got {len(positions)}"
            )

    def reset_pose(
        self, pose: Pose, gyro_angle: float, module_positions: Sequence[ModulePosition]
    ) -> None:
        """Hard override of the pose estimate.

        Clears the odometry history and re-anchors both the gyro offset and
        the module position baseline, so the next get_pose() returns exactly
        pose and an update() with unchanged inputs adds no drift.

        The robot is expected to be stationary (caller obligation).
        """
        self._reset(pose, gyro_angle, module_positions)
        logging.info(
            f"Pose reset to x={pose.x:.3f}m y={pose.y:.3f}m heading={math.degrees(pose.heading):.1f}deg"
        )

    def get_pose(self) -> Pose:
        return self._pose

    def get_robot_relative_velocity(self) -> ChassisVelocity:
        """Chassis velocity in the robot frame, from measured module states."""
        return self._robot_velocity

    def get_field_relative_velocity(self) -> ChassisVelocity:
        """Chassis velocity in the field frame, using the estimated heading."""
        return self._robot_velocity.to_field_relative(self._pose.heading)

    def get_history(self) -> List[OdometryRecord]:
        return list(self._history)

    def _integrate(
        self,
        pose: Pose,
        prev_positions: Sequence[ModulePosition],
        prev_gyro: float,
        positions: Sequence[ModulePosition],
        gyro_angle: float,
        gyro_offset: float,
    ) -> Pose:
        deltas = [p.distance - q.distance for p, q in zip(positions, prev_positions)]
        angles = [p.angle for p in positions]
        twist = self.kinematics.to_twist(deltas, angles)

        # Gyro is the authority on rotation; the wheels only give translation
        moved = pose.exp(Twist(twist.dx, twist.dy, gyro_angle - prev_gyro))
        return Pose(moved.x, moved.y, gyro_angle + gyro_offset)

    def update(
        self,
        timestamp: float,
        gyro_angle: float,
        module_positions: Sequence[ModulePosition],
        module_states: Optional[Sequence[ModuleState]] = None,
    ) -> Pose:
        """Integrate one odometry step.

        Args:
            timestamp: Time of this sample (seconds), non-decreasing.
            gyro_angle: Raw heading from the heading source (rad).
            module_positions: Current module positions.
            module_states: Measured module states, used to refresh the
                chassis velocity estimate.

        Returns:
            The new pose estimate.
        """
        positions = tuple(module_positions)
        self._check_positions(positions)

        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            logging.warning(
                f"Ignoring out-of-order odometry sample at t={timestamp:.3f}s "
                f"(last t={self._last_timestamp:.3f}s)"
            )
            return self._pose

        self._pose = self._integrate(
            self._pose,
            self._prev_positions,
            self._prev_gyro,
            positions,
            gyro_angle,
            self._gyro_offset,
        )
        self._prev_positions = positions
        self._prev_gyro = gyro_angle
        self._last_timestamp = timestamp

        if self._history and self._history[-1].timestamp == timestamp:
            self._history.pop()
        self._history.append(OdometryRecord(timestamp, self._pose, gyro_angle, positions))
        while self._history and self._history[0].timestamp < timestamp - self.history_seconds:
            self._history.popleft()
        while self._vision and self._vision[0].timestamp < self._history[0].timestamp:
            self._vision.pop(0)

        if module_states is not None:
            self._robot_velocity = self.kinematics.to_chassis_velocity(module_states)

        return self._pose

    def oldest_timestamp(self) -> Optional[float]:
        return self._history[0].timestamp if self._history else None

    def _sample(self, timestamp: float) -> OdometryRecord:
        """Odometry state at timestamp, interpolated between bracketing records."""
        history = self._history
        if timestamp >= history[-1].timestamp:
            return history[-1]

        upper_idx = next(i for i, r in enumerate(history) if r.timestamp >= timestamp)
        upper = history[upper_idx]
        if upper.timestamp == timestamp or upper_idx == 0:
            return upper

        lower = history[upper_idx - 1]
        t = (timestamp - lower.timestamp) / (upper.timestamp - lower.timestamp)
        positions = tuple(
            ModulePosition(
                lo.distance + (hi.distance - lo.distance) * t,
                lo.angle + wrap_angle(hi.angle - lo.angle) * t,
            )
            for lo, hi in zip(lower.positions, upper.positions)
        )
        return OdometryRecord(
            timestamp,
            lower.pose.interpolate(upper.pose, t),
            lower.gyro_angle + (upper.gyro_angle - lower.gyro_angle) * t,
            positions,
        )

    def add_vision_measurement(
        self, pose: Pose, timestamp: float, std_devs: Sequence[float]
    ) -> bool:
        """Fuse a vision pose captured at timestamp.

        Measurements already fused with a later capture time are re-applied
        after this one, so the result does not depend on arrival order.

        Args:
            pose: Field pose reported by the vision system.
            timestamp: Capture time (seconds), already latency-compensated.
            std_devs: Vision std devs (m, m, rad). Smaller = more trust.

        Returns:
            True if the measurement was applied, False if it was older than
            the retained odometry history.
        """
        if not self._history or timestamp < self._history[0].timestamp:
            self.vision_updates_rejected += 1
            logging.debug(f"Vision measurement at t={timestamp:.3f}s is older than odometry history")
            return False

        record = VisionRecord(timestamp, pose, tuple(std_devs))
        later = [v for v in self._vision if v.timestamp > timestamp]
        self._vision = [v for v in self._vision if v.timestamp <= timestamp] + [record] + later

        self.last_correction = self._fuse(record)
        for previous in later:
            self._fuse(previous)
        if later:
            logging.debug(f"Re-applied {len(later)} later vision measurement(s) after t={timestamp:.3f}s")

        self.vision_updates_applied += 1
        return True

    def _fuse(self, record: VisionRecord) -> Twist:
        """Correct the history at record.timestamp and replay later odometry."""
        sample = self._sample(record.timestamp)

        gains = [_kalman_gain(q, s * s) for q, s in zip(self._q, record.std_devs)]
        correction = sample.pose.log(record.pose).scaled(*gains)
        corrected = sample.pose.exp(correction)
        gyro_offset = corrected.heading - sample.gyro_angle

        # Keep older records, anchor the corrected sample, then replay every
        # later odometry step on top of it
        records = [r for r in self._history if r.timestamp < sample.timestamp]
        prev = OdometryRecord(sample.timestamp, corrected, sample.gyro_angle, sample.positions)
        records.append(prev)
        for later in [r for r in self._history if r.timestamp > sample.timestamp]:
            replayed = self._integrate(
                prev.pose,
                prev.positions,
                prev.gyro_angle,
                later.positions,
                later.gyro_angle,
                gyro_offset,
            )
            prev = OdometryRecord(later.timestamp, replayed, later.gyro_angle, later.positions)
            records.append(prev)

        self._history = deque(records)
        self._pose = prev.pose
        self._gyro_offset = gyro_offset
        return correction

    def get_diagnostics(self) -> Dict[str, float]:
        """Estimator state for telemetry and tuning."""
        return {
            "history_length": len(self._history),
            "gyro_offset": self._gyro_offset,
            "vision_applied": self.vision_updates_applied,
            "vision_rejected": self.vision_updates_rejected,
            "last_correction_norm": math.hypot(self.last_correction.dx, self.last_correction.dy),
        }
