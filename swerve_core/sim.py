"""Simulated hardware backends.

Idealized stand-ins for the module controllers, the heading sensor and the
vision co-processor, so the whole drive can run without hardware:
- SimulatedSwerveModule: rate-limited steering and first-order wheel speed
- SimulatedHeadingSensor: integrates the true chassis motion (ground truth)
- SimulatedVisionSource: noisy, latency-stamped samples of the ground truth
"""

import logging
import math
import time
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .component_modes import DriveFeatures
from .config import (
    MAX_SPEED,
    MODULE_NAMES,
    MODULE_OFFSETS,
    SIM_CURRENT_PER_MPS,
    SIM_DRIVE_TIME_CONSTANT,
    SIM_STEER_RATE,
    SIM_VISION_LATENCY_MS,
    SIM_VISION_NOISE,
)
from .geometry import Pose, wrap_angle
from .heading import Gyro, HeadingSensor
from .kinematics import ModulePosition, ModuleState, SwerveKinematics
from .module import SwerveModule
from .vision import VisionFrame, VisionSource


class SimulatedSwerveModule(SwerveModule):
    """Module with idealized actuator dynamics.

    Attributes:
        steer_rate: Max steering rate (rad/s), None for instantaneous.
        drive_time_constant: Wheel speed time constant (s), 0 for instantaneous.
        encoder_scale: Ratio of reported to true drive distance. Values other
            than 1.0 model wheel wear or slip so odometry drifts.
        true_distance: Distance the wheel actually travelled (m).
    """

    def __init__(
        self,
        name: str = "module",
        steer_rate: Optional[float] = SIM_STEER_RATE,
        drive_time_constant: float = SIM_DRIVE_TIME_CONSTANT,
        max_speed: float = MAX_SPEED,
        encoder_scale: float = 1.0,
    ):
        super().__init__(name)
        self.steer_rate = steer_rate
        self.drive_time_constant = drive_time_constant
        self.max_speed = max_speed
        self.encoder_scale = encoder_scale

        self.angle = 0.0
        self.speed = 0.0
        self.true_distance = 0.0
        self._encoder_distance = 0.0

    def update(self, dt: float) -> None:
        target = self._target

        error = wrap_angle(target.angle - self.angle)
        if self.steer_rate is None:
            self.angle = wrap_angle(target.angle)
        else:
            step = max(-self.steer_rate * dt, min(self.steer_rate * dt, error))
            self.angle = wrap_angle(self.angle + step)

        commanded = max(-self.max_speed, min(self.max_speed, target.speed))
        if self.drive_time_constant <= 0:
            self.speed = commanded
        elif dt > 0:
            alpha = 1.0 - math.exp(-dt / self.drive_time_constant)
            self.speed += (commanded - self.speed) * alpha

        travelled = self.speed * dt
        self.true_distance += travelled
        self._encoder_distance += travelled * self.encoder_scale

    def get_measured_state(self) -> ModuleState:
        return ModuleState(self.speed, self.angle)

    def get_position(self) -> ModulePosition:
        return ModulePosition(self._encoder_distance, self.angle)

    def get_current(self) -> float:
        return abs(self.speed) * SIM_CURRENT_PER_MPS

    def stop(self) -> None:
        super().stop()
        if self.drive_time_constant <= 0:
            self.speed = 0.0

    def reset_drive_encoder(self) -> None:
        self._encoder_distance = 0.0

    def reset_turning_encoder(self) -> None:
        # The simulated absolute encoder is exact
        self.angle = wrap_angle(self.angle)
        logging.debug(f"{self.name}: steering encoder reset to {math.degrees(self.angle):.1f} deg")


class SimulatedHeadingSensor(HeadingSensor):
    """Heading sensor driven by the true motion of simulated modules.

    Also tracks the ground-truth field pose, which the simulated vision
    source samples.

    Attributes:
        drift_rate: Constant gyro drift (rad/s).
        true_pose: Ground-truth field pose.
    """

    def __init__(
        self,
        kinematics: SwerveKinematics,
        modules: Sequence[SimulatedSwerveModule],
        drift_rate: float = 0.0,
        initial_pose: Pose = Pose(),
    ):
        self.kinematics = kinematics
        self.modules = list(modules)
        self.drift_rate = drift_rate
        self.true_pose = initial_pose
        self._drift = 0.0
        self._prev_distances = [m.true_distance for m in self.modules]

    def update(self, dt: float) -> None:
        distances = [m.true_distance for m in self.modules]
        deltas = [d - p for d, p in zip(distances, self._prev_distances)]
        self._prev_distances = distances
        twist = self.kinematics.to_twist(deltas, [m.angle for m in self.modules])
        self.true_pose = self.true_pose.exp(twist)
        self._drift += self.drift_rate * dt

    def read_angle(self) -> float:
        return self.true_pose.heading + self._drift

    def get_true_pose(self) -> Pose:
        return self.true_pose

    def set_angle(self, angle: float) -> None:
        """Teleport the true heading (test setup)."""
        self.true_pose = Pose(self.true_pose.x, self.true_pose.y, angle)


class SimulatedVisionSource(VisionSource):
    """Publishes a noisy sample of the ground truth every few polls.

    Attributes:
        frames_published: Number of distinct frames produced so far.
    """

    def __init__(
        self,
        truth: Callable[[], Pose],
        clock: Callable[[], float] = time.monotonic,
        polls_per_frame: int = 5,
        latency_ms: Tuple[float, ...] = SIM_VISION_LATENCY_MS,
        noise: Tuple[float, float, float] = SIM_VISION_NOISE,
        tag_count: int = 2,
        target_area: float = 1.0,
        seed: Optional[int] = None,
    ):
        if polls_per_frame < 1:
            raise ValueError(f"polls_per_frame must be >= 1, got {polls_per_frame}")
        self.truth = truth
        self.clock = clock
        self.polls_per_frame = polls_per_frame
        self.latency_ms = tuple(latency_ms)
        self.noise = np.asarray(noise, dtype=float)
        self.tag_count = tag_count
        self.target_area = target_area
        self.rng = np.random.default_rng(seed)

        self.frames_published = 0
        self._polls = 0
        self._latest: Optional[VisionFrame] = None

    def get_latest(self) -> Optional[VisionFrame]:
        if self._polls % self.polls_per_frame == 0:
            pose = self.truth()
            dx, dy, dtheta = self.rng.normal(0.0, 1.0, 3) * self.noise
            self._latest = VisionFrame(
                valid=True,
                tag_count=self.tag_count,
                target_area=self.target_area,
                latency_components_ms=self.latency_ms,
                pose=Pose(pose.x + dx, pose.y + dy, pose.heading + dtheta),
                timestamp=self.clock(),
            )
            self.frames_published += 1
        self._polls += 1
        return self._latest


def build_simulated_modules(**kwargs) -> List[SimulatedSwerveModule]:
    """One simulated module per configured position (FL, FR, BL, BR)."""
    return [SimulatedSwerveModule(name=name, **kwargs) for name in MODULE_NAMES]


def build_simulated_drive(
    features: Optional[DriveFeatures] = None,
    telemetry=None,
    vision_source: Optional[VisionSource] = None,
    clock: Callable[[], float] = time.monotonic,
    seed: Optional[int] = None,
    vision_noise: Tuple[float, float, float] = SIM_VISION_NOISE,
    **module_kwargs,
):
    """Assemble a SwerveDrive on simulated hardware.

    Args:
        features: Feature flags (default: everything enabled).
        telemetry: Optional telemetry sink.
        vision_source: Vision source; a simulated one sampling the ground
            truth is created if None and vision is enabled.
        clock: Time source used to stamp simulated vision frames.
        seed: Seed for the simulated vision noise.
        vision_noise: Std devs of the simulated vision noise (m, m, rad).
        **module_kwargs: Passed to every SimulatedSwerveModule.

    Returns:
        Tuple of (SwerveDrive, SimulatedHeadingSensor).
    """
    from .drive import SwerveDrive

    features = features or DriveFeatures()
    kinematics = SwerveKinematics(MODULE_OFFSETS)
    modules = build_simulated_modules(**module_kwargs)
    sensor = SimulatedHeadingSensor(kinematics, modules)

    if vision_source is None and features.use_vision:
        vision_source = SimulatedVisionSource(
            sensor.get_true_pose, clock=clock, noise=vision_noise, seed=seed
        )

    drive = SwerveDrive(
        modules,
        Gyro(sensor),
        kinematics=kinematics,
        vision_source=vision_source,
        telemetry=telemetry,
        features=features,
    )
    return drive, sensor
