import math

import pytest

from swerve_core.config import FIELD_LENGTH
from swerve_core.follower import (
    FollowerBindings,
    FollowerConfig,
    HolonomicFollower,
    PIDConstants,
    TrajectoryState,
)
from swerve_core.geometry import ChassisVelocity, Pose
from tests.dummies import StraightTrajectory


class RecordingDrive:
    """Stands in for the drive side of the follower contract."""

    def __init__(self, pose=Pose()):
        self.pose = pose
        self.resets = []
        self.commands = []

    def bindings(self, config=FollowerConfig(), flip=False):
        return FollowerBindings(
            get_pose=lambda: self.pose,
            reset_pose=self._reset,
            get_robot_relative_velocity=lambda: ChassisVelocity(),
            drive_robot_relative=self.commands.append,
            config=config,
            should_flip=lambda: flip,
        )

    def _reset(self, pose):
        self.resets.append(pose)
        self.pose = pose


def test_start_resets_pose_to_trajectory_start():
    drive = RecordingDrive(Pose(5.0, 5.0, 1.0))
    follower = HolonomicFollower(drive.bindings(), StraightTrajectory(start=Pose(1.0, 2.0, 0.0)))
    follower.execute(10.0)
    assert drive.resets == [Pose(1.0, 2.0, 0.0)]
    assert follower.start_time == 10.0


def test_start_without_reset():
    drive = RecordingDrive(Pose(5.0, 5.0, 1.0))
    follower = HolonomicFollower(drive.bindings(), StraightTrajectory(), reset_pose_on_start=False)
    follower.start(0.0)
    assert drive.resets == []


def test_feedforward_on_track():
    drive = RecordingDrive()
    follower = HolonomicFollower(drive.bindings(), StraightTrajectory(speed=0.5))
    command = follower.execute(0.0)
    assert command.vx == pytest.approx(0.5)
    assert command.vy == pytest.approx(0.0)
    assert drive.commands == [command]


def test_feedback_corrects_position_error():
    config = FollowerConfig(translation=PIDConstants(1.0), max_module_speed=10.0)
    drive = RecordingDrive()
    follower = HolonomicFollower(drive.bindings(config), StraightTrajectory(speed=0.5))
    follower.start(0.0)
    drive.pose = Pose(0.0, -0.2, 0.0)
    command = follower.execute(0.0)
    assert command.vx == pytest.approx(0.5)
    assert command.vy == pytest.approx(0.2)


def test_command_is_robot_relative():
    drive = RecordingDrive()
    follower = HolonomicFollower(
        drive.bindings(), StraightTrajectory(speed=0.5, start=Pose(0.0, 0.0, math.pi / 2))
    )
    command = follower.execute(0.0)
    # Field +x while facing +y is the robot's -y
    assert command.vx == pytest.approx(0.0, abs=1e-9)
    assert command.vy == pytest.approx(-0.5)


def test_linear_speed_is_clamped():
    drive = RecordingDrive()
    config = FollowerConfig(max_module_speed=1.0)
    follower = HolonomicFollower(drive.bindings(config), StraightTrajectory(speed=3.0))
    command = follower.execute(0.0)
    assert command.linear_speed() == pytest.approx(1.0)


def test_red_alliance_mirrors_the_path():
    drive = RecordingDrive()
    follower = HolonomicFollower(drive.bindings(flip=True), StraightTrajectory(speed=0.5))
    command = follower.execute(0.0)

    assert drive.resets == [Pose(FIELD_LENGTH, 0.0, math.pi)]
    # Mirrored path heads towards -x; facing -x, that is still robot forward
    assert command.vx == pytest.approx(0.5)
    assert command.vy == pytest.approx(0.0, abs=1e-9)


def test_mirrored_state():
    state = TrajectoryState(1.0, Pose(2.0, 3.0, 0.25), ChassisVelocity(1.0, 0.5, 0.2))
    mirrored = state.mirrored(10.0)
    assert mirrored.pose == Pose(8.0, 3.0, math.pi - 0.25)
    assert mirrored.velocity == ChassisVelocity(-1.0, 0.5, -0.2)


def test_finishes_after_duration():
    follower = HolonomicFollower(RecordingDrive().bindings(), StraightTrajectory(duration=2.0))
    assert not follower.is_finished(0.0)
    follower.start(1.0)
    assert not follower.is_finished(2.5)
    assert follower.is_finished(3.0)
    assert follower.elapsed(4.0) == 3.0
