import math

import pytest

from swerve_core.config import MODULE_OFFSETS
from swerve_core.geometry import Pose
from swerve_core.kinematics import ModuleState, SwerveKinematics
from swerve_core.pose_estimator import SwervePoseEstimator, _kalman_gain
from tests.dummies import positions

DT = 0.02


@pytest.fixture
def estimator():
    return SwervePoseEstimator(SwerveKinematics(MODULE_OFFSETS), 0.0, positions())


def drive_straight(estimator, speed=0.0, seconds=1.0, start=0.0):
    """Feed odometry for a straight run along +x; returns the final timestamp."""
    steps = int(round(seconds / DT))
    for i in range(steps + 1):
        t = start + i * DT
        estimator.update(t, 0.0, positions(speed * (t - start)))
    return start + steps * DT


def test_straight_line_odometry(estimator):
    estimator.update(0.02, 0.0, positions(1.0))
    pose = estimator.get_pose()
    assert pose.x == pytest.approx(1.0)
    assert pose.y == pytest.approx(0.0, abs=1e-12)


def test_rotation_comes_from_gyro(estimator):
    estimator.update(0.02, 0.5, positions())
    pose = estimator.get_pose()
    assert pose.heading == pytest.approx(0.5)
    assert (pose.x, pose.y) == pytest.approx((0.0, 0.0), abs=1e-12)


def test_translation_while_rotated(estimator):
    estimator.update(0.02, math.pi / 2, positions())
    estimator.update(0.04, math.pi / 2, positions(1.0))
    pose = estimator.get_pose()
    assert pose.x == pytest.approx(0.0, abs=1e-9)
    assert pose.y == pytest.approx(1.0)


def test_reset_pose_is_idempotent(estimator):
    estimator.update(0.02, 0.1, positions(0.4, 0.2))
    target = Pose(2.0, 3.0, 1.0)
    estimator.reset_pose(target, 0.3, positions(0.4, 0.2))
    assert estimator.get_pose() == target

    estimator.update(0.04, 0.3, positions(0.4, 0.2))
    pose = estimator.get_pose()
    assert pose.x == pytest.approx(2.0)
    assert pose.y == pytest.approx(3.0)
    assert pose.heading == pytest.approx(1.0)


def test_reset_pose_clears_history(estimator):
    drive_straight(estimator, seconds=0.2)
    estimator.reset_pose(Pose(), 0.0, positions())
    assert estimator.get_history() == []
    assert estimator.oldest_timestamp() is None


def test_out_of_order_sample_is_ignored(estimator):
    estimator.update(1.0, 0.0, positions(1.0))
    estimator.update(0.5, 0.0, positions(5.0))
    assert estimator.get_pose().x == pytest.approx(1.0)


def test_history_is_bounded(estimator):
    drive_straight(estimator, seconds=3.0)
    oldest = estimator.oldest_timestamp()
    assert oldest >= 3.0 - estimator.history_seconds - 1e-9


def test_wrong_position_count_raises(estimator):
    with pytest.raises(ValueError):
        estimator.update(0.02, 0.0, positions(count=3))


def test_velocity_estimates(estimator):
    states = [ModuleState(1.0, 0.0)] * 4
    estimator.update(0.02, math.pi / 2, positions(), states)
    robot = estimator.get_robot_relative_velocity()
    field = estimator.get_field_relative_velocity()
    assert robot.vx == pytest.approx(1.0)
    assert field.vx == pytest.approx(0.0, abs=1e-9)
    assert field.vy == pytest.approx(1.0)


def test_kalman_gain():
    assert _kalman_gain(0.0, 1.0) == 0.0
    assert _kalman_gain(0.01, 0.25) == pytest.approx(1.0 / 6.0)


def test_vision_pulls_pose_proportionally(estimator):
    drive_straight(estimator, seconds=1.0)
    assert estimator.add_vision_measurement(Pose(0.5, 0.0, 0.0), 0.9, (0.5, 0.5, 0.1))
    assert estimator.get_pose().x == pytest.approx(0.5 / 6.0)
    assert estimator.vision_updates_applied == 1


def test_tighter_std_devs_pull_harder():
    results = []
    for std in ((0.5, 0.5, 0.1), (2.0, 2.0, 0.5)):
        estimator = SwervePoseEstimator(SwerveKinematics(MODULE_OFFSETS), 0.0, positions())
        drive_straight(estimator, seconds=1.0)
        estimator.add_vision_measurement(Pose(0.5, 0.0, 0.0), 0.9, std)
        results.append(estimator.get_pose().x)
    assert results[0] > results[1] > 0.0


def test_stale_vision_is_rejected(estimator):
    end = drive_straight(estimator, seconds=3.0)
    before = estimator.get_pose()
    assert not estimator.add_vision_measurement(Pose(0.5, 0.0, 0.0), end - 2.0, (0.5, 0.5, 0.1))
    assert estimator.get_pose() == before
    assert estimator.vision_updates_rejected == 1


def test_vision_correction_is_replayed_forward(estimator):
    end = drive_straight(estimator, speed=1.0, seconds=1.0)
    assert end == pytest.approx(1.0)
    assert estimator.get_pose().x == pytest.approx(1.0)

    # Vision says the robot was 0.3 m further along at t=0.5
    estimator.add_vision_measurement(Pose(0.8, 0.0, 0.0), 0.5, (0.5, 0.5, 0.1))
    assert estimator.get_pose().x == pytest.approx(1.0 + 0.3 / 6.0)
    assert estimator.get_history()[-1].pose == estimator.get_pose()


def test_vision_heading_correction_survives_next_update(estimator):
    drive_straight(estimator, seconds=1.0)
    estimator.add_vision_measurement(Pose(0.0, 0.0, 0.6), 1.0, (0.5, 0.5, 0.1))
    heading = estimator.get_pose().heading
    assert 0.0 < heading < 0.6

    estimator.update(1.02, 0.0, positions())
    assert estimator.get_pose().heading == pytest.approx(heading)


@pytest.mark.parametrize("speed", [0.0, 1.0])
def test_vision_result_does_not_depend_on_arrival_order(speed):
    measurements = [(Pose(0.6 + speed * 0.9, 0.0, 0.0), 0.90), (Pose(0.6 + speed * 0.88, 0.0, 0.0), 0.88)]
    results = []
    for ordered in (measurements, measurements[::-1]):
        estimator = SwervePoseEstimator(SwerveKinematics(MODULE_OFFSETS), 0.0, positions())
        drive_straight(estimator, speed=speed, seconds=1.0)
        for pose, timestamp in ordered:
            assert estimator.add_vision_measurement(pose, timestamp, (0.5, 0.5, 0.1))
        results.append(estimator.get_pose())

    assert results[0].x == pytest.approx(results[1].x)
    assert results[0].y == pytest.approx(results[1].y, abs=1e-9)
    assert results[0].heading == pytest.approx(results[1].heading, abs=1e-9)
    # Both corrections survive: 0.6 * (1/6) then another 1/6 of the remainder
    assert results[0].x - speed * 1.0 == pytest.approx(0.1 + 0.5 / 6.0)


def test_fused_measurements_expire_with_history(estimator):
    drive_straight(estimator, seconds=1.0)
    estimator.add_vision_measurement(Pose(0.6, 0.0, 0.0), 0.5, (0.5, 0.5, 0.1))
    assert len(estimator._vision) == 1

    drive_straight(estimator, seconds=1.0, start=1.02)
    assert estimator._vision == []
