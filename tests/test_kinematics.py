import math

import pytest

from swerve_core.config import MODULE_OFFSETS
from swerve_core.geometry import ChassisVelocity
from swerve_core.kinematics import (
    ModuleState,
    SwerveKinematics,
    desaturate_wheel_speeds,
    optimize,
)
from tests.dummies import angle_close


@pytest.fixture
def kinematics():
    return SwerveKinematics(MODULE_OFFSETS)


def test_round_trip_recovers_chassis_velocity(kinematics):
    velocity = ChassisVelocity(1.5, -0.5, 2.0)
    recovered = kinematics.to_chassis_velocity(kinematics.to_module_states(velocity))
    assert recovered.vx == pytest.approx(velocity.vx)
    assert recovered.vy == pytest.approx(velocity.vy)
    assert recovered.omega == pytest.approx(velocity.omega)


def test_pure_translation_points_all_wheels_the_same_way(kinematics):
    states = kinematics.to_module_states(ChassisVelocity(0.0, 2.0, 0.0))
    for state in states:
        assert state.speed == pytest.approx(2.0)
        assert state.angle == pytest.approx(math.pi / 2)


def test_pure_rotation_is_tangential_and_has_no_translation(kinematics):
    states = kinematics.to_module_states(ChassisVelocity(0.0, 0.0, 1.0))
    for (x, y), state in zip(MODULE_OFFSETS, states):
        assert state.speed == pytest.approx(math.hypot(x, y))
        assert angle_close(state.angle, math.atan2(x, -y))

    recovered = kinematics.to_chassis_velocity(states)
    assert recovered.vx == pytest.approx(0.0, abs=1e-12)
    assert recovered.vy == pytest.approx(0.0, abs=1e-12)
    assert recovered.omega == pytest.approx(1.0)


def test_desaturation_preserves_direction(kinematics):
    velocity = ChassisVelocity(30.0, 0.0, 10.0)
    states = kinematics.to_module_states(velocity, max_speed=20.0)

    assert max(abs(s.speed) for s in states) == pytest.approx(20.0)
    recovered = kinematics.to_chassis_velocity(states)
    assert recovered.vy == pytest.approx(0.0, abs=1e-9)
    assert recovered.vx / recovered.omega == pytest.approx(3.0)
    assert recovered.vx < velocity.vx


def test_desaturation_leaves_feasible_states_alone():
    states = [ModuleState(1.0, 0.1), ModuleState(-2.0, 0.2)]
    assert desaturate_wheel_speeds(states, 5.0) == states


def test_desaturation_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        desaturate_wheel_speeds([ModuleState(1.0, 0.0)], 0.0)


def test_optimize_flips_instead_of_turning_179_degrees():
    state = optimize(ModuleState(1.0, math.radians(179.0)), 0.0)
    assert state.speed == -1.0
    assert abs(math.degrees(state.angle)) <= 1.0 + 1e-9


def test_optimize_keeps_small_turns():
    state = optimize(ModuleState(1.0, math.radians(60.0)), 0.0)
    assert state.speed == 1.0
    assert state.angle == pytest.approx(math.radians(60.0))


def test_optimize_wraps_across_pi():
    state = optimize(ModuleState(1.0, math.radians(-170.0)), math.radians(170.0))
    assert state.speed == 1.0
    assert angle_close(state.angle, math.radians(-170.0))


def test_zero_speed_keeps_current_angle(kinematics):
    current = [0.3, -0.4, 1.0, 2.0]
    states = kinematics.to_module_states(ChassisVelocity(), current_angles=current)
    for angle, state in zip(current, states):
        assert state.speed == 0.0
        assert state.angle == pytest.approx(angle)


def test_optimized_targets_never_turn_more_than_90_degrees(kinematics):
    current = [math.pi, math.pi, math.pi, math.pi]
    states = kinematics.to_module_states(ChassisVelocity(1.0, 0.0, 0.0), current_angles=current)
    for state in states:
        assert state.speed == pytest.approx(-1.0)
        assert angle_close(state.angle, math.pi)


def test_lock_angles_point_along_radial_lines(kinematics):
    for (x, y), angle in zip(MODULE_OFFSETS, kinematics.lock_angles()):
        assert angle == pytest.approx(math.atan2(y, x))


def test_to_twist_straight_line(kinematics):
    twist = kinematics.to_twist([0.5] * 4, [0.0] * 4)
    assert twist.dx == pytest.approx(0.5)
    assert twist.dy == pytest.approx(0.0, abs=1e-12)
    assert twist.dtheta == pytest.approx(0.0, abs=1e-12)


def test_degenerate_geometry_is_rejected():
    with pytest.raises(ValueError):
        SwerveKinematics([(0.0, 0.0), (0.0, 0.0), (0.0, 0.0), (0.0, 0.0)])
    with pytest.raises(ValueError):
        SwerveKinematics([(1.0, 1.0)])


def test_wrong_module_count_is_rejected(kinematics):
    with pytest.raises(ValueError):
        kinematics.to_chassis_velocity([ModuleState()] * 3)
