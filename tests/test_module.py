import math

import pytest

from swerve_core.config import (
    DRIVE_KP,
    DRIVE_KS,
    DRIVE_KV,
    DRIVE_ROTATION_TO_METER,
    STEER_ROTATION_TO_RADIAN,
)
from swerve_core.kinematics import ModuleState
from swerve_core.module import MotorSwerveModule
from swerve_core.sim import SimulatedSwerveModule
from tests.dummies import DummyAbsoluteEncoder, DummyMotor


def make_module(**kwargs):
    drive, steer = DummyMotor(), DummyMotor()
    module = MotorSwerveModule(drive, steer, max_speed=20.0, **kwargs)
    return module, drive, steer


def test_steering_output_towards_target():
    module, _, steer = make_module()
    module.set_target(ModuleState(0.0, 0.5))
    module.update(0.02)
    assert steer.outputs[-1] > 0


def test_steering_takes_the_short_way_around():
    module, _, steer = make_module()
    steer.position = 3.0 / STEER_ROTATION_TO_RADIAN
    module.set_target(ModuleState(0.0, -3.0))
    module.update(0.02)
    # Shortest path from 3.0 to -3.0 rad is counter-clockwise
    assert steer.outputs[-1] > 0


def test_open_loop_drive_is_fraction_of_max_speed():
    module, drive, _ = make_module()
    module.set_target(ModuleState(10.0, 0.0), open_loop=True)
    module.update(0.02)
    assert drive.outputs[-1] == pytest.approx(0.5)
    assert module.is_open_loop()


def test_closed_loop_drive_adds_feedforward_and_feedback():
    module, drive, _ = make_module()
    module.set_target(ModuleState(2.0, 0.0))
    module.update(0.02)
    assert drive.outputs[-1] == pytest.approx(DRIVE_KV * 2.0 + DRIVE_KS + DRIVE_KP * 2.0)


def test_drive_output_is_clamped():
    module, drive, _ = make_module()
    module.set_target(ModuleState(-100.0, 0.0), open_loop=True)
    module.update(0.02)
    assert drive.outputs[-1] == -1.0


def test_stop_keeps_angle_and_zeroes_drive():
    module, drive, _ = make_module()
    module.set_target(ModuleState(3.0, 1.2))
    module.update(0.02)
    module.stop()
    assert module.get_target() == ModuleState(0.0, 1.2)
    assert drive.outputs[-1] == 0.0


def test_turning_encoder_aligns_to_absolute_encoder():
    encoder = DummyAbsoluteEncoder(angle=1.0)
    module, _, _ = make_module(absolute_encoder=encoder)
    assert module.get_measured_state().angle == pytest.approx(1.0)

    encoder.angle = -0.5
    module.reset_turning_encoder()
    assert module.get_position().angle == pytest.approx(-0.5)


def test_position_and_drive_encoder_reset():
    module, drive, _ = make_module()
    drive.position = 10.0
    assert module.get_position().distance == pytest.approx(10.0 * DRIVE_ROTATION_TO_METER)
    module.reset_drive_encoder()
    assert module.get_position().distance == 0.0


def test_current_is_summed():
    drive, steer = DummyMotor(current=12.0), DummyMotor(current=3.0)
    module = MotorSwerveModule(drive, steer)
    assert module.get_current() == 15.0


def test_invalid_max_speed():
    with pytest.raises(ValueError):
        MotorSwerveModule(DummyMotor(), DummyMotor(), max_speed=0.0)


def test_simulated_module_steering_is_rate_limited():
    module = SimulatedSwerveModule(steer_rate=math.pi, drive_time_constant=0.0)
    module.set_target(ModuleState(1.0, math.pi / 2))
    module.update(0.1)
    assert module.get_measured_state().angle == pytest.approx(math.pi / 10)
    assert module.get_measured_state().speed == 1.0
    assert module.get_position().distance == pytest.approx(0.1)
    assert module.get_current() > 0


def test_simulated_module_encoder_scale_biases_odometry():
    module = SimulatedSwerveModule(steer_rate=None, drive_time_constant=0.0, encoder_scale=1.1)
    module.set_target(ModuleState(1.0, 0.0))
    module.update(1.0)
    assert module.true_distance == pytest.approx(1.0)
    assert module.get_position().distance == pytest.approx(1.1)
