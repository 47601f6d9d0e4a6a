import math

import pytest
from wpimath.geometry import Rotation2d
from wpimath.kinematics import SwerveModuleState

from swerve_control.config import (
    DRIVE_FEEDFORWARD_KA,
    DRIVE_FEEDFORWARD_KS,
    DRIVE_FEEDFORWARD_KV,
    DRIVE_FEEDFORWARD_PERIOD,
)
from swerve_control.module import MotorFeedforward, SwerveModule
from swerve_control.sim import SimDriveActuator, SimSteerActuator
from swerve_control.table import PubSubTable
from swerve_control.telemetry import Telemetry
from swerve_control.tunables import TunableStore


def make_module(offset=0.0, tunables=None):
    drive = SimDriveActuator()
    steer = SimSteerActuator(angle=offset)
    table = PubSubTable("debug")
    module = SwerveModule(drive, steer, offset, "front_left", tunables, Telemetry(table))
    return module, drive, steer, table


def state(speed, angle):
    return SwerveModuleState(speed, Rotation2d(angle))


def test_feedforward_terms():
    feedforward = MotorFeedforward(ks=0.1, kv=2.0, ka=0.5, period=0.02)
    assert feedforward.calculate(1.0) == pytest.approx(2.1)
    assert feedforward.calculate(-1.0) == pytest.approx(-2.1)
    assert feedforward.calculate(0.0) == 0.0
    assert feedforward.calculate_with_velocities(0.0, 1.0) == pytest.approx(0.1 + 2.0 + 0.5 * 50.0)


def test_feedforward_rejects_bad_period():
    with pytest.raises(ValueError):
        MotorFeedforward(period=0.0)


def test_feedforward_default_period_is_one_second():
    assert DRIVE_FEEDFORWARD_PERIOD == 1.0
    assert MotorFeedforward().period == 1.0


def test_full_speed_step_from_rest_stays_within_battery_voltage():
    module, drive, _, _ = make_module()
    drive.velocity = 0.0
    module.set_desired_state(state(4.8, 0.0))
    expected = DRIVE_FEEDFORWARD_KS + DRIVE_FEEDFORWARD_KV * 4.8 + DRIVE_FEEDFORWARD_KA * 4.8
    assert drive.feedforward == pytest.approx(expected)
    assert drive.feedforward == pytest.approx(13.249, abs=1e-3)


def test_offset_applied_to_commands_and_removed_from_measurements():
    module, drive, steer, _ = make_module(offset=-math.pi / 2.0)
    module.set_desired_state(state(1.0, 0.3))
    assert drive.reference == pytest.approx(1.0)
    assert steer.reference == pytest.approx(0.3 - math.pi / 2.0)

    steer.angle = steer.reference
    assert module.get_state().angle.radians() == pytest.approx(0.3)
    assert module.get_position().angle.radians() == pytest.approx(0.3)
    desired = module.get_desired_state()
    assert desired.speed == pytest.approx(1.0)
    assert desired.angle.radians() == pytest.approx(0.3)


def test_large_rotation_is_optimized():
    module, drive, steer, _ = make_module()
    module.set_desired_state(state(1.0, math.radians(170)))
    assert drive.reference == pytest.approx(-1.0)
    assert steer.reference == pytest.approx(math.radians(-10))


def test_small_rotation_is_not_flipped():
    module, drive, steer, _ = make_module()
    module.set_desired_state(state(2.0, math.radians(60)))
    assert drive.reference == pytest.approx(2.0)
    assert steer.reference == pytest.approx(math.radians(60))


def test_feedforward_suppressed_below_min_velocity():
    module, drive, _, table = make_module()
    module.set_desired_state(state(0.005, 0.0))
    assert drive.feedforward == 0.0
    assert table.get("front_left - Swerve FF Output") == 0.0
    assert table.get("front_left - Swerve target mps") == pytest.approx(0.005)


def test_min_velocity_is_tunable():
    module, drive, _, _ = make_module(tunables=TunableStore({"swerve_min_velocity": 0.5}))
    module.set_desired_state(state(0.4, 0.0))
    assert drive.feedforward == 0.0
    module.set_desired_state(state(1.0, 0.0))
    assert drive.feedforward > 0.0


def test_feedforward_uses_measured_velocity():
    module, drive, _, _ = make_module()
    drive.velocity = 1.0
    module.set_desired_state(state(1.0, 0.0))
    assert module.last_feedforward == pytest.approx(module.feedforward.calculate(1.0))


def test_reset_encoders_zeroes_drive_distance():
    module, drive, _, _ = make_module()
    drive.true_distance = 2.5
    assert module.get_position().distance == pytest.approx(2.5)
    module.reset_encoders()
    assert module.get_position().distance == pytest.approx(0.0)


def test_voltage_overrides():
    module, drive, steer, _ = make_module()
    module.set_driving_voltage(0.0)
    module.set_turning_voltage(0.0)
    assert drive.voltage == 0.0
    assert not steer.powered


def test_diagnostics_in_degrees():
    module, _, _, _ = make_module()
    module.set_desired_state(state(1.0, math.radians(30)))
    diagnostics = module.get_diagnostics()
    assert diagnostics["desired_angle_deg"] == pytest.approx(30.0)
    assert diagnostics["name"] == "front_left"
