import pytest

from swerve_control.config import MODULE_CHASSIS_ANGULAR_OFFSETS, MODULE_NAMES
from swerve_control.drivetrain import Drivetrain
from swerve_control.estimator import PoseEstimator
from swerve_control.hardware import ManualClock
from swerve_control.kinematics import make_kinematics
from swerve_control.module import SwerveModule
from swerve_control.sim import SimDriveActuator, SimGyro, SimSteerActuator
from swerve_control.table import PubSubTable
from swerve_control.telemetry import Telemetry


class DrivetrainRig:
    """Drivetrain over simulated actuators with direct access to the plant."""

    def __init__(self, initial_yaw=0.0, with_estimator=False):
        self.clock = ManualClock()
        self.table = PubSubTable("debug")
        self.telemetry = Telemetry(self.table)
        self.kinematics = make_kinematics()
        self.drives = [SimDriveActuator() for _ in MODULE_NAMES]
        self.steers = [SimSteerActuator(angle=offset) for offset in MODULE_CHASSIS_ANGULAR_OFFSETS]
        self.gyro = SimGyro(initial_yaw=initial_yaw)
        modules = [
            SwerveModule(drive, steer, offset, name, telemetry=self.telemetry)
            for drive, steer, offset, name in zip(
                self.drives, self.steers, MODULE_CHASSIS_ANGULAR_OFFSETS, MODULE_NAMES
            )
        ]
        self.estimator = PoseEstimator(self.kinematics) if with_estimator else None
        self.drivetrain = Drivetrain(
            modules,
            self.gyro,
            self.clock,
            kinematics=self.kinematics,
            estimator=self.estimator,
            telemetry=self.telemetry,
        )

    def set_measured_forward_speed(self, speed):
        for drive in self.drives:
            drive.velocity = speed


@pytest.fixture
def rig():
    return DrivetrainRig()
