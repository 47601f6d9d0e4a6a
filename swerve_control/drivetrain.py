"""Swerve drivetrain subsystem.

Aggregates four swerve modules and a heading sensor. ``drive`` shapes the
requested motion (optional slew-rate limiting), converts it to robot-relative
chassis speeds, runs ``SwerveDrive4Kinematics``, desaturates and issues the
four module setpoints in canonical order (front-left, front-right, rear-left,
rear-right).

Slew-rate limiting of the translation direction:
    direction_rate = |direction_slew_rate / measured_speed|  (rad/s)
    direction_rate = STATIONARY_DIRECTION_SLEW_RATE          if stationary

so the commanded direction turns quickly at low speed and slowly at high
speed. The direction step uses the elapsed time on the injected clock.
Magnitude and rotation are ramped by ``wpimath.filter.SlewRateLimiter``,
which keeps its own timestamps.
"""

import logging
import math
from typing import List, Optional, Sequence

from wpimath.filter import SlewRateLimiter
from wpimath.geometry import Rotation2d
from wpimath.kinematics import (
    ChassisSpeeds,
    SwerveDrive4Kinematics,
    SwerveModulePosition,
    SwerveModuleState,
)

from .config import (
    DIRECTION_SLEW_RATE,
    GYRO_ANGLE_ADJUSTMENT_DEG,
    GYRO_INVERTED,
    MAGNITUDE_SLEW_RATE,
    MAX_SPEED_METERS_PER_SECOND,
    ROTATIONAL_SLEW_RATE,
    STATIONARY_DIRECTION_SLEW_RATE,
)
from .estimator import PoseEstimator
from .geometry import heading_of, step_towards_circular, wrap_angle
from .hardware import Clock, HeadingSensor
from .kinematics import (
    ModuleStates,
    desaturate,
    make_kinematics,
    planar_speed,
    to_field_relative,
    to_robot_relative,
)
from .module import SwerveModule
from .telemetry import NullTelemetry, Telemetry
from .tunables import TunableStore


def _make_limiter(rate: float, initial: float = 0.0) -> SlewRateLimiter:
    return SlewRateLimiter(rate, -rate, initial)


class Drivetrain:
    """Four-module swerve drivetrain.

    Attributes:
        modules: Modules in canonical order
        kinematics: Fixed drivetrain geometry
        estimator: Pose estimator fed by ``periodic`` (optional)
        max_speed: Platform wheel speed limit used for desaturation (m/s)
    """

    def __init__(
        self,
        modules: Sequence[SwerveModule],
        heading_sensor: HeadingSensor,
        clock: Clock,
        kinematics: Optional[SwerveDrive4Kinematics] = None,
        estimator: Optional[PoseEstimator] = None,
        tunables: Optional[TunableStore] = None,
        telemetry: Optional[Telemetry] = None,
        max_speed: float = MAX_SPEED_METERS_PER_SECOND,
        gyro_inverted: bool = GYRO_INVERTED,
        gyro_adjustment_deg: float = GYRO_ANGLE_ADJUSTMENT_DEG,
    ):
        """Initialize the drivetrain.

        Args:
            modules: Exactly four swerve modules in canonical order
            heading_sensor: Gyroscope (degrees, cumulative)
            clock: Monotonic clock used for the direction slew elapsed time
            kinematics: Drivetrain geometry (config layout when omitted)
            estimator: Pose estimator to feed each ``periodic`` call
            tunables: Source of the slew rates
            telemetry: Debug publisher
            max_speed: Maximum wheel speed (m/s)
            gyro_inverted: True if the sensor reports clockwise-positive
            gyro_adjustment_deg: Constant added to the sensor reading (degrees)

        Raises:
            ValueError: If there are not exactly four modules.
        """
        if len(modules) != 4:
            raise ValueError(f"Drivetrain needs exactly 4 modules, got {len(modules)}")

        self.modules: List[SwerveModule] = list(modules)
        self.heading_sensor = heading_sensor
        self.clock = clock
        self.kinematics = kinematics if kinematics is not None else make_kinematics()
        self.estimator = estimator
        self.tunables = tunables if tunables is not None else TunableStore()
        self.telemetry = telemetry if telemetry is not None else NullTelemetry()
        self.max_speed = max_speed
        self.gyro_inverted = gyro_inverted
        self.gyro_adjustment_deg = gyro_adjustment_deg

        # Slew state: commanded translation direction/magnitude and rotation
        self.current_rotation: float = 0.0
        self.current_translation_dir: float = 0.0
        self.current_translation_mag: float = 0.0
        self.mag_rate = self.tunables.get("drive_magnitude_slew_rate", MAGNITUDE_SLEW_RATE)
        self.rot_rate = self.tunables.get("drive_rotational_slew_rate", ROTATIONAL_SLEW_RATE)
        self.mag_limiter = _make_limiter(self.mag_rate)
        self.rot_limiter = _make_limiter(self.rot_rate)
        self.prev_time: float = clock.now()

        self.commanded_velocity = ChassisSpeeds()
        self.setpoints: List[SwerveModuleState] = [
            SwerveModuleState(0.0, module.get_state().angle) for module in self.modules
        ]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _refresh_limiters(self) -> None:
        """Rebuild the limiters when their tunable rates change, keeping the current output."""
        mag_rate = self.tunables.get("drive_magnitude_slew_rate", MAGNITUDE_SLEW_RATE)
        if mag_rate != self.mag_rate:
            self.mag_rate = mag_rate
            self.mag_limiter = _make_limiter(mag_rate, self.current_translation_mag)
        rot_rate = self.tunables.get("drive_rotational_slew_rate", ROTATIONAL_SLEW_RATE)
        if rot_rate != self.rot_rate:
            self.rot_rate = rot_rate
            self.rot_limiter = _make_limiter(rot_rate, self.current_rotation)

    def drive(
        self,
        forward: float,
        sideways: float,
        rotation: float,
        field_relative: bool,
        rate_limit: bool,
        use_estimator_heading: bool = True,
    ) -> None:
        """Drive the robot.

        Args:
            forward: Velocity along +x (m/s)
            sideways: Velocity along +y (m/s)
            rotation: Angular velocity, CCW-positive (rad/s)
            field_relative: Interpret x/y in the field frame
            rate_limit: Apply slew-rate shaping to the request
            use_estimator_heading: Use the pose estimate's heading for the
                field-relative conversion instead of the raw gyro heading
        """
        now = self.clock.now()
        elapsed = now - self.prev_time
        self.prev_time = now

        if rate_limit:
            input_dir = math.atan2(sideways, forward)
            input_mag = math.hypot(forward, sideways)

            current_speed = planar_speed(self.get_robot_relative_velocity())
            if current_speed != 0.0:
                direction_slew = abs(
                    self.tunables.get("drive_direction_slew_rate", DIRECTION_SLEW_RATE)
                    / current_speed
                )
            else:
                direction_slew = STATIONARY_DIRECTION_SLEW_RATE

            self._refresh_limiters()

            if input_mag != 0.0:
                self.current_translation_dir = step_towards_circular(
                    self.current_translation_dir, input_dir, direction_slew * elapsed
                )
            self.current_translation_mag = self.mag_limiter.calculate(input_mag)
            self.current_rotation = self.rot_limiter.calculate(rotation)

            x_speed = self.current_translation_mag * math.cos(self.current_translation_dir)
            y_speed = self.current_translation_mag * math.sin(self.current_translation_dir)
            rot_speed = self.current_rotation
        else:
            x_speed = forward
            y_speed = sideways
            rot_speed = rotation
            self.current_translation_mag = math.hypot(forward, sideways)
            if self.current_translation_mag != 0.0:
                self.current_translation_dir = math.atan2(sideways, forward)
            self.current_rotation = rotation
            self.mag_limiter.reset(self.current_translation_mag)
            self.rot_limiter.reset(rotation)

        chassis = ChassisSpeeds(x_speed, y_speed, rot_speed)
        if field_relative:
            chassis = to_robot_relative(chassis, self._field_heading(use_estimator_heading))

        self.drive_robot_relative(chassis)

    def _field_heading(self, use_estimator_heading: bool) -> float:
        if use_estimator_heading and self.estimator is not None:
            return heading_of(self.estimator.get_pose2d())
        return self.get_heading()

    def drive_robot_relative(self, chassis: ChassisSpeeds) -> None:
        """Run inverse kinematics for a robot-relative velocity and issue setpoints.

        A zero request parks every module at its measured angle instead of
        snapping the wheels back to a default heading.
        """
        self.commanded_velocity = chassis
        if chassis.vx == 0.0 and chassis.vy == 0.0 and chassis.omega == 0.0:
            states = [SwerveModuleState(0.0, module.get_state().angle) for module in self.modules]
        else:
            states = self.kinematics.toSwerveModuleStates(chassis)
        self.set_module_states(states)

    def set_module_states(self, states: Sequence[SwerveModuleState]) -> None:
        """Desaturate and issue module states in canonical order."""
        if len(states) != len(self.modules):
            raise ValueError(f"Expected {len(self.modules)} module states, got {len(states)}")
        desaturated: ModuleStates = desaturate(states, self.max_speed)
        for module, state in zip(self.modules, desaturated):
            module.set_desired_state(state)
        self.setpoints = list(desaturated)

    def set_x(self) -> None:
        """Lock the wheels in an X so the robot resists being pushed."""
        self.set_module_states(
            [
                SwerveModuleState(0.0, Rotation2d.fromDegrees(45.0)),
                SwerveModuleState(0.0, Rotation2d.fromDegrees(-45.0)),
                SwerveModuleState(0.0, Rotation2d.fromDegrees(-45.0)),
                SwerveModuleState(0.0, Rotation2d.fromDegrees(45.0)),
            ]
        )
        self.commanded_velocity = ChassisSpeeds()

    def zero_voltage(self) -> None:
        """Cut power to every drive and steer actuator immediately."""
        for module in self.modules:
            module.set_driving_voltage(0.0)
            module.set_turning_voltage(0.0)
        self.commanded_velocity = ChassisSpeeds()
        self.current_translation_mag = 0.0
        self.current_rotation = 0.0
        self.mag_limiter.reset(0.0)
        self.rot_limiter.reset(0.0)

    def reset_encoders(self) -> None:
        for module in self.modules:
            module.reset_encoders()

    def zero_heading(self) -> None:
        self.heading_sensor.reset()
        logging.info("Heading zeroed")

    # ------------------------------------------------------------------
    # Measurements
    # ------------------------------------------------------------------

    def get_heading(self) -> float:
        """Gyro heading (radians, CCW-positive, wrapped to [-π, π))."""
        degrees = self.heading_sensor.get_angle() + self.gyro_adjustment_deg
        if self.gyro_inverted:
            degrees = -degrees
        return wrap_angle(math.radians(degrees % 360.0))

    def get_turn_rate(self) -> float:
        """Angular rate (degrees per second, CCW-positive)."""
        rate = self.heading_sensor.get_rate()
        return -rate if self.gyro_inverted else rate

    def get_module_states(self) -> List[SwerveModuleState]:
        return [module.get_state() for module in self.modules]

    def get_module_positions(self) -> List[SwerveModulePosition]:
        return [module.get_position() for module in self.modules]

    def get_robot_relative_velocity(self) -> ChassisSpeeds:
        """Measured chassis velocity from forward kinematics."""
        return self.kinematics.toChassisSpeeds(tuple(self.get_module_states()))

    def get_field_relative_velocity(self) -> ChassisSpeeds:
        """Measured chassis velocity rotated into the field frame."""
        heading = self._field_heading(use_estimator_heading=True)
        return to_field_relative(self.get_robot_relative_velocity(), heading)

    def get_commanded_velocity(self) -> ChassisSpeeds:
        return self.commanded_velocity

    # ------------------------------------------------------------------
    # Periodic
    # ------------------------------------------------------------------

    def periodic(self) -> None:
        """Feed odometry into the estimator and publish drivetrain telemetry."""
        if self.estimator is not None:
            self.estimator.update(self.clock.now(), self.get_heading(), self.get_module_positions())

        actual = self.get_module_states()
        self.telemetry.set_array_entry(
            "Setpoints", [v for s in self.setpoints for v in (s.angle.degrees(), s.speed)]
        )
        self.telemetry.set_array_entry(
            "Actual", [v for s in actual for v in (s.angle.degrees(), s.speed)]
        )
        self.telemetry.set_entry("GyroHeading", math.degrees(self.get_heading()))
        self.telemetry.set_entry("GyroRate", self.get_turn_rate())
        speeds = self.kinematics.toChassisSpeeds(tuple(actual))
        self.telemetry.set_array_entry("Speeds", [speeds.vx, speeds.vy, speeds.omega])
