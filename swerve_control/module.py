"""Swerve module controller.

One module pairs a drive actuator (closed-loop velocity) with a steer actuator
(closed-loop absolute position). Each module is mounted at a fixed angular
offset relative to the chassis, so commands are rotated into the encoder frame
and measurements are rotated back before anything outside this class sees
them.

Drive feedforward (volts), with dt = DRIVE_FEEDFORWARD_PERIOD:
    ff = kS * sign(v) + kV * v + kA * (v - v_measured) / dt
"""

from typing import Optional

from wpimath.geometry import Rotation2d
from wpimath.kinematics import SwerveModulePosition, SwerveModuleState

from .config import (
    DRIVE_FEEDFORWARD_KA,
    DRIVE_FEEDFORWARD_KS,
    DRIVE_FEEDFORWARD_KV,
    DRIVE_FEEDFORWARD_PERIOD,
    SWERVE_MIN_VELOCITY,
)
from .hardware import DriveActuator, SteerActuator
from .telemetry import NullTelemetry, Telemetry
from .tunables import TunableStore


class MotorFeedforward:
    """Static + velocity + acceleration feedforward for a drive motor.

    Attributes:
        ks: Static friction voltage (V)
        kv: Velocity gain (V per m/s)
        ka: Acceleration gain (V per m/s²)
        period: Time step used to turn a velocity change into acceleration (s)
    """

    def __init__(
        self,
        ks: float = DRIVE_FEEDFORWARD_KS,
        kv: float = DRIVE_FEEDFORWARD_KV,
        ka: float = DRIVE_FEEDFORWARD_KA,
        period: float = DRIVE_FEEDFORWARD_PERIOD,
    ):
        if period <= 0.0:
            raise ValueError(f"Feedforward period must be positive, got {period}")
        self.ks = ks
        self.kv = kv
        self.ka = ka
        self.period = period

    def calculate(self, velocity: float, acceleration: float = 0.0) -> float:
        return self.ks * _sign(velocity) + self.kv * velocity + self.ka * acceleration

    def calculate_with_velocities(self, current_velocity: float, next_velocity: float) -> float:
        """Voltage to move from ``current_velocity`` to ``next_velocity`` over one feedforward period."""
        acceleration = (next_velocity - current_velocity) / self.period
        return self.calculate(next_velocity, acceleration)


def _sign(value: float) -> float:
    if value > 0.0:
        return 1.0
    if value < 0.0:
        return -1.0
    return 0.0


class SwerveModule:
    """Drive + steer actuator pair for one wheel.

    Attributes:
        name: Module name used in telemetry keys (e.g. "front_left")
        chassis_angular_offset: Encoder zero relative to the chassis (radians)
    """

    def __init__(
        self,
        drive: DriveActuator,
        steer: SteerActuator,
        chassis_angular_offset: float,
        name: str,
        tunables: Optional[TunableStore] = None,
        telemetry: Optional[Telemetry] = None,
        feedforward: Optional[MotorFeedforward] = None,
    ):
        """Initialize the module.

        Args:
            drive: Drive actuator (wheel-surface units)
            steer: Steer actuator (absolute encoder, radians)
            chassis_angular_offset: Angle of the module's encoder zero relative
                to the chassis forward axis (radians)
            name: Name used for telemetry keys
            tunables: Source of ``swerve_min_velocity`` (defaults when omitted)
            telemetry: Debug publisher (discarded when omitted)
            feedforward: Drive feedforward model (config defaults when omitted)
        """
        self.drive = drive
        self.steer = steer
        self.chassis_angular_offset = chassis_angular_offset
        self.name = name
        self.tunables = tunables if tunables is not None else TunableStore()
        self.telemetry = telemetry if telemetry is not None else NullTelemetry()
        self.feedforward = feedforward if feedforward is not None else MotorFeedforward()

        self.desired_state = SwerveModuleState(0.0, self._chassis_angle())
        self.last_feedforward: float = 0.0

    def _chassis_angle(self) -> Rotation2d:
        return Rotation2d(self.steer.get_position() - self.chassis_angular_offset)

    def set_desired_state(self, desired: SwerveModuleState) -> None:
        """Command a module state expressed in the chassis frame.

        The angle is rotated into the encoder frame, then optimized against the
        current encoder angle so the steer motor never turns more than 90°.
        """
        corrected = SwerveModuleState(
            desired.speed, desired.angle + Rotation2d(self.chassis_angular_offset)
        )
        corrected.optimize(Rotation2d(self.steer.get_position()))

        min_velocity = self.tunables.get("swerve_min_velocity", SWERVE_MIN_VELOCITY)
        if abs(corrected.speed) <= min_velocity:
            arbitrary_ff = 0.0
        else:
            arbitrary_ff = self.feedforward.calculate_with_velocities(
                self.drive.get_velocity(), corrected.speed
            )

        self.telemetry.set_entry(f"{self.name} - Swerve FF Output", arbitrary_ff)
        self.telemetry.set_entry(f"{self.name} - Swerve target mps", corrected.speed)

        self.drive.set_velocity(corrected.speed, arbitrary_ff)
        self.steer.set_position(corrected.angle.radians())

        self.desired_state = desired
        self.last_feedforward = arbitrary_ff

    def get_state(self) -> SwerveModuleState:
        """Measured wheel velocity and chassis-frame angle."""
        return SwerveModuleState(self.drive.get_velocity(), self._chassis_angle())

    def get_position(self) -> SwerveModulePosition:
        """Cumulative wheel distance and chassis-frame angle."""
        return SwerveModulePosition(self.drive.get_position(), self._chassis_angle())

    def get_desired_state(self) -> SwerveModuleState:
        return self.desired_state

    def reset_encoders(self) -> None:
        """Zero the drive distance. The steer encoder is absolute and untouched."""
        self.drive.set_position(0.0)

    def set_driving_voltage(self, voltage: float) -> None:
        self.drive.set_voltage(voltage)

    def set_turning_voltage(self, voltage: float) -> None:
        self.steer.set_voltage(voltage)

    def get_diagnostics(self) -> dict:
        state = self.get_state()
        return {
            "name": self.name,
            "desired_speed": self.desired_state.speed,
            "desired_angle_deg": self.desired_state.angle.degrees(),
            "measured_speed": state.speed,
            "measured_angle_deg": state.angle.degrees(),
            "feedforward": self.last_feedforward,
        }
