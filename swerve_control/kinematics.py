"""
Swerve drive kinematics on ``wpimath.kinematics``.

The four-module model itself is ``SwerveDrive4Kinematics``; this module
builds it from the configured module locations and adds the chassis-speed
frame conversions and odometry deltas the drivetrain and estimator share.

For a module located at (x_i, y_i) relative to the chassis center, the wheel
velocity required by a chassis velocity (vx, vy, omega) is:
    v_xi = vx - omega * y_i
    v_yi = vy + omega * x_i

Module states and positions are always passed as 4-tuples in
``config.MODULE_NAMES`` order.
"""

import math
from typing import Sequence, Tuple

from wpimath.geometry import Rotation2d, Translation2d, Twist2d
from wpimath.kinematics import (
    ChassisSpeeds,
    SwerveDrive4Kinematics,
    SwerveModulePosition,
    SwerveModuleState,
)

from .config import MODULE_LOCATIONS

ModuleStates = Tuple[SwerveModuleState, SwerveModuleState, SwerveModuleState, SwerveModuleState]


def make_kinematics(
    module_locations: Sequence[Tuple[float, float]] = MODULE_LOCATIONS,
) -> SwerveDrive4Kinematics:
    """Build the four-module kinematics (front-left, front-right, rear-left, rear-right)."""
    if len(module_locations) != 4:
        raise ValueError(
            f"Swerve kinematics needs exactly 4 modules, got {len(module_locations)}"
        )
    return SwerveDrive4Kinematics(*(Translation2d(x, y) for x, y in module_locations))


def to_robot_relative(speeds: ChassisSpeeds, heading: float) -> ChassisSpeeds:
    """Convert a field-relative chassis velocity to the robot frame."""
    return ChassisSpeeds.fromFieldRelativeSpeeds(
        speeds.vx, speeds.vy, speeds.omega, Rotation2d(heading)
    )


def to_field_relative(speeds: ChassisSpeeds, heading: float) -> ChassisSpeeds:
    """Convert a robot-relative chassis velocity to the field frame."""
    return ChassisSpeeds.fromFieldRelativeSpeeds(
        speeds.vx, speeds.vy, speeds.omega, Rotation2d(-heading)
    )


def planar_speed(speeds: ChassisSpeeds) -> float:
    return math.hypot(speeds.vx, speeds.vy)


def desaturate(states: Sequence[SwerveModuleState], max_speed: float) -> ModuleStates:
    """Scale module speeds so none exceeds ``max_speed``, keeping their ratios."""
    return tuple(SwerveDrive4Kinematics.desaturateWheelSpeeds(tuple(states), max_speed))


def odometry_twist(
    kinematics: SwerveDrive4Kinematics,
    start: Sequence[SwerveModulePosition],
    end: Sequence[SwerveModulePosition],
) -> Twist2d:
    """Robot-frame displacement between two sets of module positions."""
    if len(start) != 4 or len(end) != 4:
        raise ValueError(f"Expected 4 module positions, got {len(start)} and {len(end)}")
    deltas = tuple(
        SwerveModulePosition(e.distance - s.distance, e.angle) for s, e in zip(start, end)
    )
    return kinematics.toTwist2d(deltas)
