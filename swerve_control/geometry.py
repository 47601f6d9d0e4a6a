"""Geometry helpers over ``wpimath.geometry``.

Poses, rotations and transforms are the wpimath types everywhere in the
package. Planar headings are radians wrapped to [-π, π) with
``wpimath.angleModulus`` so comparisons and controller inputs never see a
wrap-around discontinuity. The helpers here cover the few planar operations
the drivetrain, estimator and align controller need beyond what wpimath
offers directly.
"""

import math
from typing import Sequence

from wpimath import angleModulus
from wpimath.geometry import (
    Pose2d,
    Pose3d,
    Rotation2d,
    Rotation3d,
    Transform3d,
    Translation3d,
    Twist2d,
)


def wrap_angle(angle: float) -> float:
    """Wrap an angle to [-π, π)."""
    return angleModulus(angle)


def make_pose(x: float = 0.0, y: float = 0.0, heading: float = 0.0) -> Pose2d:
    """Planar pose from coordinates (m) and a heading (radians)."""
    return Pose2d(x, y, Rotation2d(wrap_angle(heading)))


def heading_of(pose: Pose2d) -> float:
    """Heading of a planar pose (radians, wrapped)."""
    return wrap_angle(pose.rotation().radians())


def step_towards_circular(current: float, target: float, step_size: float) -> float:
    """Step an angle toward a target angle along the shorter arc.

    Args:
        current: Current angle (radians, any range)
        target: Target angle (radians, any range)
        step_size: Maximum change this call (radians, non-negative)

    Returns:
        New angle wrapped to [-π, π)
    """
    difference = wrap_angle(target - current)
    if abs(difference) <= step_size:
        return wrap_angle(target)
    return wrap_angle(current + math.copysign(step_size, difference))


def distance_squared(a: Pose2d, b: Pose2d) -> float:
    """Squared planar distance between two poses (m²)."""
    return (a.x - b.x) ** 2 + (a.y - b.y) ** 2


def interpolate_pose(start: Pose2d, end: Pose2d, fraction: float) -> Pose2d:
    """Pose ``fraction`` of the way from ``start`` to ``end`` along the SE(2) arc."""
    fraction = max(0.0, min(1.0, fraction))
    twist = start.log(end)
    return start.exp(Twist2d(twist.dx * fraction, twist.dy * fraction, twist.dtheta * fraction))


def pose_distance_back(pose: Pose2d, target: Pose2d, distance: float) -> Pose2d:
    """Offset ``pose`` backward along its approach path toward ``target``.

    The returned pose sits ``distance`` meters behind ``pose`` on the line
    from ``target`` through ``pose``. When the pose already coincides with the
    target the robot heading defines "backward".
    """
    dx = target.x - pose.x
    dy = target.y - pose.y
    norm = math.hypot(dx, dy)
    heading = heading_of(pose)
    if norm < 1e-9:
        ux, uy = math.cos(heading), math.sin(heading)
    else:
        ux, uy = dx / norm, dy / norm
    return make_pose(pose.x - ux * distance, pose.y - uy * distance, heading)


def to_pose3d(pose: Pose2d) -> Pose3d:
    """Lift a planar pose onto the floor (z = 0, yaw only)."""
    return Pose3d(pose.x, pose.y, 0.0, Rotation3d(0.0, 0.0, heading_of(pose)))


def transform_from_tuple(values: Sequence[float]) -> Transform3d:
    """Build a transform from (x, y, z, roll, pitch, yaw) with angles in radians."""
    x, y, z, roll, pitch, yaw = values
    return Transform3d(Translation3d(x, y, z), Rotation3d(roll, pitch, yaw))


def pose_from_transform(transform: Transform3d) -> Pose3d:
    return Pose3d(transform.translation(), transform.rotation())
