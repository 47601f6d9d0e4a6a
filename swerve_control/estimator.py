"""Pose estimation for the swerve drivetrain.

This module fuses two input streams into a single field-relative pose:
- Wheel odometry every control cycle (module distance deltas through forward
  kinematics, integrated with the SE(2) exponential map, heading from the gyro)
- Vision samples arriving intermittently, each timestamped in the past by the
  camera and detection pipeline latency

Latency compensation:
    A short history of estimates is kept. When a vision sample arrives, the
    estimate at the sample's capture time is interpolated from the history and
    pulled toward the vision pose with weight

        w = vision_gain * exp(-age / vision_age_decay)

    where age is how far the sample lags the newest odometry update. The motion
    recorded after the capture time is then replayed on top of the corrected
    pose, so the present estimate moves by the weighted correction only. The
    corrected pose is kept in the history at the capture time, so a later
    sample captured nearby interpolates against the corrected estimate.

Samples older than the last fused sample (out-of-order) or older than the
history window (stale) are discarded and counted.
"""

import bisect
import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional, Sequence

from wpimath.geometry import Pose2d, Pose3d, Transform2d, Twist2d
from wpimath.kinematics import SwerveDrive4Kinematics, SwerveModulePosition

from .config import (
    ESTIMATOR_HISTORY_SECONDS,
    ESTIMATOR_VISION_AGE_DECAY,
    ESTIMATOR_VISION_GAIN,
)
from .geometry import heading_of, interpolate_pose, make_pose, to_pose3d, wrap_angle
from .kinematics import odometry_twist

@dataclass(frozen=True)
class VisionSample:
    """Field-relative robot pose reported by a vision source.

    Attributes:
        pose: Robot pose in the field frame (camera offset already removed)
        timestamp: Capture time on the control loop's monotonic clock (s)
        source: Name of the producing pose source
        target_distance: Distance from the camera to the observed landmark (m)
    """

    pose: Pose3d
    timestamp: float
    source: str = ""
    target_distance: float = 0.0


@dataclass(frozen=True)
class OdometrySnapshot:
    """Fused estimate recorded at one odometry update."""

    timestamp: float
    pose: Pose2d


class PoseEstimator:
    """Odometry + vision pose estimator with latency compensation.

    The estimator is owned explicitly and passed to every consumer; reads via
    ``get_robot_pose`` are cached and never trigger fusion.
    """

    def __init__(
        self,
        kinematics: SwerveDrive4Kinematics,
        initial_pose: Pose2d = Pose2d(),
        vision_gain: float = ESTIMATOR_VISION_GAIN,
        vision_age_decay: float = ESTIMATOR_VISION_AGE_DECAY,
        history_seconds: float = ESTIMATOR_HISTORY_SECONDS,
    ):
        """Initialize the estimator.

        Args:
            kinematics: Drivetrain kinematics used for odometry twists
            initial_pose: Starting field pose
            vision_gain: Weight of a zero-age vision sample, in (0, 1]
            vision_age_decay: Time constant of the weight decay with age (s)
            history_seconds: How far back vision samples may reach (s)

        Raises:
            ValueError: If any weighting parameter is out of range.
        """
        if not 0.0 < vision_gain <= 1.0:
            raise ValueError(f"Vision gain must be in (0, 1], got {vision_gain}")
        if vision_age_decay <= 0.0:
            raise ValueError(f"Vision age decay must be positive, got {vision_age_decay}")
        if history_seconds <= 0.0:
            raise ValueError(f"History window must be positive, got {history_seconds}")

        self.kinematics = kinematics
        self.vision_gain = vision_gain
        self.vision_age_decay = vision_age_decay
        self.history_seconds = history_seconds

        self._pose = initial_pose
        self._pose3d = to_pose3d(initial_pose)
        self._heading_offset: float = 0.0
        self._prev_heading: Optional[float] = None
        self._prev_positions: Optional[List[SwerveModulePosition]] = None
        self._history: Deque[OdometrySnapshot] = deque()
        self._last_fused_timestamp: float = -math.inf

        # Diagnostics
        self.fused_samples = 0
        self.rejected_out_of_order = 0
        self.rejected_stale = 0
        self.last_correction_norm = 0.0
        self.last_vision_weight = 0.0

    # ------------------------------------------------------------------
    # Odometry
    # ------------------------------------------------------------------

    def update(
        self, timestamp: float, heading: float, positions: Sequence[SwerveModulePosition]
    ) -> Pose2d:
        """Integrate one odometry step.

        The first call after construction or ``reset_pose`` only latches the
        heading offset and module positions.

        Args:
            timestamp: Current loop time (s)
            heading: Gyro heading (radians, CCW-positive)
            positions: Module positions in canonical order

        Returns:
            Updated pose estimate
        """
        positions = list(positions)
        if self._prev_positions is None or self._prev_heading is None:
            self._heading_offset = heading_of(self._pose) - heading
        else:
            twist = odometry_twist(self.kinematics, self._prev_positions, positions)
            twist = Twist2d(twist.dx, twist.dy, wrap_angle(heading - self._prev_heading))
            moved = self._pose.exp(twist)
            self._pose = make_pose(moved.x, moved.y, heading + self._heading_offset)

        self._prev_heading = heading
        self._prev_positions = positions
        self._record(timestamp)
        return self._pose

    def reset_pose(
        self,
        pose: Pose2d,
        heading: Optional[float] = None,
        positions: Optional[Sequence[SwerveModulePosition]] = None,
        timestamp: Optional[float] = None,
    ) -> None:
        """Overwrite the estimate and clear the history.

        Without ``heading``/``positions`` the next ``update`` re-latches them.
        """
        self._pose = pose
        self._history.clear()
        self._last_fused_timestamp = -math.inf
        if heading is not None and positions is not None:
            self._heading_offset = heading_of(pose) - heading
            self._prev_heading = heading
            self._prev_positions = list(positions)
            if timestamp is not None:
                self._record(timestamp)
        else:
            self._prev_heading = None
            self._prev_positions = None
        self._pose3d = to_pose3d(pose)
        logging.info(
            f"Pose reset to ({pose.x:.3f}, {pose.y:.3f}, {pose.rotation().degrees():.1f}°)"
        )

    def _record(self, timestamp: float) -> None:
        while self._history and self._history[-1].timestamp >= timestamp:
            self._history.pop()
        self._history.append(OdometrySnapshot(timestamp, self._pose))
        cutoff = timestamp - self.history_seconds
        while len(self._history) > 2 and self._history[1].timestamp <= cutoff:
            self._history.popleft()
        self._pose3d = to_pose3d(self._pose)

    # ------------------------------------------------------------------
    # Vision fusion
    # ------------------------------------------------------------------

    def add_vision_measurement(self, sample: VisionSample) -> bool:
        """Fuse one vision sample.

        Args:
            sample: Vision pose with capture timestamp

        Returns:
            True if the sample was fused, False if it was rejected
        """
        if sample.timestamp <= self._last_fused_timestamp:
            self.rejected_out_of_order += 1
            logging.debug(
                f"Vision sample from {sample.source} rejected: t={sample.timestamp:.3f} "
                f"not after last fused t={self._last_fused_timestamp:.3f}"
            )
            return False

        if not self._history:
            self.rejected_stale += 1
            logging.debug(f"Vision sample from {sample.source} rejected: no odometry yet")
            return False

        newest = self._history[-1].timestamp
        oldest = max(self._history[0].timestamp, newest - self.history_seconds)
        if sample.timestamp < oldest:
            self.rejected_stale += 1
            logging.debug(
                f"Vision sample from {sample.source} rejected: t={sample.timestamp:.3f} "
                f"outside history window starting at {oldest:.3f}"
            )
            return False

        age = max(0.0, newest - sample.timestamp)
        weight = self.vision_gain * math.exp(-age / self.vision_age_decay)

        capture_time = min(sample.timestamp, newest)
        odometry_at_capture = self._pose_at(capture_time)
        vision_pose = sample.pose.toPose2d()
        odometry_heading = heading_of(odometry_at_capture)
        corrected_at_capture = make_pose(
            odometry_at_capture.x + weight * (vision_pose.x - odometry_at_capture.x),
            odometry_at_capture.y + weight * (vision_pose.y - odometry_at_capture.y),
            odometry_heading + weight * wrap_angle(heading_of(vision_pose) - odometry_heading),
        )

        # Replay the motion recorded since the capture time on the corrected pose
        previous = self._pose
        replayed: Deque[OdometrySnapshot] = deque()
        for snapshot in self._history:
            if snapshot.timestamp < capture_time:
                replayed.append(snapshot)
                continue
            if not replayed or replayed[-1].timestamp < capture_time:
                replayed.append(OdometrySnapshot(capture_time, corrected_at_capture))
            if snapshot.timestamp == capture_time:
                continue
            delta = snapshot.pose.relativeTo(odometry_at_capture)
            replayed.append(
                OdometrySnapshot(
                    snapshot.timestamp,
                    corrected_at_capture.transformBy(
                        Transform2d(delta.translation(), delta.rotation())
                    ),
                )
            )
        self._history = replayed
        self._pose = self._history[-1].pose
        self._pose3d = to_pose3d(self._pose)
        self._heading_offset += wrap_angle(heading_of(self._pose) - heading_of(previous))

        self._last_fused_timestamp = sample.timestamp
        self.fused_samples += 1
        self.last_vision_weight = weight
        self.last_correction_norm = math.hypot(
            self._pose.x - previous.x, self._pose.y - previous.y
        )
        logging.debug(
            f"Fused vision from {sample.source}: age={age * 1000:.0f}ms weight={weight:.3f} "
            f"shift={self.last_correction_norm:.4f}m"
        )
        return True

    def _pose_at(self, timestamp: float) -> Pose2d:
        """Estimate at ``timestamp``, interpolated between recorded snapshots."""
        times = [snapshot.timestamp for snapshot in self._history]
        index = bisect.bisect_left(times, timestamp)
        if index <= 0:
            return self._history[0].pose
        if index >= len(times):
            return self._history[-1].pose
        before = self._history[index - 1]
        after = self._history[index]
        span = after.timestamp - before.timestamp
        fraction = (timestamp - before.timestamp) / span if span > 0.0 else 1.0
        return interpolate_pose(before.pose, after.pose, fraction)

    def poll(self, sources: Iterable) -> int:
        """Poll each pose source once and fuse any present results.

        Sources are never waited on; an absent result simply skips that source
        this cycle.

        Returns:
            Number of samples fused
        """
        fused = 0
        for source in sources:
            result = source.get_pose_field_space(self._pose3d)
            if not result.valid:
                logging.debug(f"No vision estimate from {source.name}: {result.reason}")
                continue
            if self.add_vision_measurement(result.sample):
                fused += 1
        return fused

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_robot_pose(self) -> Pose3d:
        return self._pose3d

    def get_pose2d(self) -> Pose2d:
        return self._pose

    def get_history(self) -> List[OdometrySnapshot]:
        return list(self._history)

    def get_diagnostics(self) -> Dict[str, float]:
        """Get diagnostic information for logging and debugging."""
        return {
            "x": self._pose.x,
            "y": self._pose.y,
            "theta": heading_of(self._pose),
            "fused_samples": self.fused_samples,
            "rejected_out_of_order": self.rejected_out_of_order,
            "rejected_stale": self.rejected_stale,
            "last_correction_norm": self.last_correction_norm,
            "last_vision_weight": self.last_vision_weight,
            "history_length": len(self._history),
        }
