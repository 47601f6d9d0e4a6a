"""Vision pose sources.

A pose source turns the latest camera result into an optional field-relative
robot pose, a capture timestamp and a distance to the observed landmark. Two
backends share the same interface:

- ``PhotogrammetricPoseSource``: fiducial detector frames solved on the
  coprocessor (multi-tag) or here (single tag, disambiguated with a prior pose
  against a ``robotpy_apriltag.AprilTagFieldLayout``)
- ``AppliancePoseSource``: a smart-camera appliance that publishes its own pose
  solution and latencies into a pub/sub table

Sources never block. When there is nothing new to report they return
``VisionResult.absent`` with a reason; a zero pose is never used as a
placeholder. Both backends remove the camera mounting transform so the pose
estimator only ever sees robot poses.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from robotpy_apriltag import AprilTag, AprilTagFieldLayout
from wpimath.geometry import Pose3d, Rotation3d, Transform3d, Translation3d

from .config import (
    APPLIANCE_CAPTURE_LATENCY_KEY,
    APPLIANCE_HEARTBEAT_KEY,
    APPLIANCE_PIPELINE_LATENCY_KEY,
    APPLIANCE_POSE_KEY,
    APPLIANCE_POSE_LENGTH,
    APPLIANCE_TARGET_KEY,
    VISION_MAX_AMBIGUITY,
)
from .estimator import VisionSample
from .geometry import pose_from_transform, wrap_angle
from .hardware import Clock
from .table import PubSubTable


@dataclass(frozen=True)
class VisionResult:
    """Either a vision sample (present) or the reason there is none (absent)."""

    sample: Optional[VisionSample] = None
    reason: str = ""

    @classmethod
    def present(cls, sample: VisionSample) -> "VisionResult":
        return cls(sample=sample)

    @classmethod
    def absent(cls, reason: str) -> "VisionResult":
        return cls(sample=None, reason=reason)

    @property
    def valid(self) -> bool:
        return self.sample is not None


@dataclass(frozen=True)
class TargetObservation:
    """One fiducial seen in a frame.

    Attributes:
        fiducial_id: Tag ID
        best_camera_to_target: Lowest-reprojection-error solution
        alt_camera_to_target: Second solution of the planar ambiguity
        ambiguity: Ratio of the two reprojection errors (0 = unambiguous)
    """

    fiducial_id: int
    best_camera_to_target: Transform3d
    alt_camera_to_target: Transform3d
    ambiguity: float = 0.0


@dataclass(frozen=True)
class DetectorFrame:
    """One processed camera frame from a fiducial detector.

    ``field_to_camera`` is set when the coprocessor solved a multi-tag pose.
    """

    timestamp: float
    targets: Sequence[TargetObservation] = ()
    field_to_camera: Optional[Transform3d] = None

    @property
    def has_targets(self) -> bool:
        return len(self.targets) > 0


class FiducialDetector(ABC):
    """Coprocessor camera pipeline producing detector frames."""

    @abstractmethod
    def get_all_unread_results(self) -> List[DetectorFrame]:
        """Frames received since the previous call, oldest first. Never blocks."""


def make_field_layout(
    tags: Dict[int, Pose3d], field_length: float = 17.548, field_width: float = 8.052
) -> AprilTagFieldLayout:
    """Field layout from known tag poses (field frame, meters)."""
    apriltags = []
    for fiducial_id, pose in tags.items():
        tag = AprilTag()
        tag.ID = fiducial_id
        tag.pose = pose
        apriltags.append(tag)
    return AprilTagFieldLayout(apriltags, field_length, field_width)


def load_field_layout(path: Union[str, Path]) -> AprilTagFieldLayout:
    """Load a field layout JSON file in the standard AprilTag layout format."""
    layout = AprilTagFieldLayout(str(path))
    logging.info(f"Loaded field layout with {len(layout.getTags())} tags from {path}")
    return layout


class PoseSource(ABC):
    """Common capability of every vision backend.

    Attributes:
        name: Source name carried on every sample
        robot_to_camera: Camera mounting pose in the robot frame
        enabled: Disabled sources always report absent
    """

    def __init__(self, name: str, robot_to_camera: Transform3d):
        self.name = name
        self.robot_to_camera = robot_to_camera
        self.camera_to_robot = robot_to_camera.inverse()
        self.enabled = True

        self._timestamp: float = 0.0
        self._target_pose: Optional[Pose3d] = None
        self._target_distance: float = 0.0

    def get_pose_field_space(self, prior: Pose3d) -> VisionResult:
        """Latest robot pose estimate, or absent for this cycle.

        Args:
            prior: Current best pose, used to disambiguate multiple solutions
        """
        if not self.enabled:
            return VisionResult.absent("source disabled")
        return self._estimate(prior)

    @abstractmethod
    def _estimate(self, prior: Pose3d) -> VisionResult:
        pass

    def get_timestamp(self) -> float:
        """Capture timestamp of the most recent present result (s)."""
        return self._timestamp

    def get_target_pose(self) -> Optional[Pose3d]:
        """Most recent landmark pose in the camera frame, if any."""
        return self._target_pose

    def get_target_distance(self) -> float:
        """Distance from the camera to the most recent landmark (m)."""
        return self._target_distance

    def _camera_to_robot_pose(self, field_to_camera: Pose3d) -> Pose3d:
        return field_to_camera.transformBy(self.camera_to_robot)

    def _present(self, robot_pose: Pose3d, timestamp: float) -> VisionResult:
        self._timestamp = timestamp
        return VisionResult.present(
            VisionSample(robot_pose, timestamp, self.name, self._target_distance)
        )


class PhotogrammetricPoseSource(PoseSource):
    """Fiducial-detector backend with reference-pose disambiguation.

    Only the newest unread frame is used; older unread frames are dropped.
    """

    def __init__(
        self,
        name: str,
        detector: FiducialDetector,
        layout: AprilTagFieldLayout,
        robot_to_camera: Transform3d,
        max_ambiguity: float = VISION_MAX_AMBIGUITY,
    ):
        super().__init__(name, robot_to_camera)
        self.detector = detector
        self.layout = layout
        self.max_ambiguity = max_ambiguity

    def _estimate(self, prior: Pose3d) -> VisionResult:
        try:
            frames = self.detector.get_all_unread_results()
        except Exception as e:
            logging.debug(f"{self.name}: detector fault: {e}")
            return VisionResult.absent(f"detector fault: {e}")

        if not frames:
            return VisionResult.absent("no unread frames")
        frame = max(frames, key=lambda f: f.timestamp)
        if not frame.has_targets:
            return VisionResult.absent("no targets")

        closest = min(frame.targets, key=lambda t: t.best_camera_to_target.translation().norm())
        self._target_pose = pose_from_transform(closest.best_camera_to_target)
        self._target_distance = closest.best_camera_to_target.translation().norm()

        if frame.field_to_camera is not None:
            field_to_camera = pose_from_transform(frame.field_to_camera)
            return self._present(self._camera_to_robot_pose(field_to_camera), frame.timestamp)

        candidates: List[Pose3d] = []
        for target in frame.targets:
            tag_pose = self.layout.getTagPose(target.fiducial_id)
            if tag_pose is None:
                logging.debug(f"{self.name}: unknown fiducial {target.fiducial_id}")
                continue
            if target.ambiguity > self.max_ambiguity:
                logging.debug(
                    f"{self.name}: fiducial {target.fiducial_id} too ambiguous "
                    f"({target.ambiguity:.2f} > {self.max_ambiguity:.2f})"
                )
                continue
            for camera_to_target in (target.best_camera_to_target, target.alt_camera_to_target):
                field_to_camera = tag_pose.transformBy(camera_to_target.inverse())
                candidates.append(self._camera_to_robot_pose(field_to_camera))

        if not candidates:
            return VisionResult.absent("no usable targets")

        best = min(candidates, key=lambda pose: _pose_difference(pose, prior))
        return self._present(best, frame.timestamp)


def _pose_difference(pose: Pose3d, reference: Pose3d) -> float:
    """Translation distance plus yaw difference (radians treated as meters)."""
    yaw_error = wrap_angle(pose.rotation().Z() - reference.rotation().Z())
    return pose.translation().distance(reference.translation()) + abs(yaw_error)


class AppliancePoseSource(PoseSource):
    """Smart-camera backend reading pose arrays from a pub/sub table.

    The appliance publishes the field pose of the camera as
    ``[x, y, z, roll°, pitch°, yaw°]`` plus pipeline and capture latencies in
    milliseconds. The capture timestamp is reconstructed from the local clock.

    A new frame is detected by the heartbeat key when the appliance publishes
    one, otherwise by a change in the (pipeline latency, pose array) pair.
    """

    def __init__(
        self,
        name: str,
        table: PubSubTable,
        robot_to_camera: Transform3d,
        clock: Clock,
    ):
        super().__init__(name, robot_to_camera)
        self.table = table
        self.clock = clock
        self._last_heartbeat: Optional[float] = None
        self._last_frame: Optional[Tuple[float, Tuple[float, ...]]] = None

    def _is_new_frame(self) -> bool:
        if self.table.contains(APPLIANCE_HEARTBEAT_KEY):
            heartbeat = self.table.get_number(APPLIANCE_HEARTBEAT_KEY, -1.0)
            if heartbeat == self._last_heartbeat:
                return False
            self._last_heartbeat = heartbeat
            return True

        frame = (
            self.table.get_number(APPLIANCE_PIPELINE_LATENCY_KEY, -1.0),
            tuple(self.table.get_array(APPLIANCE_POSE_KEY)),
        )
        if frame == self._last_frame:
            return False
        self._last_frame = frame
        return True

    def _estimate(self, prior: Pose3d) -> VisionResult:
        if not self._is_new_frame():
            return VisionResult.absent("no new frame")

        botpose = self.table.get_array(APPLIANCE_POSE_KEY)
        if len(botpose) < APPLIANCE_POSE_LENGTH:
            return VisionResult.absent(f"pose array has {len(botpose)} values")
        if not any(botpose[:APPLIANCE_POSE_LENGTH]):
            return VisionResult.absent("no targets")

        if not (
            self.table.contains(APPLIANCE_PIPELINE_LATENCY_KEY)
            and self.table.contains(APPLIANCE_CAPTURE_LATENCY_KEY)
        ):
            return VisionResult.absent("latency not reported")
        pipeline_ms = self.table.get_number(APPLIANCE_PIPELINE_LATENCY_KEY, 0.0)
        capture_ms = self.table.get_number(APPLIANCE_CAPTURE_LATENCY_KEY, 0.0)
        timestamp = self.clock.now() - pipeline_ms / 1000.0 - capture_ms / 1000.0

        target = self.table.get_array(APPLIANCE_TARGET_KEY)
        if len(target) >= APPLIANCE_POSE_LENGTH:
            self._target_pose = _pose_from_array(target)
            self._target_distance = math.sqrt(target[0] ** 2 + target[1] ** 2 + target[2] ** 2)

        field_to_camera = _pose_from_array(botpose)
        return self._present(self._camera_to_robot_pose(field_to_camera), timestamp)


def _pose_from_array(values: Sequence[float]) -> Pose3d:
    """[x, y, z, roll°, pitch°, yaw°] → Pose3d."""
    x, y, z, roll, pitch, yaw = values[:6]
    return Pose3d(
        Translation3d(x, y, z),
        Rotation3d(math.radians(roll), math.radians(pitch), math.radians(yaw)),
    )
