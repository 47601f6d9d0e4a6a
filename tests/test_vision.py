import json
import math

import pytest
from wpimath.geometry import Pose3d, Rotation3d, Transform3d, Translation3d

from swerve_control.hardware import ManualClock
from swerve_control.table import PubSubTable
from swerve_control.vision import (
    AppliancePoseSource,
    DetectorFrame,
    FiducialDetector,
    PhotogrammetricPoseSource,
    TargetObservation,
    load_field_layout,
    make_field_layout,
)

# Tag 1 on the far wall, facing back down the field
TAG_POSE = Pose3d(Translation3d(5.0, 0.0, 0.0), Rotation3d(0.0, 0.0, math.pi))
# Robot at (2, 0) facing the tag sees it 3 m ahead, turned around
BEST = Transform3d(Translation3d(3.0, 0.0, 0.0), Rotation3d(0.0, 0.0, math.pi))
ALT = Transform3d(Translation3d(3.0, 0.8, 0.0), Rotation3d(0.0, 0.0, math.pi - 0.6))


class FakeDetector(FiducialDetector):
    def __init__(self, frames=None, error=None):
        self.frames = list(frames or [])
        self.error = error

    def get_all_unread_results(self):
        if self.error is not None:
            raise self.error
        frames, self.frames = self.frames, []
        return frames


def make_source(frames=None, error=None, robot_to_camera=Transform3d(), max_ambiguity=0.2):
    layout = make_field_layout({1: TAG_POSE})
    return PhotogrammetricPoseSource(
        "photon", FakeDetector(frames, error), layout, robot_to_camera, max_ambiguity
    )


def observation(fiducial_id=1, ambiguity=0.05):
    return TargetObservation(fiducial_id, BEST, ALT, ambiguity)


class TestPhotogrammetricPoseSource:
    def test_single_tag_pose_closest_to_prior(self):
        source = make_source([DetectorFrame(1.0, [observation()])])
        result = source.get_pose_field_space(Pose3d(Translation3d(2.1, 0.1, 0.0), Rotation3d()))
        assert result.valid
        assert result.sample.pose.x == pytest.approx(2.0)
        assert result.sample.pose.y == pytest.approx(0.0, abs=1e-9)
        assert result.sample.pose.rotation().Z() == pytest.approx(0.0, abs=1e-9)
        assert result.sample.timestamp == 1.0
        assert result.sample.source == "photon"

    def test_alternate_solution_when_prior_agrees(self):
        alt_pose = TAG_POSE.transformBy(ALT.inverse())
        source = make_source([DetectorFrame(1.0, [observation()])])
        result = source.get_pose_field_space(alt_pose)
        assert result.sample.pose.x == pytest.approx(alt_pose.x)
        assert result.sample.pose.y == pytest.approx(alt_pose.y)

    def test_camera_offset_removed(self):
        robot_to_camera = Transform3d(Translation3d(0.5, 0.0, 0.0), Rotation3d())
        source = make_source(
            [
                DetectorFrame(
                    1.0,
                    [observation()],
                    field_to_camera=Transform3d(Translation3d(1.5, 0.0, 0.0), Rotation3d()),
                )
            ],
            robot_to_camera=robot_to_camera,
        )
        result = source.get_pose_field_space(Pose3d())
        assert result.sample.pose.x == pytest.approx(1.0)

    def test_multi_tag_solution_preferred(self):
        frame = DetectorFrame(
            2.0,
            [observation(fiducial_id=7)],
            field_to_camera=Transform3d(Translation3d(1.0, 2.0, 0.0), Rotation3d(0.0, 0.0, 0.3)),
        )
        result = make_source([frame]).get_pose_field_space(Pose3d())
        assert result.sample.pose.x == pytest.approx(1.0)
        assert result.sample.pose.y == pytest.approx(2.0)
        assert result.sample.pose.rotation().Z() == pytest.approx(0.3)

    def test_newest_frame_used(self):
        frames = [DetectorFrame(1.0, [observation()]), DetectorFrame(2.0, [observation()])]
        source = make_source(frames)
        prior = Pose3d(Translation3d(2.0, 0.0, 0.0), Rotation3d())
        assert source.get_pose_field_space(prior).sample.timestamp == 2.0
        assert source.get_timestamp() == 2.0
        assert not source.get_pose_field_space(Pose3d()).valid

    def test_target_distance_and_pose(self):
        source = make_source([DetectorFrame(1.0, [observation()])])
        result = source.get_pose_field_space(Pose3d(Translation3d(2.0, 0.0, 0.0), Rotation3d()))
        assert source.get_target_distance() == pytest.approx(3.0)
        assert result.sample.target_distance == pytest.approx(3.0)
        assert source.get_target_pose().x == pytest.approx(3.0)

    @pytest.mark.parametrize(
        "frames, reason",
        [
            ([], "no unread frames"),
            ([DetectorFrame(1.0, [])], "no targets"),
            ([DetectorFrame(1.0, [observation(fiducial_id=99)])], "no usable targets"),
            ([DetectorFrame(1.0, [observation(ambiguity=0.9)])], "no usable targets"),
        ],
    )
    def test_absent_results(self, frames, reason):
        result = make_source(frames).get_pose_field_space(Pose3d())
        assert not result.valid
        assert result.reason == reason

    def test_detector_fault_is_absent(self):
        result = make_source(error=RuntimeError("camera unplugged")).get_pose_field_space(Pose3d())
        assert not result.valid
        assert "camera unplugged" in result.reason

    def test_disabled_source(self):
        source = make_source([DetectorFrame(1.0, [observation()])])
        source.enabled = False
        assert source.get_pose_field_space(Pose3d()).reason == "source disabled"


class TestFieldLayout:
    def test_make_field_layout(self):
        layout = make_field_layout({3: Pose3d(Translation3d(1.0, 2.0, 0.5), Rotation3d(0.0, 0.0, 0.4))})
        tag = layout.getTagPose(3)
        assert tag.z == pytest.approx(0.5)
        assert tag.rotation().Z() == pytest.approx(0.4)
        assert layout.getTagPose(4) is None

    def test_load_field_layout(self, tmp_path):
        half = math.pi / 4.0
        path = tmp_path / "field.json"
        path.write_text(
            json.dumps(
                {
                    "tags": [
                        {
                            "ID": 3,
                            "pose": {
                                "translation": {"x": 1.0, "y": 2.0, "z": 0.5},
                                "rotation": {
                                    "quaternion": {"W": math.cos(half), "X": 0.0, "Y": 0.0, "Z": math.sin(half)}
                                },
                            },
                        }
                    ],
                    "field": {"length": 16.0, "width": 8.0},
                }
            )
        )
        layout = load_field_layout(path)
        tag = layout.getTagPose(3)
        assert tag.x == pytest.approx(1.0)
        assert tag.rotation().Z() == pytest.approx(math.pi / 2.0)
        assert layout.getTagPose(4) is None


def make_appliance(robot_to_camera=Transform3d()):
    table = PubSubTable("limelight")
    clock = ManualClock(10.0)
    source = AppliancePoseSource("limelight", table, robot_to_camera, clock)
    return source, table, clock


def publish(table, pose, tl=20.0, cl=30.0, hb=None):
    table.put("botpose_wpiblue", pose)
    table.put("tl", tl)
    table.put("cl", cl)
    if hb is not None:
        table.put("hb", hb)


class TestAppliancePoseSource:
    def test_pose_and_latency_compensated_timestamp(self):
        source, table, _ = make_appliance()
        publish(table, [1.0, 2.0, 0.0, 0.0, 0.0, 90.0])
        result = source.get_pose_field_space(Pose3d())
        assert result.valid
        assert result.sample.timestamp == pytest.approx(10.0 - 0.020 - 0.030)
        assert result.sample.pose.x == pytest.approx(1.0)
        assert result.sample.pose.y == pytest.approx(2.0)
        assert result.sample.pose.rotation().Z() == pytest.approx(math.pi / 2.0)

    def test_camera_offset_removed(self):
        source, table, _ = make_appliance(Transform3d(Translation3d(0.25, 0.0, 0.0), Rotation3d()))
        publish(table, [1.25, 0.0, 0.0, 0.0, 0.0, 0.0])
        assert source.get_pose_field_space(Pose3d()).sample.pose.x == pytest.approx(1.0)

    def test_unchanged_heartbeat_is_absent(self):
        source, table, _ = make_appliance()
        publish(table, [1.0, 2.0, 0.0, 0.0, 0.0, 0.0], hb=5)
        assert source.get_pose_field_space(Pose3d()).valid
        assert source.get_pose_field_space(Pose3d()).reason == "no new frame"
        table.put("hb", 6)
        assert source.get_pose_field_space(Pose3d()).valid

    def test_unchanged_frame_without_heartbeat_is_absent(self):
        source, table, _ = make_appliance()
        publish(table, [1.0, 2.0, 0.0, 0.0, 0.0, 0.0])
        assert source.get_pose_field_space(Pose3d()).valid
        assert source.get_pose_field_space(Pose3d()).reason == "no new frame"

        table.put("tl", 21.0)
        assert source.get_pose_field_space(Pose3d()).valid
        assert source.get_pose_field_space(Pose3d()).reason == "no new frame"

        table.put("botpose_wpiblue", [1.5, 2.0, 0.0, 0.0, 0.0, 0.0])
        result = source.get_pose_field_space(Pose3d())
        assert result.valid
        assert result.sample.pose.x == pytest.approx(1.5)

    def test_target_distance(self):
        source, table, _ = make_appliance()
        publish(table, [1.0, 2.0, 0.0, 0.0, 0.0, 0.0])
        table.put("targetpose_cameraspace", [0.0, 0.0, 2.0, 0.0, 0.0, 0.0])
        result = source.get_pose_field_space(Pose3d())
        assert result.sample.target_distance == pytest.approx(2.0)
        assert source.get_target_pose().z == pytest.approx(2.0)

    @pytest.mark.parametrize(
        "pose, reason",
        [
            ([1.0, 2.0, 0.0], "pose array has 3 values"),
            ([0.0] * 6, "no targets"),
        ],
    )
    def test_invalid_arrays_are_absent(self, pose, reason):
        source, table, _ = make_appliance()
        publish(table, pose)
        result = source.get_pose_field_space(Pose3d())
        assert not result.valid
        assert result.reason == reason

    def test_missing_latency_is_absent(self):
        source, table, _ = make_appliance()
        table.put("botpose_wpiblue", [1.0, 2.0, 0.0, 0.0, 0.0, 0.0])
        assert source.get_pose_field_space(Pose3d()).reason == "latency not reported"

    def test_empty_table_is_absent(self):
        source, _, _ = make_appliance()
        assert not source.get_pose_field_space(Pose3d()).valid
