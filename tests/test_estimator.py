import math

import pytest
from wpimath.geometry import Pose3d, Rotation2d, Rotation3d, Translation3d
from wpimath.kinematics import SwerveModulePosition

from swerve_control.estimator import PoseEstimator, VisionSample
from swerve_control.geometry import heading_of, make_pose
from swerve_control.kinematics import make_kinematics
from swerve_control.vision import VisionResult


def positions(distance, angle=0.0):
    return [SwerveModulePosition(distance, Rotation2d(angle)) for _ in range(4)]


def vision(x, y, yaw, timestamp):
    return VisionSample(
        Pose3d(Translation3d(x, y, 0.0), Rotation3d(0.0, 0.0, yaw)), timestamp, "test"
    )


def assert_same_pose(actual, expected):
    assert actual.x == pytest.approx(expected.x)
    assert actual.y == pytest.approx(expected.y)
    assert heading_of(actual) == pytest.approx(heading_of(expected))


def drive_forward(estimator, seconds, speed=1.0, period=0.02, start=0.0):
    """Feed straight-line odometry at ``speed`` and return the last timestamp."""
    steps = int(round(seconds / period))
    timestamp = start
    for i in range(steps + 1):
        timestamp = start + i * period
        estimator.update(timestamp, 0.0, positions(speed * timestamp))
    return timestamp


@pytest.fixture
def estimator():
    return PoseEstimator(make_kinematics())


def test_rejects_bad_parameters():
    with pytest.raises(ValueError):
        PoseEstimator(make_kinematics(), vision_gain=0.0)
    with pytest.raises(ValueError):
        PoseEstimator(make_kinematics(), vision_age_decay=0.0)
    with pytest.raises(ValueError):
        PoseEstimator(make_kinematics(), history_seconds=-1.0)


def test_odometry_integrates_wheel_distance(estimator):
    estimator.update(0.0, 0.0, positions(0.0))
    pose = estimator.update(0.02, 0.0, positions(0.1))
    assert pose.x == pytest.approx(0.1)
    assert pose.y == pytest.approx(0.0, abs=1e-9)


def test_first_update_latches_heading_offset():
    estimator = PoseEstimator(make_kinematics(), initial_pose=make_pose(0.0, 0.0, 1.0))
    assert heading_of(estimator.update(0.0, 0.3, positions(0.0))) == pytest.approx(1.0)
    assert heading_of(estimator.update(0.02, 0.5, positions(0.0))) == pytest.approx(1.2)


def test_odometry_follows_sideways_wheels(estimator):
    estimator.update(0.0, 0.0, positions(0.0, math.pi / 2.0))
    pose = estimator.update(0.02, 0.0, positions(0.2, math.pi / 2.0))
    assert pose.x == pytest.approx(0.0, abs=1e-9)
    assert pose.y == pytest.approx(0.2)


def test_vision_correction_is_bounded_by_gain(estimator):
    estimator.update(0.0, 0.0, positions(0.0))
    assert estimator.add_vision_measurement(vision(1.0, 0.0, 0.0, 0.0))

    pose = estimator.get_pose2d()
    assert pose.x == pytest.approx(estimator.vision_gain)
    assert estimator.last_vision_weight == pytest.approx(estimator.vision_gain)
    assert estimator.last_correction_norm <= estimator.vision_gain * 1.0 + 1e-9


def test_older_samples_weigh_less(estimator):
    last = drive_forward(estimator, 1.0)
    assert estimator.add_vision_measurement(vision(0.5, 0.0, 0.0, last - 0.5))
    expected = estimator.vision_gain * math.exp(-0.5 / estimator.vision_age_decay)
    assert estimator.last_vision_weight == pytest.approx(expected)


def test_late_sample_correction_is_replayed(estimator):
    last = drive_forward(estimator, 1.0)
    assert estimator.get_pose2d().x == pytest.approx(1.0)

    # Camera saw the robot 0.1 m to the left of the odometry estimate at t=0.9
    assert estimator.add_vision_measurement(vision(0.9, 0.1, 0.0, last - 0.1))
    weight = estimator.last_vision_weight

    pose = estimator.get_pose2d()
    assert pose.x == pytest.approx(1.0)
    assert pose.y == pytest.approx(weight * 0.1)

    # Later odometry builds on the corrected pose
    estimator.update(last + 0.02, 0.0, positions(last + 0.02))
    assert estimator.get_pose2d().y == pytest.approx(weight * 0.1)
    assert estimator.get_pose2d().x == pytest.approx(1.02)


def test_sequence_of_samples_never_overcorrects(estimator):
    target_y = 0.2
    t = 0.0
    estimator.update(t, 0.0, positions(0.0))
    for _ in range(20):
        for _ in range(5):
            t += 0.02
            estimator.update(t, 0.0, positions(t))
        capture = t - 0.04
        before = estimator.get_pose2d()
        offset = target_y - before.y

        assert estimator.add_vision_measurement(vision(capture, target_y, 0.0, capture))

        jump = estimator.last_correction_norm
        assert jump <= estimator.last_vision_weight * abs(offset) + 1e-9
        assert jump == pytest.approx(estimator.last_vision_weight * abs(offset))
        assert before.y <= estimator.get_pose2d().y <= target_y + 1e-9
    assert estimator.fused_samples == 20
    assert estimator.get_pose2d().y == pytest.approx(target_y, abs=1e-3)


def test_corrected_pose_kept_at_capture_time(estimator):
    for t in (0.0, 0.02, 0.04, 0.06, 0.08):
        estimator.update(t, 0.0, positions(0.0))

    assert estimator.add_vision_measurement(vision(1.0, 0.0, 0.0, 0.05))
    corrected_x = estimator.get_pose2d().x
    assert corrected_x == pytest.approx(estimator.last_vision_weight)
    snapshots = {s.timestamp: s.pose for s in estimator.get_history()}
    assert snapshots[0.05].x == pytest.approx(corrected_x)
    assert snapshots[0.04].x == pytest.approx(0.0)

    # A second camera frame agreeing with the corrected estimate changes nothing
    assert estimator.add_vision_measurement(vision(corrected_x, 0.0, 0.0, 0.055))
    assert estimator.get_pose2d().x == pytest.approx(corrected_x)
    assert estimator.last_correction_norm == pytest.approx(0.0, abs=1e-9)


def test_heading_correction_persists(estimator):
    estimator.update(0.0, 0.0, positions(0.0))
    estimator.add_vision_measurement(vision(0.0, 0.0, 0.5, 0.0))
    corrected = heading_of(estimator.get_pose2d())
    assert corrected == pytest.approx(estimator.vision_gain * 0.5)

    estimator.update(0.02, 0.0, positions(0.0))
    assert heading_of(estimator.get_pose2d()) == pytest.approx(corrected)


def test_out_of_order_samples_rejected(estimator):
    last = drive_forward(estimator, 0.5)
    assert estimator.add_vision_measurement(vision(0.4, 0.0, 0.0, last - 0.1))
    pose = estimator.get_pose2d()

    assert not estimator.add_vision_measurement(vision(5.0, 5.0, 0.0, last - 0.2))
    assert not estimator.add_vision_measurement(vision(5.0, 5.0, 0.0, last - 0.1))
    assert estimator.rejected_out_of_order == 2
    assert_same_pose(estimator.get_pose2d(), pose)


def test_stale_samples_rejected(estimator):
    last = drive_forward(estimator, 3.0)
    pose = estimator.get_pose2d()
    assert not estimator.add_vision_measurement(vision(0.5, 0.0, 0.0, 0.5))
    assert estimator.rejected_stale == 1
    assert_same_pose(estimator.get_pose2d(), pose)

    assert estimator.add_vision_measurement(vision(2.9, 0.0, 0.0, last - 0.1))


def test_sample_without_history_rejected(estimator):
    assert not estimator.add_vision_measurement(vision(1.0, 0.0, 0.0, 0.0))
    assert estimator.rejected_stale == 1


def test_history_is_bounded(estimator):
    drive_forward(estimator, 5.0)
    history = estimator.get_history()
    assert history[-1].timestamp - history[1].timestamp < estimator.history_seconds


def test_reset_pose(estimator):
    drive_forward(estimator, 0.5)
    estimator.add_vision_measurement(vision(0.5, 0.0, 0.0, 0.5))
    estimator.reset_pose(make_pose(3.0, 4.0, 0.0))

    assert_same_pose(estimator.get_pose2d(), make_pose(3.0, 4.0, 0.0))
    assert estimator.get_history() == []
    estimator.update(10.0, 0.7, positions(100.0))
    assert estimator.get_pose2d().x == pytest.approx(3.0)
    assert heading_of(estimator.get_pose2d()) == pytest.approx(0.0)
    # Last fused timestamp is cleared with the history
    assert estimator.add_vision_measurement(vision(3.0, 4.0, 0.0, 10.0))


class FakeSource:
    def __init__(self, result):
        self.name = "fake"
        self.result = result
        self.priors = []

    def get_pose_field_space(self, prior):
        self.priors.append(prior)
        return self.result


def test_poll_fuses_present_and_skips_absent(estimator):
    estimator.update(0.0, 0.0, positions(0.0))
    present = FakeSource(VisionResult.present(vision(1.0, 0.0, 0.0, 0.0)))
    absent = FakeSource(VisionResult.absent("no targets"))

    assert estimator.poll([absent, present]) == 1
    assert estimator.fused_samples == 1
    assert absent.priors[0].x == pytest.approx(0.0)


def test_diagnostics(estimator):
    drive_forward(estimator, 0.1)
    diagnostics = estimator.get_diagnostics()
    assert diagnostics["x"] == pytest.approx(0.1)
    assert diagnostics["history_length"] == 6
    assert diagnostics["fused_samples"] == 0
