import csv

from swerve_control.table import PubSubTable
from swerve_control.telemetry import NullTelemetry, Telemetry, TelemetryRecorder


class BrokenSink:
    def put(self, key, value):
        raise RuntimeError("sink unavailable")


def test_telemetry_publishes_to_table():
    table = PubSubTable("debug")
    telemetry = Telemetry(table)
    telemetry.set_entry("Forward desired", 0.5)
    telemetry.set_array_entry("Setpoints", (1, 2, 3))
    assert table.get("Forward desired") == 0.5
    assert table.get("Setpoints") == [1.0, 2.0, 3.0]


def test_telemetry_failures_never_raise():
    telemetry = Telemetry(BrokenSink())
    telemetry.set_entry("x", 1.0)
    telemetry.set_array_entry("y", [1.0])
    assert telemetry.failures == 2


def test_null_telemetry_discards():
    telemetry = NullTelemetry()
    telemetry.set_entry("x", 1.0)
    telemetry.set_array_entry("y", [1.0])
    assert telemetry.failures == 0


def read_rows(path):
    with open(path, newline="") as f:
        return list(csv.reader(f))


def test_recorder_writes_headers_and_rows(tmp_path):
    run_dir = tmp_path / "run_test"
    with TelemetryRecorder(run_dir=str(run_dir)) as recorder:
        recorder.log_pose(0.02, (1.0, 0.0, 0.0), (1.01, 0.0, 0.0))
        recorder.log_pose(0.04, (0.9, 0.0, 0.0))
        recorder.log_command(0.04, "tracking", (0.0, 0.0, 0.0), (-0.5, 0.0, 0.0), 0.81)
        recorder.log_vision(
            0.04, {"fused_samples": 3, "rejected_out_of_order": 1, "rejected_stale": 0}
        )

    pose_rows = read_rows(run_dir / "pose_data.csv")
    assert pose_rows[0] == TelemetryRecorder.POSE_HEADER
    assert len(pose_rows) == 3
    assert pose_rows[2][4:] == ["", "", ""]

    command_rows = read_rows(run_dir / "command_data.csv")
    assert command_rows[0] == TelemetryRecorder.COMMAND_HEADER
    assert command_rows[1][1] == "tracking"

    vision_rows = read_rows(run_dir / "vision_data.csv")
    assert vision_rows[1] == ["0.04", "3", "1", "0"]


def test_recorder_uses_run_dir_env(tmp_path, monkeypatch):
    monkeypatch.setenv("RUN_DIR", str(tmp_path / "from_env"))
    recorder = TelemetryRecorder(output_dir=str(tmp_path))
    assert recorder.run_dir == tmp_path / "from_env"
    assert recorder.run_dir.is_dir()


def test_recorder_timestamped_directory(tmp_path, monkeypatch):
    monkeypatch.delenv("RUN_DIR", raising=False)
    recorder = TelemetryRecorder(output_dir=str(tmp_path))
    assert recorder.run_dir.parent == tmp_path / "results"
    assert recorder.run_dir.name.startswith("run_")
