import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from swerve_control.plot_results import (  # noqa: E402
    find_latest_run,
    list_available_runs,
    plot_commands,
    plot_run_summary,
    plot_trajectory,
)
from swerve_control.plot_styles import load_csv_to_dict  # noqa: E402
from swerve_control.telemetry import TelemetryRecorder  # noqa: E402


@pytest.fixture
def run_dir(tmp_path):
    run_dir = tmp_path / "results" / "run_20250101_120000"
    with TelemetryRecorder(run_dir=str(run_dir)) as recorder:
        for i in range(50):
            t = i * 0.02
            x = 1.0 - i / 49.0
            recorder.log_pose(t, (x, 0.0, 0.0), (x + 0.005, 0.0, 0.0))
            phase = "settling" if i > 40 else "tracking"
            recorder.log_command(t, phase, (0.0, 0.0, 0.0), (-1.0, 0.0, 0.0), x * x)
            recorder.log_vision(
                t, {"fused_samples": i // 5, "rejected_out_of_order": 0, "rejected_stale": 0}
            )
    return run_dir


def test_load_csv_to_dict(run_dir):
    data = load_csv_to_dict(run_dir / "command_data.csv")
    assert len(data["timestamp"]) == 50
    # Non-numeric columns load as NaN
    assert np.all(np.isnan(data["phase"]))


def test_load_missing_csv(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_csv_to_dict(tmp_path / "missing.csv")


def test_plots_save_figures(run_dir):
    fig = plot_trajectory(run_dir, run_dir / "trajectory.png")
    assert len(fig.axes) >= 1
    fig = plot_commands(run_dir, run_dir / "commands.png")
    assert len(fig.axes) == 2
    assert (run_dir / "trajectory.png").exists()
    assert (run_dir / "commands.png").exists()


def test_plot_run_summary(run_dir):
    plot_run_summary(run_dir, save_plots=True, show_plots=False)
    assert (run_dir / "trajectory.png").exists()


def test_find_latest_run(run_dir, tmp_path):
    (tmp_path / "results" / "run_20240101_000000").mkdir()
    assert find_latest_run(tmp_path / "results") == run_dir
    assert list_available_runs(tmp_path / "results")[-1] == run_dir


def test_find_latest_run_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_latest_run(tmp_path / "results")
    assert list_available_runs(tmp_path / "results") == []
