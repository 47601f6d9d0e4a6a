"""Telemetry publishing and CSV recording for swerve control data.

This module provides:
- Fire-and-forget diagnostics publishing into a pub/sub table
- A no-op publisher for headless use
- CSV recording of alignment runs (pose estimates, commands, vision fusion)

Publishing is never allowed to fail a control call: any exception raised by
the sink is logged at DEBUG level and dropped.
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO, Union

from .config import TERM_BLUE, TERM_RESET

Scalar = Union[float, int, bool]


class Telemetry:
    """Publishes per-cycle diagnostics into a table.

    Attributes:
        sink: Table (or anything with ``put(key, value)``) receiving values.
        failures: Count of publish calls that raised.
    """

    def __init__(self, sink: Any) -> None:
        self.sink = sink
        self.failures = 0

    def set_entry(self, key: str, value: Scalar) -> None:
        try:
            self.sink.put(key, value)
        except Exception as e:
            self.failures += 1
            logging.debug(f"Telemetry publish failed for {key!r}: {e}")

    def set_array_entry(self, key: str, values: Sequence[float]) -> None:
        try:
            self.sink.put(key, [float(v) for v in values])
        except Exception as e:
            self.failures += 1
            logging.debug(f"Telemetry publish failed for {key!r}: {e}")


class NullTelemetry(Telemetry):
    """Telemetry that discards everything."""

    def __init__(self) -> None:
        super().__init__(sink=None)

    def set_entry(self, key: str, value: Scalar) -> None:
        pass

    def set_array_entry(self, key: str, values: Sequence[float]) -> None:
        pass


class TelemetryRecorder:
    """Manages CSV file creation and logging for alignment runs.

    Attributes:
        run_dir: Directory path for this run's output files.
        pose_csv_file: File handle for pose estimate CSV.
        command_csv_file: File handle for align command CSV.
        vision_csv_file: File handle for vision fusion CSV.
    """

    POSE_HEADER = ["timestamp", "x_est", "y_est", "theta_est", "x_true", "y_true", "theta_true"]
    COMMAND_HEADER = [
        "timestamp",
        "phase",
        "x_target",
        "y_target",
        "theta_target",
        "vx_cmd",
        "vy_cmd",
        "omega_cmd",
        "dist_sq",
    ]
    VISION_HEADER = ["timestamp", "fused_samples", "rejected_out_of_order", "rejected_stale"]

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the recorder.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory. Can also be set via RUN_DIR environment variable.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.pose_csv_file: Optional[TextIO] = None
        self.pose_csv_writer: Any = None
        self.command_csv_file: Optional[TextIO] = None
        self.command_csv_writer: Any = None
        self.vision_csv_file: Optional[TextIO] = None
        self.vision_csv_writer: Any = None

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.pose_output_path: Path = self.run_dir / "pose_data.csv"
        self.command_output_path: Path = self.run_dir / "command_data.csv"
        self.vision_output_path: Path = self.run_dir / "vision_data.csv"

    def setup(self) -> None:
        """Open all CSV files and write their headers. Must be called before logging."""
        self.pose_csv_file = open(self.pose_output_path, "w", newline="")
        self.pose_csv_writer = csv.writer(self.pose_csv_file)
        self.pose_csv_writer.writerow(self.POSE_HEADER)
        self.pose_csv_file.flush()

        self.command_csv_file = open(self.command_output_path, "w", newline="")
        self.command_csv_writer = csv.writer(self.command_csv_file)
        self.command_csv_writer.writerow(self.COMMAND_HEADER)
        self.command_csv_file.flush()

        self.vision_csv_file = open(self.vision_output_path, "w", newline="")
        self.vision_csv_writer = csv.writer(self.vision_csv_file)
        self.vision_csv_writer.writerow(self.VISION_HEADER)
        self.vision_csv_file.flush()

        logging.info(f"{TERM_BLUE}✓ Recording to {self.run_dir}{TERM_RESET}")

    def log_pose(
        self,
        timestamp: float,
        estimate: Sequence[float],
        truth: Optional[Sequence[float]] = None,
    ) -> None:
        """Log a pose estimate (x, y, theta) and optional ground truth."""
        truth_row = list(truth) if truth is not None else ["", "", ""]
        self.pose_csv_writer.writerow([timestamp, *estimate, *truth_row])
        if self.pose_csv_file:
            self.pose_csv_file.flush()

    def log_command(
        self,
        timestamp: float,
        phase: str,
        target: Sequence[float],
        command: Sequence[float],
        dist_sq: float,
    ) -> None:
        """Log one align controller cycle."""
        self.command_csv_writer.writerow([timestamp, phase, *target, *command, dist_sq])
        if self.command_csv_file:
            self.command_csv_file.flush()

    def log_vision(self, timestamp: float, diagnostics: dict) -> None:
        """Log estimator fusion counters."""
        self.vision_csv_writer.writerow(
            [
                timestamp,
                diagnostics["fused_samples"],
                diagnostics["rejected_out_of_order"],
                diagnostics["rejected_stale"],
            ]
        )
        if self.vision_csv_file:
            self.vision_csv_file.flush()

    def cleanup(self) -> None:
        """Close all CSV files."""
        for handle in (self.pose_csv_file, self.command_csv_file, self.vision_csv_file):
            if handle:
                handle.close()
        logging.info(f"{TERM_BLUE}✓ Saved run data to {self.run_dir}{TERM_RESET}")

    def __enter__(self) -> "TelemetryRecorder":
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()
