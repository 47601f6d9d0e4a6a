#!/usr/bin/env python3
"""
Simulated alignment runner.

This module builds a simulated swerve robot around the real control stack,
runs one alignment to a target pose and records pose estimates, align
commands and vision fusion counters to CSV files. Optionally a WebSocket table
bridge mirrors remote table updates (tunables, camera tables) into the
robot's tables while the run is in progress.
"""

import asyncio
import logging
import math
import signal
from typing import Any, Optional, Tuple

from wpimath.geometry import Pose2d

from .align import AlignController, AlignPhase
from .config import TERM_BLUE, TERM_ORANGE, TERM_RESET, TUNABLES_TABLE
from .geometry import distance_squared, heading_of, wrap_angle
from .sim import SimulatedRobot
from .table import TableBridge, TableRegistry
from .telemetry import TelemetryRecorder
from .tunables import TunableStore


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        formatter = CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


class AlignmentRun:
    """One simulated alignment with recording and optional table bridge.

    Attributes:
        robot: Simulated robot running the control stack.
        recorder: CSV recorder for this run.
        bridge: Optional WebSocket table bridge.
        should_stop: Flag indicating whether to stop the run.
    """

    def __init__(
        self,
        start: Pose2d,
        target: Pose2d,
        stop_when_finished: bool = True,
        profile: str = "default",
        vision: bool = True,
        duration: float = 10.0,
        realtime: bool = False,
        bridge_uri: Optional[str] = None,
        tunables_path: Optional[str] = None,
        output_dir: str = ".",
    ) -> None:
        """Initialize the run.

        Args:
            start: Initial robot pose.
            target: Pose to align to.
            stop_when_finished: Stop at the target (True) or pass through (False).
            profile: Align tuning profile name.
            vision: Simulate the vision appliance.
            duration: Maximum simulated time (s).
            realtime: Pace the loop at wall-clock speed.
            bridge_uri: WebSocket URI for remote table updates (ws:// or wss://).
            tunables_path: Optional JSON file of tunable overrides.
            output_dir: Base directory for output files.

        Raises:
            ValueError: If duration is not positive or the bridge URI is invalid.
        """
        if duration <= 0.0:
            raise ValueError(f"Duration must be positive, got {duration}")

        self.target = target
        self.stop_when_finished = stop_when_finished
        self.profile = profile
        self.duration = duration
        self.realtime = realtime
        self.should_stop: bool = False

        registry = TableRegistry()
        tunables_table = registry.get_table(TUNABLES_TABLE)
        if tunables_path:
            tunables = TunableStore.from_json(tunables_path, table=tunables_table)
        else:
            tunables = TunableStore(table=tunables_table)

        self.bridge: Optional[TableBridge] = (
            TableBridge(bridge_uri, registry) if bridge_uri else None
        )
        self.robot = SimulatedRobot(start=start, vision=vision, tunables=tunables, registry=registry)
        self.recorder = TelemetryRecorder(output_dir=output_dir)
        self.command: Optional[AlignController] = None

    def record(self) -> None:
        """Log the current tick to the CSV recorder."""
        now = self.robot.clock.now()
        estimate = self.robot.estimator.get_pose2d()
        truth = self.robot.truth
        self.recorder.log_pose(
            now,
            (estimate.x, estimate.y, heading_of(estimate)),
            (truth.x, truth.y, heading_of(truth)),
        )
        if self.command is not None:
            diagnostics = self.command.get_diagnostics()
            self.recorder.log_command(
                now,
                diagnostics["phase"],
                (diagnostics["x_target"], diagnostics["y_target"], diagnostics["theta_target"]),
                (diagnostics["vx_cmd"], diagnostics["vy_cmd"], diagnostics["omega_cmd"]),
                diagnostics["dist_sq"],
            )
        self.recorder.log_vision(now, self.robot.estimator.get_diagnostics())

    async def run(self) -> AlignPhase:
        """Run the alignment until it finishes, times out or is stopped.

        Returns:
            Final phase of the align controller.
        """
        bridge_task = asyncio.create_task(self.bridge.run()) if self.bridge else None

        self.command = self.robot.align(self.target, self.stop_when_finished, self.profile)
        elapsed = 0.0
        try:
            while not self.should_stop and elapsed < self.duration:
                self.robot.step()
                self.record()
                elapsed += self.robot.period
                if self.command.phase in (AlignPhase.DONE, AlignPhase.CANCELLED):
                    break
                # Yield so the bridge can apply updates between ticks
                await asyncio.sleep(self.robot.period if self.realtime else 0)
        finally:
            if self.robot.loop.active is not None:
                self.robot.loop.cancel()
            if self.bridge is not None and bridge_task is not None:
                self.bridge.stop()
                bridge_task.cancel()
                try:
                    await bridge_task
                except asyncio.CancelledError:
                    pass

        self.report(elapsed)
        return self.command.phase

    def target_error(self) -> Tuple[float, float]:
        """Ground-truth distance (m) and heading error (degrees) to the target."""
        truth = self.robot.truth
        position_error = math.sqrt(distance_squared(truth, self.target))
        heading_error = abs(math.degrees(wrap_angle(heading_of(truth) - heading_of(self.target))))
        return position_error, heading_error

    def report(self, elapsed: float) -> None:
        estimate = self.robot.estimator.get_pose2d()
        position_error, heading_error = self.target_error()
        color = TERM_BLUE if self.command.phase == AlignPhase.DONE else TERM_ORANGE
        logging.info(f"{color}\033[1m→ {self.command.phase.value.upper()} after {elapsed:.2f}s{TERM_RESET}")
        logging.info(
            f"{color}\033[1m→ Target error: {position_error * 1000:.1f}mm  "
            f"{heading_error:.2f}°{TERM_RESET}"
        )
        logging.info(
            f"{color}\033[1m→ Estimate error: {self.robot.estimate_error() * 1000:.1f}mm  "
            f"(est {estimate.x:.3f}, {estimate.y:.3f}){TERM_RESET}"
        )
        diagnostics = self.robot.estimator.get_diagnostics()
        logging.info(
            f"Vision: {diagnostics['fused_samples']} fused, "
            f"{diagnostics['rejected_out_of_order']} out-of-order, "
            f"{diagnostics['rejected_stale']} stale"
        )

    def stop(self) -> None:
        """Signal the run to stop."""
        self.should_stop = True

    def __enter__(self) -> "AlignmentRun":
        self.recorder.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.recorder.cleanup()


async def main(run: AlignmentRun) -> AlignPhase:
    """Run an alignment with signal handlers for graceful shutdown."""
    with run:
        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logging.info("\nShutdown signal received...")
            run.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        return await run.run()
