#!/usr/bin/env python3
"""
Visualize recorded alignment runs.

Loads the pose, command and vision CSVs written by ``TelemetryRecorder`` from a
run directory and plots the field trajectory (estimate vs. ground truth), the
commanded chassis velocities and the distance-to-target convergence.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .config import (
    PLOT_BLUE,
    PLOT_CREAM,
    PLOT_DARK_BLUE,
    PLOT_ORANGE,
    PLOT_TAUPE,
    TERM_BLUE,
    TERM_RESET,
)
from .plot_styles import add_legend, load_csv_column, load_csv_to_dict, style_axis


def find_latest_run(results_dir: Path) -> Path:
    """Find the most recent run directory.

    Args:
        results_dir: Path to the results directory.

    Returns:
        Path to the most recent run directory.

    Raises:
        FileNotFoundError: If no run directories are found.
    """
    if not results_dir.exists():
        raise FileNotFoundError(f"Results directory not found: {results_dir}")

    run_dirs = sorted(
        [d for d in results_dir.iterdir() if d.is_dir() and d.name.startswith("run_")]
    )

    if not run_dirs:
        raise FileNotFoundError(f"No run directories found in {results_dir}")

    return run_dirs[-1]


def list_available_runs(results_dir: Path) -> List[Path]:
    """Log and return all available run directories."""
    if not results_dir.exists():
        logging.error(f"Results directory not found: {results_dir}")
        return []

    run_dirs = sorted(
        [d for d in results_dir.iterdir() if d.is_dir() and d.name.startswith("run_")]
    )

    if not run_dirs:
        logging.info(f"No run directories found in {results_dir}")
        return []

    logging.info("Available runs:")
    for i, run_dir in enumerate(run_dirs, 1):
        logging.info(f"  {i}. {run_dir.name}")
    return run_dirs


def plot_trajectory(run_dir: Path, save_path: Optional[Path] = None) -> Figure:
    """Plot estimated and true robot positions with the target pose."""
    pose = load_csv_to_dict(run_dir / "pose_data.csv")
    command = load_csv_to_dict(run_dir / "command_data.csv")

    fig, ax = plt.subplots(figsize=(10, 8), facecolor=PLOT_DARK_BLUE)
    ax.plot(pose["x_est"], pose["y_est"], color=PLOT_ORANGE, linewidth=2, label="Estimate")
    if not np.all(np.isnan(pose["x_true"])):
        ax.plot(
            pose["x_true"],
            pose["y_true"],
            color=PLOT_BLUE,
            linewidth=1.5,
            linestyle="--",
            label="Ground truth",
        )
    if len(pose["x_est"]) > 0:
        ax.scatter(
            pose["x_est"][0], pose["y_est"][0], color=PLOT_CREAM, s=80, zorder=5, label="Start"
        )

    # Heading arrows, subsampled
    step = max(1, len(pose["x_est"]) // 20)
    ax.quiver(
        pose["x_est"][::step],
        pose["y_est"][::step],
        np.cos(pose["theta_est"][::step]),
        np.sin(pose["theta_est"][::step]),
        color=PLOT_TAUPE,
        scale=25,
        width=0.003,
    )

    if len(command["x_target"]) > 0:
        ax.scatter(
            command["x_target"][-1],
            command["y_target"][-1],
            color=PLOT_ORANGE,
            marker="*",
            s=250,
            zorder=6,
            label="Target",
        )

    ax.set_aspect("equal", adjustable="datalim")
    style_axis(ax, title="Alignment Trajectory", xlabel="X (m)", ylabel="Y (m)")
    add_legend(ax)
    fig.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
        logging.info(f"Saved trajectory plot to {save_path}")
    return fig


def plot_commands(run_dir: Path, save_path: Optional[Path] = None) -> Figure:
    """Plot commanded chassis velocities and squared distance to target over time."""
    command = load_csv_to_dict(run_dir / "command_data.csv")
    phases = load_csv_column(run_dir / "command_data.csv", "phase")
    t = command["timestamp"]
    if len(t) > 0:
        t = t - t[0]

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True, facecolor=PLOT_DARK_BLUE)

    ax1.plot(t, command["vx_cmd"], color=PLOT_ORANGE, label="vx (m/s)")
    ax1.plot(t, command["vy_cmd"], color=PLOT_BLUE, label="vy (m/s)")
    ax1.plot(t, command["omega_cmd"], color=PLOT_CREAM, label="ω (rad/s)")
    style_axis(ax1, title="Commanded Chassis Velocity", ylabel="Command")
    add_legend(ax1)

    ax2.semilogy(t, np.maximum(command["dist_sq"], 1e-8), color=PLOT_ORANGE, label="dist²")
    settling = np.array([phase == "settling" for phase in phases])
    if settling.any():
        ax2.fill_between(
            t,
            0,
            1,
            where=settling,
            transform=ax2.get_xaxis_transform(),
            color=PLOT_TAUPE,
            alpha=0.3,
            label="Settling",
        )
    style_axis(ax2, title="Distance to Target", xlabel="Time (s)", ylabel="m²")
    add_legend(ax2)
    fig.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
        logging.info(f"Saved command plot to {save_path}")
    return fig


def plot_run_summary(run_dir: Path, save_plots: bool = False, show_plots: bool = True) -> None:
    """Generate every plot for a run directory.

    Raises:
        FileNotFoundError: If the run directory is missing its CSV files.
    """
    plot_trajectory(run_dir, run_dir / "trajectory.png" if save_plots else None)
    plot_commands(run_dir, run_dir / "commands.png" if save_plots else None)
    if show_plots:
        plt.show()
    else:
        plt.close("all")


def main() -> None:
    """Main entry point for the plotting script."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(
        description="Visualize recorded alignment runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Plot the most recent run
  python -m swerve_control.plot_results

  # Plot a specific run by name
  python -m swerve_control.plot_results --run run_20251114_184704

  # Save figures to the run directory without opening windows
  python -m swerve_control.plot_results --save --no-show
        """,
    )
    parser.add_argument(
        "--run",
        type=str,
        default=None,
        help="Name of the run directory to plot. If not specified, plots the most recent run.",
    )
    parser.add_argument(
        "--results-dir",
        type=str,
        default="results",
        help="Path to the results directory (default: results)",
    )
    parser.add_argument(
        "--save", action="store_true", help="Save plots as PNG files in the run directory"
    )
    parser.add_argument(
        "--no-show",
        action="store_true",
        help="Do not display plots interactively (useful with --save)",
    )
    parser.add_argument("--list", action="store_true", help="List all available runs and exit")

    args = parser.parse_args()
    results_dir = Path(args.results_dir)

    if args.list:
        list_available_runs(results_dir)
        return

    if args.run:
        run_dir = results_dir / args.run
        if not run_dir.exists():
            logging.error(f"Error: Run directory not found: {run_dir}")
            list_available_runs(results_dir)
            sys.exit(1)
    else:
        try:
            run_dir = find_latest_run(results_dir)
            logging.info(f"{TERM_BLUE}Plotting most recent run: {run_dir}{TERM_RESET}")
        except FileNotFoundError as e:
            logging.error(f"Error: {e}")
            sys.exit(1)

    try:
        plot_run_summary(run_dir=run_dir, save_plots=args.save, show_plots=not args.no_show)
        if args.save:
            logging.info(f"{TERM_BLUE}✓ Saved plots to {run_dir}/{TERM_RESET}")
    except FileNotFoundError as e:
        logging.error(f"Error: {e}")
        logging.info(f"Make sure {run_dir} contains pose_data.csv and command_data.csv")
        sys.exit(1)


if __name__ == "__main__":
    main()
