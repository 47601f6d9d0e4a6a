"""Shared plotting utilities and styles for swerve control visualizations.

This module provides:
- The color scheme used by every plot
- CSV data loading into numpy arrays
- Common axis and legend styling
"""

import csv
from pathlib import Path
from typing import Dict, List

import numpy as np
from matplotlib.axes import Axes

from .config import PLOT_BLUE, PLOT_CREAM, PLOT_DARK_BLUE, PLOT_ORANGE, PLOT_TAUPE

__all__ = [
    "PLOT_ORANGE",
    "PLOT_BLUE",
    "PLOT_CREAM",
    "PLOT_TAUPE",
    "PLOT_DARK_BLUE",
    "load_csv_to_dict",
    "style_axis",
    "add_legend",
]


# ============================================================================
# CSV Data Loading
# ============================================================================


def load_csv_to_dict(csv_path: Path) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Numeric values become floats; non-numeric or empty values become NaN.

    Args:
        csv_path: Path to CSV file.

    Returns:
        Dictionary mapping column names to numpy arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.

    Example:
        >>> data = load_csv_to_dict(Path("pose_data.csv"))
        >>> data["x_est"].shape
        (500,)
    """
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        data: Dict[str, List[float]] = {name: [] for name in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                try:
                    data[key].append(float(value))
                except (ValueError, TypeError):
                    data[key].append(np.nan)

    return {key: np.array(values) for key, values in data.items()}


def load_csv_column(csv_path: Path, column: str) -> List[str]:
    """Load one column of a CSV file as raw strings."""
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")
    with open(csv_path, newline="") as f:
        return [row[column] for row in csv.DictReader(f)]


# ============================================================================
# Plot Styling Functions
# ============================================================================


def style_axis(ax: Axes, title: str = "", xlabel: str = "", ylabel: str = "") -> None:
    """Apply the dark plot styling to an axis.

    Args:
        ax: Matplotlib axis to style.
        title: Plot title (optional).
        xlabel: X-axis label (optional).
        ylabel: Y-axis label (optional).
    """
    if title:
        ax.set_title(title, fontweight="bold", color=PLOT_CREAM)
    if xlabel:
        ax.set_xlabel(xlabel, color=PLOT_CREAM)
    if ylabel:
        ax.set_ylabel(ylabel, color=PLOT_CREAM)

    ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5)
    ax.set_facecolor(PLOT_DARK_BLUE)
    ax.tick_params(colors=PLOT_CREAM)
    for spine in ax.spines.values():
        spine.set_edgecolor(PLOT_TAUPE)


def add_legend(ax: Axes, loc: str = "best") -> None:
    ax.legend(
        loc=loc,
        framealpha=0.9,
        facecolor=PLOT_DARK_BLUE,
        labelcolor=PLOT_CREAM,
        edgecolor=PLOT_TAUPE,
    )
