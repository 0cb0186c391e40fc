"""Shared plotting utilities and styles for drive telemetry visualizations.

This module provides:
- Color scheme and colormap
- CSV data loading
- Common plot styling functions

All visualization modules should import from this module to ensure consistency.
"""

import csv
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.colors import LinearSegmentedColormap

from .config import PLOT_NEUTRAL, PLOT_PRIMARY, PLOT_SECONDARY

__all__ = [
    "PLOT_PRIMARY",
    "PLOT_SECONDARY",
    "PLOT_NEUTRAL",
    "TIME_CMAP",
    "load_csv_to_dict",
    "style_axis",
    "add_legend",
    "save_figure",
]

TIME_CMAP = LinearSegmentedColormap.from_list("drive_time", [PLOT_PRIMARY, PLOT_SECONDARY])
"""Colormap used to encode time along a trajectory (start -> end)."""


def load_csv_to_dict(csv_path: Path) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Numeric values become floats; anything else (mode names, empty cells)
    becomes NaN.

    Args:
        csv_path: Path to CSV file.

    Returns:
        Dictionary mapping column names to numpy arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.

    Example:
        >>> data = load_csv_to_dict(Path("pose.csv"))
        >>> data['timestamp'].shape
        (250,)
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


def style_axis(ax: Axes, title: str = "", xlabel: str = "", ylabel: str = "", grid: bool = True) -> None:
    """Apply consistent styling to a matplotlib axis."""
    if title:
        ax.set_title(title, fontweight="bold")
    if xlabel:
        ax.set_xlabel(xlabel)
    if ylabel:
        ax.set_ylabel(ylabel)
    if grid:
        ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5, color=PLOT_NEUTRAL)


def add_legend(ax: Axes, loc: str = "best", **kwargs) -> None:
    """Add a legend with the shared styling; kwargs take precedence."""
    legend_kwargs = {"loc": loc, "framealpha": 0.9, "edgecolor": PLOT_NEUTRAL}
    legend_kwargs.update(kwargs)
    ax.legend(**legend_kwargs)


def save_figure(fig: plt.Figure, filepath: Path, dpi: int = 300, bbox_inches: str = "tight") -> None:
    """Save figure with consistent settings."""
    fig.savefig(filepath, dpi=dpi, bbox_inches=bbox_inches)
    print(f"Saved figure to {filepath}")
