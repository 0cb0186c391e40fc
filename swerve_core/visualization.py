"""
Visualization utilities for drive telemetry.

This module provides functions to load and plot the CSV files written by
CsvTelemetry: the estimated trajectory, heading and chassis velocities,
and commanded versus measured module states.
"""

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .config import MODULE_NAMES
from .plot_styles import (
    PLOT_NEUTRAL,
    PLOT_PRIMARY,
    PLOT_SECONDARY,
    TIME_CMAP,
    add_legend,
    load_csv_to_dict,
    save_figure,
    style_axis,
)


def plot_trajectory(
    pose_data: Dict[str, np.ndarray],
    title: str = "Estimated Trajectory",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot the estimated field trajectory (x vs y), colored by time.

    Args:
        pose_data: Columns of pose.csv.
        title: Plot title.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    fig, ax = plt.subplots(figsize=(10, 8))

    x = pose_data["x"]
    y = pose_data["y"]
    t = pose_data["timestamp"]

    valid = ~(np.isnan(x) | np.isnan(y))
    x, y, t = x[valid], y[valid], t[valid]

    if len(t) > 0:
        ax.plot(x, y, "-", color=PLOT_PRIMARY, linewidth=1.5, alpha=0.6, label="Pose", zorder=1)
        scatter = ax.scatter(x, y, c=t, cmap=TIME_CMAP, s=12, alpha=0.8, zorder=3)
        plt.colorbar(scatter, ax=ax, label="Time (s)")

        ax.plot(x[0], y[0], "o", color=PLOT_SECONDARY, markersize=8, label="Start", zorder=5,
                markeredgecolor="black")
        ax.plot(x[-1], y[-1], "o", color=PLOT_PRIMARY, markersize=8, label="End", zorder=5,
                markeredgecolor="black")

    style_axis(ax, title=title, xlabel="X Position (m)", ylabel="Y Position (m)")
    ax.set_aspect("equal")
    add_legend(ax)
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path, dpi=150)

    return fig


def plot_heading_and_velocity(
    pose_data: Dict[str, np.ndarray],
    title: str = "Heading and Velocity",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot heading (estimate vs gyro) and commanded vs measured velocities."""
    fig, (ax1, ax2, ax3) = plt.subplots(3, 1, figsize=(12, 10), sharex=True)

    t = pose_data["timestamp"]
    if len(t) > 0:
        t = t - t[0]

    ax1.plot(t, np.degrees(pose_data["heading"]), color=PLOT_PRIMARY, label="Estimate")
    ax1.plot(t, np.degrees(pose_data["gyro_heading"]), "--", color=PLOT_SECONDARY, label="Gyro")
    style_axis(ax1, title=f"{title} - Heading", ylabel="Heading (deg)")
    add_legend(ax1)

    ax2.plot(t, pose_data["cmd_vx"], "--", color=PLOT_SECONDARY, label="vx commanded")
    ax2.plot(t, pose_data["vx"], color=PLOT_PRIMARY, label="vx measured")
    ax2.plot(t, pose_data["cmd_vy"], ":", color=PLOT_SECONDARY, label="vy commanded")
    ax2.plot(t, pose_data["vy"], color=PLOT_NEUTRAL, label="vy measured")
    style_axis(ax2, title=f"{title} - Robot-Relative Velocity", ylabel="Velocity (m/s)")
    add_legend(ax2)

    ax3.plot(t, pose_data["cmd_omega"], "--", color=PLOT_SECONDARY, label="Commanded")
    ax3.plot(t, pose_data["omega"], color=PLOT_PRIMARY, label="Measured")
    style_axis(ax3, title=f"{title} - Angular Velocity", xlabel="Time (s)",
               ylabel="Angular Velocity (rad/s)")
    add_legend(ax3)

    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path, dpi=150)

    return fig


def plot_module_states(
    module_data: Dict[str, np.ndarray],
    title: str = "Module States",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot target vs measured speed and angle for every module."""
    fig, axes = plt.subplots(len(MODULE_NAMES), 2, figsize=(14, 3 * len(MODULE_NAMES)), sharex=True)

    t = module_data["timestamp"]
    if len(t) > 0:
        t = t - t[0]

    for row, name in enumerate(MODULE_NAMES):
        key = name.lower().replace(" ", "_")
        speed_ax, angle_ax = axes[row]

        speed_ax.plot(t, module_data[f"{key}_target_speed"], "--", color=PLOT_SECONDARY, label="Target")
        speed_ax.plot(t, module_data[f"{key}_speed"], color=PLOT_PRIMARY, label="Measured")
        style_axis(speed_ax, title=f"{name} - Speed", ylabel="m/s")

        angle_ax.plot(t, np.degrees(module_data[f"{key}_target_angle"]), "--", color=PLOT_SECONDARY,
                      label="Target")
        angle_ax.plot(t, np.degrees(module_data[f"{key}_angle"]), color=PLOT_PRIMARY, label="Measured")
        style_axis(angle_ax, title=f"{name} - Angle", ylabel="deg")

        if row == 0:
            add_legend(speed_ax)
            add_legend(angle_ax)

    axes[-1][0].set_xlabel("Time (s)")
    axes[-1][1].set_xlabel("Time (s)")
    fig.suptitle(title, fontsize=14, fontweight="bold")
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path, dpi=150)

    return fig


def plot_run_summary(run_dir: Path, save_plots: bool = False, show_plots: bool = True) -> None:
    """Generate summary plots for a complete run.

    Args:
        run_dir: Directory containing pose.csv and modules.csv.
        save_plots: If True, save plots to run directory.
        show_plots: If True, display plots interactively.

    Raises:
        FileNotFoundError: If required CSV files are not found.
    """
    pose_data = load_csv_to_dict(run_dir / "pose.csv")
    module_data = load_csv_to_dict(run_dir / "modules.csv")
    run_name = run_dir.name

    figures = [
        plot_trajectory(
            pose_data,
            title=f"{run_name} - Trajectory",
            save_path=run_dir / "trajectory.png" if save_plots else None,
        ),
        plot_heading_and_velocity(
            pose_data,
            title=run_name,
            save_path=run_dir / "heading_velocity.png" if save_plots else None,
        ),
        plot_module_states(
            module_data,
            title=f"{run_name} - Modules",
            save_path=run_dir / "modules.png" if save_plots else None,
        ),
    ]

    if show_plots:
        plt.show()
    else:
        for fig in figures:
            plt.close(fig)
