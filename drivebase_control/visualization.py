"""
Visualization of drive base runs.

This module turns the CSV files written by DataCollector into figures:
- Trajectory: reference, fused estimate, ground truth and vision fixes in XY
- Errors: tracking error and estimation error over time
- Wheels: target vs measured wheel speeds and applied voltages
"""

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .plot_styles import (
    COLOR_BLUE,
    COLOR_CREAM,
    COLOR_ORANGE,
    COLOR_TAUPE,
    COLOR_YELLOW_ORANGE,
    TIME_CMAP,
    add_legend,
    create_figure,
    load_csv_to_dict,
    save_figure,
    style_axis,
)


def plot_trajectory(
    state: Dict[str, np.ndarray],
    reference: Dict[str, np.ndarray],
    vision: Optional[Dict[str, np.ndarray]] = None,
    title: str = "Trajectory",
) -> Figure:
    """Plot reference, estimated and true paths in the XY plane.

    Args:
        state: Columns of state_data.csv.
        reference: Columns of reference_data.csv.
        vision: Columns of vision_data.csv, if any measurements were logged.
        title: Plot title.

    Returns:
        Matplotlib figure object.
    """
    fig, ax = create_figure(figsize=(10, 8))

    ax.plot(
        reference["x_ref"],
        reference["y_ref"],
        "--",
        color=COLOR_YELLOW_ORANGE,
        linewidth=2.0,
        alpha=0.9,
        label="Reference",
        zorder=2,
    )

    true_valid = ~np.isnan(state["x_true"])
    if np.any(true_valid):
        ax.plot(
            state["x_true"][true_valid],
            state["y_true"][true_valid],
            "-",
            color=COLOR_BLUE,
            linewidth=1.5,
            alpha=0.8,
            label="Ground truth",
            zorder=3,
        )

    ax.plot(
        state["x_est"],
        state["y_est"],
        "-",
        color=COLOR_ORANGE,
        linewidth=1.5,
        alpha=0.8,
        label="Estimate",
        zorder=4,
    )

    if vision is not None and len(vision.get("x", [])) > 0:
        scatter = ax.scatter(
            vision["x"],
            vision["y"],
            c=vision["capture_timestamp"],
            cmap=TIME_CMAP,
            s=18,
            alpha=0.8,
            edgecolors="black",
            linewidths=0.5,
            label="Vision",
            zorder=5,
        )
        plt.colorbar(scatter, ax=ax, label="Capture time (s)")

    if len(state["x_est"]) > 0:
        ax.plot(
            state["x_est"][0],
            state["y_est"][0],
            "o",
            color=COLOR_CREAM,
            markersize=8,
            label="Start",
            zorder=6,
            markeredgecolor="black",
        )

    style_axis(ax, title=title, xlabel="X Position (m)", ylabel="Y Position (m)")
    ax.set_aspect("equal")
    add_legend(ax)
    fig.tight_layout()
    return fig


def plot_errors(tracking: Dict[str, np.ndarray], title: str = "Errors") -> Figure:
    """Plot tracking error and estimation error against time."""
    fig, (ax1, ax2) = create_figure(2, 1, figsize=(12, 8))
    t = tracking["timestamp"]

    ax1.plot(t, tracking["error_x"] * 1000.0, color=COLOR_ORANGE, alpha=0.8, label="X")
    ax1.plot(t, tracking["error_y"] * 1000.0, color=COLOR_BLUE, alpha=0.8, label="Y")
    ax1.plot(t, tracking["error_l2"] * 1000.0, color=COLOR_CREAM, alpha=0.8, label="L2")
    style_axis(ax1, title=f"{title} - Tracking", xlabel="Time (s)", ylabel="Error (mm)")
    add_legend(ax1)

    ax2.plot(
        t, tracking["estimation_error"] * 1000.0, color=COLOR_YELLOW_ORANGE, alpha=0.8, label="Estimate vs truth"
    )
    style_axis(ax2, title=f"{title} - Estimation", xlabel="Time (s)", ylabel="Error (mm)")
    add_legend(ax2)

    fig.tight_layout()
    return fig


def plot_wheels(motor: Dict[str, np.ndarray], title: str = "Wheels") -> Figure:
    """Plot wheel speed tracking and applied voltages for both sides."""
    fig, (ax1, ax2) = create_figure(2, 1, figsize=(12, 8))
    t = motor["timestamp"]

    ax1.plot(t, motor["target_left"], "--", color=COLOR_ORANGE, alpha=0.9, label="Left target")
    ax1.plot(t, motor["measured_left"], color=COLOR_ORANGE, alpha=0.6, label="Left measured")
    ax1.plot(t, motor["target_right"], "--", color=COLOR_BLUE, alpha=0.9, label="Right target")
    ax1.plot(t, motor["measured_right"], color=COLOR_BLUE, alpha=0.6, label="Right measured")
    style_axis(ax1, title=f"{title} - Speed", xlabel="Time (s)", ylabel="Speed (m/s)")
    add_legend(ax1)

    ax2.plot(t, motor["volts_left"], color=COLOR_ORANGE, alpha=0.8, label="Left")
    ax2.plot(t, motor["volts_right"], color=COLOR_BLUE, alpha=0.8, label="Right")
    ax2.plot(t, motor["ff_left"], ":", color=COLOR_TAUPE, alpha=0.8, label="Left feedforward")
    style_axis(ax2, title=f"{title} - Voltage", xlabel="Time (s)", ylabel="Voltage (V)")
    add_legend(ax2)

    fig.tight_layout()
    return fig


def plot_run_summary(run_dir: Path, save_plots: bool = False, show_plots: bool = True) -> Dict[str, Figure]:
    """Generate summary plots for a complete run.

    Args:
        run_dir: Directory written by DataCollector.
        save_plots: If True, save plots to run directory.
        show_plots: If True, display plots interactively.

    Returns:
        Figures keyed by name ("trajectory", "errors", "wheels").

    Raises:
        FileNotFoundError: If required CSV files are not found.
    """
    run_dir = Path(run_dir)
    state = load_csv_to_dict(run_dir / "state_data.csv")
    reference = load_csv_to_dict(run_dir / "reference_data.csv")
    tracking = load_csv_to_dict(run_dir / "tracking_metrics.csv")
    motor = load_csv_to_dict(run_dir / "motor_data.csv")

    vision_path = run_dir / "vision_data.csv"
    vision = load_csv_to_dict(vision_path) if vision_path.exists() else None

    run_name = run_dir.name
    figures = {
        "trajectory": plot_trajectory(state, reference, vision, title=f"{run_name} - Trajectory"),
        "errors": plot_errors(tracking, title=run_name),
        "wheels": plot_wheels(motor, title=run_name),
    }

    if save_plots:
        for name, fig in figures.items():
            save_figure(fig, run_dir / f"{name}.png")

    if show_plots:
        plt.show()

    return figures
