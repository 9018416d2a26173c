"""Shared plotting utilities and styles for drive base visualizations.

This module provides:
- Color scheme and colormap
- CSV data loading into numpy arrays
- Common plot styling functions

All visualization modules should import from this module to ensure consistency.
"""

import csv
from pathlib import Path
from typing import Dict, List, Tuple

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.colors import LinearSegmentedColormap

from .config import (
    COLOR_BLUE,
    COLOR_CREAM,
    COLOR_DARK_BLUE,
    COLOR_ORANGE,
    COLOR_TAUPE,
    COLOR_YELLOW_ORANGE,
)

__all__ = [
    "COLOR_ORANGE",
    "COLOR_BLUE",
    "COLOR_CREAM",
    "COLOR_TAUPE",
    "COLOR_YELLOW_ORANGE",
    "COLOR_DARK_BLUE",
    "TIME_CMAP",
    "load_csv_to_dict",
    "style_axis",
    "add_legend",
    "create_figure",
    "save_figure",
]

TIME_CMAP = LinearSegmentedColormap.from_list("drivebase_time", [COLOR_ORANGE, COLOR_BLUE])
"""Colormap for time-coded scatter plots, orange (start) to blue (end)."""


# ============================================================================
# CSV Data Loading
# ============================================================================


def load_csv_to_dict(csv_path: Path) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Automatically converts numeric values to floats. Non-numeric or empty
    values become NaN.

    Args:
        csv_path: Path to CSV file.

    Returns:
        Dictionary mapping column names to numpy arrays. Columns of a file
        with a header but no rows map to empty arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.

    Example:
        >>> data = load_csv_to_dict(Path("state_data.csv"))
        >>> data["x_est"].shape
        (1000,)
    """
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        data: Dict[str, List[float]] = {key: [] for key in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                try:
                    data[key].append(float(value))
                except (ValueError, TypeError):
                    data[key].append(np.nan)

    return {key: np.array(values) for key, values in data.items()}


# ============================================================================
# Plot Styling Functions
# ============================================================================


def style_axis(
    ax: Axes,
    title: str = "",
    xlabel: str = "",
    ylabel: str = "",
    grid: bool = True,
    dark_mode: bool = True,
) -> None:
    """Apply consistent styling to a matplotlib axis.

    Args:
        ax: Matplotlib axis to style.
        title: Plot title (optional).
        xlabel: X-axis label (optional).
        ylabel: Y-axis label (optional).
        grid: Whether to show grid lines (default: True).
        dark_mode: Whether to use dark mode styling (default: True).
    """
    text_color = COLOR_CREAM if dark_mode else None
    if title:
        ax.set_title(title, fontweight="bold", color=text_color)
    if xlabel:
        ax.set_xlabel(xlabel, color=text_color)
    if ylabel:
        ax.set_ylabel(ylabel, color=text_color)

    if grid:
        ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5)

    if dark_mode:
        ax.set_facecolor(COLOR_DARK_BLUE)
        ax.tick_params(colors=COLOR_CREAM, which="both")
        for spine in ax.spines.values():
            spine.set_edgecolor(COLOR_TAUPE)


def add_legend(ax: Axes, loc: str = "best", dark_mode: bool = True, **kwargs) -> None:
    """Add a legend styled to match the figure.

    Args:
        ax: Matplotlib axis to add legend to.
        loc: Legend location (default: "best").
        dark_mode: Whether to use dark mode styling (default: True).
        **kwargs: Additional keyword arguments passed to ax.legend().
    """
    legend_kwargs = {
        "loc": loc,
        "framealpha": 0.9,
        "edgecolor": COLOR_TAUPE,
    }
    if dark_mode:
        legend_kwargs["facecolor"] = COLOR_DARK_BLUE
        legend_kwargs["labelcolor"] = COLOR_CREAM

    legend_kwargs.update(kwargs)
    ax.legend(**legend_kwargs)


# ============================================================================
# Figure Creation Helpers
# ============================================================================


def create_figure(
    nrows: int = 1,
    ncols: int = 1,
    figsize: Tuple[float, float] = (12, 8),
    dark_mode: bool = True,
    title: str = "",
):
    """Create a figure and axes grid with the shared styling.

    Returns:
        Tuple of (figure, axes) as returned by plt.subplots().
    """
    facecolor = COLOR_DARK_BLUE if dark_mode else None
    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, facecolor=facecolor)
    if title:
        fig.suptitle(title, fontsize=14, fontweight="bold", color=COLOR_CREAM if dark_mode else None)
    return fig, axes


def save_figure(
    fig: plt.Figure, filepath: Path, dpi: int = 150, bbox_inches: str = "tight"
) -> None:
    """Save figure with consistent settings."""
    fig.savefig(filepath, dpi=dpi, bbox_inches=bbox_inches, facecolor=fig.get_facecolor())
    print(f"Saved figure to {filepath}")
