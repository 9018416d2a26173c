"""Data collection and CSV logging for drive base runs.

This module provides CSV data logging for:
- Pose estimates (fused, odometry-only, ground truth when simulated)
- Reference trajectory (what the tracker was asked to follow)
- Wheel controller diagnostics (targets, measurements, voltage terms)
- Vision measurements (capture time, pose, confidence, accepted or not)
- Tracking metrics (reference error, estimation error, running averages)
- Run summary (final metrics as plain text)
"""

import csv
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple

from .config import TERM_BLUE, TERM_RESET
from .geometry import Pose, WheelSpeeds
from .path import TrajectoryState
from .vision import VisionMeasurement

STATE_COLUMNS = [
    "timestamp",
    "x_est",
    "y_est",
    "heading_est",
    "x_odom",
    "y_odom",
    "heading_odom",
    "x_true",
    "y_true",
    "heading_true",
    "current_draw",
]
REFERENCE_COLUMNS = ["timestamp", "x_ref", "y_ref", "heading_ref", "v_ref", "omega_ref", "a_ref"]
MOTOR_COLUMNS = [
    "timestamp",
    "target_left",
    "target_right",
    "measured_left",
    "measured_right",
    "ff_left",
    "ff_right",
    "fb_left",
    "fb_right",
    "volts_left",
    "volts_right",
]
VISION_COLUMNS = ["timestamp", "capture_timestamp", "x", "y", "heading", "confidence", "accepted"]
TRACKING_COLUMNS = [
    "timestamp",
    "error_x",
    "error_y",
    "error_l2",
    "estimation_error",
    "cumulative_l2_error",
    "sample_count",
    "avg_sample_error_mm",
]


class DataCollector:
    """Manages CSV file creation and logging for drive base runs.

    This class handles all data logging responsibilities:
    - Creates timestamped output directories
    - Initializes CSV files with headers
    - Writes estimation, reference, control and vision data
    - Ensures proper cleanup on shutdown

    Attributes:
        run_dir: Directory path for this run's output files.
        state_output_path: Pose estimates CSV.
        reference_output_path: Reference trajectory CSV.
        motor_output_path: Wheel controller CSV.
        vision_output_path: Vision measurements CSV.
        tracking_output_path: Tracking metrics CSV.
        summary_output_path: Final metrics text file.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the data collector.

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

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # Create timestamped directory: results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.state_output_path: Path = self.run_dir / "state_data.csv"
        self.reference_output_path: Path = self.run_dir / "reference_data.csv"
        self.motor_output_path: Path = self.run_dir / "motor_data.csv"
        self.vision_output_path: Path = self.run_dir / "vision_data.csv"
        self.tracking_output_path: Path = self.run_dir / "tracking_metrics.csv"
        self.summary_output_path: Path = self.run_dir / "summary.txt"

        # name -> (file handle, csv writer)
        self._files: Dict[str, Tuple[TextIO, Any]] = {}

    def setup(self) -> None:
        """Initialize CSV files with headers.

        Creates and opens all CSV files with appropriate column headers.
        Must be called before writing data.
        """
        for name, path, columns in (
            ("state", self.state_output_path, STATE_COLUMNS),
            ("reference", self.reference_output_path, REFERENCE_COLUMNS),
            ("motor", self.motor_output_path, MOTOR_COLUMNS),
            ("vision", self.vision_output_path, VISION_COLUMNS),
            ("tracking", self.tracking_output_path, TRACKING_COLUMNS),
        ):
            handle = open(path, "w", newline="")
            writer = csv.writer(handle)
            writer.writerow(columns)
            handle.flush()
            self._files[name] = (handle, writer)

        print(
            f"{TERM_BLUE}✓ Initialized data collection to results/{self.run_dir.name}/{TERM_RESET}"
        )

    def _write(self, name: str, row: List[Any]) -> None:
        entry = self._files.get(name)
        if entry is None:
            raise RuntimeError(f"DataCollector.setup() must be called before logging {name} data")
        handle, writer = entry
        writer.writerow(row)
        handle.flush()

    def log_state(
        self,
        timestamp: float,
        estimated: Pose,
        odometry: Pose,
        true_pose: Optional[Pose] = None,
        current_draw: float = 0.0,
    ) -> None:
        """Log pose estimates to CSV.

        Args:
            timestamp: Current time (seconds).
            estimated: Fused pose estimate.
            odometry: Odometry-only pose.
            true_pose: Ground-truth pose, if known (simulation). Empty cells otherwise.
            current_draw: Total drivetrain current (A).
        """
        truth = [true_pose.x, true_pose.y, true_pose.heading] if true_pose is not None else ["", "", ""]
        self._write(
            "state",
            [
                timestamp,
                estimated.x,
                estimated.y,
                estimated.heading,
                odometry.x,
                odometry.y,
                odometry.heading,
                *truth,
                current_draw,
            ],
        )

    def log_reference(self, timestamp: float, reference: TrajectoryState) -> None:
        """Log the reference state followed at ``timestamp``."""
        self._write(
            "reference",
            [
                timestamp,
                reference.pose.x,
                reference.pose.y,
                reference.pose.heading,
                reference.velocity,
                reference.angular_velocity,
                reference.acceleration,
            ],
        )

    def log_motor_diagnostics(self, timestamp: float, diagnostics: Dict[str, float]) -> None:
        """Log wheel controller diagnostics to CSV.

        Args:
            timestamp: Current time (seconds).
            diagnostics: Output of WheelVelocityController.get_diagnostics(). Keys
                missing (e.g. before the first cycle) are written as empty cells.
        """
        self._write("motor", [timestamp] + [diagnostics.get(key, "") for key in MOTOR_COLUMNS[1:]])

    def log_vision(self, timestamp: float, measurement: VisionMeasurement, accepted: bool) -> None:
        """Log a vision measurement and whether the estimator applied it."""
        self._write(
            "vision",
            [
                timestamp,
                measurement.timestamp,
                measurement.pose.x,
                measurement.pose.y,
                measurement.pose.heading,
                measurement.confidence,
                int(accepted),
            ],
        )

    def log_tracking_metrics(
        self,
        timestamp: float,
        error_x: float,
        error_y: float,
        error_l2: float,
        estimation_error: float,
        cumulative_l2_error: float,
        sample_count: int,
        avg_sample_error_mm: float,
    ) -> None:
        """Log tracking error metrics to CSV.

        Args:
            timestamp: Current time (seconds).
            error_x: Reference minus estimate, x (meters).
            error_y: Reference minus estimate, y (meters).
            error_l2: L2 norm of the tracking error (meters).
            estimation_error: Distance between estimate and ground truth (meters,
                NaN when no ground truth is available).
            cumulative_l2_error: Running sum of L2 errors (meters).
            sample_count: Number of samples so far.
            avg_sample_error_mm: Average error per sample (millimeters).
        """
        self._write(
            "tracking",
            [
                timestamp,
                error_x,
                error_y,
                error_l2,
                estimation_error,
                cumulative_l2_error,
                sample_count,
                avg_sample_error_mm,
            ],
        )

    def log_summary(self, metrics: Dict[str, float]) -> None:
        """Write final run metrics as ``key: value`` lines."""
        with open(self.summary_output_path, "w") as f:
            for key, value in metrics.items():
                f.write(f"{key}: {value:.6f}\n" if isinstance(value, float) else f"{key}: {value}\n")
        print(f"{TERM_BLUE}✓ Saved run summary to {self.summary_output_path.name}{TERM_RESET}")

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        for handle, _ in self._files.values():
            handle.close()
        self._files.clear()

        print(f"{TERM_BLUE}✓ Saved run data to results/{self.run_dir.name}/{TERM_RESET}")

    def __enter__(self) -> "DataCollector":
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()


def read_summary(run_dir: Path) -> Dict[str, str]:
    """Read a run's summary.txt back into a dict (values left as strings)."""
    summary: Dict[str, str] = {}
    path = Path(run_dir) / "summary.txt"
    if not path.exists():
        return summary
    with open(path) as f:
        for line in f:
            key, sep, value = line.partition(":")
            if sep:
                summary[key.strip()] = value.strip()
    return summary
