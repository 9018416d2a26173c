"""Reference trajectories for the drivetrain tracker.

This module defines the trajectory types the tracker consumes and an analytic
reference path:
- TrajectoryState: one time-stamped sample (pose, curvature, velocity, acceleration)
- Trajectory: a read-only, strictly time-ordered sequence with interpolated sampling
- lemniscate_trajectory: the Lemniscate of Gerono figure-eight used by the
  simulation runner

Trajectories for real runs are produced elsewhere and loaded with
Trajectory.from_csv().
"""

import bisect
import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Sequence, Union

import numpy as np

from .config import PATH_DT, PATH_DURATION
from .geometry import Pose

CSV_COLUMNS = ["timestamp", "x", "y", "heading", "curvature", "velocity", "acceleration"]


@dataclass(frozen=True)
class TrajectoryState:
    """One sample of a reference trajectory.

    Attributes:
        timestamp: Time since the start of the trajectory (seconds).
        pose: Reference pose.
        curvature: Path curvature (rad/m, positive turns left).
        velocity: Reference linear velocity (m/s).
        acceleration: Reference linear acceleration (m/s²).
    """

    timestamp: float
    pose: Pose
    curvature: float = 0.0
    velocity: float = 0.0
    acceleration: float = 0.0

    @property
    def angular_velocity(self) -> float:
        """Reference angular velocity implied by velocity and curvature (rad/s)."""
        return self.velocity * self.curvature


class Trajectory:
    """Finite, strictly time-ordered sequence of trajectory states.

    The sequence is fixed at construction; the tracker only ever reads it.
    """

    def __init__(self, states: Sequence[TrajectoryState]):
        """Initialize the trajectory.

        Args:
            states: Trajectory states in strictly increasing timestamp order.

        Raises:
            ValueError: If states is empty or timestamps are not strictly increasing.
        """
        if not states:
            raise ValueError("Trajectory needs at least one state")
        for previous, current in zip(states, states[1:]):
            if current.timestamp <= previous.timestamp:
                raise ValueError(
                    f"Trajectory timestamps must be strictly increasing: "
                    f"{previous.timestamp} followed by {current.timestamp}"
                )
        self._states = tuple(states)
        self._timestamps = [state.timestamp for state in self._states]

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[TrajectoryState]:
        return iter(self._states)

    @property
    def states(self) -> tuple:
        return self._states

    @property
    def total_time(self) -> float:
        """Timestamp of the final state (seconds)."""
        return self._states[-1].timestamp

    @property
    def initial_pose(self) -> Pose:
        return self._states[0].pose

    def sample(self, t: float) -> TrajectoryState:
        """Reference state at time ``t``.

        Times before the first state or after the last one return the end
        states. In between, scalars are interpolated linearly and the pose along
        the connecting arc.

        Args:
            t: Time since the start of the trajectory (seconds).

        Returns:
            Interpolated TrajectoryState stamped with ``t`` (end states keep
            their own timestamps).
        """
        if t <= self._timestamps[0]:
            return self._states[0]
        if t >= self._timestamps[-1]:
            return self._states[-1]

        upper = bisect.bisect_right(self._timestamps, t)
        before = self._states[upper - 1]
        after = self._states[upper]
        fraction = (t - before.timestamp) / (after.timestamp - before.timestamp)

        def lerp(a: float, b: float) -> float:
            return a + (b - a) * fraction

        return TrajectoryState(
            timestamp=t,
            pose=before.pose.interpolate(after.pose, fraction),
            curvature=lerp(before.curvature, after.curvature),
            velocity=lerp(before.velocity, after.velocity),
            acceleration=lerp(before.acceleration, after.acceleration),
        )

    @classmethod
    def from_csv(cls, filepath: Union[str, Path]) -> "Trajectory":
        """Load a trajectory written by an external generator.

        Expected columns: timestamp, x, y, heading, curvature, velocity,
        acceleration (heading in radians).

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If a column is missing, a value is not numeric, or the
                timestamps are not strictly increasing.
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Trajectory file not found: {filepath}")

        states: List[TrajectoryState] = []
        with open(filepath, newline="") as f:
            reader = csv.DictReader(f)
            missing = set(CSV_COLUMNS) - set(reader.fieldnames or [])
            if missing:
                raise ValueError(f"Trajectory CSV missing columns: {sorted(missing)}")
            for row in reader:
                states.append(
                    TrajectoryState(
                        timestamp=float(row["timestamp"]),
                        pose=Pose(float(row["x"]), float(row["y"]), float(row["heading"])),
                        curvature=float(row["curvature"]),
                        velocity=float(row["velocity"]),
                        acceleration=float(row["acceleration"]),
                    )
                )
        return cls(states)

    def to_csv(self, filepath: Union[str, Path]) -> None:
        """Write the trajectory in the format read by from_csv()."""
        with open(filepath, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_COLUMNS)
            for state in self._states:
                writer.writerow(
                    [
                        state.timestamp,
                        state.pose.x,
                        state.pose.y,
                        state.pose.heading,
                        state.curvature,
                        state.velocity,
                        state.acceleration,
                    ]
                )


def lemniscate_trajectory(
    duration: float = PATH_DURATION, dt: float = PATH_DT, scale: float = 2.0
) -> Trajectory:
    """Sample the Lemniscate of Gerono as a time-parameterized trajectory.

    The curve is defined by:
        x = -scale * sin(k) * cos(k)
        y = scale * (sin(k) + 1)

    with k = 2π t / duration - π/2, so one full figure-eight takes ``duration``
    seconds. The path starts at the origin heading along +x.

    Args:
        duration: Time to complete the figure-eight (seconds).
        dt: Spacing between states (seconds).
        scale: Size of the figure-eight (meters).

    Returns:
        Trajectory with analytic heading, curvature, velocity and acceleration.
    """
    if not duration > 0.0 or not dt > 0.0:
        raise ValueError(f"duration and dt must be positive, got {duration}, {dt}")

    dk_dt = 2.0 * np.pi / duration
    t_array = np.arange(0.0, duration + dt / 2.0, dt)

    states = []
    for t in t_array:
        k = dk_dt * t - np.pi / 2.0

        # Derivatives with respect to the path parameter k
        x_k = -scale * np.cos(2.0 * k)
        y_k = scale * np.cos(k)
        x_kk = 2.0 * scale * np.sin(2.0 * k)
        y_kk = -scale * np.sin(k)

        speed_k = np.hypot(x_k, y_k)
        states.append(
            TrajectoryState(
                timestamp=float(t),
                pose=Pose(
                    float(-scale * np.sin(k) * np.cos(k)),
                    float(scale * (np.sin(k) + 1.0)),
                    float(np.arctan2(y_k, x_k)),
                ),
                curvature=float((x_k * y_kk - y_k * x_kk) / speed_k**3),
                velocity=float(dk_dt * speed_k),
                acceleration=float(dk_dt**2 * (x_k * x_kk + y_k * y_kk) / speed_k),
            )
        )

    return Trajectory(states)
