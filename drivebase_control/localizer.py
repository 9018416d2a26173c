"""Localization module for drivetrain pose estimation.

This module fuses wheel odometry with latency-stamped vision poses:
- Odometry (every control cycle): wheel distance deltas integrated along the
  measured heading
- Vision (irregular, delayed): absolute pose corrections reconciled against
  where the robot was when the image was captured, not where it is now

The fusion is a deterministic correction transform, not a probabilistic filter.
A short history of odometry poses is kept so that a measurement taken 200 ms
ago is compared with the odometry pose from 200 ms ago. The rigid transform
between the two becomes the correction applied to every later odometry pose
until a newer measurement supersedes it.
"""

import bisect
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from .config import POSE_HISTORY_WINDOW_SECONDS, TRACK_WIDTH, VISION_CONFIDENCE_THRESHOLD
from .geometry import Pose, Twist, wrap_angle
from .model import KinematicsModel


@dataclass(frozen=True)
class OdometrySample:
    """Raw odometry reading: heading (rad) and cumulative wheel distances (m) since reset."""

    heading: float
    left_distance: float
    right_distance: float


class _Correction(NamedTuple):
    timestamp: float
    transform: Pose


class TimeInterpolatableBuffer:
    """Time-ordered pose history covering a fixed window.

    Samples must be added in non-decreasing time order (one per control cycle).
    Samples older than ``window`` seconds behind the newest one are evicted.
    """

    def __init__(self, window: float):
        if not window > 0.0:
            raise ValueError(f"History window must be positive, got {window}")
        self.window = window
        self._timestamps: List[float] = []
        self._poses: List[Pose] = []

    def __len__(self) -> int:
        return len(self._timestamps)

    @property
    def oldest_timestamp(self) -> Optional[float]:
        return self._timestamps[0] if self._timestamps else None

    @property
    def newest_timestamp(self) -> Optional[float]:
        return self._timestamps[-1] if self._timestamps else None

    def add_sample(self, timestamp: float, pose: Pose) -> None:
        """Append a sample and evict everything outside the window."""
        if self._timestamps and timestamp < self._timestamps[-1]:
            # Clock went backwards; history is no longer comparable
            logging.warning(
                f"Odometry timestamp {timestamp:.3f}s precedes buffered "
                f"{self._timestamps[-1]:.3f}s, clearing pose history"
            )
            self.clear()

        self._timestamps.append(timestamp)
        self._poses.append(pose)

        cutoff = timestamp - self.window
        evict = bisect.bisect_left(self._timestamps, cutoff)
        if evict:
            del self._timestamps[:evict]
            del self._poses[:evict]

    def sample(self, timestamp: float) -> Optional[Pose]:
        """Pose at ``timestamp``, interpolated between the bracketing samples.

        Args:
            timestamp: Query time (seconds).

        Returns:
            The interpolated pose, the newest pose if ``timestamp`` is ahead of
            the buffer, or None if the buffer is empty or ``timestamp`` predates
            the oldest sample.
        """
        if not self._timestamps or timestamp < self._timestamps[0]:
            return None
        if timestamp >= self._timestamps[-1]:
            return self._poses[-1]

        upper = bisect.bisect_right(self._timestamps, timestamp)
        lower = upper - 1
        t0 = self._timestamps[lower]
        t1 = self._timestamps[upper]
        if t1 == t0:
            return self._poses[lower]
        fraction = (timestamp - t0) / (t1 - t0)
        return self._poses[lower].interpolate(self._poses[upper], fraction)

    def clear(self) -> None:
        self._timestamps.clear()
        self._poses.clear()


class PoseEstimator:
    """Odometry + vision pose estimator using a latency-compensating correction.

    State:
        - Reference pose and reference odometry (heading offset and previous
          wheel distances) captured at the last reset
        - Odometry pose integrated from wheel travel since the reset
        - History buffer of (timestamp, odometry pose) samples
        - Correction transform from the newest accepted vision measurement

    Fused pose = correction · odometry pose, or the odometry pose itself when
    no measurement has been accepted since the last reset.

    update() runs on the control loop; add_vision_measurement() may be called
    from another thread. Shared state is guarded by a lock and the correction
    is replaced with a single assignment of an immutable value.
    """

    def __init__(
        self,
        kinematics: Optional[KinematicsModel] = None,
        initial_pose: Pose = Pose(),
        history_window: float = POSE_HISTORY_WINDOW_SECONDS,
        confidence_threshold: float = VISION_CONFIDENCE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the estimator.

        Args:
            kinematics: Drivetrain kinematics. Defaults to the configured track width.
            initial_pose: Pose reported until the first reset.
            history_window: Seconds of odometry history kept for vision latency
                compensation.
            confidence_threshold: Vision measurements with confidence below this
                are discarded. Range [0, 1].
            clock: Time source used when update() is called without a timestamp.

        Raises:
            ValueError: If confidence_threshold is outside [0, 1] or
                history_window is not positive.
        """
        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValueError(
                f"Confidence threshold must be in [0, 1], got {confidence_threshold}"
            )

        self.kinematics = kinematics if kinematics is not None else KinematicsModel(TRACK_WIDTH)
        self.confidence_threshold = confidence_threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._history = TimeInterpolatableBuffer(history_window)

        # Reference odometry
        self._heading_offset = initial_pose.heading
        self._prev_left = 0.0
        self._prev_right = 0.0

        self._odometry_pose = initial_pose
        self._estimated_pose = initial_pose
        self._correction: Optional[_Correction] = None

        # Diagnostics
        self.measurements_accepted = 0
        self.rejected_low_confidence = 0
        self.rejected_stale = 0
        self.rejected_out_of_order = 0

    def reset_pose(
        self,
        new_pose: Pose,
        heading: float = 0.0,
        left_distance: float = 0.0,
        right_distance: float = 0.0,
    ) -> None:
        """Reset the estimate to ``new_pose`` against the given raw sensor reading.

        The caller must reset (or read) the raw distance counters in the same
        step so that the next update() measures deltas from this baseline.

        Args:
            new_pose: Pose the robot is known to be at.
            heading: Current raw gyro heading (radians).
            left_distance: Current raw left wheel distance (meters).
            right_distance: Current raw right wheel distance (meters).
        """
        with self._lock:
            self._heading_offset = new_pose.heading - heading
            self._prev_left = left_distance
            self._prev_right = right_distance
            self._odometry_pose = new_pose
            self._estimated_pose = new_pose
            self._correction = None
            self._history.clear()
        logging.debug(
            f"Pose reset to ({new_pose.x:.3f}, {new_pose.y:.3f}, {new_pose.heading:.3f})"
        )

    def update(
        self,
        heading: float,
        left_distance: float,
        right_distance: float,
        timestamp: Optional[float] = None,
    ) -> Pose:
        """Integrate one odometry sample and return the fused pose.

        Args:
            heading: Raw gyro heading (radians, CCW positive).
            left_distance: Cumulative left wheel distance since reset (meters).
            right_distance: Cumulative right wheel distance since reset (meters).
            timestamp: Sample time (seconds). Defaults to the estimator clock.

        Returns:
            Current fused pose estimate.
        """
        if timestamp is None:
            timestamp = self._clock()

        with self._lock:
            delta_left = left_distance - self._prev_left
            delta_right = right_distance - self._prev_right
            self._prev_left = left_distance
            self._prev_right = right_distance

            # The gyro is trusted for heading; wheels only provide arc length
            angle = wrap_angle(heading + self._heading_offset)
            arc_length = self.kinematics.to_twist(delta_left, delta_right).dx
            moved = self._odometry_pose.exp(
                Twist(arc_length, 0.0, wrap_angle(angle - self._odometry_pose.heading))
            )
            self._odometry_pose = Pose(moved.x, moved.y, angle)

            self._history.add_sample(timestamp, self._odometry_pose)
            self._estimated_pose = self._apply_correction(self._odometry_pose)
            return self._estimated_pose

    def add_vision_measurement(self, pose: Pose, timestamp: float, confidence: float) -> bool:
        """Fold a latency-stamped vision pose into the estimate.

        Measurements are dropped (not an error) when the confidence is below the
        threshold, when the timestamp predates the buffered odometry history, or
        when a correction from a newer timestamp is already applied.

        Args:
            pose: Measured robot pose in the world frame.
            timestamp: Capture time, in the same time base as update() (seconds).
            confidence: Measurement confidence in [0, 1].

        Returns:
            True if the measurement replaced the current correction.
        """
        with self._lock:
            if confidence < self.confidence_threshold:
                self.rejected_low_confidence += 1
                logging.debug(
                    f"Vision measurement rejected: confidence {confidence:.2f} "
                    f"below threshold {self.confidence_threshold:.2f}"
                )
                return False

            current = self._correction
            if current is not None and timestamp <= current.timestamp:
                self.rejected_out_of_order += 1
                logging.debug(
                    f"Vision measurement at {timestamp:.3f}s ignored, "
                    f"correction from {current.timestamp:.3f}s already applied"
                )
                return False

            odometry_then = self._history.sample(timestamp)
            if odometry_then is None:
                self.rejected_stale += 1
                logging.debug(
                    f"Vision measurement at {timestamp:.3f}s is older than the "
                    f"odometry history (oldest {self._history.oldest_timestamp})"
                )
                return False

            self._correction = _Correction(timestamp, pose.compose(odometry_then.inverse()))
            self._estimated_pose = self._apply_correction(self._odometry_pose)
            self.measurements_accepted += 1
            return True

    def _apply_correction(self, odometry_pose: Pose) -> Pose:
        correction = self._correction
        if correction is None:
            return odometry_pose
        return correction.transform.compose(odometry_pose)

    def get_estimated_position(self) -> Pose:
        """Return the latest fused pose without recomputing it.

        Before any odometry sample this is the reset (or initial) pose.
        """
        return self._estimated_pose

    def get_odometry_pose(self) -> Pose:
        """Return the odometry-only pose (no vision correction)."""
        return self._odometry_pose

    def get_correction(self) -> Optional[Tuple[float, Pose]]:
        """Return (timestamp, transform) of the active correction, if any."""
        correction = self._correction
        if correction is None:
            return None
        return correction.timestamp, correction.transform

    def get_diagnostics(self) -> Dict[str, float]:
        """Get estimator diagnostic information for logging and tuning.

        Returns:
            Dictionary containing:
                - correction_x, correction_y, correction_heading: Active
                  correction transform (zeros if none)
                - correction_timestamp: Capture time of the active correction
                  (NaN if none)
                - history_size: Number of buffered odometry samples
                - measurements_accepted / rejected_* counters
        """
        correction = self._correction
        transform = correction.transform if correction is not None else Pose()
        return {
            "correction_x": transform.x,
            "correction_y": transform.y,
            "correction_heading": transform.heading,
            "correction_timestamp": correction.timestamp if correction is not None else float("nan"),
            "history_size": len(self._history),
            "measurements_accepted": self.measurements_accepted,
            "rejected_low_confidence": self.rejected_low_confidence,
            "rejected_stale": self.rejected_stale,
            "rejected_out_of_order": self.rejected_out_of_order,
        }
