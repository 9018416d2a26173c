"""Ramsete trajectory follower for drivetrain control.

This module implements the Ramsete nonlinear tracking controller, which:
- Expresses the pose error in the robot frame
- Scales its feedback gain with the reference velocities
- Produces a chassis velocity command whose tracking error converges to zero
  for any reference with bounded velocity and curvature (b > 0, 0 < zeta < 1)

The controller is stateless between cycles: a bad reference sample produces one
bad command and the next cycle corrects from fresh pose feedback.
"""

import math
from typing import Optional

from .config import (
    RAMSETE_B,
    RAMSETE_ZETA,
    TRACKING_TOLERANCE_HEADING,
    TRACKING_TOLERANCE_X,
    TRACKING_TOLERANCE_Y,
)
from .geometry import ChassisVelocity, Pose, WheelSpeeds
from .model import KinematicsModel
from .path import TrajectoryState


def sinc(x: float) -> float:
    """sin(x)/x with the limiting value 1 at x = 0."""
    if abs(x) < 1e-9:
        return 1.0 - x * x / 6.0
    return math.sin(x) / x


class RamseteFollower:
    """Ramsete path follower using the fused pose estimate.

    Control law, with (e_x, e_y, e_theta) the reference pose seen from the robot:
        k = 2 * zeta * sqrt(omega_ref² + b * v_ref²)
        v = v_ref * cos(e_theta) + k * e_x
        omega = omega_ref + k * e_theta + b * v_ref * sinc(e_theta) * e_y

    Attributes:
        b: Convergence gain (> 0). Larger is more aggressive.
        zeta: Damping ratio in (0, 1). Larger adds damping.
        enabled: If False, the reference velocities pass straight through.
    """

    def __init__(
        self,
        b: float = RAMSETE_B,
        zeta: float = RAMSETE_ZETA,
        kinematics: Optional[KinematicsModel] = None,
        tolerance: Pose = Pose(TRACKING_TOLERANCE_X, TRACKING_TOLERANCE_Y, TRACKING_TOLERANCE_HEADING),
        enabled: bool = True,
    ):
        """Initialize the Ramsete controller.

        Args:
            b: Convergence gain (rad²/m²). Must be positive.
            zeta: Damping ratio. Must be in (0, 1).
            kinematics: Kinematics used by compute_wheel_speeds().
            tolerance: Per-axis pose error tolerated by at_reference().
            enabled: If False, output the reference velocities without feedback.

        Raises:
            ValueError: If b or zeta are out of range.
        """
        if not b > 0.0:
            raise ValueError(f"Ramsete b must be positive, got {b}")
        if not 0.0 < zeta < 1.0:
            raise ValueError(f"Ramsete zeta must be in (0, 1), got {zeta}")

        self.b = b
        self.zeta = zeta
        self.kinematics = kinematics if kinematics is not None else KinematicsModel()
        self.tolerance = tolerance
        self.enabled = enabled
        self.pose_error = Pose()

    def compute_command(self, current_pose: Pose, reference: TrajectoryState) -> ChassisVelocity:
        """Compute the chassis velocity command for one control cycle.

        Args:
            current_pose: Current fused pose estimate.
            reference: Reference trajectory state for this instant.

        Returns:
            ChassisVelocity command (m/s, rad/s).
        """
        v_ref = reference.velocity
        omega_ref = reference.angular_velocity

        # Reference pose expressed in the robot frame
        self.pose_error = reference.pose.relative_to(current_pose)

        if not self.enabled:
            return ChassisVelocity(v_ref, omega_ref)

        e_x = self.pose_error.x
        e_y = self.pose_error.y
        e_theta = self.pose_error.heading

        k = 2.0 * self.zeta * math.sqrt(omega_ref**2 + self.b * v_ref**2)

        return ChassisVelocity(
            linear=v_ref * math.cos(e_theta) + k * e_x,
            angular=omega_ref + k * e_theta + self.b * v_ref * sinc(e_theta) * e_y,
        )

    def compute_wheel_speeds(self, current_pose: Pose, reference: TrajectoryState) -> WheelSpeeds:
        """compute_command() converted to left/right wheel speeds (m/s)."""
        return self.kinematics.to_wheel_speeds(self.compute_command(current_pose, reference))

    def at_reference(self) -> bool:
        """Whether the last computed pose error is within tolerance."""
        return (
            abs(self.pose_error.x) < self.tolerance.x
            and abs(self.pose_error.y) < self.tolerance.y
            and abs(self.pose_error.heading) < self.tolerance.heading
        )
