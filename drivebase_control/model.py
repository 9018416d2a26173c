"""
Differential drive kinematic model.

This module converts between individual wheel speeds and chassis velocity
for a differential drive robot with a fixed track width.
"""

from .config import TRACK_WIDTH
from .geometry import ChassisVelocity, Twist, WheelSpeeds


class KinematicsModel:
    """Forward and inverse kinematics for a differential drive.

    For a differential drive robot, the relationship between the robot's
    linear velocity (v), angular velocity (omega), and the individual
    wheel velocities is:
        v_left = v - (L/2) * omega
        v_right = v + (L/2) * omega

    where L is the track width (distance between wheels).

    Attributes:
        track_width: Distance between left and right wheels (meters).
    """

    def __init__(self, track_width: float = TRACK_WIDTH):
        """Initialize the kinematics model.

        Args:
            track_width: Distance between left and right wheels (meters).

        Raises:
            ValueError: If track_width is not positive.
        """
        if not track_width > 0.0:
            raise ValueError(f"Track width must be positive, got {track_width}")
        self.track_width = float(track_width)

    def to_chassis_velocity(self, wheel_speeds: WheelSpeeds) -> ChassisVelocity:
        """Compute chassis velocity from wheel speeds.

        Args:
            wheel_speeds: Left and right wheel speeds (m/s).

        Returns:
            ChassisVelocity with linear (m/s) and angular (rad/s) components.
        """
        return ChassisVelocity(
            linear=(wheel_speeds.left + wheel_speeds.right) / 2.0,
            angular=(wheel_speeds.right - wheel_speeds.left) / self.track_width,
        )

    def to_wheel_speeds(self, chassis_velocity: ChassisVelocity) -> WheelSpeeds:
        """Compute wheel speeds from a desired chassis velocity.

        Args:
            chassis_velocity: Desired linear (m/s) and angular (rad/s) velocity.
                Positive angular velocity results in counter-clockwise rotation.

        Returns:
            WheelSpeeds (m/s). Not clamped; see desaturate().

        Example:
            >>> kinematics = KinematicsModel(0.5)
            >>> kinematics.to_wheel_speeds(ChassisVelocity(1.0, 0.5))
            WheelSpeeds(left=0.875, right=1.125)
        """
        half_track = self.track_width / 2.0
        return WheelSpeeds(
            left=chassis_velocity.linear - half_track * chassis_velocity.angular,
            right=chassis_velocity.linear + half_track * chassis_velocity.angular,
        )

    def to_twist(self, left_delta: float, right_delta: float) -> Twist:
        """Body-frame twist produced by the given wheel travel (meters)."""
        return Twist(
            dx=(left_delta + right_delta) / 2.0,
            dy=0.0,
            dtheta=(right_delta - left_delta) / self.track_width,
        )

    @staticmethod
    def desaturate(wheel_speeds: WheelSpeeds, max_speed: float) -> WheelSpeeds:
        """Scale both wheels down so neither exceeds max_speed.

        Unlike clamping each wheel independently, scaling keeps the ratio between
        the wheels and therefore the commanded curvature.

        Args:
            wheel_speeds: Requested wheel speeds.
            max_speed: Largest allowed magnitude for either wheel.

        Returns:
            Desaturated wheel speeds.
        """
        largest = max(abs(wheel_speeds.left), abs(wheel_speeds.right))
        if largest <= max_speed:
            return wheel_speeds
        scale = max_speed / largest
        return WheelSpeeds(wheel_speeds.left * scale, wheel_speeds.right * scale)
