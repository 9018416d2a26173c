"""Planar rigid-body geometry for drivetrain state.

This module provides the value types shared by every layer of the drive stack:
- Pose: position and heading in the world frame
- Twist: incremental body-frame motion, used for odometry integration
- ChassisVelocity / WheelSpeeds: body and per-wheel velocities

All poses are immutable and keep their heading wrapped to (-π, π].
"""

import math
from dataclasses import dataclass


def wrap_angle(angle: float) -> float:
    """Wrap an angle to the canonical range (-π, π].

    Angles already inside the range are returned untouched so that exact
    values (e.g. 0.0) survive a round trip bit-for-bit.

    Args:
        angle: Angle in radians.

    Returns:
        Equivalent angle in (-π, π].
    """
    if -math.pi < angle <= math.pi:
        return angle
    wrapped = math.fmod(angle + math.pi, 2.0 * math.pi)
    if wrapped <= 0.0:
        wrapped += 2.0 * math.pi
    return wrapped - math.pi


@dataclass(frozen=True)
class Twist:
    """Body-frame displacement along a constant-curvature arc."""

    dx: float = 0.0
    dy: float = 0.0
    dtheta: float = 0.0

    def scaled(self, factor: float) -> "Twist":
        return Twist(self.dx * factor, self.dy * factor, self.dtheta * factor)


@dataclass(frozen=True)
class Pose:
    """2D pose: x, y in meters and heading in radians (CCW positive).

    Poses double as rigid transforms. ``a.compose(b)`` applies ``b`` expressed
    in the frame of ``a``; ``b.relative_to(a)`` is ``a⁻¹ · b``, i.e. ``b`` seen
    from ``a``.
    """

    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "heading", wrap_angle(self.heading))

    def compose(self, other: "Pose") -> "Pose":
        """Return the rigid-transform product ``self · other``."""
        cos_h = math.cos(self.heading)
        sin_h = math.sin(self.heading)
        return Pose(
            self.x + cos_h * other.x - sin_h * other.y,
            self.y + sin_h * other.x + cos_h * other.y,
            self.heading + other.heading,
        )

    def inverse(self) -> "Pose":
        """Return the transform that undoes this one."""
        cos_h = math.cos(self.heading)
        sin_h = math.sin(self.heading)
        return Pose(
            -cos_h * self.x - sin_h * self.y,
            sin_h * self.x - cos_h * self.y,
            -self.heading,
        )

    def relative_to(self, other: "Pose") -> "Pose":
        """Express this pose in the frame of ``other`` (``other⁻¹ · self``)."""
        return other.inverse().compose(self)

    def exp(self, twist: Twist) -> "Pose":
        """Move along a constant-curvature arc described by ``twist``.

        Args:
            twist: Body-frame change in pose.

        Returns:
            New pose after applying the twist from this pose.
        """
        dtheta = twist.dtheta
        sin_theta = math.sin(dtheta)
        cos_theta = math.cos(dtheta)

        # Taylor expansion near zero avoids 0/0
        if abs(dtheta) < 1e-9:
            s = 1.0 - dtheta * dtheta / 6.0
            c = 0.5 * dtheta
        else:
            s = sin_theta / dtheta
            c = (1.0 - cos_theta) / dtheta

        transform = Pose(
            twist.dx * s - twist.dy * c,
            twist.dx * c + twist.dy * s,
            dtheta,
        )
        return self.compose(transform)

    def log(self, end: "Pose") -> Twist:
        """Return the twist that carries this pose onto ``end``."""
        transform = end.relative_to(self)
        dtheta = transform.heading
        half_dtheta = dtheta / 2.0
        cos_minus_one = math.cos(dtheta) - 1.0

        if abs(cos_minus_one) < 1e-9:
            half_theta_by_tan = 1.0 - dtheta * dtheta / 12.0
        else:
            half_theta_by_tan = -(half_dtheta * math.sin(dtheta)) / cos_minus_one

        # Rotate the translation by atan2(-half_dtheta, half_theta_by_tan) and scale
        norm = math.hypot(half_theta_by_tan, half_dtheta)
        cos_r = half_theta_by_tan / norm
        sin_r = -half_dtheta / norm
        dx = (transform.x * cos_r - transform.y * sin_r) * norm
        dy = (transform.x * sin_r + transform.y * cos_r) * norm
        return Twist(dx, dy, dtheta)

    def interpolate(self, end: "Pose", t: float) -> "Pose":
        """Interpolate along the constant-curvature arc towards ``end``.

        Args:
            end: Pose reached at ``t = 1``.
            t: Interpolation fraction, clamped to [0, 1].
        """
        if t <= 0.0:
            return self
        if t >= 1.0:
            return end
        return self.exp(self.log(end).scaled(t))

    def distance_to(self, other: "Pose") -> float:
        """Euclidean distance between the two positions (meters)."""
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True)
class ChassisVelocity:
    """Instantaneous body velocity: linear (m/s) and angular (rad/s, CCW positive)."""

    linear: float = 0.0
    angular: float = 0.0


@dataclass(frozen=True)
class WheelSpeeds:
    """Per-side wheel quantity: speeds in m/s or voltages in V depending on context."""

    left: float = 0.0
    right: float = 0.0
