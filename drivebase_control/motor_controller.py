"""Wheel voltage control for the drivetrain.

This module turns wheel speed targets into motor voltages. It sits between the
trajectory follower (after inverse kinematics) and the motors:
- Feedforward from a static motor model supplies most of the voltage
- Per-wheel PID feedback corrects model mismatch and disturbances
- Output is clamped to the supply voltage
"""

import math
from typing import Dict, Optional

from .config import (
    BATTERY_VOLTAGE,
    DRIVE_KA_LINEAR,
    DRIVE_KS,
    DRIVE_KV_LINEAR,
    WHEEL_INTEGRAL_LIMIT,
    WHEEL_KD,
    WHEEL_KI,
    WHEEL_KP,
)
from .geometry import WheelSpeeds


class SimpleMotorFeedforward:
    """Static motor model: voltage = kS * sign(v) + kV * v + kA * a."""

    def __init__(self, ks: float = DRIVE_KS, kv: float = DRIVE_KV_LINEAR, ka: float = DRIVE_KA_LINEAR):
        """Initialize the feedforward model.

        Args:
            ks: Static friction voltage (V).
            kv: Voltage per unit velocity (V per m/s).
            ka: Voltage per unit acceleration (V per m/s²).

        Raises:
            ValueError: If kS or kA is negative, or kV is not positive.
        """
        if ks < 0.0 or ka < 0.0:
            raise ValueError(f"Feedforward gains must be non-negative, got kS={ks}, kA={ka}")
        if not kv > 0.0:
            raise ValueError(f"Velocity gain must be positive, got kV={kv}")
        self.ks = ks
        self.kv = kv
        self.ka = ka

    def calculate(self, velocity: float, acceleration: float = 0.0) -> float:
        """Voltage needed to hold ``velocity`` while accelerating at ``acceleration``."""
        sign = math.copysign(1.0, velocity) if velocity != 0.0 else 0.0
        return self.ks * sign + self.kv * velocity + self.ka * acceleration

    def max_achievable_velocity(self, max_voltage: float, acceleration: float = 0.0) -> float:
        """Highest steady velocity reachable with ``max_voltage`` (m/s)."""
        return (max_voltage - self.ks - self.ka * acceleration) / self.kv


class WheelVelocityController:
    """Feedforward + PID wheel velocity controller producing voltages.

    For each wheel:
        u = FF(v_target, a_target) + K_p * e + K_i * integral(e) + K_d * d(e)/dt

    where e = v_target - v_measured and a_target is the change in target
    speed over the last cycle.

    Attributes:
        feedforward: Static motor model shared by both sides.
        k_p: Proportional gain (V per m/s).
        k_i: Integral gain (V per m).
        k_d: Derivative gain (V per m/s²).
        max_voltage: Output clamp (V).
    """

    def __init__(
        self,
        feedforward: Optional[SimpleMotorFeedforward] = None,
        k_p: float = WHEEL_KP,
        k_i: float = WHEEL_KI,
        k_d: float = WHEEL_KD,
        max_voltage: float = BATTERY_VOLTAGE,
        integral_limit: float = WHEEL_INTEGRAL_LIMIT,
        disable_feedforward: bool = False,
        disable_feedback: bool = False,
    ):
        """Initialize the wheel controller.

        Args:
            feedforward: Motor model. Defaults to the configured characterization.
            k_p: Proportional gain on wheel speed error.
            k_i: Integral gain on wheel speed error.
            k_d: Derivative gain on wheel speed error.
            max_voltage: Symmetric output limit (V).
            integral_limit: Anti-windup clamp on the accumulated error (m).
            disable_feedforward: If True, omit the feedforward term.
            disable_feedback: If True, omit the PID terms.

        Raises:
            ValueError: If max_voltage is not positive.
        """
        if not max_voltage > 0.0:
            raise ValueError(f"Voltage limit must be positive, got {max_voltage}")

        self.feedforward = feedforward if feedforward is not None else SimpleMotorFeedforward()
        self.k_p = k_p
        self.k_i = k_i
        self.k_d = k_d
        self.max_voltage = max_voltage
        self.integral_limit = integral_limit
        self.disable_feedforward = disable_feedforward
        self.disable_feedback = disable_feedback

        # Integral state (accumulated error)
        self.integral_left: float = 0.0
        self.integral_right: float = 0.0

        # Previous error for derivative computation
        self.prev_err_left: float = 0.0
        self.prev_err_right: float = 0.0

        # Previous target for acceleration feedforward
        self.prev_target: Optional[WheelSpeeds] = None

        self._last: Dict[str, float] = {}

    def calculate(self, target: WheelSpeeds, measured: WheelSpeeds, dt: float) -> WheelSpeeds:
        """Compute wheel voltages for one control cycle.

        Args:
            target: Desired wheel speeds (m/s).
            measured: Measured wheel speeds (m/s).
            dt: Time since the previous call (seconds).

        Returns:
            WheelSpeeds holding left/right voltages (V), clamped to ±max_voltage.
        """
        if self.prev_target is not None and dt > 0:
            accel_left = (target.left - self.prev_target.left) / dt
            accel_right = (target.right - self.prev_target.right) / dt
        else:
            accel_left = 0.0
            accel_right = 0.0
        self.prev_target = target

        err_left = target.left - measured.left
        err_right = target.right - measured.right

        if dt > 0:
            d_left = (err_left - self.prev_err_left) / dt
            d_right = (err_right - self.prev_err_right) / dt
        else:
            d_left = 0.0
            d_right = 0.0
        self.prev_err_left = err_left
        self.prev_err_right = err_right

        # Accumulate integral with anti-windup
        limit = self.integral_limit
        self.integral_left = max(-limit, min(limit, self.integral_left + err_left * dt))
        self.integral_right = max(-limit, min(limit, self.integral_right + err_right * dt))

        ff_left = ff_right = 0.0
        if not self.disable_feedforward:
            ff_left = self.feedforward.calculate(target.left, accel_left)
            ff_right = self.feedforward.calculate(target.right, accel_right)

        fb_left = fb_right = 0.0
        if not self.disable_feedback:
            fb_left = self.k_p * err_left + self.k_i * self.integral_left + self.k_d * d_left
            fb_right = self.k_p * err_right + self.k_i * self.integral_right + self.k_d * d_right

        volts = WheelSpeeds(
            left=max(-self.max_voltage, min(self.max_voltage, ff_left + fb_left)),
            right=max(-self.max_voltage, min(self.max_voltage, ff_right + fb_right)),
        )

        self._last = {
            "target_left": target.left,
            "target_right": target.right,
            "measured_left": measured.left,
            "measured_right": measured.right,
            "ff_left": ff_left,
            "ff_right": ff_right,
            "fb_left": fb_left,
            "fb_right": fb_right,
            "volts_left": volts.left,
            "volts_right": volts.right,
        }
        return volts

    def reset(self) -> None:
        """Reset integral, derivative and acceleration state.

        Call this when starting a new trajectory so the previous run's history
        does not leak into the first command.
        """
        self.integral_left = 0.0
        self.integral_right = 0.0
        self.prev_err_left = 0.0
        self.prev_err_right = 0.0
        self.prev_target = None

    def get_diagnostics(self) -> Dict[str, float]:
        """Targets, measurements and per-term voltages from the last calculate()."""
        return dict(self._last)


class SlewRateLimiter:
    """Limits how fast a signal may change, in units per second."""

    def __init__(self, rate_limit: float, initial_value: float = 0.0):
        if not rate_limit > 0.0:
            raise ValueError(f"Rate limit must be positive, got {rate_limit}")
        self.rate_limit = rate_limit
        self.value = initial_value

    def calculate(self, target: float, dt: float) -> float:
        max_step = self.rate_limit * max(dt, 0.0)
        self.value += max(-max_step, min(max_step, target - self.value))
        return self.value

    def reset(self, value: float = 0.0) -> None:
        self.value = value
