"""Configuration parameters for the drivebase control system.

This module centralizes all configuration parameters including:
- Physical drivetrain parameters
- Drivetrain plant and motor characterization
- Pose estimation and vision fusion parameters
- Trajectory tracking (Ramsete) and wheel voltage control gains
- Visualization and WebSocket settings

All parameters are documented with their purpose, units and tuning rationale.
"""

import math

# ============================================================================
# Physical Robot Parameters
# ============================================================================

INCHES_TO_METERS = 0.0254
"""Conversion factor from inches to meters."""

TRACK_WIDTH = 18.75 * INCHES_TO_METERS
"""Distance between left and right wheel contact patches (meters).
Fixed by chassis design (18.75 in)."""

WHEEL_RADIUS = 3.0 * INCHES_TO_METERS
"""Drive wheel radius (meters). 6 in diameter wheels."""

DRIVE_GEARING = 10.71
"""Motor rotations per wheel rotation (dimensionless, > 1 is a reduction)."""

ROBOT_MASS = 54.0
"""Robot mass including battery and bumpers (kg).
Only used when building the plant from physical parameters."""

ROBOT_MOI = 6.0
"""Robot moment of inertia about the vertical axis (kg·m²).
Only used when building the plant from physical parameters."""

MOTORS_PER_SIDE = 2
"""Number of drive motors ganged on each side of the drivetrain."""

BATTERY_VOLTAGE = 12.0
"""Nominal supply voltage (V). All voltage commands are clamped to ±this value."""


# ============================================================================
# Motor Model (Falcon 500 brushless)
# ============================================================================

MOTOR_NOMINAL_VOLTAGE = 12.0
"""Voltage at which the motor constants below were measured (V)."""

MOTOR_STALL_TORQUE = 4.69
"""Stall torque of a single motor (N·m)."""

MOTOR_STALL_CURRENT = 257.0
"""Stall current of a single motor (A)."""

MOTOR_FREE_CURRENT = 1.5
"""Free-running current of a single motor (A)."""

MOTOR_FREE_SPEED = 6380.0 * 2.0 * math.pi / 60.0
"""Free speed of a single motor (rad/s). 6380 RPM."""


# ============================================================================
# Drivetrain Characterization (feedforward + identified plant)
# ============================================================================

DRIVE_KS = 0.86841
"""Static friction feedforward gain (V).

Voltage required to overcome static friction before the wheels turn.
Obtained from drivetrain characterization.
"""

DRIVE_KV_LINEAR = 4.009
"""Linear velocity feedforward gain (V per m/s).

At 12 V the drivetrain free speed is therefore ~3.0 m/s.
"""

DRIVE_KA_LINEAR = 2.6045
"""Linear acceleration feedforward gain (V per m/s²)."""

DRIVE_KV_ANGULAR = 4.5
"""Angular velocity gain of the identified plant (V per m/s of wheel speed).

Slightly above the linear gain: turning scrubs the wheels sideways, so the
same wheel speed costs more voltage when the sides move in opposite
directions.
"""

DRIVE_KA_ANGULAR = 3.2
"""Angular acceleration gain of the identified plant (V per m/s² of wheel speed)."""

SIMULATION_MEASUREMENT_STD_DEVS = None
"""Optional readout noise for the simulator.

None disables noise. Otherwise a 5-tuple of standard deviations for
(left position m, left velocity m/s, right position m, right velocity m/s,
heading rad). Noise is drawn from a seeded generator so runs stay
reproducible.
"""

SIMULATION_SEED = 0
"""Seed for every random generator used by the simulation (noise, vision)."""


# ============================================================================
# Pose Estimation Parameters
# ============================================================================

POSE_HISTORY_WINDOW_SECONDS = 1.5
"""Length of the odometry history kept for latency compensation (seconds).

Vision measurements stamped earlier than the oldest buffered sample are
discarded because the odometry pose they would be reconciled against is gone.

Tuning rationale:
- Vision pipeline latency is typically 50-250 ms
- 1.5 s covers network hiccups with a wide margin
- At 50 Hz this is ~75 buffered poses, negligible memory and lookup cost
"""

VISION_CONFIDENCE_THRESHOLD = 0.7
"""Minimum vision confidence accepted by the estimator (range: [0, 1]).

Measurements below this are dropped at the boundary and never enter fusion.

Tuning rationale:
- Single-tag solutions at long range typically report < 0.6
- 0.7 keeps multi-tag and close single-tag solutions
"""


# ============================================================================
# Trajectory Tracking Parameters (Ramsete)
# ============================================================================

RAMSETE_B = 2.0
"""Ramsete convergence gain b (rad²/m², > 0).

Larger values make convergence more aggressive, like a proportional term.

Tuning rationale:
- 2.0 is the standard value for robots measured in meters
- Values above ~4 cause visible weaving on curved references
"""

RAMSETE_ZETA = 0.7
"""Ramsete damping ratio zeta (dimensionless, range: (0, 1)).

Larger values add damping to the tracking response.

Tuning rationale:
- 0.7 gives a fast rise with little overshoot
"""

TRACKING_TOLERANCE_X = 0.05
"""Along-track tolerance used by RamseteFollower.at_reference (meters)."""

TRACKING_TOLERANCE_Y = 0.05
"""Cross-track tolerance used by RamseteFollower.at_reference (meters)."""

TRACKING_TOLERANCE_HEADING = math.radians(3.0)
"""Heading tolerance used by RamseteFollower.at_reference (radians)."""


# ============================================================================
# Wheel Voltage Controller Parameters (feedforward + PID)
# ============================================================================

WHEEL_KP = 0.25889
"""Proportional gain on wheel velocity error (V per m/s).

Corrects the residual left by feedforward model mismatch.
Obtained from drivetrain characterization.
"""

WHEEL_KI = 0.0
"""Integral gain on wheel velocity error (V per m).

Disabled (0.0): feedforward already removes steady-state error.
"""

WHEEL_KD = 0.0
"""Derivative gain on wheel velocity error (V per m/s²).

Disabled (0.0): the 20 ms encoder velocity is too noisy to differentiate.
"""

WHEEL_INTEGRAL_LIMIT = 2.0
"""Anti-windup limit on the accumulated wheel velocity error (m)."""


# ============================================================================
# Manual Drive Parameters
# ============================================================================

ACCELERATION_RATE_LIMIT = 1.5
"""Slew-rate limit on percent-output drive commands (units per second).

A full-stop to full-speed request takes 1/1.5 ≈ 0.67 s, which keeps the
chassis from tipping on sudden operator inputs.
"""


# ============================================================================
# Control Loop Parameters
# ============================================================================

CONTROL_PERIOD = 0.02
"""Control loop period (seconds). 50 Hz."""


# ============================================================================
# Simulated Vision Parameters
# ============================================================================

SIM_VISION_PERIOD = 0.2
"""Interval between simulated vision measurements (seconds). 5 Hz."""

SIM_VISION_LATENCY = 0.15
"""Delay between image capture and measurement delivery (seconds)."""

SIM_VISION_POSITION_STD = 0.02
"""Standard deviation of simulated vision position noise (meters)."""

SIM_VISION_HEADING_STD = math.radians(1.0)
"""Standard deviation of simulated vision heading noise (radians)."""

SIM_VISION_CONFIDENCE = 0.9
"""Confidence reported by simulated vision measurements."""


# ============================================================================
# Reference Path Configuration
# ============================================================================

PATH_DURATION = 20.0
"""Total duration of the reference Lemniscate trajectory (seconds)."""

PATH_DT = 0.02
"""Time step for path discretization (seconds). One state per control cycle."""


# ============================================================================
# Visualization Colors
# ============================================================================

COLOR_ORANGE = "#f74823"
"""Primary color - used for measured/estimated trajectories."""

COLOR_BLUE = "#2374f7"
"""Secondary color - used for reference trajectories."""

COLOR_CREAM = "#fffdee"
"""Light color for text and labels on dark backgrounds."""

COLOR_TAUPE = "#686a5f"
"""Neutral color for guides, grids, and secondary elements."""

COLOR_YELLOW_ORANGE = "#ffa726"
"""Accent color for vision measurements and highlights."""

COLOR_DARK_BLUE = "#0d1b2a"
"""Dark background color."""

# Terminal color codes (ANSI escape sequences)
TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for orange (RGB: 247, 72, 35)."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for blue (RGB: 35, 116, 247)."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# WebSocket Configuration (vision feed)
# ============================================================================

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 60
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""

VISION_WS_URI = "ws://localhost:8765/vision"
"""Default WebSocket endpoint publishing vision pose measurements."""
