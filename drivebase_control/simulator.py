"""Linear drivetrain simulator.

This module stands in for the drive motors, encoders and gyro when no hardware
is attached. The drivetrain is modelled as a linear system in the left and right
wheel velocities:

    d/dt [v_l, v_r]ᵀ = A [v_l, v_r]ᵀ + B [u_l, u_r]ᵀ

augmented with the wheel positions. The plant is discretized exactly (zero-order
hold, matrix exponential) for whatever step the control loop actually took, so a
missed cycle integrates a longer step instead of breaking the integration.
Heading follows from the wheel positions for a no-slip drivetrain, and a
ground-truth pose is integrated alongside for validating the estimator.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import scipy.linalg

from .config import (
    BATTERY_VOLTAGE,
    DRIVE_GEARING,
    DRIVE_KA_ANGULAR,
    DRIVE_KA_LINEAR,
    DRIVE_KV_ANGULAR,
    DRIVE_KV_LINEAR,
    MOTOR_FREE_CURRENT,
    MOTOR_FREE_SPEED,
    MOTOR_NOMINAL_VOLTAGE,
    MOTOR_STALL_CURRENT,
    MOTOR_STALL_TORQUE,
    MOTORS_PER_SIDE,
    SIMULATION_SEED,
    TRACK_WIDTH,
    WHEEL_RADIUS,
)
from .geometry import Pose, Twist, wrap_angle

# Distinct step sizes whose discretization is kept
DISCRETIZATION_CACHE_SIZE = 8


@dataclass(frozen=True)
class DCMotor:
    """Brushed/brushless DC motor model, possibly several motors ganged together.

    Attributes:
        nominal_voltage: Voltage at which the constants were measured (V).
        stall_torque: Stall torque (N·m).
        stall_current: Stall current (A).
        free_current: Free-running current (A).
        free_speed: Free-running speed (rad/s).
    """

    nominal_voltage: float
    stall_torque: float
    stall_current: float
    free_current: float
    free_speed: float

    @classmethod
    def falcon500(cls, num_motors: int = 1) -> "DCMotor":
        """Falcon 500 constants, scaled for ``num_motors`` motors on one gearbox."""
        return cls(
            nominal_voltage=MOTOR_NOMINAL_VOLTAGE,
            stall_torque=MOTOR_STALL_TORQUE * num_motors,
            stall_current=MOTOR_STALL_CURRENT * num_motors,
            free_current=MOTOR_FREE_CURRENT * num_motors,
            free_speed=MOTOR_FREE_SPEED,
        )

    @property
    def resistance(self) -> float:
        """Winding resistance (ohms)."""
        return self.nominal_voltage / self.stall_current

    @property
    def kv(self) -> float:
        """Velocity constant (rad/s per V)."""
        return self.free_speed / (self.nominal_voltage - self.resistance * self.free_current)

    @property
    def kt(self) -> float:
        """Torque constant (N·m per A)."""
        return self.stall_torque / self.stall_current

    def get_current(self, speed: float, voltage: float) -> float:
        """Current drawn at the given shaft speed (rad/s) and input voltage (V)."""
        return -1.0 / self.kv / self.resistance * speed + voltage / self.resistance


def identify_drivetrain_system(
    kv_linear: float, ka_linear: float, kv_angular: float, ka_angular: float
) -> Tuple[np.ndarray, np.ndarray]:
    """Build the wheel velocity plant from characterization gains.

    Args:
        kv_linear: Voltage per m/s when both sides move together.
        ka_linear: Voltage per m/s² when both sides move together.
        kv_angular: Voltage per m/s of wheel speed when the sides move oppositely.
        ka_angular: Voltage per m/s² of wheel speed when the sides move oppositely.

    Returns:
        (A, B) continuous-time 2×2 matrices over [v_left, v_right].

    Raises:
        ValueError: If any gain is not positive.
    """
    for name, value in (
        ("kv_linear", kv_linear),
        ("ka_linear", ka_linear),
        ("kv_angular", kv_angular),
        ("ka_angular", ka_angular),
    ):
        if not value > 0.0:
            raise ValueError(f"{name} must be positive, got {value}")

    a1 = 0.5 * -(kv_linear / ka_linear + kv_angular / ka_angular)
    a2 = 0.5 * -(kv_linear / ka_linear - kv_angular / ka_angular)
    b1 = 0.5 * (1.0 / ka_linear + 1.0 / ka_angular)
    b2 = 0.5 * (1.0 / ka_linear - 1.0 / ka_angular)

    A = np.array([[a1, a2], [a2, a1]])
    B = np.array([[b1, b2], [b2, b1]])
    return A, B


def create_drivetrain_velocity_system(
    motor: DCMotor,
    mass: float,
    wheel_radius: float,
    track_width: float,
    moi: float,
    gearing: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Build the wheel velocity plant from physical parameters.

    Args:
        motor: Motor model for one side of the drivetrain.
        mass: Robot mass (kg).
        wheel_radius: Wheel radius (m).
        track_width: Distance between the wheels (m).
        moi: Moment of inertia about the vertical axis (kg·m²).
        gearing: Motor rotations per wheel rotation.

    Returns:
        (A, B) continuous-time 2×2 matrices over [v_left, v_right].

    Raises:
        ValueError: If any physical parameter is not positive.
    """
    for name, value in (
        ("mass", mass),
        ("wheel_radius", wheel_radius),
        ("track_width", track_width),
        ("moi", moi),
        ("gearing", gearing),
    ):
        if not value > 0.0:
            raise ValueError(f"{name} must be positive, got {value}")

    half_track = track_width / 2.0
    c1 = -(gearing**2) * motor.kt / (motor.kv * motor.resistance * wheel_radius**2)
    c2 = gearing * motor.kt / (motor.resistance * wheel_radius)

    same = 1.0 / mass + half_track**2 / moi
    cross = 1.0 / mass - half_track**2 / moi

    A = np.array([[same * c1, cross * c1], [cross * c1, same * c1]])
    B = np.array([[same * c2, cross * c2], [cross * c2, same * c2]])
    return A, B


@dataclass(frozen=True)
class SimulationState:
    """Integrated drivetrain state (meters, m/s, radians)."""

    left_position: float
    left_velocity: float
    right_position: float
    right_velocity: float
    heading: float


class DrivetrainSimulator:
    """Voltage-driven differential drivetrain simulation.

    Internal state vector: [left_pos, left_vel, right_pos, right_vel].

    Usage per control cycle:
        sim.set_inputs(left_volts, right_volts)
        sim.update(dt)
        state = sim.get_state()
    """

    def __init__(
        self,
        plant: Optional[Tuple[np.ndarray, np.ndarray]] = None,
        motor: Optional[DCMotor] = None,
        gearing: float = DRIVE_GEARING,
        track_width: float = TRACK_WIDTH,
        wheel_radius: float = WHEEL_RADIUS,
        battery_voltage: float = BATTERY_VOLTAGE,
        measurement_std_devs: Optional[Sequence[float]] = None,
        seed: int = SIMULATION_SEED,
        initial_pose: Pose = Pose(),
    ):
        """Initialize the simulator at rest.

        Args:
            plant: (A, B) wheel velocity plant. Defaults to the identified system
                from the configured characterization gains.
            motor: Motor model for one side, used for current draw. Defaults to
                the configured number of Falcon 500s.
            gearing: Motor rotations per wheel rotation.
            track_width: Distance between the wheels (m).
            wheel_radius: Wheel radius (m).
            battery_voltage: Supply voltage; inputs are clamped to ±this (V).
            measurement_std_devs: Optional readout noise for (left pos, left vel,
                right pos, right vel, heading).
            seed: Seed for the readout noise generator.
            initial_pose: Ground-truth starting pose.

        Raises:
            ValueError: On non-positive physical parameters or a malformed
                plant or noise setting.
        """
        for name, value in (
            ("gearing", gearing),
            ("track_width", track_width),
            ("wheel_radius", wheel_radius),
            ("battery_voltage", battery_voltage),
        ):
            if not value > 0.0:
                raise ValueError(f"{name} must be positive, got {value}")

        if plant is None:
            plant = identify_drivetrain_system(
                DRIVE_KV_LINEAR, DRIVE_KA_LINEAR, DRIVE_KV_ANGULAR, DRIVE_KA_ANGULAR
            )
        A_vel, B_vel = (np.asarray(m, dtype=float) for m in plant)
        if A_vel.shape != (2, 2) or B_vel.shape != (2, 2):
            raise ValueError(
                f"Plant matrices must be 2x2, got A{A_vel.shape} and B{B_vel.shape}"
            )

        if measurement_std_devs is not None and len(measurement_std_devs) != 5:
            raise ValueError(
                f"measurement_std_devs needs 5 entries, got {len(measurement_std_devs)}"
            )

        self.motor = motor if motor is not None else DCMotor.falcon500(MOTORS_PER_SIDE)
        self.gearing = gearing
        self.track_width = track_width
        self.wheel_radius = wheel_radius
        self.battery_voltage = battery_voltage
        self.measurement_std_devs = (
            np.asarray(measurement_std_devs, dtype=float)
            if measurement_std_devs is not None
            else None
        )

        # Augment the velocity plant with wheel positions
        self._A = np.zeros((4, 4))
        self._A[0, 1] = 1.0
        self._A[2, 3] = 1.0
        self._A[1, 1], self._A[1, 3] = A_vel[0]
        self._A[3, 1], self._A[3, 3] = A_vel[1]
        self._B = np.zeros((4, 2))
        self._B[1] = B_vel[0]
        self._B[3] = B_vel[1]

        self._discretized: Dict[float, Tuple[np.ndarray, np.ndarray]] = {}
        self._x = np.zeros(4)
        self._u = np.zeros(2)
        self._rng = np.random.default_rng(seed)

        self._initial_heading = initial_pose.heading
        self._pose = initial_pose
        self._measured = self._read_state()

    def _discretize(self, dt: float) -> Tuple[np.ndarray, np.ndarray]:
        """Zero-order-hold discretization, cached for the most recent step sizes."""
        cached = self._discretized.get(dt)
        if cached is not None:
            return cached

        M = np.zeros((6, 6))
        M[:4, :4] = self._A
        M[:4, 4:] = self._B
        phi = scipy.linalg.expm(M * dt)
        discrete = (phi[:4, :4], phi[:4, 4:])
        if len(self._discretized) >= DISCRETIZATION_CACHE_SIZE:
            # Evict the oldest step size
            del self._discretized[next(iter(self._discretized))]
        self._discretized[dt] = discrete
        return discrete

    def set_inputs(self, left_voltage: float, right_voltage: float) -> None:
        """Set commanded motor voltages, clamped to the battery voltage.

        Args:
            left_voltage: Left side voltage (V). Positive drives forward.
            right_voltage: Right side voltage (V). Positive drives forward.
        """
        limit = self.battery_voltage
        self._u = np.array(
            [
                max(-limit, min(limit, left_voltage)),
                max(-limit, min(limit, right_voltage)),
            ]
        )

    def update(self, dt: float) -> None:
        """Advance the simulation by ``dt`` seconds using the stored voltages.

        Args:
            dt: Elapsed time since the last update (seconds). Non-positive
                steps are ignored.
        """
        if dt <= 0:
            return

        Ad, Bd = self._discretize(dt)
        previous = self._x
        self._x = Ad @ self._x + Bd @ self._u

        delta_left = float(self._x[0] - previous[0])
        delta_right = float(self._x[2] - previous[2])
        heading = self._true_heading()

        # Ground truth follows the same no-slip arc the wheels describe
        moved = self._pose.exp(
            Twist(
                (delta_left + delta_right) / 2.0,
                0.0,
                (delta_right - delta_left) / self.track_width,
            )
        )
        self._pose = Pose(moved.x, moved.y, heading)
        self._measured = self._read_state()

    def _true_heading(self) -> float:
        return wrap_angle(self._initial_heading + (self._x[2] - self._x[0]) / self.track_width)

    def _read_state(self) -> SimulationState:
        values = np.array([self._x[0], self._x[1], self._x[2], self._x[3], self._true_heading()])
        if self.measurement_std_devs is not None:
            values = values + self._rng.normal(0.0, self.measurement_std_devs)
        return SimulationState(
            left_position=float(values[0]),
            left_velocity=float(values[1]),
            right_position=float(values[2]),
            right_velocity=float(values[3]),
            heading=wrap_angle(float(values[4])),
        )

    def get_state(self) -> SimulationState:
        """Simulated sensor readout for the current step (noisy if configured)."""
        return self._measured

    def get_pose(self) -> Pose:
        """Ground-truth pose of the simulated robot."""
        return self._pose

    def get_inputs(self) -> Tuple[float, float]:
        """Currently applied (clamped) voltages."""
        return float(self._u[0]), float(self._u[1])

    def set_pose(self, pose: Pose) -> None:
        """Teleport the simulated robot to ``pose``, zeroing wheel positions."""
        self._x[0] = 0.0
        self._x[2] = 0.0
        self._initial_heading = pose.heading
        self._pose = pose
        self._measured = self._read_state()

    def get_current_draw_amps(self) -> float:
        """Total current drawn by both sides of the drivetrain (A).

        Telemetry only; the controller never reads this.
        """
        total = 0.0
        for velocity, voltage in ((self._x[1], self._u[0]), (self._x[3], self._u[1])):
            motor_speed = velocity / self.wheel_radius * self.gearing
            total += self.motor.get_current(motor_speed, voltage) * np.sign(voltage)
        return float(total)
