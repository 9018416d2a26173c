"""Drive base facade.

DriveBase wires the drive stack together behind one object:

    sensors → PoseEstimator.update → (vision poll → add_vision_measurement)
    reference → RamseteFollower → KinematicsModel (desaturate) → WheelVelocityController → voltages

One control cycle is periodic() → follow() → simulation_periodic(). Called
without an explicit dt, follow() and simulation_periodic() use the time that
actually elapsed between the last two periodic() calls, so a missed cycle is
integrated over its real length. The facade holds no pose state of its own; the
estimator is the single owner of the fused pose.
"""

import logging
import math
import time
from typing import Callable, Optional, Tuple

from .config import ACCELERATION_RATE_LIMIT, BATTERY_VOLTAGE, CONTROL_PERIOD
from .follower import RamseteFollower
from .geometry import Pose, WheelSpeeds
from .localizer import PoseEstimator
from .model import KinematicsModel
from .motor_controller import SlewRateLimiter, WheelVelocityController
from .path import TrajectoryState
from .sensors import NeutralMode, SensorSource
from .vision import VisionMeasurement, VisionSource


def _square_preserving_sign(value: float) -> float:
    return math.copysign(value * value, value)


class DriveBase:
    """Differential drive subsystem: estimation, tracking and actuation.

    Attributes:
        sensors: Odometry input and voltage output (real or simulated).
        kinematics: Differential drive kinematics shared by every component.
        estimator: Owner of the fused pose.
        follower: Ramsete trajectory tracker.
        wheel_controller: Feedforward + PID wheel voltage controller.
        vision: Optional polled vision source.
        max_voltage: Symmetric voltage limit for every actuation path (V).
        neutral_mode: Brake or coast for idle motors, brake at start.
    """

    def __init__(
        self,
        sensors: SensorSource,
        kinematics: Optional[KinematicsModel] = None,
        estimator: Optional[PoseEstimator] = None,
        follower: Optional[RamseteFollower] = None,
        wheel_controller: Optional[WheelVelocityController] = None,
        vision: Optional[VisionSource] = None,
        max_voltage: float = BATTERY_VOLTAGE,
        rate_limit: float = ACCELERATION_RATE_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the drive base.

        Args:
            sensors: Sensor source to read and drive.
            kinematics: Kinematics model. Defaults to the configured track width.
            estimator: Pose estimator. Defaults to one using ``kinematics``.
            follower: Trajectory tracker. Defaults to one using ``kinematics``.
            wheel_controller: Wheel voltage controller.
            vision: Polled vision source, or None to run on odometry alone.
            max_voltage: Voltage limit (V).
            rate_limit: Slew-rate limit for percent-output driving (1/s).
            clock: Time source for periodic() calls without a timestamp.

        Raises:
            ValueError: If max_voltage is not positive.
        """
        if not max_voltage > 0.0:
            raise ValueError(f"Voltage limit must be positive, got {max_voltage}")

        self.sensors = sensors
        self.kinematics = kinematics if kinematics is not None else KinematicsModel()
        self.estimator = estimator if estimator is not None else PoseEstimator(self.kinematics)
        self.follower = follower if follower is not None else RamseteFollower(kinematics=self.kinematics)
        self.wheel_controller = (
            wheel_controller
            if wheel_controller is not None
            else WheelVelocityController(max_voltage=max_voltage)
        )
        self.vision = vision
        self.max_voltage = max_voltage
        self._clock = clock

        self._left_limiter = SlewRateLimiter(rate_limit)
        self._right_limiter = SlewRateLimiter(rate_limit)

        self.last_voltages = WheelSpeeds()
        self.last_target_speeds = WheelSpeeds()
        self.last_vision: Optional[VisionMeasurement] = None
        self.last_vision_accepted = False

        # Cycle timing
        self._last_timestamp: Optional[float] = None
        self.last_dt = CONTROL_PERIOD

        self.neutral_mode = NeutralMode.BRAKE
        self.sensors.set_neutral_mode(self.neutral_mode)

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def periodic(self, timestamp: Optional[float] = None) -> Pose:
        """Run one estimation cycle.

        Args:
            timestamp: Cycle time (seconds). Defaults to the drive base clock.

        Returns:
            The fused pose after odometry and any vision measurement.
        """
        if timestamp is None:
            timestamp = self._clock()

        # The first cycle has no predecessor and assumes the nominal period
        if self._last_timestamp is not None:
            self.last_dt = max(0.0, timestamp - self._last_timestamp)
        self._last_timestamp = timestamp

        sample = self.sensors.read()
        self.estimator.update(sample.heading, sample.left_distance, sample.right_distance, timestamp)

        self.last_vision = None
        self.last_vision_accepted = False
        if self.vision is not None:
            measurement = self.vision.poll(timestamp)
            if measurement is not None:
                self.last_vision = measurement
                self.last_vision_accepted = self.estimator.add_vision_measurement(
                    measurement.pose, measurement.timestamp, measurement.confidence
                )

        return self.estimator.get_estimated_position()

    def simulation_periodic(self, dt: Optional[float] = None) -> None:
        """Advance the simulated hardware by ``dt`` seconds.

        Defaults to the time elapsed between the last two periodic() calls.
        """
        self.sensors.step(self.last_dt if dt is None else dt)

    def reset_odometry(self, pose: Pose) -> None:
        """Declare the robot to be at ``pose``.

        Zeroes the sensor counters and re-references the estimator against the
        fresh readings in the same step, so the next update sees no jump.
        """
        self.sensors.reset()
        sample = self.sensors.read()
        self.estimator.reset_pose(pose, sample.heading, sample.left_distance, sample.right_distance)
        self.wheel_controller.reset()
        logging.info(f"Odometry reset to ({pose.x:.3f}, {pose.y:.3f}, {math.degrees(pose.heading):.1f}°)")

    def zero_heading(self) -> None:
        """Zero the gyro without moving the fused pose.

        The estimator is re-referenced against the new raw heading in the same
        step. Any active vision correction is folded into the kept pose.
        """
        pose = self.get_pose()
        self.sensors.zero_heading()
        sample = self.sensors.read()
        self.estimator.reset_pose(pose, sample.heading, sample.left_distance, sample.right_distance)
        logging.info("Gyro zeroed")

    # ------------------------------------------------------------------
    # Actuation
    # ------------------------------------------------------------------

    def follow(self, reference: TrajectoryState, dt: Optional[float] = None) -> WheelSpeeds:
        """Drive toward one reference state.

        Args:
            reference: Reference trajectory state for this cycle.
            dt: Time since the previous follow() call (seconds). Defaults to
                the time elapsed between the last two periodic() calls.

        Returns:
            The applied left/right voltages.
        """
        pose = self.estimator.get_estimated_position()
        targets = self.follower.compute_wheel_speeds(pose, reference)
        max_speed = self.wheel_controller.feedforward.max_achievable_velocity(self.max_voltage)
        self.last_target_speeds = self.kinematics.desaturate(targets, max_speed)
        if dt is None:
            dt = self.last_dt
        volts = self.wheel_controller.calculate(self.last_target_speeds, self.sensors.wheel_speeds(), dt)
        return self.tank_drive_voltage(volts.left, volts.right)

    def tank_drive_voltage(self, left_voltage: float, right_voltage: float) -> WheelSpeeds:
        """Apply voltages directly, clamped to ±max_voltage."""
        limit = self.max_voltage
        volts = WheelSpeeds(
            max(-limit, min(limit, left_voltage)),
            max(-limit, min(limit, right_voltage)),
        )
        self.sensors.set_voltages(volts.left, volts.right)
        self.last_voltages = volts
        return volts

    def tank_drive(
        self,
        left_speed: float,
        right_speed: float,
        squared_inputs: bool = True,
        dt: float = CONTROL_PERIOD,
    ) -> WheelSpeeds:
        """Drive each side with a percent output in [-1, 1].

        Args:
            left_speed: Left side output.
            right_speed: Right side output.
            squared_inputs: If True, square the inputs (keeping sign) for finer
                control at low speed.
            dt: Time since the previous call, for slew-rate limiting (seconds).

        Returns:
            The applied left/right voltages.
        """
        left_speed = max(-1.0, min(1.0, left_speed))
        right_speed = max(-1.0, min(1.0, right_speed))
        if squared_inputs:
            left_speed = _square_preserving_sign(left_speed)
            right_speed = _square_preserving_sign(right_speed)
        return self._drive_percent(left_speed, right_speed, dt)

    def arcade_drive(
        self,
        linear_speed: float,
        angular_speed: float,
        squared_inputs: bool = True,
        dt: float = CONTROL_PERIOD,
    ) -> WheelSpeeds:
        """Drive with a forward and a rotation percent output in [-1, 1].

        Positive angular_speed turns counter-clockwise.

        Returns:
            The applied left/right voltages.
        """
        linear_speed = max(-1.0, min(1.0, linear_speed))
        angular_speed = max(-1.0, min(1.0, angular_speed))
        if squared_inputs:
            linear_speed = _square_preserving_sign(linear_speed)
            angular_speed = _square_preserving_sign(angular_speed)

        left, right = self._arcade_to_tank(linear_speed, angular_speed)
        return self._drive_percent(left, right, dt)

    @staticmethod
    def _arcade_to_tank(linear: float, angular: float) -> Tuple[float, float]:
        left = linear - angular
        right = linear + angular
        greater = max(abs(linear), abs(angular))
        if greater == 0.0:
            return 0.0, 0.0
        # Normalize so that full forward plus full turn stays within [-1, 1]
        saturation = (greater + min(abs(linear), abs(angular))) / greater
        return left / saturation, right / saturation

    def _drive_percent(self, left: float, right: float, dt: float) -> WheelSpeeds:
        left = self._left_limiter.calculate(left, dt)
        right = self._right_limiter.calculate(right, dt)
        return self.tank_drive_voltage(left * self.max_voltage, right * self.max_voltage)

    def stop(self) -> None:
        """Zero the outputs and the percent-output slew state."""
        self._left_limiter.reset()
        self._right_limiter.reset()
        self.tank_drive_voltage(0.0, 0.0)

    def set_neutral_mode(self, mode: NeutralMode) -> None:
        """Set brake or coast for all drive motors."""
        self.neutral_mode = mode
        self.sensors.set_neutral_mode(mode)
        logging.info(f"Neutral mode set to {mode.value}")

    def toggle_neutral_mode(self) -> NeutralMode:
        """Switch between brake and coast and return the new mode."""
        if self.neutral_mode == NeutralMode.BRAKE:
            self.set_neutral_mode(NeutralMode.COAST)
        else:
            self.set_neutral_mode(NeutralMode.BRAKE)
        return self.neutral_mode

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def get_pose(self) -> Pose:
        return self.estimator.get_estimated_position()

    def get_wheel_speeds(self) -> WheelSpeeds:
        return self.sensors.wheel_speeds()

    def get_turn_rate(self) -> float:
        """Yaw rate (rad/s, CCW positive)."""
        return self.sensors.get_turn_rate()

    def get_average_distance(self) -> float:
        """Mean wheel distance since the last reset (m)."""
        return self.sensors.get_average_distance()

    def get_current_draw_amps(self) -> float:
        return self.sensors.current_draw_amps()

    def get_distance_to_pose(self, target: Pose) -> Pose:
        """Transform from ``target`` to the current pose, in the target's frame."""
        return self.get_pose().relative_to(target)
