"""Sensor sources for the drive base.

The drive base reads odometry and writes voltages through a SensorSource, so the
same control code runs against real hardware or the simulator:
- RealSensors: adapts an external hardware driver (gyro, encoders, motor output)
- SimulatedSensors: reads and drives a DrivetrainSimulator
"""

import abc
import enum
import math
from typing import Protocol

from .geometry import WheelSpeeds, wrap_angle
from .localizer import OdometrySample
from .simulator import DrivetrainSimulator


class NeutralMode(enum.Enum):
    """Motor behaviour while no voltage is applied."""

    BRAKE = "brake"
    COAST = "coast"


class SensorSource(abc.ABC):
    """Odometry input and voltage output for one drivetrain."""

    @abc.abstractmethod
    def read(self) -> OdometrySample:
        """Current heading (rad) and cumulative wheel distances since reset (m)."""

    @abc.abstractmethod
    def wheel_speeds(self) -> WheelSpeeds:
        """Measured wheel speeds (m/s)."""

    @abc.abstractmethod
    def get_turn_rate(self) -> float:
        """Measured yaw rate (rad/s, CCW positive)."""

    @abc.abstractmethod
    def set_voltages(self, left_voltage: float, right_voltage: float) -> None:
        """Apply motor voltages (V)."""

    @abc.abstractmethod
    def reset(self) -> None:
        """Zero the distance counters and the heading."""

    @abc.abstractmethod
    def zero_heading(self) -> None:
        """Zero the heading only, leaving the distance counters alone."""

    def get_average_distance(self) -> float:
        """Mean of the two cumulative wheel distances since reset (m)."""
        sample = self.read()
        return (sample.left_distance + sample.right_distance) / 2.0

    def set_neutral_mode(self, mode: NeutralMode) -> None:
        """Select brake or coast for idle motors. No-op where unsupported."""

    def step(self, dt: float) -> None:
        """Advance simulated hardware by ``dt`` seconds. No-op on real hardware."""

    def current_draw_amps(self) -> float:
        """Total drivetrain current (A), if the source can report it."""
        return 0.0


class DriveHardware(Protocol):
    """Minimal driver interface the real robot has to provide."""

    def get_gyro_angle_degrees(self) -> float: ...

    def get_gyro_rate_degrees(self) -> float: ...

    def get_left_distance(self) -> float: ...

    def get_right_distance(self) -> float: ...

    def get_left_rate(self) -> float: ...

    def get_right_rate(self) -> float: ...

    def set_motor_voltages(self, left_voltage: float, right_voltage: float) -> None: ...

    def set_neutral_mode(self, mode: NeutralMode) -> None: ...

    def reset_encoders(self) -> None: ...

    def reset_gyro(self) -> None: ...


class RealSensors(SensorSource):
    """SensorSource backed by a hardware driver.

    The gyro reports degrees and degrees per second, CCW positive. Encoders
    report meters and m/s.
    """

    def __init__(self, driver: DriveHardware):
        self.driver = driver

    def read(self) -> OdometrySample:
        return OdometrySample(
            heading=wrap_angle(math.radians(self.driver.get_gyro_angle_degrees())),
            left_distance=self.driver.get_left_distance(),
            right_distance=self.driver.get_right_distance(),
        )

    def wheel_speeds(self) -> WheelSpeeds:
        return WheelSpeeds(self.driver.get_left_rate(), self.driver.get_right_rate())

    def get_turn_rate(self) -> float:
        return math.radians(self.driver.get_gyro_rate_degrees())

    def set_voltages(self, left_voltage: float, right_voltage: float) -> None:
        self.driver.set_motor_voltages(left_voltage, right_voltage)

    def set_neutral_mode(self, mode: NeutralMode) -> None:
        self.driver.set_neutral_mode(mode)

    def reset(self) -> None:
        self.driver.reset_encoders()
        self.driver.reset_gyro()

    def zero_heading(self) -> None:
        self.driver.reset_gyro()


class SimulatedSensors(SensorSource):
    """SensorSource backed by a DrivetrainSimulator.

    reset() only moves the reading baseline: the simulated robot keeps its
    position, speed and ground-truth pose, exactly like zeroing real encoders.
    The simulated motors have no neutral mode.
    """

    def __init__(self, simulator: DrivetrainSimulator):
        self.simulator = simulator
        self._left_offset = 0.0
        self._right_offset = 0.0
        self._heading_offset = 0.0

    def read(self) -> OdometrySample:
        state = self.simulator.get_state()
        return OdometrySample(
            heading=wrap_angle(state.heading - self._heading_offset),
            left_distance=state.left_position - self._left_offset,
            right_distance=state.right_position - self._right_offset,
        )

    def wheel_speeds(self) -> WheelSpeeds:
        state = self.simulator.get_state()
        return WheelSpeeds(state.left_velocity, state.right_velocity)

    def get_turn_rate(self) -> float:
        # No-slip yaw rate from the wheel speeds
        state = self.simulator.get_state()
        return (state.right_velocity - state.left_velocity) / self.simulator.track_width

    def set_voltages(self, left_voltage: float, right_voltage: float) -> None:
        self.simulator.set_inputs(left_voltage, right_voltage)

    def reset(self) -> None:
        state = self.simulator.get_state()
        self._left_offset = state.left_position
        self._right_offset = state.right_position
        self._heading_offset = state.heading

    def zero_heading(self) -> None:
        self._heading_offset = self.simulator.get_state().heading

    def step(self, dt: float) -> None:
        self.simulator.update(dt)

    def current_draw_amps(self) -> float:
        return self.simulator.get_current_draw_amps()
