import pytest

from drivebase_control.drivebase import DriveBase
from drivebase_control.geometry import Pose, WheelSpeeds
from drivebase_control.path import Trajectory, TrajectoryState
from drivebase_control.sensors import NeutralMode, RealSensors, SimulatedSensors
from drivebase_control.simulator import DrivetrainSimulator
from drivebase_control.vision import SimulatedVision

DT = 0.02


def make_drivebase(vision=False, **kwargs):
    sim = DrivetrainSimulator()
    source = None
    if vision:
        source = SimulatedVision(sim, position_std=0.0, heading_std=0.0)
    drivebase = DriveBase(SimulatedSensors(sim), vision=source, clock=lambda: 0.0, **kwargs)
    return drivebase, sim


def ramp_trajectory(duration=5.0, acceleration=1.0, cruise=1.0):
    states = []
    x = 0.0
    steps = int(round(duration / DT))
    for i in range(steps + 1):
        t = i * DT
        velocity = min(acceleration * t, cruise)
        accel = acceleration if velocity < cruise else 0.0
        states.append(TrajectoryState(t, Pose(x, 0.0, 0.0), velocity=velocity, acceleration=accel))
        x += velocity * DT + 0.5 * accel * DT * DT if velocity < cruise else velocity * DT
    return Trajectory(states)


def test_follows_straight_line():
    drivebase, sim = make_drivebase()
    trajectory = ramp_trajectory()
    drivebase.reset_odometry(trajectory.initial_pose)

    steps = int(round(trajectory.total_time / DT))
    for i in range(steps):
        t = i * DT
        drivebase.periodic(t)
        drivebase.follow(trajectory.sample(t), DT)
        drivebase.simulation_periodic(DT)
    estimate = drivebase.periodic(steps * DT)

    final_reference = trajectory.states[-1].pose
    truth = sim.get_pose()
    assert truth.x > 4.0
    assert truth.distance_to(final_reference) < 0.25
    assert abs(truth.y) < 1e-9
    # Noise-free odometry tracks the ground truth exactly
    assert estimate.distance_to(truth) < 1e-6


def test_vision_corrects_wrong_starting_pose():
    drivebase, sim = make_drivebase(vision=True)
    drivebase.reset_odometry(Pose(1.0, 0.5, 0.0))

    accepted = 0
    for i in range(50):
        drivebase.periodic(i * DT)
        if drivebase.last_vision_accepted:
            accepted += 1
        drivebase.tank_drive_voltage(3.0, 3.0)
        drivebase.simulation_periodic(DT)
    estimate = drivebase.periodic(50 * DT)

    assert accepted > 0
    assert estimate.distance_to(sim.get_pose()) < 1e-6
    # Odometry alone still believes the wrong start
    assert drivebase.estimator.get_odometry_pose().distance_to(sim.get_pose()) == pytest.approx(
        Pose(1.0, 0.5, 0.0).distance_to(Pose()), abs=1e-6
    )


def test_reset_odometry_is_exact():
    drivebase, sim = make_drivebase()
    for _ in range(20):
        drivebase.tank_drive_voltage(4.0, 5.0)
        drivebase.simulation_periodic(DT)

    drivebase.reset_odometry(Pose(2.0, -1.0, 0.3))
    assert drivebase.get_pose() == Pose(2.0, -1.0, 0.3)

    # Sensors were re-zeroed; the next cycle starts from the reset pose
    pose = drivebase.periodic(1.0)
    assert pose.x == pytest.approx(2.0)
    assert pose.y == pytest.approx(-1.0)
    assert pose.heading == pytest.approx(0.3)


def test_tank_drive_voltage_is_clamped():
    drivebase, sim = make_drivebase()
    volts = drivebase.tank_drive_voltage(20.0, -20.0)
    assert volts == WheelSpeeds(12.0, -12.0)
    assert sim.get_inputs() == (12.0, -12.0)
    assert drivebase.last_voltages == volts


def test_invalid_voltage_limit():
    with pytest.raises(ValueError):
        DriveBase(SimulatedSensors(DrivetrainSimulator()), max_voltage=-1.0)


def test_percent_output_is_slew_limited():
    drivebase, _ = make_drivebase()
    volts = drivebase.arcade_drive(1.0, 0.0)
    assert volts.left == pytest.approx(0.36)
    assert volts.right == pytest.approx(0.36)

    volts = drivebase.tank_drive(1.0, -1.0)
    assert volts.left == pytest.approx(0.72)
    assert volts.right == pytest.approx(0.0, abs=1e-12)


def test_stop_resets_slew_state():
    drivebase, sim = make_drivebase()
    for _ in range(10):
        drivebase.tank_drive(1.0, 1.0)
    drivebase.stop()
    assert sim.get_inputs() == (0.0, 0.0)
    assert drivebase.tank_drive(1.0, 1.0).left == pytest.approx(0.36)


def test_squared_inputs():
    drivebase, _ = make_drivebase(rate_limit=1000.0)
    assert drivebase.tank_drive(0.5, -0.5).left == pytest.approx(0.25 * 12.0)
    drivebase.stop()
    volts = drivebase.tank_drive(0.5, -0.5, squared_inputs=False)
    assert volts.left == pytest.approx(6.0)
    assert volts.right == pytest.approx(-6.0)


def test_arcade_to_tank_normalization():
    assert DriveBase._arcade_to_tank(0.0, 0.0) == (0.0, 0.0)
    assert DriveBase._arcade_to_tank(1.0, 1.0) == pytest.approx((0.0, 1.0))
    assert DriveBase._arcade_to_tank(1.0, 0.5) == pytest.approx((1.0 / 3.0, 1.0))
    assert DriveBase._arcade_to_tank(0.5, 0.0) == pytest.approx((0.5, 0.5))
    assert DriveBase._arcade_to_tank(0.0, -1.0) == pytest.approx((1.0, -1.0))


def test_distance_to_pose():
    drivebase, _ = make_drivebase()
    drivebase.reset_odometry(Pose(1.0, 2.0, 0.0))
    offset = drivebase.get_distance_to_pose(Pose(0.0, 2.0, 0.0))
    assert offset.x == pytest.approx(1.0)
    assert offset.y == pytest.approx(0.0, abs=1e-12)


def test_periodic_uses_clock():
    times = iter([0.0, 0.02])
    drivebase = DriveBase(SimulatedSensors(DrivetrainSimulator()), clock=lambda: next(times))
    drivebase.periodic()
    drivebase.periodic()
    assert drivebase.estimator.get_diagnostics()["history_size"] == 2


def test_missed_cycle_uses_elapsed_time():
    times = iter([0.0, 0.1])
    sim = DrivetrainSimulator()
    drivebase = DriveBase(SimulatedSensors(sim), clock=lambda: next(times))
    reference = DrivetrainSimulator()
    reference.set_inputs(6.0, 6.0)

    # First cycle has no predecessor and runs for the nominal period
    drivebase.periodic()
    assert drivebase.last_dt == pytest.approx(DT)
    drivebase.tank_drive_voltage(6.0, 6.0)
    drivebase.simulation_periodic()
    reference.update(DT)

    # The clock skips four cycles
    drivebase.periodic()
    assert drivebase.last_dt == pytest.approx(0.1)
    drivebase.simulation_periodic()
    reference.update(0.1)

    assert sim.get_state().left_position == pytest.approx(reference.get_state().left_position)
    assert sim.get_state().right_velocity == pytest.approx(reference.get_state().right_velocity)


def test_follow_integrates_over_elapsed_time():
    times = iter([0.0, 0.1])
    drivebase = DriveBase(SimulatedSensors(DrivetrainSimulator()), clock=lambda: next(times))
    reference = TrajectoryState(0.0, Pose(), velocity=1.0)

    drivebase.periodic()
    drivebase.follow(reference)
    integral_after_nominal = drivebase.wheel_controller.integral_left
    drivebase.periodic()
    drivebase.follow(reference)

    # Wheels are still at rest, so the error is the same both cycles
    assert drivebase.wheel_controller.integral_left == pytest.approx(integral_after_nominal * 6.0)


def test_telemetry():
    drivebase, sim = make_drivebase()
    drivebase.tank_drive_voltage(12.0, 12.0)
    assert drivebase.get_current_draw_amps() > 0.0
    for _ in range(10):
        drivebase.simulation_periodic(DT)
    speeds = drivebase.get_wheel_speeds()
    assert speeds.left > 0.0
    assert speeds.left == pytest.approx(speeds.right)


class FakeHardware:
    def __init__(self):
        self.gyro = 90.0
        self.left = 1.0
        self.right = 2.0
        self.voltages = None
        self.resets = 0
        self.neutral_modes = []

    def get_gyro_angle_degrees(self):
        return self.gyro

    def get_gyro_rate_degrees(self):
        return -45.0

    def get_left_distance(self):
        return self.left

    def get_right_distance(self):
        return self.right

    def get_left_rate(self):
        return 0.5

    def get_right_rate(self):
        return 0.6

    def set_motor_voltages(self, left_voltage, right_voltage):
        self.voltages = (left_voltage, right_voltage)

    def set_neutral_mode(self, mode):
        self.neutral_modes.append(mode)

    def reset_encoders(self):
        self.left = self.right = 0.0
        self.resets += 1

    def reset_gyro(self):
        self.gyro = 0.0


def test_real_sensors_adapter():
    hardware = FakeHardware()
    sensors = RealSensors(hardware)

    sample = sensors.read()
    assert sample.heading == pytest.approx(1.5707963267948966)
    assert sample.left_distance == 1.0
    assert sensors.wheel_speeds() == WheelSpeeds(0.5, 0.6)

    drivebase = DriveBase(sensors, clock=lambda: 0.0)
    drivebase.tank_drive_voltage(3.0, 14.0)
    assert hardware.voltages == (3.0, 12.0)

    drivebase.reset_odometry(Pose(1.0, 1.0, 0.0))
    assert hardware.resets == 1
    assert drivebase.periodic(0.0) == Pose(1.0, 1.0, 0.0)


def test_real_sensors_turn_rate_and_distance():
    hardware = FakeHardware()
    drivebase = DriveBase(RealSensors(hardware), clock=lambda: 0.0)
    assert drivebase.get_turn_rate() == pytest.approx(-0.7853981633974483)
    assert drivebase.get_average_distance() == pytest.approx(1.5)


def test_zero_heading_keeps_pose():
    hardware = FakeHardware()
    drivebase = DriveBase(RealSensors(hardware), clock=lambda: 0.0)
    before = drivebase.periodic(0.0)

    drivebase.zero_heading()
    assert hardware.gyro == 0.0
    assert hardware.resets == 0
    assert drivebase.get_pose() == before

    after = drivebase.periodic(0.02)
    assert after.distance_to(before) < 1e-12
    assert after.heading == pytest.approx(before.heading)
    assert drivebase.get_average_distance() == pytest.approx(1.5)


def test_neutral_mode_toggle():
    hardware = FakeHardware()
    drivebase = DriveBase(RealSensors(hardware), clock=lambda: 0.0)
    assert drivebase.neutral_mode == NeutralMode.BRAKE
    assert hardware.neutral_modes == [NeutralMode.BRAKE]

    assert drivebase.toggle_neutral_mode() == NeutralMode.COAST
    assert drivebase.toggle_neutral_mode() == NeutralMode.BRAKE
    drivebase.set_neutral_mode(NeutralMode.COAST)
    assert hardware.neutral_modes == [
        NeutralMode.BRAKE,
        NeutralMode.COAST,
        NeutralMode.BRAKE,
        NeutralMode.COAST,
    ]


def test_simulated_turn_rate_and_distance():
    drivebase, sim = make_drivebase()
    drivebase.tank_drive_voltage(-4.0, 4.0)
    for _ in range(50):
        drivebase.simulation_periodic(DT)

    state = sim.get_state()
    assert drivebase.get_turn_rate() > 0.0
    assert drivebase.get_turn_rate() == pytest.approx(
        (state.right_velocity - state.left_velocity) / sim.track_width
    )
    # Turning in place leaves the mean distance at zero
    assert drivebase.get_average_distance() == pytest.approx(0.0, abs=1e-9)

    drivebase.tank_drive_voltage(6.0, 6.0)
    for _ in range(50):
        drivebase.simulation_periodic(DT)
    state = sim.get_state()
    assert drivebase.get_average_distance() == pytest.approx((state.left_position + state.right_position) / 2.0)


def test_simulated_zero_heading():
    drivebase, sim = make_drivebase()
    drivebase.tank_drive_voltage(-3.0, 3.0)
    for i in range(25):
        drivebase.periodic(i * DT)
        drivebase.simulation_periodic(DT)
    drivebase.stop()
    before = drivebase.periodic(25 * DT)
    assert before.heading > 0.0
    distance = drivebase.get_average_distance()

    drivebase.zero_heading()
    assert drivebase.sensors.read().heading == pytest.approx(0.0, abs=1e-12)
    assert drivebase.get_average_distance() == pytest.approx(distance)

    after = drivebase.periodic(26 * DT)
    assert after.heading == pytest.approx(before.heading)
    assert after.distance_to(before) < 1e-9


def test_follow_desaturates_unreachable_targets():
    drivebase, _ = make_drivebase()
    reference = TrajectoryState(0.0, Pose(), curvature=0.5, velocity=10.0)
    drivebase.follow(reference, DT)

    targets = drivebase.last_target_speeds
    max_speed = drivebase.wheel_controller.feedforward.max_achievable_velocity(drivebase.max_voltage)
    assert max(abs(targets.left), abs(targets.right)) == pytest.approx(max_speed)
    # Curvature is kept
    assert targets.right > targets.left
