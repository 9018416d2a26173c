import math
import threading
import time

import pytest

from drivebase_control.geometry import Pose
from drivebase_control.localizer import PoseEstimator, TimeInterpolatableBuffer


def drive_straight(estimator, speed=1.0, start=0.0, end=1.0, dt=0.02):
    """Feed straight-line odometry at ``speed`` m/s with timestamps start..end."""
    steps = int(round((end - start) / dt))
    for i in range(steps + 1):
        t = start + i * dt
        distance = speed * t
        estimator.update(0.0, distance, distance, timestamp=t)


def test_identity_before_any_sample():
    estimator = PoseEstimator()
    assert estimator.get_estimated_position() == Pose()


def test_invalid_confidence_threshold():
    with pytest.raises(ValueError):
        PoseEstimator(confidence_threshold=1.5)
    with pytest.raises(ValueError):
        PoseEstimator(confidence_threshold=-0.1)


def test_straight_line_odometry():
    estimator = PoseEstimator()
    estimator.update(0.0, 0.0, 0.0, timestamp=0.0)
    pose = estimator.update(0.0, 2.5, 2.5, timestamp=1.0)
    assert pose.x == pytest.approx(2.5)
    assert pose.y == pytest.approx(0.0, abs=1e-12)
    assert pose.heading == 0.0


def test_heading_comes_from_gyro():
    estimator = PoseEstimator()
    estimator.update(0.0, 0.0, 0.0, timestamp=0.0)
    # Turn in place, then drive forward one meter
    estimator.update(math.pi / 2.0, -0.2, 0.2, timestamp=0.5)
    pose = estimator.update(math.pi / 2.0, 0.8, 1.2, timestamp=1.0)
    assert pose.heading == pytest.approx(math.pi / 2.0)
    assert pose.x == pytest.approx(0.0, abs=1e-9)
    assert pose.y == pytest.approx(1.0)


def test_reset_pose_is_exact():
    estimator = PoseEstimator()
    drive_straight(estimator)
    estimator.reset_pose(Pose(5.0, 2.0, 0.0))
    assert estimator.get_estimated_position() == Pose(5.0, 2.0, 0.0)

    # Next sample with unchanged readings reports the reset pose
    assert estimator.update(0.0, 0.0, 0.0, timestamp=2.0) == Pose(5.0, 2.0, 0.0)


def test_reset_pose_against_nonzero_readings():
    estimator = PoseEstimator()
    estimator.reset_pose(Pose(1.0, 0.0, 0.0), heading=0.3, left_distance=2.0, right_distance=2.0)
    pose = estimator.update(0.3, 2.5, 2.5, timestamp=0.0)
    assert pose.x == pytest.approx(1.5)
    assert pose.y == pytest.approx(0.0, abs=1e-12)
    assert pose.heading == pytest.approx(0.0, abs=1e-12)


def test_reset_clears_correction():
    estimator = PoseEstimator()
    drive_straight(estimator)
    assert estimator.add_vision_measurement(Pose(0.6, 0.0, 0.0), 0.5, 0.9)
    estimator.reset_pose(Pose())
    assert estimator.get_correction() is None
    assert estimator.get_estimated_position() == Pose()


def test_latency_compensation():
    estimator = PoseEstimator()
    drive_straight(estimator, speed=1.0, end=1.0)

    # Image captured at t=0.5 saw the robot 0.1 m further than odometry did
    assert estimator.add_vision_measurement(Pose(0.6, 0.0, 0.0), 0.5, 0.9)

    pose = estimator.get_estimated_position()
    assert pose.x == pytest.approx(1.1, abs=1e-6)
    assert pose.y == pytest.approx(0.0, abs=1e-9)

    # Correction carries forward to later odometry
    pose = estimator.update(0.0, 1.5, 1.5, timestamp=1.5)
    assert pose.x == pytest.approx(1.6, abs=1e-6)
    assert estimator.get_odometry_pose().x == pytest.approx(1.5)


def test_vision_measurement_is_idempotent():
    estimator = PoseEstimator()
    drive_straight(estimator)
    assert estimator.add_vision_measurement(Pose(0.55, 0.05, 0.02), 0.5, 0.9)
    first = estimator.get_estimated_position()

    assert not estimator.add_vision_measurement(Pose(0.55, 0.05, 0.02), 0.5, 0.9)
    assert estimator.get_estimated_position() == first


def test_low_confidence_rejected():
    estimator = PoseEstimator()
    drive_straight(estimator)
    before = estimator.get_estimated_position()

    assert not estimator.add_vision_measurement(Pose(3.0, 3.0, 0.0), 0.5, 0.5)
    assert estimator.get_estimated_position() == before
    assert estimator.rejected_low_confidence == 1


def test_stale_measurement_rejected():
    estimator = PoseEstimator(history_window=1.5)
    drive_straight(estimator, end=3.0)
    before = estimator.get_estimated_position()

    assert not estimator.add_vision_measurement(Pose(1.0, 0.5, 0.0), 1.0, 0.95)
    assert estimator.get_estimated_position() == before
    assert estimator.rejected_stale == 1


def test_measurement_without_history_rejected():
    estimator = PoseEstimator()
    assert not estimator.add_vision_measurement(Pose(1.0, 0.0, 0.0), 0.0, 0.95)
    assert estimator.rejected_stale == 1


def test_out_of_order_measurement_rejected():
    estimator = PoseEstimator()
    drive_straight(estimator)
    assert estimator.add_vision_measurement(Pose(0.85, 0.0, 0.0), 0.8, 0.9)
    after_newer = estimator.get_estimated_position()

    assert not estimator.add_vision_measurement(Pose(0.2, 0.0, 0.0), 0.5, 0.9)
    assert estimator.get_estimated_position() == after_newer
    assert estimator.rejected_out_of_order == 1


def same_pose(a, b, tol=1e-9):
    return a.distance_to(b) < tol and abs(a.heading - b.heading) < tol


def test_vision_thread_concurrent_with_odometry():
    estimator = PoseEstimator()
    offset = Pose(0.5, -0.3, 0.2)
    latest = [None]
    done = threading.Event()
    errors = []

    def vision_worker():
        try:
            while not done.is_set():
                now = latest[0]
                if now is not None and now > 0.05:
                    capture = now - 0.05
                    estimator.add_vision_measurement(offset.compose(Pose(capture, 0.0, 0.0)), capture, 0.9)
                time.sleep(0)
        except Exception as e:
            errors.append(e)

    worker = threading.Thread(target=vision_worker)
    worker.start()
    try:
        for i in range(2000):
            t = i * 0.01
            fused = estimator.update(0.0, t, t, timestamp=t)
            odometry = estimator.get_odometry_pose()
            latest[0] = t
            # Either no correction yet or the one consistent offset, never a mix
            assert same_pose(fused, odometry) or same_pose(fused, offset.compose(odometry))
            time.sleep(0)
    finally:
        done.set()
        worker.join()

    assert not errors
    # A last measurement after the loop guarantees at least one acceptance
    capture = latest[0] - 0.05
    estimator.add_vision_measurement(offset.compose(Pose(capture, 0.0, 0.0)), capture, 0.9)
    assert estimator.measurements_accepted > 0
    assert same_pose(estimator.get_estimated_position(), offset.compose(estimator.get_odometry_pose()))


def test_update_uses_injected_clock():
    times = iter([0.0, 0.5])
    estimator = PoseEstimator(clock=lambda: next(times))
    estimator.update(0.0, 0.0, 0.0)
    estimator.update(0.0, 0.5, 0.5)
    assert estimator.get_diagnostics()["history_size"] == 2


def test_buffer_sampling():
    buffer = TimeInterpolatableBuffer(1.0)
    assert buffer.sample(0.0) is None

    buffer.add_sample(0.0, Pose(0.0, 0.0, 0.0))
    buffer.add_sample(1.0, Pose(2.0, 0.0, 0.0))

    assert buffer.sample(-0.1) is None
    assert buffer.sample(0.5).x == pytest.approx(1.0)
    assert buffer.sample(5.0) == Pose(2.0, 0.0, 0.0)


def test_buffer_evicts_outside_window():
    buffer = TimeInterpolatableBuffer(1.0)
    for i in range(31):
        buffer.add_sample(i * 0.1, Pose(i * 0.1, 0.0, 0.0))
    assert buffer.oldest_timestamp >= buffer.newest_timestamp - 1.0 - 1e-9
    assert buffer.sample(1.0) is None


def test_buffer_clears_when_time_goes_backwards():
    buffer = TimeInterpolatableBuffer(1.0)
    buffer.add_sample(5.0, Pose(1.0, 0.0, 0.0))
    buffer.add_sample(6.0, Pose(2.0, 0.0, 0.0))
    buffer.add_sample(1.0, Pose(0.0, 0.0, 0.0))
    assert len(buffer) == 1
    assert buffer.oldest_timestamp == 1.0
