import math

import pytest

from drivebase_control.geometry import Pose
from drivebase_control.path import Trajectory, TrajectoryState, lemniscate_trajectory


def straight_trajectory():
    return Trajectory(
        [
            TrajectoryState(0.0, Pose(0.0, 0.0, 0.0), velocity=0.0, acceleration=1.0),
            TrajectoryState(1.0, Pose(0.5, 0.0, 0.0), velocity=1.0, acceleration=1.0),
            TrajectoryState(2.0, Pose(1.5, 0.0, 0.0), velocity=1.0, acceleration=0.0),
        ]
    )


def test_trajectory_requires_states():
    with pytest.raises(ValueError):
        Trajectory([])


def test_trajectory_requires_increasing_timestamps():
    with pytest.raises(ValueError):
        Trajectory([TrajectoryState(0.0, Pose()), TrajectoryState(0.0, Pose(1.0, 0.0))])
    with pytest.raises(ValueError):
        Trajectory([TrajectoryState(1.0, Pose()), TrajectoryState(0.5, Pose(1.0, 0.0))])


def test_sample_interpolates():
    trajectory = straight_trajectory()
    state = trajectory.sample(0.5)
    assert state.timestamp == 0.5
    assert state.pose.x == pytest.approx(0.25)
    assert state.velocity == pytest.approx(0.5)
    assert state.acceleration == pytest.approx(1.0)


def test_sample_clamps_to_ends():
    trajectory = straight_trajectory()
    assert trajectory.sample(-1.0) is trajectory.states[0]
    assert trajectory.sample(10.0) is trajectory.states[-1]
    assert trajectory.total_time == 2.0
    assert trajectory.initial_pose == Pose()
    assert len(trajectory) == 3


def test_csv_round_trip(tmp_path):
    trajectory = straight_trajectory()
    csv_path = tmp_path / "trajectory.csv"
    trajectory.to_csv(csv_path)

    loaded = Trajectory.from_csv(csv_path)
    assert list(loaded) == list(trajectory)


def test_from_csv_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        Trajectory.from_csv(tmp_path / "missing.csv")

    bad = tmp_path / "bad.csv"
    bad.write_text("timestamp,x,y\n0,0,0\n")
    with pytest.raises(ValueError):
        Trajectory.from_csv(bad)


def test_lemniscate_starts_at_origin():
    trajectory = lemniscate_trajectory(duration=20.0, dt=0.02)
    start = trajectory.states[0]
    assert start.pose.x == pytest.approx(0.0, abs=1e-9)
    assert start.pose.y == pytest.approx(0.0, abs=1e-9)
    assert start.pose.heading == pytest.approx(0.0, abs=1e-9)
    assert start.velocity == pytest.approx(2.0 * math.pi / 20.0 * 2.0)
    assert trajectory.total_time == pytest.approx(20.0)


def test_lemniscate_is_consistent():
    trajectory = lemniscate_trajectory(duration=20.0, dt=0.02)
    states = trajectory.states
    # Heading matches the direction of travel between neighbouring samples
    for before, after in zip(states[100:110], states[101:111]):
        direction = math.atan2(after.pose.y - before.pose.y, after.pose.x - before.pose.x)
        assert direction == pytest.approx(before.pose.heading, abs=0.05)
    # Speed matches the distance covered per step
    step = states[200].pose.distance_to(states[201].pose)
    assert step / 0.02 == pytest.approx(states[200].velocity, rel=0.02)
