"""Drive Base Control - Pose Estimation and Trajectory Tracking for Differential Drives

Estimates the pose of a two-wheel (differential) drive robot by fusing odometry
with delayed vision fixes, and drives it along precomputed reference
trajectories with a Ramsete tracking controller. A linear drivetrain simulator
stands in for the hardware so the whole stack runs without a robot.

## Architecture Overview

One control cycle runs through four layers, composed by `DriveBase`:

### Layer 1: Pose Estimation (localizer.py)
Integrates wheel travel along the gyro heading and reconciles late vision poses
against the odometry history from when the image was captured.
- Odometry (every cycle): twist-exponential integration
- Vision (irregular): correction transform = vision ∘ odometry_then⁻¹
- Output: Fused pose (x, y, heading)

### Layer 2: Trajectory Tracking (follower.py)
Ramsete nonlinear feedback around the reference velocity and curvature.
- Pose error expressed in the robot frame
- Gain scheduled on the reference velocities
- Output: Chassis velocity command (v, ω)

### Layer 3: Kinematics (model.py)
Converts between chassis velocity and left/right wheel speeds.

### Layer 4: Wheel Control (motor_controller.py)
Feedforward motor model plus per-wheel PID, clamped to the battery voltage.
- Output: Left and right motor voltages

## Modules

### Core
- `config.py` - Centralized configuration parameters with documentation
- `geometry.py` - Pose, Twist and velocity value types
- `model.py` - Differential drive kinematics
- `localizer.py` - Latency-compensating pose estimator
- `follower.py` - Ramsete tracker
- `motor_controller.py` - Feedforward + PID wheel voltage control
- `path.py` - Trajectory type, CSV loading, Lemniscate reference
- `drivebase.py` - DriveBase facade

### Hardware & Simulation
- `simulator.py` - Linear drivetrain plant (matrix-exponential discretization)
- `sensors.py` - Real or simulated sensor source
- `vision.py` - Simulated vision and WebSocket vision client

### Runs & Data
- `runner.py` - Closed-loop simulation runner and logging setup
- `component_modes.py` - Component bypass flags
- `data_collector.py` - CSV data logging for every run
- `plot_styles.py`, `visualization.py`, `plot_results.py` - Post-run plots

## Quick Start

```python
from drivebase_control.runner import main
import asyncio

asyncio.run(main())
```

Or use the command-line interface:
```bash
python -m drivebase_control --duration 20
python -m drivebase_control.plot_results --save
```

## Configuration

All tuning parameters live in `config.py`:
- Physical: track width, wheel radius, gearing, motor constants
- Characterization: kS, kV, kA (linear and angular)
- Estimation: history window, vision confidence threshold
- Tracking: Ramsete b and zeta, tolerances, wheel PID gains

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

from .drivebase import DriveBase
from .follower import RamseteFollower
from .geometry import ChassisVelocity, Pose, Twist, WheelSpeeds
from .localizer import PoseEstimator
from .model import KinematicsModel
from .path import Trajectory, TrajectoryState
from .simulator import DrivetrainSimulator

__all__ = [
    "ChassisVelocity",
    "DriveBase",
    "DrivetrainSimulator",
    "KinematicsModel",
    "Pose",
    "PoseEstimator",
    "RamseteFollower",
    "Trajectory",
    "TrajectoryState",
    "Twist",
    "WheelSpeeds",
]
