#!/usr/bin/env python3
"""
Closed-loop Simulation Runner

This module runs the full drive stack against the drivetrain simulator: the
DriveBase estimates its pose from simulated encoders and gyro, fuses delayed
vision poses, tracks the reference trajectory with Ramsete and drives the
simulated motors. Every cycle is logged to CSV, and a run summary is written
when the trajectory ends.

Time is simulated. With ``realtime`` the loop sleeps one control period per
cycle so that an external vision feed (VisionClient) can keep up.
"""

import asyncio
import logging
import math
import signal
from typing import Any, Dict, Optional

from .component_modes import ComponentMode
from .config import (
    CONTROL_PERIOD,
    SIMULATION_MEASUREMENT_STD_DEVS,
    SIMULATION_SEED,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
)
from .data_collector import DataCollector
from .drivebase import DriveBase
from .follower import RamseteFollower
from .localizer import PoseEstimator
from .model import KinematicsModel
from .motor_controller import WheelVelocityController
from .path import Trajectory, lemniscate_trajectory
from .sensors import SimulatedSensors
from .simulator import DrivetrainSimulator
from .vision import SimulatedVision, VisionClient


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


class SimulationRunner:
    """Drives a simulated robot along a reference trajectory.

    Attributes:
        trajectory: Reference trajectory being followed.
        simulator: Drivetrain plant standing in for the hardware.
        drivebase: Drive stack under test.
        data_collector: CSV logger for this run.
        vision_client: WebSocket vision feed, when a URI was given.
        sim_time: Simulated time since the start of the run (seconds).
        should_stop: Flag indicating whether to stop the control loop.
    """

    def __init__(
        self,
        duration: Optional[float] = None,
        realtime: bool = False,
        vision_uri: Optional[str] = None,
        output_dir: str = ".",
        run_dir: Optional[str] = None,
        component_mode: Optional[ComponentMode] = None,
        trajectory: Optional[Trajectory] = None,
        seed: int = SIMULATION_SEED,
        period: float = CONTROL_PERIOD,
    ) -> None:
        """Initialize the runner.

        Args:
            duration: Run length (seconds). Defaults to the trajectory length.
            realtime: If True, pace the loop to wall-clock time.
            vision_uri: WebSocket URI of an external vision feed. If None,
                vision is simulated from the ground truth.
            output_dir: Base directory for output files.
            run_dir: Specific run directory (overrides the timestamped default).
            component_mode: ComponentMode configuration for isolation testing.
            trajectory: Reference to follow. Defaults to the Lemniscate.
            seed: Seed for simulated noise.
            period: Control period (seconds).

        Raises:
            ValueError: If duration or period is not positive.
        """
        if not period > 0.0:
            raise ValueError(f"Control period must be positive, got {period}")

        if component_mode is None:
            component_mode = ComponentMode()
        self.component_mode = component_mode
        logging.info(f"{TERM_BLUE}Component Configuration: {component_mode}{TERM_RESET}")

        self.trajectory = trajectory if trajectory is not None else lemniscate_trajectory()
        self.duration = duration if duration is not None else self.trajectory.total_time
        if not self.duration > 0.0:
            raise ValueError(f"Duration must be positive, got {self.duration}")
        self.period = period
        self.realtime = realtime
        self.sim_time = 0.0
        self.should_stop = False

        self.data_collector = DataCollector(output_dir=output_dir, run_dir=run_dir)

        kinematics = KinematicsModel()
        self.simulator = DrivetrainSimulator(
            measurement_std_devs=SIMULATION_MEASUREMENT_STD_DEVS,
            seed=seed,
            initial_pose=self.trajectory.initial_pose,
        )
        estimator = PoseEstimator(kinematics, clock=lambda: self.sim_time)

        vision = None
        self.vision_client: Optional[VisionClient] = None
        if component_mode.use_vision:
            if vision_uri:
                self.vision_client = VisionClient(vision_uri, estimator)
            else:
                vision = SimulatedVision(self.simulator, seed=seed)

        self.drivebase = DriveBase(
            SimulatedSensors(self.simulator),
            kinematics=kinematics,
            estimator=estimator,
            follower=RamseteFollower(kinematics=kinematics, enabled=component_mode.use_ramsete),
            wheel_controller=WheelVelocityController(
                disable_feedforward=not component_mode.use_feedforward,
                disable_feedback=not component_mode.use_pid,
            ),
            vision=vision,
            clock=lambda: self.sim_time,
        )
        self.drivebase.reset_odometry(self.trajectory.initial_pose)

        # Tracking metrics
        self.cumulative_l2_error: float = 0.0
        self.cumulative_estimation_error: float = 0.0
        self.max_l2_error: float = 0.0
        self.sample_count: int = 0

    def step(self) -> None:
        """Run one control cycle at the current simulated time."""
        t = self.sim_time
        drivebase = self.drivebase

        estimated = drivebase.periodic(t)
        reference = self.trajectory.sample(t)
        drivebase.follow(reference, self.period)

        true_pose = self.simulator.get_pose()
        collector = self.data_collector
        collector.log_state(
            t,
            estimated,
            drivebase.estimator.get_odometry_pose(),
            true_pose,
            drivebase.get_current_draw_amps(),
        )
        collector.log_reference(t, reference)
        collector.log_motor_diagnostics(t, drivebase.wheel_controller.get_diagnostics())
        if drivebase.last_vision is not None:
            collector.log_vision(t, drivebase.last_vision, drivebase.last_vision_accepted)
        elif self.vision_client is not None and self.vision_client.last_measurement is not None:
            measurement = self.vision_client.last_measurement
            self.vision_client.last_measurement = None
            collector.log_vision(t, measurement, self.vision_client.last_accepted)

        # Tracking error is measured on the ground truth, not the estimate
        error_x = reference.pose.x - true_pose.x
        error_y = reference.pose.y - true_pose.y
        error_l2 = math.hypot(error_x, error_y)
        estimation_error = estimated.distance_to(true_pose)

        self.cumulative_l2_error += error_l2
        self.cumulative_estimation_error += estimation_error
        self.max_l2_error = max(self.max_l2_error, error_l2)
        self.sample_count += 1
        avg_sample_error_mm = (self.cumulative_l2_error / self.sample_count) * 1000.0

        collector.log_tracking_metrics(
            t,
            error_x,
            error_y,
            error_l2,
            estimation_error,
            self.cumulative_l2_error,
            self.sample_count,
            avg_sample_error_mm,
        )

        drivebase.simulation_periodic(self.period)
        self.sim_time += self.period

    async def run_control_loop(self) -> Dict[str, Any]:
        """Run the trajectory to completion (or until stop()).

        Returns:
            Summary metrics for the run.
        """
        vision_task = None
        if self.vision_client is not None:
            vision_task = asyncio.ensure_future(self.vision_client.run())

        logging.info(f"{TERM_BLUE}✓ Running Ramsete trajectory tracking ({self.duration:.1f}s){TERM_RESET}")
        try:
            steps = int(round(self.duration / self.period))
            for _ in range(steps):
                if self.should_stop:
                    break
                self.step()
                # Yield so the vision task can run
                await asyncio.sleep(self.period if self.realtime else 0)
        finally:
            self.drivebase.stop()
            if vision_task is not None:
                self.vision_client.stop()
                vision_task.cancel()
                try:
                    await vision_task
                except asyncio.CancelledError:
                    pass

        metrics = self.summary()
        self.data_collector.log_summary(metrics)
        logging.info(
            f"{TERM_ORANGE}\033[1m→ Mean tracking error: {metrics['mean_tracking_error_m'] * 1000.0:.1f}mm  "
            f"Max: {metrics['max_tracking_error_m'] * 1000.0:.1f}mm  "
            f"Estimation: {metrics['mean_estimation_error_m'] * 1000.0:.1f}mm{TERM_RESET}"
        )
        return metrics

    def summary(self) -> Dict[str, Any]:
        """Run metrics so far."""
        count = max(self.sample_count, 1)
        final_error = self.trajectory.sample(self.sim_time).pose.distance_to(self.simulator.get_pose())
        diagnostics = self.drivebase.estimator.get_diagnostics()
        return {
            "duration_s": self.sim_time,
            "samples": self.sample_count,
            "mean_tracking_error_m": self.cumulative_l2_error / count,
            "max_tracking_error_m": self.max_l2_error,
            "final_tracking_error_m": final_error,
            "mean_estimation_error_m": self.cumulative_estimation_error / count,
            "vision_accepted": diagnostics["measurements_accepted"],
            "vision_rejected_low_confidence": diagnostics["rejected_low_confidence"],
            "vision_rejected_stale": diagnostics["rejected_stale"],
            "vision_rejected_out_of_order": diagnostics["rejected_out_of_order"],
        }

    def stop(self) -> None:
        """Signal the runner to stop."""
        self.should_stop = True

    def __enter__(self) -> "SimulationRunner":
        self.data_collector.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.data_collector.cleanup()


async def main(
    duration: Optional[float] = None,
    realtime: bool = False,
    vision_uri: Optional[str] = None,
    output_dir: str = ".",
    component_mode: Optional[ComponentMode] = None,
) -> Dict[str, Any]:
    """Main entry point for a simulated run.

    Creates a SimulationRunner, sets up signal handlers for graceful shutdown,
    and runs the control loop.

    Returns:
        Summary metrics for the run.
    """
    with SimulationRunner(
        duration=duration,
        realtime=realtime,
        vision_uri=vision_uri,
        output_dir=output_dir,
        component_mode=component_mode,
    ) as runner:
        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            runner.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        return await runner.run_control_loop()
