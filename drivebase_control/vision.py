"""Vision pose measurements for the pose estimator.

Vision arrives irregularly and late: each measurement carries the time the
image was captured, which is what the estimator needs for latency compensation.
Two sources are provided:
- SimulatedVision: delayed, noisy ground-truth poses from the simulator
- VisionClient: WebSocket subscriber for an external vision pipeline

Sources that are polled return None on cycles without a new measurement; that
is the normal case, not an error.
"""

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Protocol, Tuple, Union

import numpy as np
import websockets

from .config import (
    SIM_VISION_CONFIDENCE,
    SIM_VISION_HEADING_STD,
    SIM_VISION_LATENCY,
    SIM_VISION_PERIOD,
    SIM_VISION_POSITION_STD,
    SIMULATION_SEED,
    TERM_BLUE,
    TERM_RESET,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_TIMEOUT_SECONDS,
)
from .geometry import Pose
from .localizer import PoseEstimator
from .simulator import DrivetrainSimulator


@dataclass(frozen=True)
class VisionMeasurement:
    """Absolute pose observed by the vision pipeline.

    Attributes:
        pose: Robot pose in the world frame.
        timestamp: Image capture time, in the estimator's time base (seconds).
        confidence: Pipeline confidence in [0, 1].
    """

    pose: Pose
    timestamp: float
    confidence: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Vision confidence must be in [0, 1], got {self.confidence}")


class VisionSource(Protocol):
    def poll(self, now: float) -> Optional[VisionMeasurement]:
        """Return a measurement that became available by ``now``, if any."""
        ...


class SimulatedVision:
    """Vision source replaying the simulator's ground truth with delay and noise.

    A capture is taken every ``period`` seconds and handed out ``latency``
    seconds later, stamped with the capture time.
    """

    def __init__(
        self,
        simulator: DrivetrainSimulator,
        period: float = SIM_VISION_PERIOD,
        latency: float = SIM_VISION_LATENCY,
        position_std: float = SIM_VISION_POSITION_STD,
        heading_std: float = SIM_VISION_HEADING_STD,
        confidence: float = SIM_VISION_CONFIDENCE,
        seed: int = SIMULATION_SEED,
    ):
        if not period > 0.0:
            raise ValueError(f"Vision period must be positive, got {period}")
        if latency < 0.0:
            raise ValueError(f"Vision latency must be non-negative, got {latency}")

        self.simulator = simulator
        self.period = period
        self.latency = latency
        self.position_std = position_std
        self.heading_std = heading_std
        self.confidence = confidence
        self._rng = np.random.default_rng(seed)
        self._next_capture: Optional[float] = None
        self._pending: Deque[VisionMeasurement] = deque()

    def poll(self, now: float) -> Optional[VisionMeasurement]:
        if self._next_capture is None:
            self._next_capture = now
        if now >= self._next_capture:
            self._pending.append(self._capture(now))
            self._next_capture += self.period * max(1, int((now - self._next_capture) // self.period) + 1)

        if self._pending and self._pending[0].timestamp + self.latency <= now:
            return self._pending.popleft()
        return None

    def _capture(self, timestamp: float) -> VisionMeasurement:
        truth = self.simulator.get_pose()
        noise = self._rng.normal(0.0, [self.position_std, self.position_std, self.heading_std])
        return VisionMeasurement(
            pose=Pose(truth.x + noise[0], truth.y + noise[1], truth.heading + noise[2]),
            timestamp=timestamp,
            confidence=self.confidence,
        )


def parse_vision_message(data: Dict[str, Any], clock_offset: float = 0.0) -> Optional[VisionMeasurement]:
    """Convert a decoded vision message into a measurement.

    Expected format:
        {"message_type": "vision", "x": .., "y": .., "heading": ..,
         "timestamp": .., "confidence": ..}

    Args:
        data: Decoded JSON message.
        clock_offset: Added to the message timestamp to move it into the
            estimator's time base (seconds).

    Returns:
        The measurement, or None for messages of another type.

    Raises:
        KeyError: If a field is missing.
        TypeError, ValueError: If a field is not numeric or the confidence is
            out of range.
    """
    if data.get("message_type") != "vision":
        return None
    return VisionMeasurement(
        pose=Pose(float(data["x"]), float(data["y"]), float(data["heading"])),
        timestamp=float(data["timestamp"]) + clock_offset,
        confidence=float(data["confidence"]),
    )


class VisionClient:
    """WebSocket subscriber feeding vision measurements into a PoseEstimator.

    Runs as an asyncio task next to the control loop and reconnects with
    exponential backoff until stop() is called.

    Attributes:
        uri: WebSocket URI of the vision feed.
        estimator: Estimator receiving accepted measurements.
        clock_offset: Offset from the feed's clock to the estimator's (seconds).
        should_stop: Flag indicating whether to stop the receive loop.
    """

    def __init__(self, uri: str, estimator: PoseEstimator, clock_offset: float = 0.0) -> None:
        """Initialize the vision client.

        Args:
            uri: WebSocket URI to connect to (must start with ws:// or wss://).
            estimator: Estimator that receives the measurements.
            clock_offset: Offset added to every message timestamp (seconds).

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri = uri
        self.estimator = estimator
        self.clock_offset = clock_offset
        self.should_stop = False
        self.messages_received = 0
        self.last_measurement: Optional[VisionMeasurement] = None
        self.last_accepted = False

    def handle_message(self, message: Union[str, bytes]) -> Tuple[Optional[VisionMeasurement], bool]:
        """Parse one raw message and forward it to the estimator.

        Args:
            message: Raw JSON message string or bytes from WebSocket.

        Returns:
            (measurement, accepted). measurement is None when the message was
            malformed or not a vision message.
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            data = json.loads(message)
            measurement = parse_vision_message(data, self.clock_offset)
        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
            return None, False
        except (KeyError, TypeError, ValueError) as e:
            logging.error(f"Error processing vision message: {e}")
            return None, False

        if measurement is None:
            logging.debug(f"Ignoring message type: {data.get('message_type')}")
            return None, False

        self.messages_received += 1
        self.last_measurement = measurement
        accepted = self.estimator.add_vision_measurement(
            measurement.pose, measurement.timestamp, measurement.confidence
        )
        self.last_accepted = accepted
        return measurement, accepted

    async def run(self) -> None:
        """Receive measurements until stopped, reconnecting on failure."""
        retry_delay = WS_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to vision feed{TERM_RESET}")
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(
                                websocket.recv(), timeout=WS_TIMEOUT_SECONDS
                            )
                        except asyncio.TimeoutError:
                            continue
                        except websockets.exceptions.ConnectionClosed:
                            logging.warning("Vision feed closed the connection")
                            break
                        self.handle_message(message)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self.should_stop:
                    break
                logging.error(f"Vision connection error: {e}")
                logging.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, WS_MAX_RETRY_DELAY_SECONDS)

    def stop(self) -> None:
        """Signal the client to stop."""
        self.should_stop = True
