"""
Main entry point when running the drivebase_control module with python -m.
"""

import argparse
import asyncio
import logging
import sys

from .component_modes import parse_component_flags
from .config import VISION_WS_URI
from .runner import main, setup_logging

if __name__ == "__main__":
    # Parse component isolation flags first
    component_mode, remaining_args = parse_component_flags()

    parser = argparse.ArgumentParser(
        description="Run the drive base stack along the reference trajectory in simulation"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument(
        "--duration", type=float, default=None, help="Run length in seconds (default: trajectory length)"
    )
    parser.add_argument(
        "--realtime", action="store_true", help="Pace the control loop to wall-clock time"
    )
    parser.add_argument(
        "--vision-uri",
        nargs="?",
        const=VISION_WS_URI,
        default=None,
        help=f"Subscribe to an external vision feed (default URI: {VISION_WS_URI}). "
        "Without this flag vision is simulated",
    )
    parser.add_argument(
        "--output-dir", type=str, default=".", help="Base directory for results/ (default: .)"
    )
    args = parser.parse_args(remaining_args)

    setup_logging(args.verbose)

    try:
        asyncio.run(
            main(
                duration=args.duration,
                realtime=args.realtime,
                vision_uri=args.vision_uri,
                output_dir=args.output_dir,
                component_mode=component_mode,
            )
        )
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
