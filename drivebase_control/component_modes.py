"""
Component isolation modes for modular testing.

This module defines which drive stack components are active/bypassed so that
each component's contribution to tracking accuracy can be measured on its own.
"""

from dataclasses import dataclass
import argparse
import sys


@dataclass
class ComponentMode:
    """Configuration for which drive components are active."""

    # Estimation Layer
    use_vision: bool = True  # If False, run on odometry alone

    # Tracking Layer
    use_ramsete: bool = True  # If False, pass the reference velocities through

    # Wheel Control Layer
    use_feedforward: bool = True  # If False, disable the motor model voltage
    use_pid: bool = True  # If False, disable wheel speed feedback

    def __str__(self):
        """Human-readable description of active components."""
        components = []

        components.append("Odometry+Vision" if self.use_vision else "Odometry")
        components.append("Ramsete" if self.use_ramsete else "Reference Tracking")

        terms = []
        if self.use_feedforward:
            terms.append("FF")
        if self.use_pid:
            terms.append("PID")
        components.append(f"Wheels({'+'.join(terms)})" if terms else "Wheels(Off)")

        return " → ".join(components)

    def to_dict(self):
        """Convert to dictionary for logging."""
        return {
            'use_vision': self.use_vision,
            'use_ramsete': self.use_ramsete,
            'use_feedforward': self.use_feedforward,
            'use_pid': self.use_pid,
        }


def parse_component_flags(args=None):
    """
    Parse command-line flags to determine which components are active.

    Args:
        args: List of command-line arguments (default: sys.argv[1:])

    Returns:
        tuple: (ComponentMode, remaining_args)
            - ComponentMode with appropriate settings
            - List of remaining arguments not consumed
    """
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument('--no-vision', action='store_true',
                        help='Ignore vision measurements (odometry only)')
    parser.add_argument('--no-ramsete', action='store_true',
                        help='Bypass Ramsete feedback (drive the reference velocities)')
    parser.add_argument('--no-feedforward', action='store_true',
                        help='Disable the feedforward term in the wheel controller')
    parser.add_argument('--no-pid', action='store_true',
                        help='Disable wheel speed feedback in the wheel controller')

    if args is None:
        args = sys.argv[1:]

    known_args, remaining_args = parser.parse_known_args(args)

    mode = ComponentMode(
        use_vision=not known_args.no_vision,
        use_ramsete=not known_args.no_ramsete,
        use_feedforward=not known_args.no_feedforward,
        use_pid=not known_args.no_pid,
    )

    return mode, remaining_args
