"""
Feature flags for running the drive with parts of the stack disabled.

This module defines which optional components are active so the core can
be evaluated with and without vision correction, closed-loop wheel
velocity control and telemetry.
"""

from dataclasses import dataclass
import argparse
import sys

from .config import USE_VISION_ODOMETRY


@dataclass
class DriveFeatures:
    """Configuration for which optional drive components are active."""

    # Localization
    use_vision: bool = USE_VISION_ODOMETRY  # If False, odometry only

    # Module control
    use_open_loop: bool = False  # If True, drive speed is a duty fraction

    # Outer surfaces
    use_telemetry: bool = True  # If False, no CSV logging

    def __str__(self):
        """Human-readable description of active components."""
        components = ["Odometry+Vision" if self.use_vision else "Odometry"]
        components.append("Drive(Open Loop)" if self.use_open_loop else "Drive(PID+FF)")
        if self.use_telemetry:
            components.append("Telemetry")
        return " → ".join(components)

    def to_dict(self):
        """Convert to dictionary for logging."""
        return {
            'use_vision': self.use_vision,
            'use_open_loop': self.use_open_loop,
            'use_telemetry': self.use_telemetry,
        }


def parse_component_flags(args=None):
    """
    Parse command-line flags to determine which components are active.

    Args:
        args: List of command-line arguments (default: sys.argv[1:])

    Returns:
        tuple: (DriveFeatures, remaining_args)
            - DriveFeatures with appropriate settings
            - List of remaining arguments not consumed
    """
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument('--no-vision', action='store_true',
                        help='Disable vision correction (wheel odometry + gyro only)')
    parser.add_argument('--open-loop', action='store_true',
                        help='Drive wheels open loop (duty = speed / max speed)')
    parser.add_argument('--no-telemetry', action='store_true',
                        help='Disable CSV telemetry logging')

    if args is None:
        args = sys.argv[1:]

    known_args, remaining_args = parser.parse_known_args(args)

    features = DriveFeatures(
        use_vision=USE_VISION_ODOMETRY and not known_args.no_vision,
        use_open_loop=known_args.open_loop,
        use_telemetry=not known_args.no_telemetry,
    )

    return features, remaining_args
