"""
Main entry point when running the swerve_core module with python -m.
"""

import argparse
import asyncio
import logging
import math
import sys

from .client import main, setup_logging
from .component_modes import parse_component_flags
from .geometry import ChassisVelocity

if __name__ == "__main__":
    # Component flags first, the rest goes to the main parser
    features, remaining_args = parse_component_flags()

    parser = argparse.ArgumentParser(
        description="Run the swerve drive control loop on simulated hardware"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument("--duration", type=float, default=5.0, help="Drive duration (seconds)")
    parser.add_argument("--vx", type=float, default=1.0, help="Field-relative x velocity (m/s)")
    parser.add_argument("--vy", type=float, default=0.0, help="Field-relative y velocity (m/s)")
    parser.add_argument(
        "--omega", type=float, default=0.0, help="Angular velocity (degrees/s)"
    )
    parser.add_argument(
        "--vision-uri",
        default=None,
        help="WebSocket URI of the vision stream (default: simulated vision)",
    )
    args = parser.parse_args(remaining_args)

    setup_logging(args.verbose)

    command = ChassisVelocity(args.vx, args.vy, math.radians(args.omega))
    try:
        asyncio.run(
            main(
                features=features,
                duration=args.duration,
                command=command,
                vision_uri=args.vision_uri,
            )
        )
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
