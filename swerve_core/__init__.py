"""Swerve Core - Motion and Localization for Four-Module Swerve Drives

The motion & localization core of a competition robot with four
independently steered and driven wheel modules.

## Architecture Overview

One control tick, run by an external scheduler at a fixed period:

### Layer 1: Command (drive.py, kinematics.py)
Caller intent (field-relative, robot-relative, lock, stop, follow) becomes a
robot-relative chassis velocity and then per-module (speed, angle) targets.
- Uniform desaturation keeps the commanded direction
- Angle optimization flips a wheel instead of turning it more than 90 degrees

### Layer 2: Module Control (module.py, pid.py)
Each module closes a steering position loop on the shortest angular error
and a drive velocity loop (feedforward + PID, or open loop).

### Layer 3: Odometry (pose_estimator.py, heading.py)
Wheel distance deltas and the gyro heading are integrated on SE(2) into a
field pose, with a short history retained for latency compensation.

### Layer 4: Vision Correction (vision.py)
Latency-compensated vision poses are checked for plausibility, assigned a
trust tier and fused into the estimate at their capture time.

## Modules

### Core
- `config.py` - Centralized configuration parameters with documentation
- `geometry.py` - Poses, twists and chassis velocities (SE(2))
- `kinematics.py` - Swerve inverse/forward kinematics
- `pid.py` - PID controller with anti-windup and continuous input
- `module.py` - Module controller interface and motor-backed implementation
- `heading.py` - Heading source with reset offset
- `pose_estimator.py` - Odometry + latency-compensated vision fusion
- `vision.py` - Vision trust tiers and correction
- `drive.py` - Drive facade and per-tick state machine
- `follower.py` - Trajectory follower contract and holonomic PID follower

### Runtime & Data
- `sim.py` - Simulated modules, gyro and vision
- `client.py` - Vision WebSocket client and asyncio control loop
- `component_modes.py` - Feature flags (vision, open loop, telemetry)
- `telemetry.py` - In-memory and CSV telemetry sinks

### Visualization
- `plot_styles.py` - Shared plotting utilities and color scheme
- `visualization.py` - Post-run telemetry plots
- `plot_results.py` - CLI for visualization tools

## Quick Start

```python
from swerve_core import ChassisVelocity, build_simulated_drive

drive, _ = build_simulated_drive()
drive.drive_field_relative(ChassisVelocity(1.0, 0.0, 0.0))
for i in range(50):
    drive.periodic(i * 0.02)
print(drive.get_pose())
```

Or use the command-line interface:
```bash
python -m swerve_core --duration 5 --vx 1.0 --omega 90
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

from .drive import DriveMode, DriveSnapshot, SwerveDrive
from .follower import FollowerBindings, FollowerConfig, HolonomicFollower
from .geometry import ChassisVelocity, Pose, Twist
from .heading import Gyro
from .kinematics import ModulePosition, ModuleState, SwerveKinematics
from .pose_estimator import SwervePoseEstimator
from .sim import build_simulated_drive
from .telemetry import CsvTelemetry, MemoryTelemetry
from .vision import TrustTier, VisionCorrector

__all__ = [
    "ChassisVelocity",
    "CsvTelemetry",
    "DriveMode",
    "DriveSnapshot",
    "FollowerBindings",
    "FollowerConfig",
    "Gyro",
    "HolonomicFollower",
    "MemoryTelemetry",
    "ModulePosition",
    "ModuleState",
    "Pose",
    "SwerveDrive",
    "SwerveKinematics",
    "SwervePoseEstimator",
    "TrustTier",
    "Twist",
    "VisionCorrector",
    "build_simulated_drive",
]
