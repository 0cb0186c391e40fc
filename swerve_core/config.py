"""Configuration parameters for the swerve motion & localization core.

This module centralizes all configuration parameters including:
- Physical robot parameters (geometry, gear ratios, speed limits)
- Module control gains
- Pose estimation and vision trust parameters
- Trajectory follower gains
- Runtime, telemetry and WebSocket parameters

Units are SI throughout (meters, radians, seconds) unless a name says otherwise.
"""

import math

# ============================================================================
# Physical Robot Parameters
# ============================================================================

INCH = 0.0254
"""Meters per inch."""

TRACK_WIDTH = 23.08 * INCH
"""Distance between left and right wheel contact points (meters).
Measured without bumpers."""

WHEEL_BASE = 22.64 * INCH
"""Distance between front and rear wheel contact points (meters).
Measured without bumpers."""

MODULE_OFFSETS = (
    (WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),  # front left
    (WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),  # front right
    (-WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),  # back left
    (-WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),  # back right
)
"""Wheel offsets (x forward, y left) from the rotation center (meters).

Order is fixed for the whole package: FL, FR, BL, BR.
"""

MODULE_NAMES = ("Front Left", "Front Right", "Back Left", "Back Right")
"""Human-readable module names, same order as MODULE_OFFSETS."""

MAX_SPEED = 20.0
"""Maximum wheel linear speed (m/s). Desaturation limit for all modules."""

MAX_ANGULAR_SPEED = 3.0 * (2.0 * math.pi)
"""Maximum chassis angular speed (rad/s). Three turns per second."""

WHEEL_DIAMETER = 4.0 * INCH
"""Drive wheel diameter (meters)."""

DRIVE_GEAR_RATIO = 1.0 / 6.12
"""Drive motor to wheel reduction (6.12:1)."""

STEER_GEAR_RATIO = 1.0 / 12.8
"""Steering motor to module reduction (12.8:1)."""

DRIVE_ROTATION_TO_METER = DRIVE_GEAR_RATIO * WHEEL_DIAMETER * math.pi
"""Drive encoder conversion: motor rotations -> meters of wheel travel."""

DRIVE_RPM_TO_METER_PER_SECOND = DRIVE_ROTATION_TO_METER / 60.0
"""Drive encoder conversion: motor RPM -> wheel surface speed (m/s)."""

STEER_ROTATION_TO_RADIAN = STEER_GEAR_RATIO * 2.0 * math.pi
"""Steering encoder conversion: motor rotations -> module angle (radians)."""


# ============================================================================
# Module Control Parameters
# ============================================================================

STEER_KP = 0.5
"""Proportional gain for steering position control (duty per radian).

Error is always the shortest angular distance, so the largest possible
error is pi/2 after optimization; 0.5 keeps the output below full duty.
"""

STEER_KI = 0.0
"""Integral gain for steering position control. Disabled."""

STEER_KD = 0.0
"""Derivative gain for steering position control. Disabled."""

DRIVE_KP = 0.1
"""Proportional gain for closed-loop drive velocity (duty per m/s of error)."""

DRIVE_KI = 0.0
"""Integral gain for closed-loop drive velocity."""

DRIVE_KD = 0.0
"""Derivative gain for closed-loop drive velocity."""

DRIVE_KS = 0.01
"""Static friction feedforward for the drive motor (duty)."""

DRIVE_KV = 1.0 / MAX_SPEED
"""Velocity feedforward for the drive motor (duty per m/s)."""

PID_INTEGRAL_LIMIT = 0.5
"""Anti-windup clamp for accumulated integral error."""


# ============================================================================
# Simulation Parameters
# ============================================================================

SIM_STEER_RATE = 4.0 * math.pi
"""Maximum simulated steering rate (rad/s). None would mean instantaneous."""

SIM_DRIVE_TIME_CONSTANT = 0.05
"""First-order time constant of the simulated drive velocity (seconds)."""

SIM_CURRENT_PER_MPS = 2.5
"""Simulated current draw per m/s of wheel speed (amps)."""

SIM_VISION_LATENCY_MS = (11.0, 20.0, 1.5)
"""Simulated vision latency components: capture, pipeline, parse (ms)."""

SIM_VISION_NOISE = (0.05, 0.05, math.radians(2.0))
"""Standard deviation of simulated vision pose noise (m, m, rad)."""


# ============================================================================
# Pose Estimation Parameters
# ============================================================================

ENCODER_STD_DEVS = (0.1, 0.1, 0.1)
"""Standard deviations of the odometry state (m, m, rad).

Larger values = trust odometry less, vision pulls harder.
"""

POSE_HISTORY_SECONDS = 1.5
"""How much odometry history is retained for latency compensation (seconds).

Vision measurements captured earlier than this are rejected as stale.
"""

INITIAL_POSE = (0.0, 0.0, 0.0)
"""Field pose at startup (x m, y m, heading rad)."""

FIELD_LENGTH = 16.541
"""Field length along x (meters). Used to mirror paths for the red alliance."""


# ============================================================================
# Vision Trust Parameters
# ============================================================================

USE_VISION_ODOMETRY = True
"""Enable vision corrections of the pose estimate."""

VISION_MAX_POSE_DIFFERENCE = 1.0
"""Hard implausibility bound on vision / odometry disagreement (meters).

Any measurement further than this from the current estimate is skipped,
regardless of how many tags were visible.
"""

VISION_MEDIUM_MIN_AREA = 0.8
"""Minimum target area (percent of image) for a single-tag MEDIUM tier."""

VISION_MEDIUM_MAX_DIFFERENCE = 0.5
"""Maximum disagreement (meters) for a single-tag MEDIUM tier."""

VISION_LOW_MIN_AREA = 0.1
"""Minimum target area (percent of image) for a single-tag LOW tier."""

VISION_LOW_MAX_DIFFERENCE = 0.3
"""Maximum disagreement (meters) for a single-tag LOW tier."""

VISION_HIGH_STD_DEVS = (0.5, 0.5, math.radians(6.0))
"""Vision std devs (m, m, rad) when two or more tags are visible."""

VISION_MEDIUM_STD_DEVS = (1.0, 1.0, math.radians(12.0))
"""Vision std devs (m, m, rad) for a large, consistent single tag."""

VISION_LOW_STD_DEVS = (2.0, 2.0, math.radians(30.0))
"""Vision std devs (m, m, rad) for a small but consistent single tag."""


# ============================================================================
# Trajectory Follower Parameters
# ============================================================================

AUTO_TRANSLATION_PID = (0.1, 0.0, 0.0)
"""Translation PID gains (kp, ki, kd) for the holonomic follower."""

AUTO_ROTATION_PID = (0.1, 0.0, 0.0)
"""Rotation PID gains (kp, ki, kd) for the holonomic follower."""

AUTO_MAX_SPEED = 1.0
"""Maximum module speed while following a trajectory (m/s)."""

AUTO_DRIVE_BASE_RADIUS = WHEEL_BASE / 2.0
"""Drive base radius handed to the follower (meters)."""


# ============================================================================
# Runtime and Telemetry
# ============================================================================

CONTROL_PERIOD = 0.02
"""Control loop period (seconds). 50 Hz."""

TELEMETRY_BUFFER_SIZE = 3000
"""In-memory telemetry capacity (snapshots). Oldest entries are dropped."""

# Terminal color codes (ANSI escape sequences)
TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for status messages."""

TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for highlights."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""

PLOT_PRIMARY = "#f74823"
"""Plot color for measured / estimated data."""

PLOT_SECONDARY = "#2374f7"
"""Plot color for commanded / reference data."""

PLOT_NEUTRAL = "#686a5f"
"""Plot color for grids and guides."""


# ============================================================================
# WebSocket Configuration
# ============================================================================

VISION_WS_URI = "ws://10.35.26.11:5806"
"""WebSocket URI of the vision co-processor stream."""

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 30
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""
