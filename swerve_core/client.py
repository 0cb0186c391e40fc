#!/usr/bin/env python3
"""
Vision Stream Client and Control Loop Runner

This module provides a WebSocket client that subscribes to the vision
co-processor's pose stream and exposes the latest frame to the drive as a
non-blocking VisionSource, plus an asyncio control loop that ticks the
drive at the configured period and logs telemetry to CSV files.
"""

import asyncio
import json
import logging
import math
import signal
import time
from typing import Any, Dict, Optional, Union

import websockets

from .component_modes import DriveFeatures
from .config import (
    CONTROL_PERIOD,
    TERM_BLUE,
    TERM_RESET,
    VISION_WS_URI,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_TIMEOUT_SECONDS,
)
from .geometry import ChassisVelocity, Pose
from .sim import build_simulated_drive
from .telemetry import CsvTelemetry
from .vision import VisionFrame, VisionSource


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


def parse_vision_message(data: Dict[str, Any], received_at: Optional[float] = None) -> VisionFrame:
    """Build a VisionFrame from a decoded vision stream message.

    Expected message layout:
        {"valid": bool, "tag_count": int, "target_area": float,
         "latency_ms": [capture, pipeline, parse],
         "pose": [x_m, y_m, heading_deg], "timestamp": float}

    "pose" may be null when no target is in view; "timestamp" defaults to
    the receive time.

    Raises:
        KeyError: If a required field is missing.
        ValueError: If a field has the wrong shape.
    """
    pose_data = data.get("pose")
    pose: Optional[Pose] = None
    if pose_data is not None:
        if len(pose_data) != 3:
            raise ValueError(f"pose needs [x, y, heading_deg], got {pose_data}")
        x, y, heading_deg = (float(v) for v in pose_data)
        pose = Pose(x, y, math.radians(heading_deg))

    latency = tuple(float(v) for v in data.get("latency_ms", ()))
    if any(v < 0 for v in latency):
        raise ValueError(f"latency components must be non-negative, got {latency}")

    timestamp = data.get("timestamp")
    if timestamp is None:
        timestamp = received_at if received_at is not None else time.monotonic()

    return VisionFrame(
        valid=bool(data["valid"]),
        tag_count=int(data["tag_count"]),
        target_area=float(data["target_area"]),
        latency_components_ms=latency,
        pose=pose,
        timestamp=float(timestamp),
    )


class VisionStreamClient(VisionSource):
    """Keeps the latest frame published on the vision WebSocket stream.

    The drive polls get_latest() from its control tick; the network side
    runs as an asyncio task and never blocks the tick.

    Attributes:
        uri: WebSocket URI to connect to.
        should_stop: Flag indicating whether to stop the receive loop.
        messages_received: Number of frames parsed successfully.
        messages_dropped: Number of malformed messages discarded.
    """

    def __init__(self, uri: str = VISION_WS_URI) -> None:
        """Initialize the client.

        Args:
            uri: WebSocket URI to connect to (must start with ws:// or wss://).

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.should_stop: bool = False
        self.messages_received = 0
        self.messages_dropped = 0
        self._latest: Optional[VisionFrame] = None

    def get_latest(self) -> Optional[VisionFrame]:
        return self._latest

    def handle_message(self, message: Union[str, bytes]) -> Optional[VisionFrame]:
        """Parse one raw message and store it as the latest frame.

        Malformed messages are logged and dropped; the previous frame stays.
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            frame = parse_vision_message(json.loads(message))
        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
        except (KeyError, TypeError, ValueError) as e:
            logging.error(f"Error processing vision message: {e}")
        else:
            self._latest = frame
            self.messages_received += 1
            return frame
        self.messages_dropped += 1
        return None

    async def run(self) -> None:
        """Receive frames until stopped.

        Reconnects with exponential backoff on connection errors.
        """
        retry_delay = WS_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to vision stream{TERM_RESET}")
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(
                                websocket.recv(), timeout=WS_TIMEOUT_SECONDS
                            )
                        except asyncio.TimeoutError:
                            continue
                        except websockets.exceptions.ConnectionClosed:
                            logging.warning("Vision stream closed by server")
                            break
                        self.handle_message(message)

            except (OSError, websockets.exceptions.WebSocketException) as e:
                if self.should_stop:
                    break
                logging.error(f"Vision connection error: {e}")
                logging.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, WS_MAX_RETRY_DELAY_SECONDS)

    def stop(self) -> None:
        self.should_stop = True


class DriveRunner:
    """Ticks a drive at the control period and logs telemetry.

    Attributes:
        drive: The SwerveDrive being run.
        telemetry: CSV sink, or None if telemetry is disabled.
        vision_client: WebSocket vision source, or None for simulated vision.
        should_stop: Flag indicating whether to stop the control loop.
    """

    def __init__(
        self,
        features: Optional[DriveFeatures] = None,
        vision_uri: Optional[str] = None,
        output_dir: str = ".",
    ) -> None:
        self.features = features or DriveFeatures()
        logging.info(f"{TERM_BLUE}Component Configuration: {self.features}{TERM_RESET}")

        self.telemetry = CsvTelemetry(output_dir=output_dir) if self.features.use_telemetry else None
        self.vision_client = (
            VisionStreamClient(vision_uri) if vision_uri and self.features.use_vision else None
        )
        self._start = time.monotonic()
        self.drive, self.heading_sensor = build_simulated_drive(
            self.features,
            telemetry=self.telemetry,
            vision_source=self.vision_client,
            clock=self.elapsed,
        )
        self.should_stop = False

    def elapsed(self) -> float:
        return time.monotonic() - self._start

    async def run_control_loop(self, duration: float, command: ChassisVelocity) -> None:
        """Drive field-relative at command for duration seconds, then stop."""
        self.drive.drive_field_relative(command)
        logging.info(f"{TERM_BLUE}✓ Running field-relative drive for {duration:.1f}s{TERM_RESET}")

        while not self.should_stop and self.elapsed() < duration:
            self.drive.periodic(self.elapsed())
            await asyncio.sleep(CONTROL_PERIOD)

        self.drive.stop()
        self.drive.periodic(self.elapsed())

        pose = self.drive.get_pose()
        truth = self.heading_sensor.get_true_pose()
        logging.info(
            f"{TERM_BLUE}\033[1m→ Pose: x={pose.x:.3f}m y={pose.y:.3f}m "
            f"heading={math.degrees(pose.heading):.1f}deg  "
            f"Error: {pose.distance_to(truth) * 1000.0:.1f}mm{TERM_RESET}"
        )
        if self.drive.vision is not None:
            logging.info(f"Vision: {self.drive.vision.get_diagnostics()}")

    def stop(self) -> None:
        self.should_stop = True
        if self.vision_client is not None:
            self.vision_client.stop()

    def __enter__(self) -> "DriveRunner":
        if self.telemetry is not None:
            self.telemetry.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.telemetry is not None:
            self.telemetry.cleanup()


async def main(
    features: Optional[DriveFeatures] = None,
    duration: float = 5.0,
    command: ChassisVelocity = ChassisVelocity(1.0, 0.0, 0.0),
    vision_uri: Optional[str] = None,
) -> None:
    """Main entry point for the control loop runner.

    Args:
        features: Active feature flags.
        duration: How long to drive (seconds).
        command: Field-relative velocity to hold.
        vision_uri: Vision stream URI; simulated vision is used if None.
    """
    with DriveRunner(features, vision_uri=vision_uri) as runner:
        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            runner.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        vision_task = None
        if runner.vision_client is not None:
            vision_task = asyncio.create_task(runner.vision_client.run())

        try:
            await runner.run_control_loop(duration, command)
        finally:
            runner.stop()
            if vision_task is not None:
                vision_task.cancel()
                try:
                    await vision_task
                except asyncio.CancelledError:
                    pass
