"""Telemetry sinks for per-tick drive snapshots.

The drive publishes one immutable DriveSnapshot per control tick to an
optional sink. Two sinks are provided:
- MemoryTelemetry: bounded in-memory ring buffer (tests, live inspection)
- CsvTelemetry: CSV logging to a timestamped results/run_* directory
  (pose, per-module states and vision advisories)
"""

import csv
import os
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Deque, List, Optional, TextIO

from .config import MODULE_NAMES, TELEMETRY_BUFFER_SIZE, TERM_BLUE, TERM_RESET

if TYPE_CHECKING:
    from .drive import DriveSnapshot


class TelemetrySink(ABC):
    """Receives one snapshot per control tick. Must not block."""

    @abstractmethod
    def publish(self, snapshot: "DriveSnapshot") -> None:
        """Record a snapshot."""


class MemoryTelemetry(TelemetrySink):
    """Keeps the most recent snapshots; the oldest are dropped when full.

    Attributes:
        capacity: Maximum number of snapshots retained.
        dropped: Number of snapshots evicted so far.
    """

    def __init__(self, capacity: int = TELEMETRY_BUFFER_SIZE):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.dropped = 0
        self._buffer: Deque["DriveSnapshot"] = deque(maxlen=capacity)

    def publish(self, snapshot: "DriveSnapshot") -> None:
        if len(self._buffer) == self.capacity:
            self.dropped += 1
        self._buffer.append(snapshot)

    def snapshots(self) -> List["DriveSnapshot"]:
        return list(self._buffer)

    def latest(self) -> Optional["DriveSnapshot"]:
        return self._buffer[-1] if self._buffer else None

    def __len__(self) -> int:
        return len(self._buffer)


def _module_columns() -> List[str]:
    columns = []
    for name in MODULE_NAMES:
        key = name.lower().replace(" ", "_")
        columns += [
            f"{key}_target_speed",
            f"{key}_target_angle",
            f"{key}_speed",
            f"{key}_angle",
            f"{key}_current",
        ]
    return columns


class CsvTelemetry(TelemetrySink):
    """Manages CSV file creation and logging for drive snapshots.

    Attributes:
        run_dir: Directory path for this run's output files.
        pose_output_path: Pose, heading and chassis velocities per tick.
        modules_output_path: Target and measured state of every module.
        vision_output_path: Vision tier per tick plus rejection advisories.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the CSV sink.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory. Can also be set via RUN_DIR environment variable.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.pose_csv_file: Optional[TextIO] = None
        self.pose_csv_writer: Any = None
        self.modules_csv_file: Optional[TextIO] = None
        self.modules_csv_writer: Any = None
        self.vision_csv_file: Optional[TextIO] = None
        self.vision_csv_writer: Any = None

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # Timestamped directory: results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.pose_output_path: Path = self.run_dir / "pose.csv"
        self.modules_output_path: Path = self.run_dir / "modules.csv"
        self.vision_output_path: Path = self.run_dir / "vision.csv"

    def setup(self) -> None:
        """Open all CSV files and write their headers.

        Must be called before publishing.
        """
        self.pose_csv_file = open(self.pose_output_path, "w", newline="")
        self.pose_csv_writer = csv.writer(self.pose_csv_file)
        self.pose_csv_writer.writerow(
            [
                "timestamp",
                "mode",
                "x",
                "y",
                "heading",
                "gyro_heading",
                "cmd_vx",
                "cmd_vy",
                "cmd_omega",
                "vx",
                "vy",
                "omega",
            ]
        )

        self.modules_csv_file = open(self.modules_output_path, "w", newline="")
        self.modules_csv_writer = csv.writer(self.modules_csv_file)
        self.modules_csv_writer.writerow(["timestamp"] + _module_columns())

        self.vision_csv_file = open(self.vision_output_path, "w", newline="")
        self.vision_csv_writer = csv.writer(self.vision_csv_file)
        self.vision_csv_writer.writerow(["timestamp", "tier", "reason", "detail"])

        for f in (self.pose_csv_file, self.modules_csv_file, self.vision_csv_file):
            f.flush()

        print(f"{TERM_BLUE}✓ Initialized telemetry to {self.run_dir}/{TERM_RESET}")

    def publish(self, snapshot: "DriveSnapshot") -> None:
        """Write one snapshot across the CSV files."""
        if self.pose_csv_writer is None:
            raise RuntimeError("CsvTelemetry.setup() must be called before publish()")

        pose = snapshot.pose
        cmd = snapshot.commanded_velocity
        vel = snapshot.robot_velocity
        self.pose_csv_writer.writerow(
            [
                snapshot.timestamp,
                snapshot.mode.value,
                pose.x,
                pose.y,
                pose.heading,
                snapshot.heading,
                cmd.vx,
                cmd.vy,
                cmd.omega,
                vel.vx,
                vel.vy,
                vel.omega,
            ]
        )

        row: List[Any] = [snapshot.timestamp]
        for target, measured, current in zip(
            snapshot.target_states, snapshot.measured_states, snapshot.module_currents
        ):
            row += [target.speed, target.angle, measured.speed, measured.angle, current]
        self.modules_csv_writer.writerow(row)

        if snapshot.vision_tier is not None:
            self.vision_csv_writer.writerow(
                [snapshot.timestamp, snapshot.vision_tier.value, "", ""]
            )
        for advisory in snapshot.advisories:
            self.vision_csv_writer.writerow(
                [advisory.timestamp, "reject", advisory.reason, advisory.detail]
            )

        for f in (self.pose_csv_file, self.modules_csv_file, self.vision_csv_file):
            if f:
                f.flush()

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        for f in (self.pose_csv_file, self.modules_csv_file, self.vision_csv_file):
            if f:
                f.close()
        print(f"{TERM_BLUE}✓ Saved telemetry to {self.run_dir}/{TERM_RESET}")

    def __enter__(self) -> "CsvTelemetry":
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()
