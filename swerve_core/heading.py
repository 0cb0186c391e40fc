"""Heading source wrapping a single absolute-orientation sensor.

The heading is continuous (it keeps counting past +/-180 degrees) and a
reset stores an offset instead of re-zeroing the physical sensor.
"""

import math
from abc import ABC, abstractmethod


class HeadingSensor(ABC):
    """Absolute orientation sensor, counter-clockwise positive radians."""

    @abstractmethod
    def read_angle(self) -> float:
        """Raw continuous sensor angle (radians)."""

    def update(self, dt: float) -> None:
        """Sample the sensor once per tick. Hardware sensors need nothing here."""


class Gyro:
    """Heading source: one sensor plus a reset offset.

    Attributes:
        sensor: The wrapped orientation sensor.
        offset: Added to the raw angle to produce the heading (radians).
    """

    def __init__(self, sensor: HeadingSensor):
        self.sensor = sensor
        self.offset: float = 0.0

    def update(self, dt: float) -> None:
        self.sensor.update(dt)

    def get_heading(self) -> float:
        """Current continuous heading (radians)."""
        return self.sensor.read_angle() + self.offset

    def get_heading_degrees(self) -> float:
        return math.degrees(self.get_heading())

    def reset(self, value: float = 0.0) -> None:
        """Make the heading read value from now on.

        Args:
            value: Heading to report after the reset (radians).
        """
        self.offset = value - self.sensor.read_angle()
