"""Vision correction of the pose estimate.

The vision co-processor is treated as untrusted. Each tick the corrector
polls the latest frame (non-blocking), compensates its latency, checks it
for plausibility against the current estimate and assigns a trust tier.
The tier selects the standard deviations the estimator uses as the
correction weight:

    tags >= 2                                    -> HIGH
    single tag, area > 0.8 and disagreement < 0.5 m -> MEDIUM
    single tag, area > 0.1 and disagreement < 0.3 m -> LOW
    anything else                                -> REJECT

Rejections are never fatal: they are logged once, recorded as advisories
for telemetry and the next frame is judged independently.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .config import (
    VISION_HIGH_STD_DEVS,
    VISION_LOW_MAX_DIFFERENCE,
    VISION_LOW_MIN_AREA,
    VISION_LOW_STD_DEVS,
    VISION_MAX_POSE_DIFFERENCE,
    VISION_MEDIUM_MAX_DIFFERENCE,
    VISION_MEDIUM_MIN_AREA,
    VISION_MEDIUM_STD_DEVS,
)
from .geometry import Pose
from .pose_estimator import SwervePoseEstimator


class TrustTier(Enum):
    """Confidence class of a vision measurement."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    REJECT = "reject"


TIER_STD_DEVS: Dict[TrustTier, Tuple[float, float, float]] = {
    TrustTier.HIGH: VISION_HIGH_STD_DEVS,
    TrustTier.MEDIUM: VISION_MEDIUM_STD_DEVS,
    TrustTier.LOW: VISION_LOW_STD_DEVS,
}
"""Vision std devs (m, m, rad) per accepted tier. Tighter = pulls harder."""


@dataclass(frozen=True)
class VisionFrame:
    """Raw sample as published by the vision co-processor.

    Attributes:
        valid: Co-processor's own validity flag.
        tag_count: Number of fiducial tags used for the pose.
        target_area: Area of the main target (percent of image).
        latency_components_ms: Capture, pipeline and parse delays (ms).
        pose: Estimated field pose, or None if unavailable.
        timestamp: Publish time used to tell frames apart (seconds).
    """

    valid: bool
    tag_count: int
    target_area: float
    latency_components_ms: Tuple[float, ...]
    pose: Optional[Pose]
    timestamp: float

    def total_latency(self) -> float:
        """Total latency in seconds."""
        return sum(self.latency_components_ms) / 1000.0


@dataclass(frozen=True)
class VisionMeasurement:
    """Latency-compensated observation, discarded once consumed."""

    pose: Pose
    capture_timestamp: float
    tag_count: int
    target_area: float
    valid: bool


@dataclass(frozen=True)
class VisionAdvisory:
    """Telemetry record of a rejected measurement."""

    timestamp: float
    reason: str
    detail: str


class VisionSource(ABC):
    """Asynchronous, out-of-process vision source."""

    @abstractmethod
    def get_latest(self) -> Optional[VisionFrame]:
        """Latest available frame without blocking, or None."""


class VisionCorrector:
    """Turns raw vision frames into weighted pose corrections.

    Attributes:
        estimator: Pose estimator receiving the corrections.
        source: Polled vision source.
        max_pose_difference: Hard implausibility bound (meters).
        last_tier: Tier of the most recently judged measurement.
    """

    def __init__(
        self,
        estimator: SwervePoseEstimator,
        source: VisionSource,
        max_pose_difference: float = VISION_MAX_POSE_DIFFERENCE,
        tier_std_devs: Optional[Dict[TrustTier, Tuple[float, float, float]]] = None,
    ):
        self.estimator = estimator
        self.source = source
        self.max_pose_difference = max_pose_difference
        self.tier_std_devs = dict(tier_std_devs or TIER_STD_DEVS)

        self.last_tier: Optional[TrustTier] = None
        self._last_frame_timestamp: Optional[float] = None
        self._advisories: List[VisionAdvisory] = []

        # Diagnostics
        self.accepted_count = 0
        self.rejected_counts: Dict[str, int] = {}

    def to_measurement(self, frame: VisionFrame, now: float) -> VisionMeasurement:
        """Build a measurement whose timestamp is the estimated capture time."""
        return VisionMeasurement(
            pose=frame.pose if frame.pose is not None else Pose(),
            capture_timestamp=now - frame.total_latency(),
            tag_count=frame.tag_count,
            target_area=frame.target_area,
            valid=frame.valid and frame.pose is not None,
        )

    def classify(self, measurement: VisionMeasurement, current_pose: Pose) -> TrustTier:
        """Trust tier from tag count, target area and disagreement."""
        difference = current_pose.distance_to(measurement.pose)

        if measurement.tag_count >= 2:
            return TrustTier.HIGH
        if measurement.target_area > VISION_MEDIUM_MIN_AREA and difference < VISION_MEDIUM_MAX_DIFFERENCE:
            return TrustTier.MEDIUM
        if measurement.target_area > VISION_LOW_MIN_AREA and difference < VISION_LOW_MAX_DIFFERENCE:
            return TrustTier.LOW
        return TrustTier.REJECT

    def _reject(self, now: float, reason: str, detail: str) -> None:
        self.last_tier = TrustTier.REJECT
        self.rejected_counts[reason] = self.rejected_counts.get(reason, 0) + 1
        self._advisories.append(VisionAdvisory(now, reason, detail))
        logging.warning(f"Vision measurement rejected ({reason}): {detail}")

    def update(self, now: float) -> Optional[TrustTier]:
        """Poll the source and fuse the latest frame if it is new and plausible.

        Args:
            now: Current control tick time (seconds).

        Returns:
            The tier applied, TrustTier.REJECT if the frame was rejected, or
            None if there was no new frame.
        """
        frame = self.source.get_latest()
        if frame is None:
            return None
        if self._last_frame_timestamp is not None and frame.timestamp <= self._last_frame_timestamp:
            return None
        self._last_frame_timestamp = frame.timestamp

        measurement = self.to_measurement(frame, now)
        return self.apply(measurement, now)

    def apply(self, measurement: VisionMeasurement, now: float) -> TrustTier:
        """Validate, classify and fuse one measurement."""
        if not measurement.valid:
            # No targets in view is the common case, not worth an advisory
            self.last_tier = TrustTier.REJECT
            return TrustTier.REJECT

        if measurement.tag_count <= 0 or measurement.target_area <= 0:
            self._reject(
                now,
                "no_confidence",
                f"tag_count={measurement.tag_count} target_area={measurement.target_area:.3f}",
            )
            return TrustTier.REJECT

        oldest = self.estimator.oldest_timestamp()
        if measurement.capture_timestamp > now or oldest is None or measurement.capture_timestamp < oldest:
            self._reject(
                now,
                "stale",
                f"capture t={measurement.capture_timestamp:.3f}s outside odometry history",
            )
            return TrustTier.REJECT

        current = self.estimator.get_pose()
        difference = current.distance_to(measurement.pose)
        if difference > self.max_pose_difference:
            self._reject(now, "implausible", f"pose difference {difference:.2f}m too large")
            return TrustTier.REJECT

        tier = self.classify(measurement, current)
        if tier is TrustTier.REJECT:
            self._reject(
                now,
                "untrusted",
                f"tags={measurement.tag_count} area={measurement.target_area:.2f} "
                f"difference={difference:.2f}m",
            )
            return tier

        applied = self.estimator.add_vision_measurement(
            measurement.pose, measurement.capture_timestamp, self.tier_std_devs[tier]
        )
        if not applied:
            self._reject(now, "stale", "estimator history no longer covers capture time")
            return TrustTier.REJECT

        self.last_tier = tier
        self.accepted_count += 1
        logging.debug(f"Vision measurement fused with {tier.value} trust ({difference:.2f}m)")
        return tier

    def drain_advisories(self) -> List[VisionAdvisory]:
        """Pending advisories; each is handed out exactly once."""
        advisories, self._advisories = self._advisories, []
        return advisories

    def get_diagnostics(self) -> Dict[str, int]:
        diagnostics = {"accepted": self.accepted_count}
        for reason, count in self.rejected_counts.items():
            diagnostics[f"rejected_{reason}"] = count
        return diagnostics


class ReplayVisionSource(VisionSource):
    """Replays a fixed list of frames, then keeps returning the last one."""

    def __init__(self, frames: Sequence[VisionFrame]):
        self._frames = list(frames)
        self._index = 0

    def get_latest(self) -> Optional[VisionFrame]:
        if not self._frames:
            return None
        frame = self._frames[min(self._index, len(self._frames) - 1)]
        self._index += 1
        return frame
