import pytest

from swerve_core.config import MODULE_OFFSETS
from swerve_core.geometry import Pose
from swerve_core.kinematics import SwerveKinematics
from swerve_core.pose_estimator import SwervePoseEstimator
from swerve_core.vision import (
    ReplayVisionSource,
    TrustTier,
    VisionCorrector,
    VisionMeasurement,
)
from tests.dummies import frame, positions

NOW = 1.0


def stationary_estimator():
    estimator = SwervePoseEstimator(SwerveKinematics(MODULE_OFFSETS), 0.0, positions())
    for i in range(51):
        estimator.update(i * 0.02, 0.0, positions())
    return estimator


def corrector_for(*frames):
    estimator = stationary_estimator()
    return VisionCorrector(estimator, ReplayVisionSource(frames)), estimator


def test_latency_is_summed_in_seconds():
    assert frame(Pose()).total_latency() == pytest.approx(0.0325)


def test_measurement_timestamp_is_capture_time():
    corrector, _ = corrector_for()
    measurement = corrector.to_measurement(frame(Pose(1.0, 0.0, 0.0)), NOW)
    assert measurement.capture_timestamp == pytest.approx(NOW - 0.0325)


def test_far_measurement_is_rejected_regardless_of_tags():
    corrector, estimator = corrector_for(frame(Pose(5.0, 0.0, 0.0), tag_count=4))
    assert corrector.update(NOW) is TrustTier.REJECT
    assert estimator.get_pose() == Pose()

    advisories = corrector.drain_advisories()
    assert [a.reason for a in advisories] == ["implausible"]
    assert corrector.drain_advisories() == []


def test_multi_tag_is_high_trust():
    corrector, estimator = corrector_for(frame(Pose(0.4, 0.0, 0.0), tag_count=2, target_area=0.05))
    assert corrector.update(NOW) is TrustTier.HIGH
    assert estimator.get_pose().x > 0.0
    assert corrector.accepted_count == 1


def test_two_tags_move_pose_more_than_one():
    high, high_estimator = corrector_for(frame(Pose(0.2, 0.0, 0.0), tag_count=2, target_area=0.5))
    medium, medium_estimator = corrector_for(frame(Pose(0.2, 0.0, 0.0), tag_count=1, target_area=0.9))

    assert high.update(NOW) is TrustTier.HIGH
    assert medium.update(NOW) is TrustTier.MEDIUM
    assert high_estimator.get_pose().x > medium_estimator.get_pose().x > 0.0


@pytest.mark.parametrize(
    "area, offset, expected",
    [
        (0.9, 0.4, TrustTier.MEDIUM),
        (0.9, 0.6, TrustTier.REJECT),
        (0.3, 0.2, TrustTier.LOW),
        (0.3, 0.4, TrustTier.REJECT),
        (0.05, 0.1, TrustTier.REJECT),
    ],
)
def test_single_tag_tiers(area, offset, expected):
    corrector, _ = corrector_for()
    measurement = VisionMeasurement(Pose(offset, 0.0, 0.0), NOW, 1, area, True)
    assert corrector.classify(measurement, Pose()) is expected


def test_untrusted_single_tag_is_reported():
    corrector, estimator = corrector_for(frame(Pose(0.4, 0.0, 0.0), tag_count=1, target_area=0.3))
    assert corrector.update(NOW) is TrustTier.REJECT
    assert estimator.get_pose() == Pose()
    assert corrector.rejected_counts == {"untrusted": 1}


def test_invalid_frame_is_dropped_silently():
    corrector, _ = corrector_for(frame(Pose(0.1, 0.0, 0.0), valid=False))
    assert corrector.update(NOW) is TrustTier.REJECT
    assert corrector.drain_advisories() == []


def test_missing_pose_is_invalid():
    corrector, _ = corrector_for(frame(None))
    assert corrector.update(NOW) is TrustTier.REJECT
    assert corrector.drain_advisories() == []


def test_no_tags_is_rejected():
    corrector, _ = corrector_for(frame(Pose(0.1, 0.0, 0.0), tag_count=0, target_area=0.0))
    assert corrector.update(NOW) is TrustTier.REJECT
    assert corrector.get_diagnostics() == {"accepted": 0, "rejected_no_confidence": 1}


def test_stale_measurement_is_rejected():
    corrector, estimator = corrector_for(frame(Pose(0.1, 0.0, 0.0), latency=(2000.0,)))
    assert corrector.update(NOW) is TrustTier.REJECT
    assert [a.reason for a in corrector.drain_advisories()] == ["stale"]
    assert estimator.get_pose() == Pose()


def test_same_frame_is_only_fused_once():
    corrector, _ = corrector_for(frame(Pose(0.2, 0.0, 0.0), timestamp=5.0))
    assert corrector.update(NOW) is TrustTier.HIGH
    assert corrector.update(NOW) is None
    assert corrector.accepted_count == 1


def test_no_frame_means_no_update():
    corrector, _ = corrector_for()
    assert corrector.update(NOW) is None
    assert corrector.last_tier is None


def test_capture_time_in_the_future_is_rejected():
    corrector, estimator = corrector_for()
    measurement = VisionMeasurement(Pose(0.1, 0.0, 0.0), NOW + 0.1, 2, 0.9, True)
    assert corrector.apply(measurement, NOW) is TrustTier.REJECT
    assert [a.reason for a in corrector.drain_advisories()] == ["stale"]
    assert estimator.get_pose() == Pose()
    assert estimator.vision_updates_applied == 0
