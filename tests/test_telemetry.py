import csv

import pytest

from swerve_core.component_modes import DriveFeatures
from swerve_core.geometry import ChassisVelocity
from swerve_core.plot_results import find_latest_run, resolve_run_dir, summarize_run
from swerve_core.plot_styles import load_csv_to_dict
from swerve_core.sim import build_simulated_drive
from swerve_core.telemetry import CsvTelemetry, MemoryTelemetry


def test_memory_telemetry_rejects_bad_capacity():
    with pytest.raises(ValueError):
        MemoryTelemetry(capacity=0)


def test_memory_telemetry_empty():
    telemetry = MemoryTelemetry()
    assert telemetry.latest() is None
    assert telemetry.snapshots() == []


def test_csv_telemetry_writes_one_row_per_tick(tmp_path):
    run_dir = tmp_path / "run_test"
    with CsvTelemetry(run_dir=str(run_dir)) as telemetry:
        drive, _ = build_simulated_drive(
            DriveFeatures(use_vision=False), telemetry=telemetry, steer_rate=None, drive_time_constant=0.0
        )
        drive.drive_robot_relative(ChassisVelocity(1.0, 0.0, 0.0))
        for i in range(10):
            drive.periodic(i * 0.02)

    with open(run_dir / "pose.csv", newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 10
    assert rows[-1]["mode"] == "robot_relative"
    assert float(rows[-1]["x"]) == pytest.approx(0.2)

    modules = load_csv_to_dict(run_dir / "modules.csv")
    assert len(modules["timestamp"]) == 10
    assert modules["front_left_speed"][-1] == pytest.approx(1.0)


def test_csv_telemetry_records_vision_advisories(tmp_path):
    run_dir = tmp_path / "run_vision"
    with CsvTelemetry(run_dir=str(run_dir)) as telemetry:
        drive, _ = build_simulated_drive(
            DriveFeatures(use_vision=True), telemetry=telemetry, clock=lambda: 0.0
        )
        # First frame is captured before any odometry history exists
        drive.periodic(0.0)

    with open(run_dir / "vision.csv", newline="") as f:
        rows = list(csv.DictReader(f))
    assert rows[0]["tier"] == "reject"
    assert any(row["reason"] == "stale" for row in rows)


def test_publish_requires_setup(tmp_path):
    telemetry = CsvTelemetry(run_dir=str(tmp_path / "run_x"))
    drive, _ = build_simulated_drive(DriveFeatures(use_vision=False))
    snapshot = drive.periodic(0.0)
    with pytest.raises(RuntimeError):
        telemetry.publish(snapshot)


def test_output_dir_must_be_a_directory(tmp_path):
    path = tmp_path / "file.txt"
    path.write_text("x")
    with pytest.raises(ValueError):
        CsvTelemetry(output_dir=str(path))


def test_run_summary(tmp_path):
    run_dir = tmp_path / "run_20260101_000000"
    with CsvTelemetry(run_dir=str(run_dir)) as telemetry:
        drive, _ = build_simulated_drive(
            DriveFeatures(use_vision=False), telemetry=telemetry, steer_rate=None, drive_time_constant=0.0
        )
        drive.drive_robot_relative(ChassisVelocity(1.0, 0.0, 0.0))
        for i in range(10):
            drive.periodic(i * 0.02)

    pose = load_csv_to_dict(run_dir / "pose.csv")
    summary = summarize_run(run_dir)
    assert summary["ticks"] == 10
    assert summary["duration"] == pytest.approx(0.18)
    assert summary["distance"] == pytest.approx(pose["x"][-1] - pose["x"][0])
    assert summary["max_heading_gap"] == pytest.approx(0.0, abs=1e-9)
    assert summary["vision"] == {}


def test_resolve_run_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_latest_run(tmp_path)

    (tmp_path / "run_20260101_000000").mkdir()
    (tmp_path / "run_20260102_000000").mkdir()
    (tmp_path / "notes").mkdir()
    assert resolve_run_dir(tmp_path).name == "run_20260102_000000"
    assert resolve_run_dir(tmp_path, "run_20260101_000000").name == "run_20260101_000000"
    with pytest.raises(FileNotFoundError):
        resolve_run_dir(tmp_path, "run_missing")
