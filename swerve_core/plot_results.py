#!/usr/bin/env python3
"""
Post-run viewer for drive telemetry.

Resolves a run directory written by CsvTelemetry, prints a short summary of
the run (duration, distance driven, heading disagreement, vision rejections)
and opens the trajectory, heading/velocity and module plots.
"""

import argparse
import csv
import logging
import math
import sys
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from .config import TERM_BLUE, TERM_RESET
from .plot_styles import load_csv_to_dict
from .visualization import plot_run_summary


def _run_dirs(results_dir: Path) -> List[Path]:
    return sorted(d for d in results_dir.iterdir() if d.is_dir() and d.name.startswith("run_"))


def find_latest_run(results_dir: Path) -> Path:
    """Newest run directory under results_dir.

    Raises:
        FileNotFoundError: If the directory is missing or holds no runs.
    """
    if not results_dir.is_dir():
        raise FileNotFoundError(f"Results directory not found: {results_dir}")

    runs = _run_dirs(results_dir)
    if not runs:
        raise FileNotFoundError(f"No run directories found in {results_dir}")
    return runs[-1]


def resolve_run_dir(results_dir: Path, run_name: Optional[str] = None) -> Path:
    """Named run if given, otherwise the newest one."""
    if run_name is None:
        return find_latest_run(results_dir)
    run_dir = results_dir / run_name
    if not run_dir.is_dir():
        raise FileNotFoundError(f"Run directory not found: {run_dir}")
    return run_dir


def list_available_runs(results_dir: Path) -> List[Path]:
    if not results_dir.is_dir():
        logging.error(f"Results directory not found: {results_dir}")
        return []

    runs = _run_dirs(results_dir)
    if not runs:
        logging.info(f"No run directories found in {results_dir}")
    for i, run_dir in enumerate(runs, 1):
        logging.info(f"  {i}. {run_dir.name}")
    return runs


def summarize_run(run_dir: Path) -> Dict[str, object]:
    """Headline numbers for one recorded run.

    Returns:
        Dictionary with duration (s), distance (m), max heading gap between
        the fused pose and the gyro (rad), tick count and vision advisory
        counts keyed by rejection reason.
    """
    pose = load_csv_to_dict(run_dir / "pose.csv")
    t = pose["timestamp"]
    if len(t) == 0:
        return {"ticks": 0, "duration": 0.0, "distance": 0.0, "max_heading_gap": 0.0, "vision": {}}

    steps = np.hypot(np.diff(pose["x"]), np.diff(pose["y"]))
    gap = np.arctan2(
        np.sin(pose["heading"] - pose["gyro_heading"]),
        np.cos(pose["heading"] - pose["gyro_heading"]),
    )

    reasons: Counter = Counter()
    vision_path = run_dir / "vision.csv"
    if vision_path.exists():
        with open(vision_path, newline="") as f:
            reasons.update(row["reason"] for row in csv.DictReader(f) if row["reason"])

    return {
        "ticks": len(t),
        "duration": float(t[-1] - t[0]),
        "distance": float(np.sum(steps)),
        "max_heading_gap": float(np.max(np.abs(gap))),
        "vision": dict(reasons),
    }


def _log_summary(run_dir: Path, summary: Dict[str, object]) -> None:
    logging.info(f"{TERM_BLUE}Run {run_dir.name}{TERM_RESET}")
    logging.info(f"  ticks:            {summary['ticks']}")
    logging.info(f"  duration:         {summary['duration']:.2f} s")
    logging.info(f"  distance driven:  {summary['distance']:.3f} m")
    logging.info(f"  max heading gap:  {math.degrees(summary['max_heading_gap']):.2f} deg")
    vision = summary["vision"]
    if vision:
        for reason, count in sorted(vision.items()):
            logging.info(f"  vision {reason + ':':<11}{count}")
    else:
        logging.info("  vision:           no advisories")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(
        description="Summarize and plot recorded swerve drive runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  swerve-plot-results                      # newest run
  swerve-plot-results --run run_20260301_184704
  swerve-plot-results --save --no-show     # write PNGs next to the CSVs
  swerve-plot-results --summary            # numbers only, no figures
  swerve-plot-results --list
        """,
    )
    parser.add_argument("--run", default=None, help="Run directory name (default: newest)")
    parser.add_argument("--results-dir", default="results", help="Directory holding run_* folders")
    parser.add_argument("--save", action="store_true", help="Save PNG figures into the run directory")
    parser.add_argument("--no-show", action="store_true", help="Do not open figure windows")
    parser.add_argument("--summary", action="store_true", help="Print the run summary and skip plotting")
    parser.add_argument("--list", action="store_true", help="List recorded runs and exit")
    args = parser.parse_args()

    results_dir = Path(args.results_dir)
    if args.list:
        list_available_runs(results_dir)
        return

    try:
        run_dir = resolve_run_dir(results_dir, args.run)
        _log_summary(run_dir, summarize_run(run_dir))
        if args.summary:
            return
        plot_run_summary(run_dir=run_dir, save_plots=args.save, show_plots=not args.no_show)
    except FileNotFoundError as e:
        logging.error(f"Error: {e}")
        sys.exit(1)

    if args.save:
        logging.info(f"{TERM_BLUE}Saved plots to {run_dir}/{TERM_RESET}")


if __name__ == "__main__":
    main()
