"""
Replay script: feed a recorded GPS trace through the tracking engine.

Usage:
    python -m runtrack.scripts.replay trace.csv
    python -m runtrack.scripts.replay trace.csv --max-accuracy 30 --max-speed 10

CSV columns: latitude, longitude, horizontal_accuracy, timestamp (ISO-8601),
and optionally altitude, speed, vertical_accuracy.

The tracker clock follows the trace timestamps, and nothing is persisted:
journal and storage are in memory. Use it to calibrate the filter
thresholds against real traces.
"""
import argparse
import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from runtrack.config import get_settings
from runtrack.journal.recovery import RecoveryJournal
from runtrack.journal.store import InMemoryKeyValueStore
from runtrack.tracking.samples import GeoSample, sample_from_dict
from runtrack.tracking.session import FinalizedSession
from runtrack.tracking.tracker import RunTracker

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


class _CollectingSink:
    def __init__(self):
        self.saved: List[FinalizedSession] = []

    def save(self, session: FinalizedSession) -> None:
        self.saved.append(session)


def iter_samples(csv_path: Path) -> Iterator[GeoSample]:
    """Yield GeoSamples from a trace CSV, skipping rows that don't parse."""
    with open(csv_path, newline="", encoding="utf-8") as fh:
        for line_no, row in enumerate(csv.DictReader(fh), start=2):
            try:
                yield sample_from_dict(row)
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping line %d: %s", line_no, exc)


def replay(samples: Iterator[GeoSample], settings=None) -> Optional[FinalizedSession]:
    """Run one tracking session over `samples`; returns the finalized run."""
    now: List[Optional[datetime]] = [None]

    def clock() -> datetime:
        return now[0] or datetime.utcnow()

    sink = _CollectingSink()
    tracker = RunTracker(
        journal=RecoveryJournal(InMemoryKeyValueStore()),
        sink=sink,
        settings=settings,
        clock=clock,
    )

    total = accepted = 0
    for sample in samples:
        if now[0] is None:
            now[0] = sample.timestamp
            tracker.start()
        total += 1
        if tracker.ingest(sample):
            accepted += 1
        now[0] = max(now[0], sample.timestamp)

    if total == 0:
        logger.warning("Trace contained no usable samples")
        return None

    logger.info("Accepted %d of %d samples", accepted, total)
    return tracker.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a GPS trace through the tracker")
    parser.add_argument("csv_path", type=Path)
    parser.add_argument("--max-accuracy", type=float, default=None, help="Reject fixes worse than this (m)")
    parser.add_argument("--max-speed", type=float, default=None, help="Reject implied speeds above this (m/s)")
    args = parser.parse_args()

    overrides = {}
    if args.max_accuracy is not None:
        overrides["max_horizontal_accuracy_m"] = args.max_accuracy
    if args.max_speed is not None:
        overrides["max_speed_ms"] = args.max_speed
    settings = get_settings().model_copy(update=overrides)

    run = replay(iter_samples(args.csv_path), settings=settings)
    if run is None:
        return

    stats = run.stats
    print(f"Distance:   {stats.distance_km:.2f} km")
    print(f"Duration:   {stats.duration_s:.0f} s")
    print(f"Avg pace:   {stats.average_pace.format()}")
    print(f"Elevation:  +{stats.elevation_gain_m:.0f} m / -{stats.elevation_loss_m:.0f} m")
    print(f"Calories:   {stats.calories}")
    for split in run.splits:
        elev = "" if split.elevation_delta_m is None else f" ({split.elevation_delta_m:+.0f} m)"
        print(f"  km {split.km_number}: {split.pace.format()}{elev}")
    if run.notes:
        print(f"Note: {run.notes}")


if __name__ == "__main__":
    main()
