"""
Pace type, live pace estimation and pace formatting.

Pace is always minutes per kilometer. When the distance (or time) behind
a pace is zero the value is `Pace.no_data()`: never 0.0 and never
infinity, so a display surface can't show a false "0:00" or "999:59".

Three figures are maintained during a run:
  - average pace:   active duration / distance
  - current pace:   trailing time window of distance/time (smooths jitter)
  - last-km pace:   pace of the most recent Split, else average pace
"""
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Optional, Sequence, Tuple

# 1 mile in kilometers
_KM_PER_MILE = 1.60934

DEFAULT_WINDOW_SECONDS = 30.0


@dataclass(frozen=True)
class Pace:
    """Minutes per kilometer, or no data."""

    minutes_per_km: Optional[float] = None

    @classmethod
    def no_data(cls) -> "Pace":
        return NO_PACE

    @classmethod
    def from_minutes(cls, minutes_per_km: Optional[float]) -> "Pace":
        if minutes_per_km is None or not math.isfinite(minutes_per_km) or minutes_per_km <= 0:
            return NO_PACE
        return cls(minutes_per_km)

    @classmethod
    def from_duration(cls, seconds: float, meters: float) -> "Pace":
        """Pace for covering `meters` in `seconds`; no data for zero distance or time."""
        if meters <= 0 or seconds <= 0:
            return NO_PACE
        return cls.from_minutes((seconds / 60.0) / (meters / 1000.0))

    @property
    def has_data(self) -> bool:
        return self.minutes_per_km is not None

    @property
    def seconds_per_km(self) -> Optional[float]:
        if self.minutes_per_km is None:
            return None
        return self.minutes_per_km * 60.0

    def format(self, unit: str = "km") -> str:
        if self.seconds_per_km is None:
            return "--:--"
        return format_pace(self.seconds_per_km, unit=unit)


NO_PACE = Pace()


def format_pace(pace_s_per_km: float, unit: str = "km") -> str:
    """
    Format a pace (seconds/km) as a human-readable string.

    Args:
        pace_s_per_km: pace in seconds per kilometer
        unit: "km" for per-kilometer (default), "mi" for per-mile

    Returns:
        Formatted string like "5:17/km" or "8:30/mi"
    """
    if unit == "mi":
        pace_s = pace_s_per_km * _KM_PER_MILE
        unit_label = "mi"
    else:
        pace_s = pace_s_per_km
        unit_label = "km"

    minutes = int(pace_s) // 60
    seconds = int(pace_s) % 60
    return f"{minutes}:{seconds:02d}/{unit_label}"


def format_duration(seconds: float) -> str:
    """H:MM:SS when an hour or longer, else M:SS."""
    total = int(max(0.0, seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class PaceEstimator:
    """
    Keeps a trailing window of (timestamp, cumulative distance) marks.

    The window always retains at least two marks so that a sparse stream
    (one fix every 40 s) still yields a current pace.
    """

    def __init__(self, window_seconds: float = DEFAULT_WINDOW_SECONDS):
        self.window_seconds = window_seconds
        self._marks: Deque[Tuple[datetime, float]] = deque()

    def observe(self, timestamp: datetime, cumulative_distance_m: float) -> None:
        self._marks.append((timestamp, cumulative_distance_m))
        while len(self._marks) > 2:
            second_ts = self._marks[1][0]
            if (timestamp - second_ts).total_seconds() >= self.window_seconds:
                self._marks.popleft()
            else:
                break

    def reset(self) -> None:
        """Forget the window (used on resume so paused time never counts)."""
        self._marks.clear()

    def current(self) -> Pace:
        if len(self._marks) < 2:
            return NO_PACE
        first_ts, first_d = self._marks[0]
        last_ts, last_d = self._marks[-1]
        return Pace.from_duration((last_ts - first_ts).total_seconds(), last_d - first_d)

    @staticmethod
    def average(duration_s: float, distance_m: float) -> Pace:
        return Pace.from_duration(duration_s, distance_m)

    @staticmethod
    def last_km(splits: Sequence, average: Pace) -> Pace:
        """Pace of the latest completed split, falling back to `average`."""
        if splits:
            return splits[-1].pace
        return average
