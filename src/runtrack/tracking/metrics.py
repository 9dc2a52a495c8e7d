"""
Metrics accumulator: cumulative distance, elevation, speed and calories.

Inputs have already passed GeoSampleFilter, so there is no error path:
anything malformed (NaN, negative deltas) is clamped to zero.

Elevation uses a reference altitude that only moves once the climb or
descent from it reaches `altitude_noise_m`. A slow 0.5 m/sample climb
still counts once it adds up to a full meter; jitter around a flat
altitude never does.
"""
import math
from dataclasses import dataclass
from typing import Optional

from runtrack.tracking.geo import haversine_m
from runtrack.tracking.samples import GeoSample, TrackPoint

DEFAULT_CALORIES_PER_KM = 60.0
DEFAULT_ALTITUDE_NOISE_M = 1.0
DEFAULT_MAX_VERTICAL_ACCURACY_M = 50.0


@dataclass
class MetricsTotals:
    distance_m: float = 0.0
    elevation_gain_m: float = 0.0
    elevation_loss_m: float = 0.0
    speed_ms: float = 0.0
    max_speed_ms: float = 0.0
    calories: int = 0


class MetricsAccumulator:
    """Incrementally folds accepted TrackPoints into MetricsTotals."""

    def __init__(
        self,
        calories_per_km: float = DEFAULT_CALORIES_PER_KM,
        altitude_noise_m: float = DEFAULT_ALTITUDE_NOISE_M,
        max_vertical_accuracy_m: float = DEFAULT_MAX_VERTICAL_ACCURACY_M,
    ):
        self.calories_per_km = calories_per_km
        self.altitude_noise_m = altitude_noise_m
        self.max_vertical_accuracy_m = max_vertical_accuracy_m
        self.totals = MetricsTotals()
        self._reference_altitude: Optional[float] = None

    def usable_altitude(self, sample: GeoSample) -> Optional[float]:
        """The sample's altitude, or None when missing or vertically unreliable."""
        if sample.altitude is None or not math.isfinite(sample.altitude):
            return None
        va = sample.vertical_accuracy
        if va is not None and (va < 0 or va >= self.max_vertical_accuracy_m):
            return None
        return sample.altitude

    def add(self, point: TrackPoint, previous: Optional[TrackPoint]) -> float:
        """
        Fold one accepted point into the totals.

        Args:
            point: the newly accepted point.
            previous: the previous point of the same tracking segment, or
                      None for the first point (no distance is added).

        Returns:
            The distance delta in meters that was added (>= 0).
        """
        self._update_elevation(point.altitude)
        if previous is None:
            return 0.0

        delta = haversine_m(previous.latitude, previous.longitude, point.latitude, point.longitude)
        if not math.isfinite(delta) or delta < 0:
            delta = 0.0

        self.totals.distance_m += delta
        self.totals.calories = max(
            self.totals.calories,
            int(self.totals.distance_m / 1000.0 * self.calories_per_km),
        )

        dt = (point.timestamp - previous.timestamp).total_seconds()
        if dt > 0:
            self.totals.speed_ms = delta / dt
            self.totals.max_speed_ms = max(self.totals.max_speed_ms, self.totals.speed_ms)

        return delta

    def reset_segment(self) -> None:
        """Start a new tracking segment: altitude change across the gap is not counted."""
        self._reference_altitude = None

    def _update_elevation(self, altitude: Optional[float]) -> None:
        if altitude is None:
            return
        if self._reference_altitude is None:
            self._reference_altitude = altitude
            return

        change = altitude - self._reference_altitude
        if abs(change) < self.altitude_noise_m:
            return
        if change > 0:
            self.totals.elevation_gain_m += change
        else:
            self.totals.elevation_loss_m += -change
        self._reference_altitude = altitude
