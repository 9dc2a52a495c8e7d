"""
Kilometer split detection.

Called after every distance update with the before/after cumulative
distance, active time and altitude of the update. Each integer kilometer
boundary crossed in (before, after] produces one Split. When a single
update crosses several boundaries (GPS gap) the time and altitude at each
boundary are linearly interpolated by distance, so splits stay strictly
sequential with no gaps.
"""
from dataclasses import dataclass
from typing import List, Optional

from runtrack.tracking.pace import Pace

METERS_PER_KM = 1000.0

# Summed haversine deltas of an exact kilometer land a few nanometers short
BOUNDARY_TOLERANCE_M = 1e-6


@dataclass(frozen=True)
class Split:
    """One completed kilometer."""

    km_number: int                        # 1-based
    duration_seconds: float               # active time for this kilometer
    pace: Pace                            # minutes/km
    elevation_delta_m: Optional[float] = None  # net change over the km

    @property
    def distance_m(self) -> float:
        return METERS_PER_KM


def _lerp(a: float, b: float, frac: float) -> float:
    return a + (b - a) * frac


class SplitRecorder:
    """Emits immutable Split records as kilometer boundaries are crossed."""

    def __init__(self):
        self._splits: List[Split] = []
        self._boundary_active_s = 0.0
        self._boundary_altitude: Optional[float] = None
        self._start_altitude_known = False

    @property
    def splits(self) -> List[Split]:
        return list(self._splits)

    @property
    def next_boundary_m(self) -> float:
        return (len(self._splits) + 1) * METERS_PER_KM

    def record(
        self,
        distance_before: float,
        distance_after: float,
        active_before: float,
        active_after: float,
        altitude_before: Optional[float] = None,
        altitude_after: Optional[float] = None,
    ) -> List[Split]:
        """
        Emit splits for every boundary crossed by this update.

        Args:
            distance_before / distance_after: cumulative meters around the update.
            active_before / active_after: active seconds at the two points.
            altitude_before / altitude_after: meters, None when unknown.

        Returns:
            The newly emitted splits (usually empty, occasionally one).
        """
        if not self._start_altitude_known:
            start_alt = altitude_before if altitude_before is not None else altitude_after
            if start_alt is not None:
                self._boundary_altitude = start_alt
                self._start_altitude_known = True

        emitted: List[Split] = []
        span = distance_after - distance_before
        if span <= 0:
            return emitted

        while distance_after + BOUNDARY_TOLERANCE_M >= self.next_boundary_m:
            boundary = self.next_boundary_m
            frac = (boundary - distance_before) / span
            frac = min(1.0, max(0.0, frac))

            at_active = _lerp(active_before, active_after, frac)
            if altitude_before is not None and altitude_after is not None:
                at_altitude: Optional[float] = _lerp(altitude_before, altitude_after, frac)
            else:
                at_altitude = altitude_after if altitude_after is not None else altitude_before

            duration = max(0.0, at_active - self._boundary_active_s)
            elevation_delta = None
            if at_altitude is not None and self._boundary_altitude is not None:
                elevation_delta = at_altitude - self._boundary_altitude

            split = Split(
                km_number=len(self._splits) + 1,
                duration_seconds=duration,
                pace=Pace.from_duration(duration, METERS_PER_KM),
                elevation_delta_m=elevation_delta,
            )
            self._splits.append(split)
            emitted.append(split)

            self._boundary_active_s = at_active
            if at_altitude is not None:
                self._boundary_altitude = at_altitude

        return emitted
