"""
Read-only live status payload for display surfaces and live publishers.

Publishing only observes RunningStats; it never feeds back into the
tracker, so it can run on any cadence.
"""
import logging
from typing import Optional

from pydantic import BaseModel

from runtrack.tracking.session import RunningStats, SessionState

logger = logging.getLogger(__name__)


class LiveStatus(BaseModel):
    state: SessionState
    distance_km: float
    duration_s: float
    average_pace_min_per_km: Optional[float] = None
    current_pace_min_per_km: Optional[float] = None
    last_km_pace_min_per_km: Optional[float] = None
    calories: int
    elevation_gain_m: float
    elevation_loss_m: float
    speed_ms: float
    is_paused: bool
    average_pace_display: str
    current_pace_display: str

    @classmethod
    def from_stats(cls, stats: RunningStats, state: SessionState) -> "LiveStatus":
        return cls(
            state=state,
            distance_km=round(stats.distance_km, 3),
            duration_s=round(stats.duration_s, 1),
            average_pace_min_per_km=stats.average_pace.minutes_per_km,
            current_pace_min_per_km=stats.current_pace.minutes_per_km,
            last_km_pace_min_per_km=stats.last_km_pace.minutes_per_km,
            calories=stats.calories,
            elevation_gain_m=stats.elevation_gain_m,
            elevation_loss_m=stats.elevation_loss_m,
            speed_ms=stats.speed_ms,
            is_paused=state == SessionState.PAUSED,
            average_pace_display=stats.average_pace.format(),
            current_pace_display=stats.current_pace.format(),
        )


def log_publisher(status: LiveStatus) -> None:
    """Default publisher: emits the status at DEBUG."""
    logger.debug(
        "live %s %.2f km %.0f s avg %s cur %s",
        status.state.value, status.distance_km, status.duration_s,
        status.average_pace_display, status.current_pace_display,
    )
