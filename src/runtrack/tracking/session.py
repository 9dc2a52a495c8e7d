"""
Session aggregate, live stats projection and the finalized record.

Session is the mutable live aggregate owned by RunTracker; nothing else
writes to it. RunningStats is a read-only projection rebuilt on demand.
FinalizedSession is the frozen record handed to storage exactly once.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Protocol, Tuple

from runtrack.tracking.pace import NO_PACE, Pace, format_duration
from runtrack.tracking.samples import TrackPoint
from runtrack.tracking.splits import Split

DEFAULT_MIN_ROUTE_POINTS = 10

RECOVERED_NOTE = (
    "This run was recovered after the app closed unexpectedly. "
    "Some GPS data may be missing."
)


class SessionState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RunningStats:
    """Live view of a run, recomputed after every accepted sample."""

    distance_m: float = 0.0
    duration_s: float = 0.0               # active time, pauses excluded
    average_pace: Pace = NO_PACE
    current_pace: Pace = NO_PACE
    last_km_pace: Pace = NO_PACE
    elevation_gain_m: float = 0.0
    elevation_loss_m: float = 0.0
    calories: int = 0
    speed_ms: float = 0.0                 # instantaneous
    max_speed_ms: float = 0.0

    @property
    def distance_km(self) -> float:
        return self.distance_m / 1000.0

    @property
    def average_speed_ms(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return self.distance_m / self.duration_s


@dataclass
class Session:
    """The live aggregate root for one run."""

    started_at: datetime
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ended_at: Optional[datetime] = None
    state: SessionState = SessionState.TRACKING
    track_points: List[TrackPoint] = field(default_factory=list)
    splits: List[Split] = field(default_factory=list)
    paused_seconds: float = 0.0
    paused_at: Optional[datetime] = None

    def active_seconds_at(self, moment: datetime) -> float:
        """Active time at `moment`, excluding all completed pauses."""
        if self.paused_at is not None and moment > self.paused_at:
            moment = self.paused_at
        elapsed = (moment - self.started_at).total_seconds() - self.paused_seconds
        return max(0.0, elapsed)


@dataclass(frozen=True)
class FinalizedSession:
    """Immutable record of a finished (or recovered) run."""

    session_id: str
    started_at: datetime
    ended_at: datetime
    stats: RunningStats
    track_points: Tuple[TrackPoint, ...] = ()
    splits: Tuple[Split, ...] = ()
    recovered: bool = False
    notes: str = ""

    @property
    def distance_km(self) -> float:
        return self.stats.distance_km

    @property
    def average_speed_ms(self) -> float:
        return self.stats.average_speed_ms

    @property
    def point_count(self) -> int:
        return len(self.track_points)


class SessionSink(Protocol):
    """Storage collaborator that accepts finished runs."""

    def save(self, session: FinalizedSession) -> None: ...


def route_notes(point_count: int, duration_s: float, min_points: int = DEFAULT_MIN_ROUTE_POINTS) -> str:
    """Annotation for a run whose route was lost or too sparse, else ""."""
    if point_count == 0:
        return f"GPS signal was lost during this run. Time tracked: {format_duration(duration_s)}."
    if point_count < min_points:
        return f"Limited GPS data recorded ({point_count} points)."
    return ""


def finalize(
    session: Session,
    stats: RunningStats,
    ended_at: datetime,
    min_route_points: int = DEFAULT_MIN_ROUTE_POINTS,
) -> FinalizedSession:
    """Freeze a live session into its immutable record."""
    return FinalizedSession(
        session_id=session.session_id,
        started_at=session.started_at,
        ended_at=ended_at,
        stats=stats,
        track_points=tuple(session.track_points),
        splits=tuple(session.splits),
        recovered=False,
        notes=route_notes(len(session.track_points), stats.duration_s, min_route_points),
    )


def recovered_session(
    session_id: str,
    started_at: datetime,
    stats: RunningStats,
) -> FinalizedSession:
    """Best-effort record rebuilt from aggregates only (no route, no splits)."""
    return FinalizedSession(
        session_id=session_id,
        started_at=started_at,
        ended_at=started_at + timedelta(seconds=stats.duration_s),
        stats=stats,
        recovered=True,
        notes=RECOVERED_NOTE,
    )
