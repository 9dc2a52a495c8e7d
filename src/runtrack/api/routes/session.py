"""Live session control and query routes."""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from runtrack.tracking.errors import (
    FinalizationError,
    InvalidTransitionError,
    RecoveryPendingError,
)
from runtrack.tracking.live import LiveStatus
from runtrack.tracking.samples import GeoSample
from runtrack.tracking.session import FinalizedSession, RunningStats

router = APIRouter()


class SampleIn(BaseModel):
    latitude: float
    longitude: float
    horizontal_accuracy: float
    timestamp: datetime
    altitude: Optional[float] = None
    speed: Optional[float] = None
    vertical_accuracy: Optional[float] = None


class SamplesRequest(BaseModel):
    samples: List[SampleIn]


class SamplesResponse(BaseModel):
    accepted: int
    rejected: int


class StateResponse(BaseModel):
    state: str
    session_id: Optional[str] = None


class SplitOut(BaseModel):
    km_number: int
    duration_seconds: float
    pace_min_per_km: Optional[float]
    elevation_delta_m: Optional[float]


class RunSummary(BaseModel):
    session_id: str
    started_at: datetime
    ended_at: datetime
    distance_km: float
    duration_s: float
    average_pace_min_per_km: Optional[float]
    calories: int
    split_count: int
    point_count: int
    recovered: bool
    notes: str

    @classmethod
    def from_session(cls, s: FinalizedSession) -> "RunSummary":
        return cls(
            session_id=s.session_id,
            started_at=s.started_at,
            ended_at=s.ended_at,
            distance_km=s.distance_km,
            duration_s=s.stats.duration_s,
            average_pace_min_per_km=s.stats.average_pace.minutes_per_km,
            calories=s.stats.calories,
            split_count=len(s.splits),
            point_count=s.point_count,
            recovered=s.recovered,
            notes=s.notes,
        )


class StatsResponse(BaseModel):
    distance_m: float
    duration_s: float
    average_pace_min_per_km: Optional[float]
    current_pace_min_per_km: Optional[float]
    last_km_pace_min_per_km: Optional[float]
    elevation_gain_m: float
    elevation_loss_m: float
    calories: int
    speed_ms: float
    max_speed_ms: float
    average_speed_ms: float

    @classmethod
    def from_stats(cls, stats: RunningStats) -> "StatsResponse":
        return cls(
            distance_m=stats.distance_m,
            duration_s=stats.duration_s,
            average_pace_min_per_km=stats.average_pace.minutes_per_km,
            current_pace_min_per_km=stats.current_pace.minutes_per_km,
            last_km_pace_min_per_km=stats.last_km_pace.minutes_per_km,
            elevation_gain_m=stats.elevation_gain_m,
            elevation_loss_m=stats.elevation_loss_m,
            calories=stats.calories,
            speed_ms=stats.speed_ms,
            max_speed_ms=stats.max_speed_ms,
            average_speed_ms=stats.average_speed_ms,
        )


class StopResponse(BaseModel):
    finalized: bool
    run: Optional[RunSummary] = None


def _tracker(request: Request):
    return request.app.state.tracker


def _state(tracker) -> StateResponse:
    return StateResponse(state=tracker.state.value, session_id=tracker.session_id)


@router.post("/start", response_model=StateResponse)
def start(request: Request):
    """Begin a run. 503 while an interrupted run still cannot be saved."""
    tracker = _tracker(request)
    try:
        tracker.start()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except RecoveryPendingError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return _state(tracker)


@router.post("/pause", response_model=StateResponse)
def pause(request: Request):
    tracker = _tracker(request)
    try:
        tracker.pause()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _state(tracker)


@router.post("/resume", response_model=StateResponse)
def resume(request: Request):
    tracker = _tracker(request)
    try:
        tracker.resume()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _state(tracker)


@router.post("/stop", response_model=StopResponse)
def stop(request: Request):
    """
    Finalize the live run. A second stop is a no-op (finalized=false).
    Storage failures return 503; the run is kept in the recovery journal.
    """
    tracker = _tracker(request)
    try:
        record = tracker.stop()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except FinalizationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if record is None:
        return StopResponse(finalized=False)
    return StopResponse(finalized=True, run=RunSummary.from_session(record))


@router.post("/background", response_model=StateResponse)
def background(request: Request):
    tracker = _tracker(request)
    tracker.enter_background()
    return _state(tracker)


@router.post("/samples", response_model=SamplesResponse)
def ingest_samples(body: SamplesRequest, request: Request):
    """Feed location fixes in delivery order. Rejected fixes are just counted."""
    tracker = _tracker(request)
    accepted = 0
    for s in body.samples:
        fields = s.model_dump()
        ts = fields["timestamp"]
        if ts.tzinfo is not None:
            # tracker clock is naive UTC
            fields["timestamp"] = ts.astimezone(timezone.utc).replace(tzinfo=None)
        if tracker.ingest(GeoSample(**fields)):
            accepted += 1
    return SamplesResponse(accepted=accepted, rejected=len(body.samples) - accepted)


@router.get("/stats", response_model=StatsResponse)
def stats(request: Request):
    return StatsResponse.from_stats(_tracker(request).stats())


@router.get("/live", response_model=LiveStatus)
def live(request: Request):
    return _tracker(request).live_status()


@router.get("/splits", response_model=List[SplitOut])
def splits(request: Request):
    return [
        SplitOut(
            km_number=sp.km_number,
            duration_seconds=sp.duration_seconds,
            pace_min_per_km=sp.pace.minutes_per_km,
            elevation_delta_m=sp.elevation_delta_m,
        )
        for sp in _tracker(request).splits()
    ]
