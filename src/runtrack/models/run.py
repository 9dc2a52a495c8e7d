"""Finished-run data models: runs, route points, and kilometer splits."""
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


class RunRecord(SQLModel, table=True):
    """One row per finalized (or recovered) run."""

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(unique=True, index=True)
    started_at: datetime
    ended_at: datetime
    duration_seconds: float
    distance_meters: float

    avg_pace_min_per_km: Optional[float] = None  # None when no distance was covered
    calories: int = 0
    elevation_gain_meters: float = 0.0
    elevation_loss_meters: float = 0.0
    max_speed_ms: float = 0.0
    avg_speed_ms: float = 0.0

    point_count: int = 0
    recovered: bool = False
    notes: str = ""

    saved_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    track_points: List["RunTrackPoint"] = Relationship(back_populates="run")
    splits: List["RunSplit"] = Relationship(back_populates="run")


class RunTrackPoint(SQLModel, table=True):
    """One accepted GPS fix on the route."""

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: int = Field(foreign_key="runrecord.id", index=True)

    seq: int  # 0-based order on the route
    lat: float
    lon: float
    altitude_meters: Optional[float] = None
    timestamp: datetime

    run: Optional[RunRecord] = Relationship(back_populates="track_points")


class RunSplit(SQLModel, table=True):
    """One completed kilometer."""

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: int = Field(foreign_key="runrecord.id", index=True)

    km_number: int  # 1-based
    duration_seconds: float
    pace_min_per_km: Optional[float] = None
    elevation_delta_meters: Optional[float] = None

    run: Optional[RunRecord] = Relationship(back_populates="splits")
