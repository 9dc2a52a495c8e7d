"""
GeoSample and TrackPoint dataclasses.

GeoSample is a raw fix from the location source; it is ephemeral and is
never persisted on its own. TrackPoint is what the tracker keeps for the
route once a sample has passed the filter. Both are plain frozen
dataclasses, no SQLModel, so the tracking layer has no DB dependency.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class GeoSample:
    """One location fix as delivered by the location source."""

    latitude: float                           # decimal degrees
    longitude: float                          # decimal degrees
    horizontal_accuracy: float                # meters; negative means invalid
    timestamp: datetime
    altitude: Optional[float] = None          # meters above sea level
    speed: Optional[float] = None             # m/s as reported; may be negative/invalid
    vertical_accuracy: Optional[float] = None  # meters; negative means invalid


@dataclass(frozen=True)
class TrackPoint:
    """An accepted sample retained on the session route."""

    latitude: float
    longitude: float
    timestamp: datetime
    altitude: Optional[float] = None

    @classmethod
    def from_sample(cls, sample: GeoSample, altitude: Optional[float] = None) -> "TrackPoint":
        return cls(
            latitude=sample.latitude,
            longitude=sample.longitude,
            timestamp=sample.timestamp,
            altitude=altitude,
        )


def sample_from_dict(raw: Dict[str, Any]) -> GeoSample:
    """
    Build a GeoSample from a loosely-typed dict (CSV row, JSON body).

    `timestamp` may be a datetime or an ISO-8601 string. Empty strings for
    the optional fields are treated as missing.
    """
    def _opt(key: str) -> Optional[float]:
        value = raw.get(key)
        if value in (None, ""):
            return None
        return float(value)

    ts = raw["timestamp"]
    if isinstance(ts, str):
        ts = datetime.fromisoformat(ts)

    return GeoSample(
        latitude=float(raw["latitude"]),
        longitude=float(raw["longitude"]),
        horizontal_accuracy=float(raw["horizontal_accuracy"]),
        timestamp=ts,
        altitude=_opt("altitude"),
        speed=_opt("speed"),
        vertical_accuracy=_opt("vertical_accuracy"),
    )
