"""
SqlSessionStore: default storage collaborator for finished runs.

Flow for one save:
  1. Upsert RunRecord keyed by session_id
  2. Delete + re-insert RunTrackPoint rows
  3. Delete + re-insert RunSplit rows

Everything happens in one DB session and one commit, so a failure leaves
no partial run behind. Exceptions propagate: RunTracker relies on them
to re-arm the recovery journal.

Idempotency: session_id is unique. Saving the same run twice (e.g. a
recovery retried after a crash between save and journal clear) updates
the existing row instead of duplicating it.
"""
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from runtrack.models.run import RunRecord, RunSplit, RunTrackPoint
from runtrack.tracking.session import FinalizedSession


class SqlSessionStore:
    """Persists FinalizedSession records into SQLite via SQLModel."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def save(self, session: FinalizedSession) -> RunRecord:
        fields = _record_fields(session)

        with Session(self.engine) as s:
            run = s.exec(
                select(RunRecord).where(RunRecord.session_id == session.session_id)
            ).first()
            if run:
                for k, v in fields.items():
                    setattr(run, k, v)
                run.saved_at = datetime.utcnow()
            else:
                run = RunRecord(**fields)
            s.add(run)
            s.flush()

            for row in s.exec(select(RunTrackPoint).where(RunTrackPoint.run_id == run.id)).all():
                s.delete(row)
            for row in s.exec(select(RunSplit).where(RunSplit.run_id == run.id)).all():
                s.delete(row)
            s.flush()

            for i, pt in enumerate(session.track_points):
                s.add(RunTrackPoint(
                    run_id=run.id,
                    seq=i,
                    lat=pt.latitude,
                    lon=pt.longitude,
                    altitude_meters=pt.altitude,
                    timestamp=pt.timestamp,
                ))
            for sp in session.splits:
                s.add(RunSplit(
                    run_id=run.id,
                    km_number=sp.km_number,
                    duration_seconds=sp.duration_seconds,
                    pace_min_per_km=sp.pace.minutes_per_km,
                    elevation_delta_meters=sp.elevation_delta_m,
                ))
            s.commit()
            s.refresh(run)
            return run

    def get(self, session_id: str) -> Optional[RunRecord]:
        with Session(self.engine) as s:
            return s.exec(
                select(RunRecord).where(RunRecord.session_id == session_id)
            ).first()


def _record_fields(session: FinalizedSession) -> dict:
    stats = session.stats
    return {
        "session_id": session.session_id,
        "started_at": session.started_at,
        "ended_at": session.ended_at,
        "duration_seconds": stats.duration_s,
        "distance_meters": stats.distance_m,
        "avg_pace_min_per_km": stats.average_pace.minutes_per_km,
        "calories": stats.calories,
        "elevation_gain_meters": stats.elevation_gain_m,
        "elevation_loss_meters": stats.elevation_loss_m,
        "max_speed_ms": stats.max_speed_ms,
        "avg_speed_ms": stats.average_speed_ms,
        "point_count": session.point_count,
        "recovered": session.recovered,
        "notes": session.notes,
    }
