"""
Crash-recovery journal.

While a run is live, RunTracker periodically writes a RecoveryJournalEntry
(aggregates only) into a single well-known slot, overwriting the previous
one. Normal finalization deletes the slot. On the next launch, an entry
still in the slot means the process died mid-run: we rebuild a
best-effort recovered FinalizedSession from the aggregates, hand it to
storage and delete the slot.

Failure handling:
  - write errors are logged and swallowed; the next tick retries
  - an undecodable entry, or a storage failure during recovery, leaves
    the slot untouched so the next launch retries
"""
import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from runtrack.journal.store import KeyValueStore
from runtrack.tracking.errors import JournalReadError
from runtrack.tracking.pace import Pace
from runtrack.tracking.session import FinalizedSession, RunningStats, recovered_session

logger = logging.getLogger(__name__)

JOURNAL_KEY = "current_session_backup"


class RecoveryJournalEntry(BaseModel):
    """Aggregate snapshot of a live run; the route itself is not journaled."""

    session_id: str
    started_at: datetime
    distance_m: float
    duration_s: float
    average_pace_min_per_km: Optional[float] = None
    calories: int
    elevation_gain_m: float
    elevation_loss_m: float
    point_count: int = 0
    is_paused: bool = False
    written_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_stats(
        cls,
        session_id: str,
        started_at: datetime,
        stats: RunningStats,
        point_count: int,
        is_paused: bool,
    ) -> "RecoveryJournalEntry":
        return cls(
            session_id=session_id,
            started_at=started_at,
            distance_m=stats.distance_m,
            duration_s=stats.duration_s,
            average_pace_min_per_km=stats.average_pace.minutes_per_km,
            calories=stats.calories,
            elevation_gain_m=stats.elevation_gain_m,
            elevation_loss_m=stats.elevation_loss_m,
            point_count=point_count,
            is_paused=is_paused,
        )

    def to_stats(self) -> RunningStats:
        average = Pace.from_minutes(self.average_pace_min_per_km)
        return RunningStats(
            distance_m=self.distance_m,
            duration_s=self.duration_s,
            average_pace=average,
            last_km_pace=average,
            elevation_gain_m=self.elevation_gain_m,
            elevation_loss_m=self.elevation_loss_m,
            calories=self.calories,
        )

    def to_finalized(self) -> FinalizedSession:
        return recovered_session(self.session_id, self.started_at, self.to_stats())


class RecoveryJournal:
    """Reads and writes the single recovery slot in a KeyValueStore."""

    def __init__(self, store: KeyValueStore, key: str = JOURNAL_KEY):
        self.store = store
        self.key = key

    def write(self, entry: RecoveryJournalEntry) -> bool:
        """Overwrite the slot. Returns False (and logs) instead of raising."""
        try:
            self.store.set(self.key, entry.model_dump_json())
        except Exception as exc:
            logger.warning("Recovery journal write failed for %s: %s", entry.session_id, exc)
            return False
        return True

    def has_entry(self) -> bool:
        return self.store.get(self.key) is not None

    def read(self) -> Optional[RecoveryJournalEntry]:
        """
        Load the current entry, or None when the slot is empty.

        Raises:
            JournalReadError: if the stored payload can't be decoded.
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            return RecoveryJournalEntry.model_validate_json(raw)
        except ValidationError as exc:
            raise JournalReadError(f"Unreadable recovery entry: {exc}") from exc

    def clear(self) -> None:
        self.store.delete(self.key)


def recover_interrupted_session(journal: RecoveryJournal, sink) -> Optional[FinalizedSession]:
    """
    Rebuild and store a run interrupted by process termination.

    Args:
        journal: the recovery journal to inspect.
        sink: storage collaborator with a `save(FinalizedSession)` method.

    Returns:
        The recovered FinalizedSession, or None when there was nothing to
        recover or recovery must be retried on the next launch.
    """
    try:
        entry = journal.read()
    except JournalReadError as exc:
        logger.warning("Leaving recovery entry in place for next launch: %s", exc)
        return None
    except Exception as exc:
        logger.warning("Recovery journal unavailable: %s", exc)
        return None

    if entry is None:
        return None

    session = entry.to_finalized()
    try:
        sink.save(session)
    except Exception as exc:
        logger.warning("Saving recovered run %s failed, will retry: %s", entry.session_id, exc)
        return None

    try:
        journal.clear()
    except Exception as exc:
        logger.warning("Recovered run %s saved but journal clear failed: %s", entry.session_id, exc)

    logger.info(
        "Recovered interrupted run %s (%.2f km, %.0f s)",
        session.session_id, session.distance_km, session.stats.duration_s,
    )
    return session
