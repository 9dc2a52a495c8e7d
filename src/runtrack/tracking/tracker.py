"""
RunTracker: the session state machine that owns a live run.

    idle ──start──▶ tracking ◀──resume── paused
                       │ ──pause──────────▶ │
                       └──────stop──────────┴──▶ stopped

Every public method takes the same re-entrant lock, so location samples,
timer ticks and control events arriving from different threads/tasks are
applied one at a time and never interleave with a pause/resume.

Flow for an accepted sample (tracking state only):
  1. GeoSampleFilter against the last route point
  2. append TrackPoint to the route
  3. MetricsAccumulator (distance / elevation / speed / calories)
  4. PaceEstimator window + SplitRecorder boundaries

Start recovers any journaled run first. While storage still rejects it,
start() refuses with RecoveryPendingError rather than let the new run
overwrite the only copy.

Finalization on stop:
  - zero active duration → session discarded, journal cleared, returns None
  - sink.save() fails → final aggregate written back to the journal and
    FinalizationError raised so the caller can report it
  - otherwise the journal slot is deleted and the FinalizedSession returned
"""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

from runtrack.config import Settings, get_settings
from runtrack.journal.recovery import (
    RecoveryJournal,
    RecoveryJournalEntry,
    recover_interrupted_session,
)
from runtrack.tracking.errors import (
    FinalizationError,
    InvalidTransitionError,
    JournalReadError,
    RecoveryPendingError,
)
from runtrack.tracking.filter import GeoSampleFilter
from runtrack.tracking.live import LiveStatus
from runtrack.tracking.metrics import MetricsAccumulator
from runtrack.tracking.pace import PaceEstimator
from runtrack.tracking.samples import GeoSample, TrackPoint
from runtrack.tracking.session import (
    FinalizedSession,
    RunningStats,
    Session,
    SessionSink,
    SessionState,
    finalize,
)
from runtrack.tracking.splits import Split, SplitRecorder

logger = logging.getLogger(__name__)

_LIVE_STATES = (SessionState.TRACKING, SessionState.PAUSED)


class RunTracker:
    """Owns at most one live Session and serializes every mutation of it."""

    def __init__(
        self,
        journal: RecoveryJournal,
        sink: SessionSink,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            journal: crash-recovery journal (wraps an injected key-value store).
            sink: storage collaborator receiving finished runs.
            settings: thresholds and cadences; defaults to get_settings().
            clock: wall-clock source; defaults to datetime.utcnow.
        """
        self.journal = journal
        self.sink = sink
        self.settings = settings or get_settings()
        self.clock = clock or datetime.utcnow

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session: Optional[Session] = None
        self._final_stats: Optional[RunningStats] = None
        self._filter = GeoSampleFilter(
            max_horizontal_accuracy_m=self.settings.max_horizontal_accuracy_m,
            max_speed_ms=self.settings.max_speed_ms,
        )
        self._reset_components()

    # ─── Queries ──────────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def session_id(self) -> Optional[str]:
        with self._lock:
            return self._session.session_id if self._session else None

    def stats(self) -> RunningStats:
        """Snapshot of the current run (final stats once stopped)."""
        with self._lock:
            if self._state == SessionState.STOPPED and self._final_stats is not None:
                return self._final_stats
            if self._session is None:
                return RunningStats()
            return self._build_stats(self._session.active_seconds_at(self.clock()))

    def live_status(self) -> LiveStatus:
        with self._lock:
            return LiveStatus.from_stats(self.stats(), self._state)

    def splits(self) -> List[Split]:
        with self._lock:
            return list(self._session.splits) if self._session else []

    def track_points(self) -> List[TrackPoint]:
        with self._lock:
            return list(self._session.track_points) if self._session else []

    # ─── Control events ───────────────────────────────────────────────────────

    def start(self) -> Session:
        """
        Begin a new run, first recovering any run left in the journal.

        Raises:
            InvalidTransitionError: if a run is already live.
            RecoveryPendingError: if a recoverable run could not be saved yet.
        """
        with self._lock:
            if self._state in _LIVE_STATES:
                raise InvalidTransitionError("start", self._state)

            self.recover()
            try:
                pending = self.journal.read()
            except JournalReadError as exc:
                logger.warning("Unreadable recovery entry will be overwritten by this run: %s", exc)
                pending = None
            except Exception as exc:
                logger.warning("Recovery journal unavailable: %s", exc)
                pending = None
            if pending is not None:
                logger.warning("Run %s not yet saved; refusing to start a new run", pending.session_id)
                raise RecoveryPendingError(pending.session_id)

            self._session = Session(started_at=self.clock())
            self._final_stats = None
            self._reset_components()
            self._state = SessionState.TRACKING
            logger.info("Run %s started", self._session.session_id)
            return self._session

    def pause(self) -> None:
        with self._lock:
            if self._state != SessionState.TRACKING:
                raise InvalidTransitionError("pause", self._state)
            self._session.paused_at = self.clock()
            self._set_state(SessionState.PAUSED)
            logger.info("Run %s paused", self._session.session_id)

    def resume(self) -> None:
        with self._lock:
            if self._state != SessionState.PAUSED:
                raise InvalidTransitionError("resume", self._state)
            session = self._session
            paused_for = (self.clock() - session.paused_at).total_seconds()
            session.paused_seconds += max(0.0, paused_for)
            session.paused_at = None
            # Neither distance nor climb is bridged across a pause
            self._segment_anchor = None
            self._last_altitude = None
            self._metrics.reset_segment()
            self._pace.reset()
            self._set_state(SessionState.TRACKING)
            logger.info("Run %s resumed after %.0f s", session.session_id, paused_for)

    def stop(self) -> Optional[FinalizedSession]:
        """
        Finalize the live run.

        Returns:
            The FinalizedSession handed to storage, or None when the tracker
            was already stopped or the run had zero active duration.

        Raises:
            InvalidTransitionError: if no run was ever started.
            FinalizationError: if storage rejected the run (journal re-armed).
        """
        with self._lock:
            if self._state == SessionState.STOPPED:
                logger.debug("Stop ignored: already stopped")
                return None
            if self._state == SessionState.IDLE:
                raise InvalidTransitionError("stop", self._state)

            session = self._session
            ended_at = self.clock()
            stats = self._build_stats(session.active_seconds_at(ended_at))
            session.ended_at = ended_at
            self._final_stats = stats
            self._set_state(SessionState.STOPPED)
            self._session = None

            if stats.duration_s <= 0:
                logger.warning("Run %s discarded: zero active duration", session.session_id)
                self._clear_journal()
                return None

            record = finalize(session, stats, ended_at, self.settings.min_route_points)
            try:
                self.sink.save(record)
            except Exception as exc:
                logger.error("Saving run %s failed, re-arming recovery journal: %s", record.session_id, exc)
                self.journal.write(RecoveryJournalEntry.from_stats(
                    session_id=record.session_id,
                    started_at=record.started_at,
                    stats=stats,
                    point_count=record.point_count,
                    is_paused=False,
                ))
                raise FinalizationError(record, exc) from exc

            self._clear_journal()
            logger.info(
                "Run %s finished: %.2f km in %.0f s, %d splits",
                record.session_id, stats.distance_km, stats.duration_s, len(record.splits),
            )
            return record

    # ─── Samples ──────────────────────────────────────────────────────────────

    def ingest(self, sample: GeoSample) -> bool:
        """Route one sample through the filter and accumulators. Returns accepted."""
        with self._lock:
            if self._state != SessionState.TRACKING:
                return False

            session = self._session
            previous = session.track_points[-1] if session.track_points else None
            if not self._filter.accepts(sample, previous):
                return False

            altitude = self._metrics.usable_altitude(sample)
            point = TrackPoint.from_sample(sample, altitude)

            distance_before = self._metrics.totals.distance_m
            active_before = self._last_active_s
            altitude_before = self._last_altitude

            self._metrics.add(point, self._segment_anchor)
            active_now = max(active_before, session.active_seconds_at(point.timestamp))
            session.track_points.append(point)

            distance_now = self._metrics.totals.distance_m
            self._pace.observe(point.timestamp, distance_now)
            new_splits = self._recorder.record(
                distance_before, distance_now,
                active_before, active_now,
                altitude_before, altitude,
            )
            for split in new_splits:
                session.splits.append(split)
                logger.info(
                    "Run %s km %d: %.0f s (%s)",
                    session.session_id, split.km_number, split.duration_seconds, split.pace.format(),
                )

            self._segment_anchor = point
            self._last_active_s = active_now
            if altitude is not None:
                self._last_altitude = altitude
            return True

    # ─── Journal ──────────────────────────────────────────────────────────────

    def checkpoint(self) -> bool:
        """Write the recovery snapshot if a run is live. Best-effort."""
        with self._lock:
            if self._state not in _LIVE_STATES:
                return False
            session = self._session
            entry = RecoveryJournalEntry.from_stats(
                session_id=session.session_id,
                started_at=session.started_at,
                stats=self.stats(),
                point_count=len(session.track_points),
                is_paused=self._state == SessionState.PAUSED,
            )
            return self.journal.write(entry)

    def enter_background(self) -> bool:
        """The host app is moving to the background: snapshot now."""
        logger.info("Entering background, writing recovery snapshot")
        return self.checkpoint()

    def recover(self) -> Optional[FinalizedSession]:
        """Recover a run left in the journal by a previous process, if any."""
        with self._lock:
            if self._state in _LIVE_STATES:
                return None
            return recover_interrupted_session(self.journal, self.sink)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _reset_components(self) -> None:
        self._metrics = MetricsAccumulator(
            calories_per_km=self.settings.calories_per_km,
            altitude_noise_m=self.settings.altitude_noise_m,
            max_vertical_accuracy_m=self.settings.max_vertical_accuracy_m,
        )
        self._pace = PaceEstimator(window_seconds=self.settings.current_pace_window_seconds)
        self._recorder = SplitRecorder()
        self._segment_anchor: Optional[TrackPoint] = None
        self._last_active_s = 0.0
        self._last_altitude: Optional[float] = None

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        if self._session is not None:
            self._session.state = state

    def _build_stats(self, duration_s: float) -> RunningStats:
        totals = self._metrics.totals
        average = PaceEstimator.average(duration_s, totals.distance_m)
        splits = self._session.splits if self._session else []
        return RunningStats(
            distance_m=totals.distance_m,
            duration_s=duration_s,
            average_pace=average,
            current_pace=self._pace.current(),
            last_km_pace=PaceEstimator.last_km(splits, average),
            elevation_gain_m=totals.elevation_gain_m,
            elevation_loss_m=totals.elevation_loss_m,
            calories=totals.calories,
            speed_ms=totals.speed_ms,
            max_speed_ms=totals.max_speed_ms,
        )

    def _clear_journal(self) -> None:
        try:
            self.journal.clear()
        except Exception as exc:
            logger.warning("Recovery journal clear failed: %s", exc)
