"""Wiring for the default, SQLite-backed tracker."""
from runtrack.journal.recovery import RecoveryJournal
from runtrack.journal.store import SqlKeyValueStore
from runtrack.storage.session_store import SqlSessionStore
from runtrack.tracking.tracker import RunTracker


def build_tracker(engine, settings=None, clock=None) -> RunTracker:
    """RunTracker whose journal slot and finished runs both live in `engine`."""
    return RunTracker(
        journal=RecoveryJournal(SqlKeyValueStore(engine)),
        sink=SqlSessionStore(engine),
        settings=settings,
        clock=clock,
    )
