"""Shared test fixtures."""
from datetime import datetime, timedelta
from typing import Generator, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from runtrack.models.run import RunRecord, RunSplit, RunTrackPoint  # noqa: F401
from runtrack.models.journal import JournalSlot  # noqa: F401

from runtrack.config import Settings
from runtrack.journal.recovery import RecoveryJournal
from runtrack.journal.store import InMemoryKeyValueStore
from runtrack.tracking.geo import offset_north
from runtrack.tracking.samples import GeoSample
from runtrack.tracking.tracker import RunTracker

START = datetime(2025, 1, 15, 7, 30)
BASE_LAT = 47.6062
BASE_LON = -122.3321


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class CollectingSink:
    """Storage collaborator that remembers what it was given."""

    def __init__(self, fail: bool = False):
        self.saved = []
        self.fail = fail

    def save(self, session) -> None:
        if self.fail:
            raise IOError("disk full")
        self.saved.append(session)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="kv_store")
def kv_store_fixture() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture(name="journal")
def journal_fixture(kv_store) -> RecoveryJournal:
    return RecoveryJournal(kv_store)


@pytest.fixture(name="sink")
def sink_fixture() -> CollectingSink:
    return CollectingSink()


@pytest.fixture(name="failing_sink")
def failing_sink_fixture() -> CollectingSink:
    return CollectingSink(fail=True)


@pytest.fixture(name="tracker")
def tracker_fixture(journal, sink, settings, clock) -> RunTracker:
    return RunTracker(journal=journal, sink=sink, settings=settings, clock=clock)


@pytest.fixture(name="make_run")
def make_run_fixture():
    """
    Factory for a straight run due north.

    make_run(step_m, count, interval_s=5) → List[GeoSample], first sample at
    START, each following sample `step_m` further north and `interval_s` later.
    """
    def _make_run(
        step_m: float,
        count: int,
        interval_s: float = 5.0,
        start: datetime = START,
        accuracy: float = 5.0,
        altitudes: Optional[List[float]] = None,
    ) -> List[GeoSample]:
        samples = []
        lat = BASE_LAT
        for i in range(count):
            samples.append(GeoSample(
                latitude=lat,
                longitude=BASE_LON,
                horizontal_accuracy=accuracy,
                timestamp=start + timedelta(seconds=i * interval_s),
                altitude=altitudes[i] if altitudes else None,
            ))
            lat = offset_north(lat, step_m)
        return samples

    return _make_run


@pytest.fixture(name="feed")
def feed_fixture(clock):
    """Ingest samples in order, moving the fake clock to each timestamp."""
    def _feed(tracker: RunTracker, samples: List[GeoSample]) -> int:
        accepted = 0
        for s in samples:
            if s.timestamp > clock.now:
                clock.now = s.timestamp
            if tracker.ingest(s):
                accepted += 1
        return accepted

    return _feed
