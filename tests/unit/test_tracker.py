"""Tests for the RunTracker session state machine."""
import threading
from datetime import datetime, timedelta

import pytest

from runtrack.tracking.errors import FinalizationError, InvalidTransitionError, RecoveryPendingError
from runtrack.tracking.geo import haversine_m, offset_north
from runtrack.tracking.samples import GeoSample
from runtrack.tracking.session import RECOVERED_NOTE, SessionState
from runtrack.tracking.tracker import RunTracker

START = datetime(2025, 1, 15, 7, 30)
BASE_LAT = 47.6062
BASE_LON = -122.3321


def _pairwise_sum(points):
    return sum(
        haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)
        for a, b in zip(points, points[1:])
    )


class TestTransitions:
    def test_starts_idle(self, tracker):
        assert tracker.state == SessionState.IDLE
        assert tracker.stats().distance_m == 0.0

    def test_start_pause_resume_stop(self, tracker, clock):
        tracker.start()
        assert tracker.state == SessionState.TRACKING
        clock.advance(60)
        tracker.pause()
        assert tracker.state == SessionState.PAUSED
        clock.advance(30)
        tracker.resume()
        assert tracker.state == SessionState.TRACKING
        clock.advance(60)
        tracker.stop()
        assert tracker.state == SessionState.STOPPED

    def test_start_while_tracking_rejected(self, tracker):
        tracker.start()
        with pytest.raises(InvalidTransitionError):
            tracker.start()

    def test_pause_while_idle_rejected(self, tracker):
        with pytest.raises(InvalidTransitionError):
            tracker.pause()

    def test_resume_while_tracking_rejected(self, tracker):
        tracker.start()
        with pytest.raises(InvalidTransitionError):
            tracker.resume()

    def test_stop_while_idle_rejected(self, tracker):
        with pytest.raises(InvalidTransitionError):
            tracker.stop()

    def test_stop_from_paused(self, tracker, clock, sink):
        tracker.start()
        clock.advance(120)
        tracker.pause()
        clock.advance(600)
        record = tracker.stop()
        assert record is not None
        assert record.stats.duration_s == pytest.approx(120.0)
        assert len(sink.saved) == 1

    def test_stop_twice_finalizes_once(self, tracker, clock, sink):
        tracker.start()
        clock.advance(90)
        first = tracker.stop()
        second = tracker.stop()
        assert first is not None
        assert second is None
        assert len(sink.saved) == 1
        assert tracker.state == SessionState.STOPPED

    def test_new_run_after_stop(self, tracker, clock):
        tracker.start()
        clock.advance(60)
        first = tracker.stop()
        clock.advance(60)
        tracker.start()
        assert tracker.state == SessionState.TRACKING
        assert tracker.session_id != first.session_id
        assert tracker.stats().distance_m == 0.0


class TestSamples:
    def test_distance_is_sum_of_pairwise_deltas(self, tracker, make_run, feed):
        tracker.start()
        samples = make_run(step_m=12.0, count=50)
        distances = []
        for s in samples:
            feed(tracker, [s])
            distances.append(tracker.stats().distance_m)
        assert distances == sorted(distances)
        assert tracker.stats().distance_m == pytest.approx(_pairwise_sum(tracker.track_points()))
        assert len(tracker.track_points()) == 50

    def test_small_steps_still_add_distance(self, tracker, make_run, feed):
        tracker.start()
        feed(tracker, make_run(step_m=1.5, count=41))
        assert len(tracker.track_points()) == 41
        assert tracker.stats().distance_m == pytest.approx(60.0, abs=1e-6)
        assert tracker.stats().distance_m == pytest.approx(_pairwise_sum(tracker.track_points()))

    def test_split_count_matches_completed_kilometers(self, tracker, make_run, feed):
        tracker.start()
        feed(tracker, make_run(step_m=14.0, count=300))  # ~4.19 km
        splits = tracker.splits()
        assert len(splits) == int(tracker.stats().distance_m // 1000)
        assert [s.km_number for s in splits] == list(range(1, len(splits) + 1))

    def test_low_accuracy_sample_changes_nothing(self, tracker, make_run, feed, clock):
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=80))
        before_stats = tracker.stats()
        before_points = len(tracker.track_points())
        before_splits = len(tracker.splits())

        last = tracker.track_points()[-1]
        bad = GeoSample(
            latitude=offset_north(last.latitude, 15.0),
            longitude=BASE_LON,
            horizontal_accuracy=65.0,
            timestamp=last.timestamp + timedelta(seconds=5),
        )
        assert tracker.ingest(bad) is False
        assert tracker.stats() == before_stats
        assert len(tracker.track_points()) == before_points
        assert len(tracker.splits()) == before_splits

    def test_duplicate_timestamp_does_not_divide_by_zero(self, tracker, make_run, feed):
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=5))
        speed = tracker.stats().speed_ms
        last = tracker.track_points()[-1]
        same_time = GeoSample(
            latitude=offset_north(last.latitude, 3.0),
            longitude=BASE_LON,
            horizontal_accuracy=5.0,
            timestamp=last.timestamp,
        )
        assert tracker.ingest(same_time) is False
        stats = tracker.stats()
        assert stats.speed_ms == speed
        assert stats.current_pace.has_data

    def test_samples_ignored_while_idle(self, tracker, make_run):
        assert tracker.ingest(make_run(step_m=10.0, count=1)[0]) is False

    def test_samples_dropped_while_paused(self, tracker, make_run, feed, clock):
        tracker.start()
        samples = make_run(step_m=15.0, count=30)
        feed(tracker, samples[:10])
        tracker.pause()
        points_before = len(tracker.track_points())
        distance_before = tracker.stats().distance_m
        feed(tracker, samples[10:20])
        assert len(tracker.track_points()) == points_before
        assert tracker.stats().distance_m == distance_before

    def test_samples_dropped_after_stop(self, tracker, make_run, feed):
        tracker.start()
        samples = make_run(step_m=15.0, count=20)
        feed(tracker, samples[:10])
        record = tracker.stop()
        assert feed(tracker, samples[10:]) == 0
        assert record.point_count == 10

    def test_distance_not_bridged_across_pause(self, tracker, make_run, feed, clock):
        tracker.start()
        samples = make_run(step_m=15.0, count=30)
        feed(tracker, samples[:10])
        tracker.pause()
        clock.now = samples[20].timestamp
        tracker.resume()
        distance_at_resume = tracker.stats().distance_m
        feed(tracker, [samples[20]])
        # runner moved 150 m during the pause; none of it counts
        assert tracker.stats().distance_m == distance_at_resume
        feed(tracker, samples[21:])
        assert tracker.stats().distance_m == pytest.approx(distance_at_resume + 9 * 15.0, abs=1e-6)

    def test_climb_while_paused_not_counted(self, tracker, clock):
        tracker.start()
        lat = BASE_LAT
        for i in range(3):
            clock.now = START + timedelta(seconds=5 * i)
            assert tracker.ingest(GeoSample(lat, BASE_LON, 5.0, clock.now, altitude=100.0))
            lat = offset_north(lat, 15.0)
        tracker.pause()
        clock.advance(600)
        tracker.resume()

        # runner climbed 50 m while paused
        clock.advance(5)
        assert tracker.ingest(GeoSample(lat, BASE_LON, 5.0, clock.now, altitude=150.0))
        assert tracker.stats().elevation_gain_m == 0.0

        clock.advance(5)
        lat = offset_north(lat, 15.0)
        assert tracker.ingest(GeoSample(lat, BASE_LON, 5.0, clock.now, altitude=153.0))
        assert tracker.stats().elevation_gain_m == pytest.approx(3.0)


class TestDuration:
    def test_duration_excludes_pause_exactly(self, tracker, clock):
        tracker.start()
        clock.advance(300)
        tracker.pause()
        clock.advance(125)
        assert tracker.stats().duration_s == pytest.approx(300.0)
        tracker.resume()
        clock.advance(200)
        assert tracker.stats().duration_s == pytest.approx(500.0)

    def test_multiple_pauses(self, tracker, clock):
        tracker.start()
        for _ in range(3):
            clock.advance(100)
            tracker.pause()
            clock.advance(40)
            tracker.resume()
        clock.advance(100)
        assert tracker.stats().duration_s == pytest.approx(400.0)

    def test_duration_frozen_after_stop(self, tracker, clock):
        tracker.start()
        clock.advance(250)
        tracker.stop()
        clock.advance(1000)
        assert tracker.stats().duration_s == pytest.approx(250.0)

    def test_split_time_excludes_pause(self, tracker, make_run, feed, clock):
        tracker.start()
        # 1 km as 40 × 25 m every 10 s (400 s of running), with a 5 minute pause in the middle
        first = make_run(step_m=25.0, count=21, interval_s=10.0)
        feed(tracker, first)
        tracker.pause()
        clock.advance(300)
        tracker.resume()
        resume_at = clock.now
        second = make_run(step_m=25.0, count=22, interval_s=10.0, start=resume_at)
        feed(tracker, second)
        splits = tracker.splits()
        assert len(splits) == 1
        # 500 m before the pause (200 s) + 500 m after it (200 s); the 300 s pause is excluded
        assert splits[0].duration_seconds == pytest.approx(400.0, abs=1e-6)


class TestPaceFigures:
    def test_no_pace_before_movement(self, tracker, clock):
        tracker.start()
        clock.advance(30)
        stats = tracker.stats()
        assert not stats.average_pace.has_data
        assert not stats.current_pace.has_data
        assert not stats.last_km_pace.has_data

    def test_one_kilometer_in_three_samples(self, tracker, clock, sink):
        tracker.start()
        lat1 = offset_north(BASE_LAT, 500.0)
        lat2 = offset_north(lat1, 500.0)
        samples = [
            GeoSample(BASE_LAT, BASE_LON, 5.0, START),
            GeoSample(lat1, BASE_LON, 5.0, START + timedelta(seconds=150)),
            GeoSample(lat2, BASE_LON, 5.0, START + timedelta(seconds=300)),
        ]
        for s in samples:
            clock.now = s.timestamp
            assert tracker.ingest(s)
        record = tracker.stop()

        assert [s.km_number for s in record.splits] == [1]
        assert record.stats.average_pace.minutes_per_km == pytest.approx(
            record.stats.last_km_pace.minutes_per_km, rel=1e-9
        )
        assert record.stats.average_pace.minutes_per_km == pytest.approx(5.0, rel=1e-9)

    def test_gap_ending_on_whole_kilometer(self, tracker, clock):
        tracker.start()
        samples = [
            GeoSample(BASE_LAT, BASE_LON, 5.0, START),
            GeoSample(offset_north(BASE_LAT, 2000.0), BASE_LON, 5.0, START + timedelta(seconds=200)),
        ]
        for s in samples:
            clock.now = s.timestamp
            assert tracker.ingest(s)

        splits = tracker.splits()
        assert [s.km_number for s in splits] == [1, 2]
        assert [s.duration_seconds for s in splits] == pytest.approx([100.0, 100.0])

    def test_last_km_pace_falls_back_to_average(self, tracker, make_run, feed):
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=20))
        stats = tracker.stats()
        assert stats.last_km_pace == stats.average_pace

    def test_last_km_pace_follows_latest_split(self, tracker, make_run, feed):
        tracker.start()
        feed(tracker, make_run(step_m=20.0, count=120))  # ~2.38 km at 4 m/s
        stats = tracker.stats()
        assert stats.last_km_pace == tracker.splits()[-1].pace
        assert stats.last_km_pace.minutes_per_km == pytest.approx(1000 / 4.0 / 60, rel=0.01)


class TestFinalization:
    def test_finalized_record_contents(self, tracker, make_run, feed, sink, journal):
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=100))
        tracker.checkpoint()
        record = tracker.stop()

        assert sink.saved == [record]
        assert record.point_count == 100
        assert record.ended_at > record.started_at
        assert record.notes == ""
        assert not record.recovered
        assert not journal.has_entry()

    def test_record_is_immutable(self, tracker, clock):
        tracker.start()
        clock.advance(60)
        record = tracker.stop()
        with pytest.raises(Exception):
            record.notes = "changed"

    def test_empty_route_note(self, tracker, clock):
        tracker.start()
        clock.advance(754)
        record = tracker.stop()
        assert record.notes == "GPS signal was lost during this run. Time tracked: 12:34."

    def test_sparse_route_note(self, tracker, make_run, feed):
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=4))
        record = tracker.stop()
        assert record.notes == "Limited GPS data recorded (4 points)."

    def test_zero_duration_stop_discards_session(self, tracker, sink, journal):
        tracker.start()
        tracker.checkpoint()
        assert tracker.stop() is None
        assert sink.saved == []
        assert not journal.has_entry()
        assert tracker.state == SessionState.STOPPED

    def test_storage_failure_rearms_journal(self, journal, settings, clock, make_run, feed, failing_sink):
        failing = failing_sink
        tracker = RunTracker(journal=journal, sink=failing, settings=settings, clock=clock)
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=40))

        with pytest.raises(FinalizationError) as excinfo:
            tracker.stop()

        entry = journal.read()
        assert entry is not None
        assert entry.session_id == excinfo.value.session.session_id
        assert entry.distance_m == pytest.approx(excinfo.value.session.stats.distance_m)
        assert entry.is_paused is False
        assert tracker.state == SessionState.STOPPED

    def test_failed_run_recovered_on_next_start(self, journal, settings, clock, make_run, feed, failing_sink):
        sink = failing_sink
        tracker = RunTracker(journal=journal, sink=sink, settings=settings, clock=clock)
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=40))
        with pytest.raises(FinalizationError):
            tracker.stop()

        sink.fail = False
        clock.advance(3600)
        tracker.start()
        assert len(sink.saved) == 1
        assert sink.saved[0].recovered
        assert sink.saved[0].notes == RECOVERED_NOTE

    def test_start_refused_while_failed_run_unsaved(self, journal, settings, clock, make_run, feed, failing_sink):
        tracker = RunTracker(journal=journal, sink=failing_sink, settings=settings, clock=clock)
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=40))
        with pytest.raises(FinalizationError) as excinfo:
            tracker.stop()
        pending_id = excinfo.value.session.session_id

        clock.advance(600)
        with pytest.raises(RecoveryPendingError) as refused:
            tracker.start()
        assert refused.value.session_id == pending_id
        assert tracker.state == SessionState.STOPPED

        # a later checkpoint has no live run to write, so the entry survives
        assert tracker.checkpoint() is False
        entry = journal.read()
        assert entry.session_id == pending_id
        assert entry.distance_m == pytest.approx(excinfo.value.session.stats.distance_m)

    def test_start_allowed_once_storage_recovers(self, journal, settings, clock, make_run, feed, failing_sink):
        tracker = RunTracker(journal=journal, sink=failing_sink, settings=settings, clock=clock)
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=40))
        with pytest.raises(FinalizationError):
            tracker.stop()
        with pytest.raises(RecoveryPendingError):
            tracker.start()

        failing_sink.fail = False
        tracker.start()
        assert tracker.state == SessionState.TRACKING
        assert [s.recovered for s in failing_sink.saved] == [True]
        assert not journal.has_entry()

    def test_unreadable_entry_does_not_block_start(self, tracker, journal, kv_store, clock):
        kv_store.set(journal.key, "{not json")
        tracker.start()
        clock.advance(10)
        tracker.checkpoint()
        assert journal.read().session_id == tracker.session_id


class TestJournalCheckpoints:
    def test_checkpoint_only_while_live(self, tracker, clock, journal):
        assert tracker.checkpoint() is False
        tracker.start()
        clock.advance(10)
        assert tracker.checkpoint() is True
        assert journal.has_entry()

    def test_checkpoint_records_paused_flag(self, tracker, clock, journal):
        tracker.start()
        clock.advance(10)
        tracker.pause()
        tracker.checkpoint()
        assert journal.read().is_paused is True

    def test_enter_background_writes_snapshot(self, tracker, make_run, feed, journal):
        tracker.start()
        feed(tracker, make_run(step_m=15.0, count=12))
        assert tracker.enter_background() is True
        entry = journal.read()
        assert entry.point_count == 12
        assert entry.distance_m == pytest.approx(tracker.stats().distance_m)

    def test_checkpoint_overwrites_previous_entry(self, tracker, make_run, feed, journal, kv_store):
        tracker.start()
        samples = make_run(step_m=15.0, count=20)
        feed(tracker, samples[:10])
        tracker.checkpoint()
        feed(tracker, samples[10:])
        tracker.checkpoint()
        assert journal.read().point_count == 20
        assert len(kv_store._data) == 1


class TestConcurrency:
    def test_concurrent_ingest_keeps_route_ordered(self, tracker, make_run, clock):
        samples = make_run(step_m=10.0, count=200)
        clock.now = samples[-1].timestamp
        tracker.start()

        def worker():
            for s in samples:
                tracker.ingest(s)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        points = tracker.track_points()
        timestamps = [p.timestamp for p in points]
        assert timestamps == sorted(set(timestamps))
        assert tracker.stats().distance_m == pytest.approx(_pairwise_sum(points))
