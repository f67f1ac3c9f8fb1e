"""Tests for the collector runtime and tick scheduler."""
from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from honesty_mirror.collector import ActivityCollector
from honesty_mirror.config import TrackerSettings
from honesty_mirror.db import Database, ExcludedApp
from honesty_mirror.focus import ForegroundApp, ForegroundProbe, PollingFocusSource
from honesty_mirror.models import FocusChanged
from honesty_mirror.scheduler import FLUSH, REFRESH, Tick, TickScheduler


class ScriptedProbe(ForegroundProbe):
    def __init__(self, apps):
        self._apps = list(apps)

    def get_foreground_app(self):
        if len(self._apps) > 1:
            return self._apps.pop(0)
        return self._apps[0]


@pytest.fixture
def settings() -> TrackerSettings:
    return TrackerSettings(
        sample_interval=timedelta(milliseconds=10),
        refresh_interval=timedelta(seconds=60),
        flush_interval=timedelta(seconds=60),
        write_attempts=1,
    )


@pytest.fixture
def collector(db, settings, clock) -> ActivityCollector:
    return ActivityCollector(db, settings, clock=clock)


class TestProcessing:

    def test_focus_events_reach_tracker(self, collector, monday):
        collector.process(FocusChanged("code", "Code", True, monday))
        collector.process(FocusChanged("slack", "Slack", True, monday + timedelta(seconds=30)))
        assert collector.tracker.current_app == "Slack"
        assert collector.state.events_processed == 2
        assert len(collector.buffer) == 1

    def test_flush_tick_writes_visits(self, collector, db, monday):
        collector.process(FocusChanged("code", "Code", True, monday))
        collector.process(FocusChanged("code", "Code", False, monday + timedelta(seconds=5)))
        collector.process(Tick(FLUSH, monday + timedelta(seconds=60)))
        assert len(collector.buffer) == 0
        assert len(db.get_visits_in_range(monday, monday + timedelta(hours=1))) == 1
        assert collector.state.last_flush_time == monday + timedelta(seconds=60)

    def test_refresh_tick_updates_live_duration(self, collector, monday):
        collector.process(FocusChanged("code", "Code", True, monday))
        collector.process(Tick(REFRESH, monday + timedelta(seconds=12)))
        assert collector.tracker.current_session_duration == 12

    def test_flush_tick_reloads_exclusions(self, collector, db, monday):
        collector.exclusions.load()
        db.add_excluded_app(ExcludedApp("slack", "Slack"))
        collector.process(Tick(FLUSH, monday))
        collector.process(FocusChanged("slack", "Slack", True, monday))
        assert collector.tracker.current_session is None

    def test_shutdown_closes_session_and_flushes(self, collector, db, clock, monday):
        collector.process(FocusChanged("code", "Code", True, monday))
        clock.now = monday + timedelta(seconds=45)
        collector.shutdown()

        assert not db.is_initialized
        with_reopen = Database(db.path).initialize()
        try:
            [session] = with_reopen.get_sessions_in_range(monday, monday + timedelta(hours=1))
            visits = with_reopen.get_visits_in_range(monday, monday + timedelta(hours=1))
        finally:
            with_reopen.close()
        assert session.duration == 45
        assert len(visits) == 1

    def test_submit_drops_when_queue_full(self, db, clock, monday):
        settings = TrackerSettings(queue_size=1, queue_put_timeout=timedelta(milliseconds=1))
        collector = ActivityCollector(db, settings, clock=clock)
        assert collector.submit(Tick(REFRESH, monday)) is True
        assert collector.submit(Tick(REFRESH, monday)) is False
        assert collector.state.events_dropped == 1

    def test_drops_are_counted_across_producer_threads(self, db, clock, monday):
        settings = TrackerSettings(queue_size=1, queue_put_timeout=timedelta(milliseconds=1))
        collector = ActivityCollector(db, settings, clock=clock)
        collector.submit(Tick(REFRESH, monday))

        def produce():
            for _ in range(50):
                collector.submit(Tick(REFRESH, monday))

        producers = [threading.Thread(target=produce) for _ in range(8)]
        for thread in producers:
            thread.start()
        for thread in producers:
            thread.join()
        assert collector.state.events_dropped == 400


class TestRunLoop:

    def test_run_until_stopped_tracks_and_drains(self, db, settings, clock):
        lock = threading.Lock()

        def ticking_clock():
            with lock:
                return clock.advance(1)

        probe = ScriptedProbe(
            [
                ForegroundApp("code", "Code"),
                ForegroundApp("code", "Code"),
                ForegroundApp("slack", "Slack"),
            ]
        )
        collector = ActivityCollector(
            db, settings, source=PollingFocusSource(probe, clock=ticking_clock), clock=ticking_clock
        )
        stop_event = threading.Event()
        thread = threading.Thread(target=collector.run_until_stopped, args=(stop_event,))
        thread.start()
        try:
            deadline = threading.Event()
            for _ in range(200):
                if collector.tracker.current_app == "Slack":
                    break
                deadline.wait(0.01)
        finally:
            stop_event.set()
            thread.join(timeout=10)

        assert not thread.is_alive()
        assert not collector.state.running
        reopened = Database(db.path).initialize()
        try:
            start = clock.now - timedelta(days=1)
            end = clock.now + timedelta(days=1)
            apps = [s.app_id for s in reopened.get_sessions_in_range(start, end)]
            visits = reopened.get_visits_in_range(start, end)
        finally:
            reopened.close()
        assert apps == ["code", "slack"]
        assert len(visits) == 2


class TestTickScheduler:

    def test_emits_until_stopped(self):
        ticks: list[Tick] = []
        fired = threading.Event()

        def emit(tick):
            ticks.append(tick)
            if len(ticks) >= 3:
                fired.set()

        scheduler = TickScheduler(FLUSH, 0.01, emit)
        scheduler.start()
        assert fired.wait(5)
        scheduler.stop()
        count = len(ticks)
        threading.Event().wait(0.05)
        assert len(ticks) == count
        assert all(t.kind == FLUSH for t in ticks)

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            TickScheduler(REFRESH, 0, lambda tick: None)
