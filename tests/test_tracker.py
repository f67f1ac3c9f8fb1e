"""Tests for the focus-change state machine."""
from __future__ import annotations

from datetime import timedelta

import pytest

from honesty_mirror.buffer import PendingVisitBuffer
from honesty_mirror.models import FocusChanged
from honesty_mirror.tracker import SessionTracker, TrackerState


@pytest.fixture
def buffer(store) -> PendingVisitBuffer:
    return PendingVisitBuffer(store, write_attempts=1, sleep=lambda _: None)


@pytest.fixture
def tracker(store, buffer, clock) -> SessionTracker:
    return SessionTracker(store, buffer, clock=clock)


def _at(monday, seconds):
    return monday + timedelta(seconds=seconds)


class TestTransitions:

    def test_starts_idle(self, tracker):
        assert tracker.state is TrackerState.IDLE
        assert tracker.current_session is None

    def test_focus_gained_opens_session(self, tracker, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        assert tracker.state is TrackerState.TRACKING
        assert tracker.current_session.app_id == "code"
        assert tracker.current_session.start_time == monday

    def test_switch_closes_previous_session(self, tracker, store, buffer, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        visit = tracker.focus_gained("slack", "Slack", timestamp=_at(monday, 40))

        assert len(store.sessions) == 1
        closed = store.sessions[0]
        assert closed.app_id == "code"
        assert closed.end_time == _at(monday, 40)
        assert visit.duration_seconds == 40
        assert visit.previous_app_id is None
        assert len(buffer) == 1
        assert tracker.current_session.app_id == "slack"

    def test_focus_lost_for_current_app_goes_idle(self, tracker, store, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        tracker.focus_lost("code", timestamp=_at(monday, 10))
        assert tracker.state is TrackerState.IDLE
        assert store.sessions[0].duration == 10

    def test_stale_focus_lost_is_ignored(self, tracker, store, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        assert tracker.focus_lost("slack", timestamp=_at(monday, 5)) is None
        assert tracker.state is TrackerState.TRACKING
        assert store.sessions == []

    def test_focus_lost_while_idle_is_ignored(self, tracker, buffer, monday):
        assert tracker.focus_lost("code", timestamp=monday) is None
        assert len(buffer) == 0

    def test_previous_app_chain(self, tracker, buffer, monday):
        tracker.focus_gained("a", "A", timestamp=monday)
        tracker.focus_gained("b", "B", timestamp=_at(monday, 1))
        tracker.focus_gained("c", "C", timestamp=_at(monday, 2))
        tracker.close_current(_at(monday, 3))

        previous = [v.previous_app_id for v in buffer.snapshot()]
        assert previous == [None, "a", "b"]

    def test_end_never_before_start(self, tracker, store, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        tracker.focus_lost("code", timestamp=monday - timedelta(seconds=3))
        session = store.sessions[0]
        assert session.end_time >= session.start_time
        assert session.duration == 0

    def test_handle_event_dispatches(self, tracker, store, monday):
        tracker.handle_event(FocusChanged("code", "Code", True, monday, "main.py"))
        tracker.handle_event(FocusChanged("code", "Code", False, _at(monday, 7)))
        assert store.sessions[0].window_title == "main.py"
        assert store.sessions[0].duration == 7

    def test_uses_clock_when_no_timestamp(self, tracker, store, clock):
        tracker.focus_gained("code", "Code")
        clock.advance(25)
        tracker.focus_lost("code")
        assert store.sessions[0].duration == 25

    def test_session_saved_failure_still_produces_visit(self, tracker, store, buffer, monday):
        store.fail_sessions = True
        tracker.focus_gained("code", "Code", timestamp=monday)
        tracker.focus_lost("code", timestamp=_at(monday, 4))
        assert len(buffer) == 1


class TestInvariants:

    def test_at_most_one_open_session(self, tracker, store, monday):
        events = [
            ("a", True), ("b", True), ("b", False), ("a", False),
            ("c", True), ("c", True), ("a", False), ("d", True),
        ]
        for offset, (app, gained) in enumerate(events):
            if gained:
                tracker.focus_gained(app, app.upper(), timestamp=_at(monday, offset))
            else:
                tracker.focus_lost(app, timestamp=_at(monday, offset))
            assert all(s.end_time is not None for s in store.sessions)
            assert (tracker.current_session is not None) == (tracker.state is TrackerState.TRACKING)

    def test_one_visit_per_closed_session(self, tracker, store, buffer, monday):
        for offset, app in enumerate(["a", "b", "a", "c", "a"]):
            tracker.focus_gained(app, app.upper(), timestamp=_at(monday, offset * 10))
        tracker.shutdown(_at(monday, 60))

        assert len(store.sessions) == 5
        assert len(store.visits) == 5
        assert {s.start_time for s in store.sessions} == {v.timestamp for v in store.visits}
        assert len(buffer) == 0

    def test_current_session_is_a_copy(self, tracker, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        snapshot = tracker.current_session
        snapshot.end_time = _at(monday, 5)
        assert tracker.current_session.end_time is None


class TestExclusions:

    def test_excluded_app_never_opens_session(self, store, buffer, monday):
        tracker = SessionTracker(store, buffer, is_excluded=lambda app_id: app_id == "1password")
        tracker.focus_gained("1password", "1Password", timestamp=monday)
        assert tracker.state is TrackerState.IDLE

    def test_excluded_app_closes_previous_and_keeps_previous_app(self, store, buffer, monday):
        tracker = SessionTracker(store, buffer, is_excluded=lambda app_id: app_id == "1password")
        tracker.focus_gained("code", "Code", timestamp=monday)
        tracker.focus_gained("1password", "1Password", timestamp=_at(monday, 20))
        assert tracker.state is TrackerState.IDLE
        assert len(store.sessions) == 1

        tracker.focus_gained("slack", "Slack", timestamp=_at(monday, 30))
        tracker.close_current(_at(monday, 35))
        visits = buffer.snapshot()
        assert [v.app_id for v in visits] == ["code", "slack"]
        assert visits[1].previous_app_id == "code"


class TestShutdownAndRefresh:

    def test_shutdown_closes_and_flushes(self, tracker, store, buffer, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        written = tracker.shutdown(_at(monday, 100))
        assert written == 1
        assert tracker.state is TrackerState.IDLE
        assert store.sessions[0].duration == 100
        assert len(buffer) == 0

    def test_shutdown_while_idle_flushes_pending(self, tracker, store, buffer, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        tracker.focus_lost("code", timestamp=_at(monday, 3))
        tracker.shutdown(_at(monday, 10))
        assert len(store.visits) == 1

    def test_refresh_recomputes_from_start(self, tracker, monday):
        tracker.focus_gained("code", "Code", timestamp=monday)
        assert tracker.refresh(_at(monday, 1)) == 1
        assert tracker.refresh(_at(monday, 61)) == 61
        assert tracker.current_session_duration == 61

    def test_refresh_while_idle_is_zero(self, tracker, monday):
        assert tracker.refresh(monday) == 0
