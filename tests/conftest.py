"""Shared pytest fixtures."""
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

from honesty_mirror.db import Database, StoreError
from honesty_mirror.models import Session, Visit

# A Monday, so the whole week lies in March 2024.
MONDAY = datetime(2024, 3, 4, 9, 0, 0)


class FakeStore:
    """In-memory store with switchable write failures."""

    def __init__(self) -> None:
        self.sessions: list[Session] = []
        self.visits: list[Visit] = []
        self.fail_visit_ids: set[str] = set()
        self.fail_all_visits = False
        self.fail_sessions = False
        self.visit_attempts = 0

    def save_session(self, session: Session) -> None:
        if self.fail_sessions:
            raise StoreError("session write failed")
        self.sessions.append(session)

    def save_visit(self, visit: Visit) -> None:
        self.visit_attempts += 1
        if self.fail_all_visits or visit.id in self.fail_visit_ids:
            raise StoreError("visit write failed")
        self.visits.append(visit)

    def get_sessions_in_range(self, start: datetime, end: datetime) -> list[Session]:
        return sorted(
            (s for s in self.sessions if start <= s.start_time <= end),
            key=lambda s: s.start_time,
        )

    def get_visits_in_range(self, start: datetime, end: datetime) -> list[Visit]:
        return sorted(
            (v for v in self.visits if start <= v.timestamp <= end),
            key=lambda v: v.timestamp,
        )


class FakeClock:
    def __init__(self, now: datetime = MONDAY) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def monday() -> datetime:
    return MONDAY


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "test.sqlite3").initialize()
    yield database
    database.close()


@pytest.fixture
def make_session():
    def _make(
        app_id: str,
        start: datetime,
        seconds: Optional[float],
        app_name: Optional[str] = None,
    ) -> Session:
        return Session(
            app_id=app_id,
            app_name=app_name or app_id.title(),
            start_time=start,
            end_time=start + timedelta(seconds=seconds) if seconds is not None else None,
        )

    return _make


@pytest.fixture
def make_visit():
    def _make(
        app_id: str,
        start: datetime,
        seconds: float,
        previous: Optional[str] = None,
        app_name: Optional[str] = None,
    ) -> Visit:
        return Visit(
            app_id=app_id,
            app_name=app_name or app_id.title(),
            timestamp=start,
            duration_seconds=seconds,
            previous_app_id=previous,
        )

    return _make
