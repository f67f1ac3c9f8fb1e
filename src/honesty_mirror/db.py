"""SQLite storage for sessions, visits, archived reports and exclusions."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from .dates import start_of_week
from .models import ExcludedApp, ReportPersonality, Session, Visit, WeeklyReport

logger = logging.getLogger(__name__)


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"


class StoreError(Exception):
    """Base class for storage failures."""


class DatabaseNotInitializedError(StoreError):
    def __init__(self) -> None:
        super().__init__("Database has not been initialized")


class ActivityStore(Protocol):
    """The range-query contract the tracker and analytics depend on."""

    def save_session(self, session: Session) -> None: ...

    def save_visit(self, visit: Visit) -> None: ...

    def get_sessions_in_range(self, start: datetime, end: datetime) -> list[Session]: ...

    def get_visits_in_range(self, start: datetime, end: datetime) -> list[Visit]: ...


SCHEMA = """
CREATE TABLE IF NOT EXISTS app_sessions (
    id TEXT PRIMARY KEY,
    app_id TEXT NOT NULL,
    app_name TEXT NOT NULL,
    window_title TEXT,
    start_time TEXT NOT NULL,
    end_time TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS app_visits (
    id TEXT PRIMARY KEY,
    app_id TEXT NOT NULL,
    app_name TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    duration_seconds REAL NOT NULL,
    previous_app_id TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS weekly_reports (
    id TEXT PRIMARY KEY,
    week_start TEXT NOT NULL,
    week_end TEXT NOT NULL,
    raw_stats_json TEXT NOT NULL,
    analysis TEXT NOT NULL,
    personality TEXT NOT NULL DEFAULT 'Neutral',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS excluded_apps (
    app_id TEXT PRIMARY KEY,
    app_name TEXT NOT NULL,
    excluded_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_time ON app_sessions(start_time);
CREATE INDEX IF NOT EXISTS idx_visits_time ON app_visits(timestamp);
CREATE INDEX IF NOT EXISTS idx_reports_week ON weekly_reports(week_start);
"""


def _fmt(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(DATETIME_FMT) if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.strptime(value, DATETIME_FMT) if value is not None else None


def session_to_row(session: Session) -> tuple[Any, ...]:
    return (
        session.id,
        session.app_id,
        session.app_name,
        session.window_title,
        _fmt(session.start_time),
        _fmt(session.end_time),
        1 if session.is_active else 0,
        _fmt(session.created_at),
    )


def row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        app_id=row["app_id"],
        app_name=row["app_name"],
        window_title=row["window_title"],
        start_time=_parse(row["start_time"]),
        end_time=_parse(row["end_time"]),
        is_active=bool(row["is_active"]),
        created_at=_parse(row["created_at"]),
    )


def visit_to_row(visit: Visit) -> tuple[Any, ...]:
    return (
        visit.id,
        visit.app_id,
        visit.app_name,
        _fmt(visit.timestamp),
        visit.duration_seconds,
        visit.previous_app_id,
        _fmt(visit.created_at),
    )


def row_to_visit(row: sqlite3.Row) -> Visit:
    return Visit(
        id=row["id"],
        app_id=row["app_id"],
        app_name=row["app_name"],
        timestamp=_parse(row["timestamp"]),
        duration_seconds=float(row["duration_seconds"]),
        previous_app_id=row["previous_app_id"],
        created_at=_parse(row["created_at"]),
    )


def row_to_report(row: sqlite3.Row) -> WeeklyReport:
    return WeeklyReport(
        id=row["id"],
        week_start=_parse(row["week_start"]),
        week_end=_parse(row["week_end"]),
        raw_stats_json=row["raw_stats_json"],
        analysis=row["analysis"],
        personality=ReportPersonality.parse(row["personality"]),
        created_at=_parse(row["created_at"]),
    )


class Database:
    """Thread-safe wrapper around a single SQLite connection.

    Every write is one statement in autocommit mode, so a concurrent reader
    sees a session either not at all or with its end time already set.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    def initialize(self) -> "Database":
        with self._lock:
            if self._conn is not None:
                return self
            conn = sqlite3.connect(
                self.path,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON;")
            conn.executescript(SCHEMA)
            self._conn = conn
            logger.debug("Opened database at %s", self.path)
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._conn is None:
                raise DatabaseNotInitializedError()
            yield self._conn

    def save_session(self, session: Session) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_sessions (
                    id, app_id, app_name, window_title,
                    start_time, end_time, is_active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                session_to_row(session),
            )

    def save_visit(self, visit: Visit) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_visits (
                    id, app_id, app_name, timestamp,
                    duration_seconds, previous_app_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                visit_to_row(visit),
            )

    def get_sessions_in_range(self, start: datetime, end: datetime) -> list[Session]:
        """Sessions whose start time lies in ``[start, end]``, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM app_sessions
                WHERE start_time >= ? AND start_time <= ?
                ORDER BY start_time
                """,
                (_fmt(start), _fmt(end)),
            ).fetchall()
        return [row_to_session(row) for row in rows]

    def get_visits_in_range(self, start: datetime, end: datetime) -> list[Visit]:
        """Visits whose timestamp lies in ``[start, end]``, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM app_visits
                WHERE timestamp >= ? AND timestamp <= ?
                ORDER BY timestamp
                """,
                (_fmt(start), _fmt(end)),
            ).fetchall()
        return [row_to_visit(row) for row in rows]

    def save_weekly_report(self, report: WeeklyReport) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO weekly_reports (
                    id, week_start, week_end, raw_stats_json,
                    analysis, personality, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    report.id,
                    _fmt(report.week_start),
                    _fmt(report.week_end),
                    report.raw_stats_json,
                    report.analysis,
                    report.personality.value,
                    _fmt(report.created_at),
                ),
            )

    def get_weekly_reports(self, limit: int = 10) -> list[WeeklyReport]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM weekly_reports ORDER BY week_start DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [row_to_report(row) for row in rows]

    def get_weekly_report(self, report_id: str) -> Optional[WeeklyReport]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM weekly_reports WHERE id = ?", (report_id,)
            ).fetchone()
        return row_to_report(row) if row is not None else None

    def get_weekly_report_for_week(
        self, day: datetime, first_weekday: int = 0
    ) -> Optional[WeeklyReport]:
        week_start = start_of_week(day, first_weekday)
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM weekly_reports
                WHERE week_start = ?
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (_fmt(week_start),),
            ).fetchone()
        return row_to_report(row) if row is not None else None

    def get_excluded_apps(self) -> list[ExcludedApp]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM excluded_apps ORDER BY app_name COLLATE NOCASE"
            ).fetchall()
        return [
            ExcludedApp(
                app_id=row["app_id"],
                app_name=row["app_name"],
                excluded_at=_parse(row["excluded_at"]),
            )
            for row in rows
        ]

    def add_excluded_app(self, app: ExcludedApp) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO excluded_apps (app_id, app_name, excluded_at)
                VALUES (?, ?, ?)
                ON CONFLICT(app_id) DO UPDATE SET app_name = excluded.app_name
                """,
                (app.app_id, app.app_name, _fmt(app.excluded_at)),
            )

    def remove_excluded_app(self, app_id: str) -> bool:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM excluded_apps WHERE app_id = ?", (app_id,))
        return cur.rowcount > 0

    def is_app_excluded(self, app_id: str) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM excluded_apps WHERE app_id = ?", (app_id,)
            ).fetchone()
        return row is not None

    def delete_all_data(self) -> None:
        """Remove recorded activity and reports, keeping the exclusion list."""
        with self._connection() as conn:
            conn.execute("BEGIN")
            try:
                conn.execute("DELETE FROM app_sessions")
                conn.execute("DELETE FROM app_visits")
                conn.execute("DELETE FROM weekly_reports")
            except sqlite3.Error:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")


@contextmanager
def open_database(path: Path) -> Iterator[Database]:
    db = Database(path).initialize()
    try:
        yield db
    finally:
        db.close()
