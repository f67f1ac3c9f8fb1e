"""Configuration models and data locations for the focus tracker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs


APP_NAME = "HonestyMirror"
APP_AUTHOR = "HonestyMirror"


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the tracker, its buffer and the schedulers."""

    sample_interval: timedelta = timedelta(seconds=1)
    refresh_interval: timedelta = timedelta(seconds=1)
    flush_interval: timedelta = timedelta(seconds=60)
    write_attempts: int = 3
    write_backoff: timedelta = timedelta(milliseconds=200)
    queue_size: int = 1024
    queue_put_timeout: timedelta = timedelta(seconds=1)
    capture_window_titles: bool = False
    first_weekday: int = 0

    def __post_init__(self) -> None:
        if self.write_attempts < 1:
            raise ValueError("write_attempts must be at least 1")
        if not 0 <= self.first_weekday <= 6:
            raise ValueError("first_weekday must be between 0 (Monday) and 6 (Sunday)")

    @classmethod
    def from_intervals(
        cls,
        sample_seconds: float,
        flush_seconds: float | None = None,
        capture_window_titles: bool = False,
        first_weekday: int = 0,
    ) -> "TrackerSettings":
        flush = flush_seconds if flush_seconds is not None else 60.0
        return cls(
            sample_interval=timedelta(seconds=sample_seconds),
            flush_interval=timedelta(seconds=flush),
            capture_window_titles=capture_window_titles,
            first_weekday=first_weekday,
        )


def get_data_dir() -> Path:
    """Return the per-user directory holding the database and logs."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def resolve_db_path(override: Optional[Path] = None) -> Path:
    if override is not None:
        path = Path(override)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path
    return get_data_dir() / "honesty_mirror.sqlite3"


def get_log_path() -> Path:
    return get_data_dir() / "tracker.log"
