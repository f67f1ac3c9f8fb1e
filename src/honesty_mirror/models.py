"""Domain models for recorded focus activity."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import ValidationError

if TYPE_CHECKING:
    from .stats import WeeklyStats


BRIEF_CHECK_SECONDS = 30.0
COMPULSIVE_CHECK_SECONDS = 10.0
EXTENDED_SESSION_SECONDS = 600.0


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class FocusChanged:
    """A single focus notification from the OS observation layer."""

    app_id: str
    app_name: str
    became_active: bool
    timestamp: datetime = field(default_factory=datetime.now)
    window_title: Optional[str] = None


@dataclass(slots=True)
class Session:
    """One contiguous interval during which an application held focus."""

    app_id: str
    app_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    window_title: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def duration_seconds(self, now: Optional[datetime] = None) -> float:
        end = self.end_time or now or datetime.now()
        return max(0.0, (end - self.start_time).total_seconds())

    @property
    def duration(self) -> float:
        return self.duration_seconds()

    @property
    def is_brief_visit(self) -> bool:
        return self.duration < BRIEF_CHECK_SECONDS

    @property
    def is_extended_session(self) -> bool:
        return self.duration > EXTENDED_SESSION_SECONDS


@dataclass(slots=True)
class Visit:
    """Point-in-time record derived from a closed session."""

    app_id: str
    app_name: str
    timestamp: datetime
    duration_seconds: float
    previous_app_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_session(cls, session: Session, previous_app_id: Optional[str]) -> "Visit":
        return cls(
            app_id=session.app_id,
            app_name=session.app_name,
            timestamp=session.start_time,
            duration_seconds=session.duration,
            previous_app_id=previous_app_id,
        )

    @property
    def is_brief_check(self) -> bool:
        return self.duration_seconds < BRIEF_CHECK_SECONDS

    @property
    def is_compulsive_check(self) -> bool:
        return self.duration_seconds < COMPULSIVE_CHECK_SECONDS


@dataclass(slots=True)
class ExcludedApp:
    """An application whose focus time is never recorded."""

    app_id: str
    app_name: str
    excluded_at: datetime = field(default_factory=datetime.now)


class ReportPersonality(str, Enum):
    ENCOURAGING = "Encouraging"
    PROFESSIONAL = "Professional"
    NEUTRAL = "Neutral"
    ROAST = "Roast"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ReportPersonality":
        try:
            return cls(value)
        except ValueError:
            return cls.NEUTRAL

    @property
    def is_shareable(self) -> bool:
        return self is ReportPersonality.ROAST


@dataclass(slots=True)
class WeeklyReport:
    """Archived weekly report with the stats snapshot it was written from."""

    week_start: datetime
    week_end: datetime
    raw_stats_json: str
    analysis: str = ""
    personality: ReportPersonality = ReportPersonality.NEUTRAL
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def week_stats(self) -> Optional["WeeklyStats"]:
        """Decode the embedded snapshot, or ``None`` if it cannot be read."""
        from .stats import WeeklyStats

        try:
            return WeeklyStats.model_validate_json(self.raw_stats_json)
        except ValidationError:
            return None
