"""Read-only aggregates handed to the reporting and UI layers."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class AppUsageStats(_Snapshot):
    app_name: str
    app_id: str
    total_time: float
    total_sessions: int
    average_session_length: float
    brief_visits: int
    extended_sessions: int
    visit_frequency: float


class AppUsageStat(_Snapshot):
    app_name: str
    app_id: str
    total_time: float
    sessions: int
    brief_visits: int


class CompulsiveCheckPattern(_Snapshot):
    app_name: str
    app_id: str
    checks_per_day: float
    average_duration: float
    trigger_apps: list[str] = Field(default_factory=list)


class DeepWorkSession(_Snapshot):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    date: datetime
    start_time: datetime
    duration: float
    primary_app: str
    # Reserved; always 0 until interruption detection exists.
    interruptions: int = 0


class FragmentedHour(_Snapshot):
    date: datetime
    hour: int
    switch_count: int
    apps_used: list[str] = Field(default_factory=list)


class DailyBreakdown(_Snapshot):
    date: datetime
    total_active_time: float
    context_switches: int
    top_apps: list[str] = Field(default_factory=list)
    deep_work_minutes: int
    fragmented_hours: int

    @property
    def day_of_week(self) -> str:
        return self.date.strftime("%A")


class WeekComparison(_Snapshot):
    context_switch_change: float
    deep_work_sessions_change: int
    average_session_length_change: float
    total_time_change: float


class TodayStats(_Snapshot):
    total_active_time: float
    context_switches: int
    top_apps: list[AppUsageStat] = Field(default_factory=list)
    compulsive_checks: int
    deep_work_minutes: int
    current_session_app: Optional[str] = None
    current_session_duration: Optional[float] = None


class WeeklyStats(_Snapshot):
    week_start: datetime
    week_end: datetime

    app_usage: list[AppUsageStats] = Field(default_factory=list)

    total_context_switches: int
    average_session_length: float
    compulsive_checks: list[CompulsiveCheckPattern] = Field(default_factory=list)
    deep_work_sessions: list[DeepWorkSession] = Field(default_factory=list)
    fragmented_hours: list[FragmentedHour] = Field(default_factory=list)

    daily_breakdowns: list[DailyBreakdown] = Field(default_factory=list)
    peak_productivity_hours: list[int] = Field(default_factory=list)
    peak_distraction_hours: list[int] = Field(default_factory=list)

    week_over_week_changes: Optional[WeekComparison] = None

    @property
    def total_tracked_time(self) -> float:
        return sum(app.total_time for app in self.app_usage)

    @property
    def unique_apps(self) -> int:
        return len(self.app_usage)

    @property
    def total_deep_work_minutes(self) -> int:
        return int(sum(session.duration for session in self.deep_work_sessions) // 60)
