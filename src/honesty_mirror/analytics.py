"""Pattern detection over sessions and visits for a time window.

Every function here is pure: it only looks at the records it is given, so the
results can be computed on any thread from a snapshot read out of the store.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime
from typing import Iterable, Optional, Sequence, TypeVar

from .dates import days_in_range, end_of_day, hour_of_day, start_of_day
from .models import Session, Visit
from .stats import (
    AppUsageStats,
    CompulsiveCheckPattern,
    DailyBreakdown,
    DeepWorkSession,
    FragmentedHour,
    WeekComparison,
)

DEEP_WORK_SECONDS = 1800.0
FRAGMENTED_HOUR_VISITS = 10
COMPULSIVE_CHECKS_PER_DAY = 5.0
TRIGGER_APP_LIMIT = 3
PEAK_HOUR_LIMIT = 3

_T = TypeVar("_T")


def _group_by_app(records: Iterable[_T]) -> dict[str, list[_T]]:
    grouped: dict[str, list[_T]] = defaultdict(list)
    for record in records:
        grouped[record.app_id].append(record)  # type: ignore[attr-defined]
    return grouped


def _total_duration(sessions: Iterable[Session]) -> float:
    return sum(session.duration for session in sessions)


def _deep_work_minutes(sessions: Iterable[Session]) -> int:
    # Strictly longer than the deep-work threshold, unlike detection.
    return int(
        sum(s.duration for s in sessions if s.duration > DEEP_WORK_SECONDS) // 60
    )


def _percentage_change(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def _average_session_length(sessions: Sequence[Session]) -> float:
    if not sessions:
        return 0.0
    return _total_duration(sessions) / len(sessions)


def calculate_app_usage_stats(sessions: Sequence[Session]) -> list[AppUsageStats]:
    """Per-app totals, sorted by total time, busiest app first."""
    total_tracked_hours = max(1.0, _total_duration(sessions) / 3600)

    stats: list[AppUsageStats] = []
    for app_id, app_sessions in _group_by_app(sessions).items():
        total_time = _total_duration(app_sessions)
        stats.append(
            AppUsageStats(
                app_name=app_sessions[0].app_name,
                app_id=app_id,
                total_time=total_time,
                total_sessions=len(app_sessions),
                average_session_length=total_time / len(app_sessions),
                brief_visits=sum(1 for s in app_sessions if s.is_brief_visit),
                extended_sessions=sum(1 for s in app_sessions if s.is_extended_session),
                visit_frequency=len(app_sessions) / total_tracked_hours,
            )
        )
    stats.sort(key=lambda item: item.total_time, reverse=True)
    return stats


def find_trigger_apps(
    app_id: str, app_visits: Sequence[Visit], all_visits: Sequence[Visit]
) -> list[str]:
    """Names of the apps most often focused right before ``app_id``."""
    counts: Counter[str] = Counter()
    for visit in app_visits:
        previous = visit.previous_app_id
        if previous is not None and previous != app_id:
            counts[previous] += 1

    names: list[str] = []
    # most_common keeps first-encountered order among equal counts.
    for trigger_id, _ in counts.most_common(TRIGGER_APP_LIMIT):
        name = next((v.app_name for v in all_visits if v.app_id == trigger_id), None)
        if name is not None:
            names.append(name)
    return names


def detect_compulsive_checks(
    visits: Sequence[Visit], day_count: int = 7
) -> list[CompulsiveCheckPattern]:
    """Apps briefly checked more than five times a day on average."""
    days = max(1, day_count)
    patterns: list[CompulsiveCheckPattern] = []
    for app_id, app_visits in _group_by_app(visits).items():
        brief = [v for v in app_visits if v.is_brief_check]
        checks_per_day = len(brief) / days
        if not checks_per_day > COMPULSIVE_CHECKS_PER_DAY:
            continue

        average = sum(v.duration_seconds for v in brief) / len(brief)
        patterns.append(
            CompulsiveCheckPattern(
                app_name=app_visits[0].app_name,
                app_id=app_id,
                checks_per_day=checks_per_day,
                average_duration=average,
                trigger_apps=find_trigger_apps(app_id, app_visits, visits),
            )
        )
    patterns.sort(key=lambda item: item.checks_per_day, reverse=True)
    return patterns


def detect_deep_work_sessions(sessions: Sequence[Session]) -> list[DeepWorkSession]:
    deep = [
        DeepWorkSession(
            date=start_of_day(session.start_time),
            start_time=session.start_time,
            duration=session.duration,
            primary_app=session.app_name,
            interruptions=0,
        )
        for session in sessions
        if session.duration >= DEEP_WORK_SECONDS
    ]
    deep.sort(key=lambda item: item.duration, reverse=True)
    return deep


def detect_fragmented_hours(visits: Sequence[Visit]) -> list[FragmentedHour]:
    """(day, hour) buckets with at least ten visits."""
    buckets: dict[tuple[datetime, int], list[Visit]] = defaultdict(list)
    for visit in visits:
        key = (start_of_day(visit.timestamp), hour_of_day(visit.timestamp))
        buckets[key].append(visit)

    hours: list[FragmentedHour] = []
    for (day, hour), hour_visits in buckets.items():
        if len(hour_visits) < FRAGMENTED_HOUR_VISITS:
            continue
        apps_used = list(dict.fromkeys(v.app_name for v in hour_visits))
        hours.append(
            FragmentedHour(
                date=day,
                hour=hour,
                switch_count=len(hour_visits),
                apps_used=apps_used,
            )
        )
    hours.sort(key=lambda item: item.switch_count, reverse=True)
    return hours


def calculate_daily_breakdowns(
    sessions: Sequence[Session],
    visits: Sequence[Visit],
    start: datetime,
    end: datetime,
) -> list[DailyBreakdown]:
    breakdowns: list[DailyBreakdown] = []
    for day in days_in_range(start, end):
        day_end = end_of_day(day)
        day_sessions = [s for s in sessions if day <= s.start_time <= day_end]
        day_visits = [v for v in visits if day <= v.timestamp <= day_end]

        app_times: dict[str, float] = defaultdict(float)
        app_names: dict[str, str] = {}
        for session in day_sessions:
            app_times[session.app_id] += session.duration
            app_names.setdefault(session.app_id, session.app_name)
        top_apps = [
            app_names[app_id]
            for app_id, _ in sorted(
                app_times.items(), key=lambda item: item[1], reverse=True
            )[:3]
        ]

        breakdowns.append(
            DailyBreakdown(
                date=day,
                total_active_time=_total_duration(day_sessions),
                context_switches=len(day_visits),
                top_apps=top_apps,
                deep_work_minutes=_deep_work_minutes(day_sessions),
                fragmented_hours=len(detect_fragmented_hours(day_visits)),
            )
        )
    return breakdowns


def _top_hours(totals: dict[int, float]) -> list[int]:
    # Ties go to the earlier hour so the result is stable across runs.
    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [hour for hour, _ in ranked[:PEAK_HOUR_LIMIT]]


def calculate_peak_hours(
    sessions: Sequence[Session], visits: Sequence[Visit]
) -> tuple[list[int], list[int]]:
    """Return ``(productive_hours, distracted_hours)``, three of each at most."""
    deep_work: dict[int, float] = defaultdict(float)
    for session in sessions:
        if session.duration > DEEP_WORK_SECONDS:
            deep_work[hour_of_day(session.start_time)] += session.duration

    switches: dict[int, float] = defaultdict(float)
    for visit in visits:
        switches[hour_of_day(visit.timestamp)] += 1

    return _top_hours(deep_work), _top_hours(switches)


def compare_weeks(
    current_sessions: Sequence[Session],
    current_visits: Sequence[Visit],
    previous_sessions: Sequence[Session],
    previous_visits: Sequence[Visit],
) -> Optional[WeekComparison]:
    """Week-over-week deltas, or ``None`` when the previous week is empty."""
    if not previous_sessions:
        return None

    def deep_count(sessions: Sequence[Session]) -> int:
        return sum(1 for s in sessions if s.duration > DEEP_WORK_SECONDS)

    return WeekComparison(
        context_switch_change=_percentage_change(
            len(current_visits), len(previous_visits)
        ),
        deep_work_sessions_change=deep_count(current_sessions)
        - deep_count(previous_sessions),
        average_session_length_change=_percentage_change(
            _average_session_length(current_sessions),
            _average_session_length(previous_sessions),
        ),
        total_time_change=_percentage_change(
            _total_duration(current_sessions), _total_duration(previous_sessions)
        ),
    )
