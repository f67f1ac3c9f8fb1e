"""Compose pattern detection results into the today and weekly aggregates."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from . import analytics
from .dates import (
    end_of_day,
    end_of_week,
    previous_week_end,
    previous_week_start,
    start_of_day,
    start_of_week,
)
from .db import ActivityStore
from .models import BRIEF_CHECK_SECONDS, Session, Visit
from .stats import AppUsageStat, TodayStats, WeekComparison, WeeklyStats

logger = logging.getLogger(__name__)

TODAY_TOP_APPS = 5
WEEK_DAY_COUNT = 7


class StatsAssembler:
    """Reads a window of records from the store and builds stats snapshots."""

    def __init__(
        self,
        store: ActivityStore,
        *,
        first_weekday: int = 0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._first_weekday = first_weekday
        self._clock = clock

    def today_stats(
        self,
        now: Optional[datetime] = None,
        live_session: Optional[Session] = None,
    ) -> TodayStats:
        """Stats for the calendar day containing ``now``.

        ``live_session`` is the tracker's open session, which the store never
        holds because sessions are only written once they close.
        """
        now = now or self._clock()
        day_start = start_of_day(now)
        day_end = end_of_day(now)

        sessions = list(self._store.get_sessions_in_range(day_start, day_end))
        visits = self._store.get_visits_in_range(day_start, day_end)
        if live_session is not None and day_start <= live_session.start_time <= day_end:
            sessions.append(live_session)

        durations = {id(s): s.duration_seconds(now) for s in sessions}
        app_totals: dict[str, dict] = {}
        for session in sessions:
            entry = app_totals.setdefault(
                session.app_id,
                {"name": session.app_name, "time": 0.0, "sessions": 0, "brief": 0},
            )
            entry["time"] += durations[id(session)]
            entry["sessions"] += 1
            if durations[id(session)] < BRIEF_CHECK_SECONDS:
                entry["brief"] += 1

        top_apps = [
            AppUsageStat(
                app_name=entry["name"],
                app_id=app_id,
                total_time=entry["time"],
                sessions=entry["sessions"],
                brief_visits=entry["brief"],
            )
            for app_id, entry in sorted(
                app_totals.items(), key=lambda item: item[1]["time"], reverse=True
            )[:TODAY_TOP_APPS]
        ]

        deep_work = sum(d for d in durations.values() if d > analytics.DEEP_WORK_SECONDS)

        current_app: Optional[str] = None
        current_duration: Optional[float] = None
        if sessions and sessions[-1].end_time is None:
            current_app = sessions[-1].app_name
            current_duration = durations[id(sessions[-1])]

        return TodayStats(
            total_active_time=sum(durations.values()),
            context_switches=len(visits),
            top_apps=top_apps,
            compulsive_checks=sum(1 for v in visits if v.is_compulsive_check),
            deep_work_minutes=int(deep_work // 60),
            current_session_app=current_app,
            current_session_duration=current_duration,
        )

    def weekly_stats(self, week_start: Optional[datetime] = None) -> WeeklyStats:
        """Stats for the week containing ``week_start`` (default: this week)."""
        start = start_of_week(week_start or self._clock(), self._first_weekday)
        end = end_of_week(start, self._first_weekday)

        sessions = self._store.get_sessions_in_range(start, end)
        visits = self._store.get_visits_in_range(start, end)
        logger.debug(
            "Building weekly stats for %s from %d sessions and %d visits.",
            start.date(),
            len(sessions),
            len(visits),
        )

        productive, distracted = analytics.calculate_peak_hours(sessions, visits)
        average_session = (
            sum(s.duration for s in sessions) / len(sessions) if sessions else 0.0
        )

        return WeeklyStats(
            week_start=start,
            week_end=end,
            app_usage=analytics.calculate_app_usage_stats(sessions),
            total_context_switches=len(visits),
            average_session_length=average_session,
            compulsive_checks=analytics.detect_compulsive_checks(visits, WEEK_DAY_COUNT),
            deep_work_sessions=analytics.detect_deep_work_sessions(sessions),
            fragmented_hours=analytics.detect_fragmented_hours(visits),
            daily_breakdowns=analytics.calculate_daily_breakdowns(sessions, visits, start, end),
            peak_productivity_hours=productive,
            peak_distraction_hours=distracted,
            week_over_week_changes=self._compare_with_previous_week(start, sessions, visits),
        )

    def _compare_with_previous_week(
        self, start: datetime, sessions: list[Session], visits: list[Visit]
    ) -> Optional[WeekComparison]:
        previous_start = previous_week_start(start, self._first_weekday)
        previous_end = previous_week_end(start, self._first_weekday)
        previous_sessions = self._store.get_sessions_in_range(previous_start, previous_end)
        if not previous_sessions:
            return None
        previous_visits = self._store.get_visits_in_range(previous_start, previous_end)
        return analytics.compare_weeks(sessions, visits, previous_sessions, previous_visits)
