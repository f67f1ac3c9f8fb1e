"""Tests for console rendering and report archiving."""
from __future__ import annotations

from datetime import timedelta

import pytest

from honesty_mirror.assembler import StatsAssembler
from honesty_mirror.models import ReportPersonality, Visit, WeeklyReport
from honesty_mirror.reporting import (
    SummaryPrinter,
    build_weekly_report,
    format_duration,
    format_hour,
    format_percentage_change,
)
from honesty_mirror.stats import AppUsageStat, TodayStats


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "0s"), (59.9, "59s"), (61, "1m 1s"), (3600, "1h 0m"), (5430, "1h 30m")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_format_percentage_change():
    assert format_percentage_change(12.7) == "+12%"
    assert format_percentage_change(0) == "+0%"
    assert format_percentage_change(-40) == "-40%"


@pytest.mark.parametrize(
    ("hour", "expected"), [(0, "12am"), (9, "9am"), (12, "12pm"), (23, "11pm")]
)
def test_format_hour(hour, expected):
    assert format_hour(hour) == expected


@pytest.fixture
def lines() -> list[str]:
    return []


@pytest.fixture
def printer(lines) -> SummaryPrinter:
    return SummaryPrinter(lines.append)


@pytest.fixture
def weekly_stats(store, clock, make_session, monday):
    for i, (app, seconds) in enumerate([("code", 2000), ("slack", 5), ("code", 400)]):
        session = make_session(app, monday + timedelta(hours=i), seconds)
        store.sessions.append(session)
        store.visits.append(Visit.from_session(session, None))
    return StatsAssembler(store, clock=clock).weekly_stats(monday)


class TestSummaryPrinter:

    def test_empty_today(self, printer, lines):
        printer.print_today(TodayStats(total_active_time=0, context_switches=0,
                                       compulsive_checks=0, deep_work_minutes=0))
        assert lines == ["No activity recorded today."]

    def test_today_with_live_session(self, printer, lines):
        stats = TodayStats(
            total_active_time=3700,
            context_switches=4,
            top_apps=[AppUsageStat(app_name="Code", app_id="code", total_time=3700,
                                   sessions=4, brief_visits=0)],
            compulsive_checks=0,
            deep_work_minutes=61,
            current_session_app="Code",
            current_session_duration=75,
        )
        printer.print_today(stats)
        text = "\n".join(lines)
        assert "Active time:       1h 1m" in text
        assert "Now focused:       Code (1m 15s)" in text
        assert any(line.strip().startswith("Code") for line in lines)

    def test_weekly(self, printer, lines, weekly_stats):
        printer.print_weekly(weekly_stats)
        text = "\n".join(lines)
        assert lines[0] == "Week of 2024-03-04 to 2024-03-10"
        assert "Apps used:         2" in text
        assert "Deep work:         33 min" in text
        assert "Versus last week:" not in text
        assert "Monday" in text and "Sunday" in text

    def test_empty_week(self, printer, lines, store, clock, monday):
        stats = StatsAssembler(store, clock=clock).weekly_stats(monday)
        printer.print_weekly(stats)
        assert lines[-1] == "No activity recorded for the selected week."

    def test_reports(self, printer, lines, weekly_stats):
        printer.print_reports([])
        assert lines == ["No archived reports."]

        report = build_weekly_report(weekly_stats, personality=ReportPersonality.ROAST)
        printer.print_reports([report])
        assert lines[-1].startswith(f"{report.id}  2024-03-04  Roast")
        assert lines[-1].endswith("[shareable]")

        neutral = build_weekly_report(weekly_stats)
        printer.print_reports([neutral])
        assert "[shareable]" not in lines[-1]


class TestBuildWeeklyReport:

    def test_snapshot_is_embedded(self, weekly_stats):
        report = build_weekly_report(weekly_stats, "Busy week.", ReportPersonality.PROFESSIONAL)
        assert report.week_start == weekly_stats.week_start
        assert report.week_end == weekly_stats.week_end
        assert report.analysis == "Busy week."
        assert report.week_stats == weekly_stats

    def test_unreadable_snapshot_is_none(self, monday):
        report = WeeklyReport(week_start=monday, week_end=monday, raw_stats_json="{not json")
        assert report.week_stats is None
