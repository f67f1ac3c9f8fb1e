"""Console rendering of stats and the weekly report archive."""

from __future__ import annotations

from typing import Callable

from .models import ReportPersonality, WeeklyReport
from .stats import TodayStats, WeeklyStats


def build_weekly_report(
    stats: WeeklyStats,
    analysis: str = "",
    personality: ReportPersonality = ReportPersonality.NEUTRAL,
) -> WeeklyReport:
    """Wrap a stats snapshot so it can be archived and re-displayed later."""
    return WeeklyReport(
        week_start=stats.week_start,
        week_end=stats.week_end,
        raw_stats_json=stats.model_dump_json(),
        analysis=analysis,
        personality=personality,
    )


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, echo: Callable[[str], None] = print) -> None:
        self._echo = echo

    def print_today(self, stats: TodayStats) -> None:
        echo = self._echo
        if not stats.top_apps and stats.context_switches == 0:
            echo("No activity recorded today.")
            return

        echo("Today")
        echo("-" * 40)
        echo(f"Active time:       {format_duration(stats.total_active_time)}")
        echo(f"Context switches:  {stats.context_switches}")
        echo(f"Compulsive checks: {stats.compulsive_checks}")
        echo(f"Deep work:         {stats.deep_work_minutes} min")
        if stats.current_session_app:
            echo(
                f"Now focused:       {stats.current_session_app} "
                f"({format_duration(stats.current_session_duration or 0)})"
            )

        if stats.top_apps:
            echo("")
            echo("Top apps:")
            for app in stats.top_apps:
                echo(f"  {app.app_name:<30} {format_duration(app.total_time)}")

    def print_weekly(self, stats: WeeklyStats) -> None:
        echo = self._echo
        echo(
            f"Week of {stats.week_start:%Y-%m-%d} to {stats.week_end:%Y-%m-%d}"
        )
        echo("-" * 40)
        if not stats.app_usage:
            echo("No activity recorded for the selected week.")
            return

        echo(f"Tracked time:      {format_duration(stats.total_tracked_time)}")
        echo(f"Apps used:         {stats.unique_apps}")
        echo(f"Context switches:  {stats.total_context_switches}")
        echo(f"Average session:   {format_duration(stats.average_session_length)}")
        echo(f"Deep work:         {stats.total_deep_work_minutes} min")

        changes = stats.week_over_week_changes
        if changes is not None:
            echo("")
            echo("Versus last week:")
            echo(f"  Switches         {format_percentage_change(changes.context_switch_change)}")
            echo(f"  Deep sessions    {changes.deep_work_sessions_change:+d}")
            echo(
                f"  Avg session      "
                f"{format_percentage_change(changes.average_session_length_change)}"
            )
            echo(f"  Tracked time     {format_percentage_change(changes.total_time_change)}")

        echo("")
        echo("Top apps:")
        for app in stats.app_usage[:5]:
            echo(
                f"  {app.app_name:<30} {format_duration(app.total_time):>10}"
                f"  {app.visit_frequency:5.1f}/h"
            )

        if stats.compulsive_checks:
            echo("")
            echo("Compulsive checking:")
            for pattern in stats.compulsive_checks:
                triggers = ", ".join(pattern.trigger_apps) or "-"
                echo(
                    f"  {pattern.app_name:<30} {pattern.checks_per_day:.1f}/day"
                    f"  after: {triggers}"
                )

        if stats.peak_productivity_hours or stats.peak_distraction_hours:
            echo("")
            echo(
                "Most productive:   "
                + (", ".join(format_hour(h) for h in stats.peak_productivity_hours) or "-")
            )
            echo(
                "Most distracted:   "
                + (", ".join(format_hour(h) for h in stats.peak_distraction_hours) or "-")
            )

        echo("")
        echo("Daily breakdown:")
        for day in stats.daily_breakdowns:
            echo(
                f"  {day.day_of_week:<10} {format_duration(day.total_active_time):>10}"
                f"  {day.context_switches:>4} switches"
                f"  {day.deep_work_minutes:>4} min deep"
            )

    def print_reports(self, reports: list[WeeklyReport]) -> None:
        if not reports:
            self._echo("No archived reports.")
            return
        for report in reports:
            line = (
                f"{report.id}  {report.week_start:%Y-%m-%d}  "
                f"{report.personality.value:<12} created {report.created_at:%Y-%m-%d %H:%M}"
            )
            if report.personality.is_shareable:
                line += "  [shareable]"
            self._echo(line)


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_percentage_change(value: float) -> str:
    sign = "+" if value >= 0 else ""
    return f"{sign}{int(value)}%"


def format_hour(hour: int) -> str:
    suffix = "am" if hour < 12 else "pm"
    display = hour % 12 or 12
    return f"{display}{suffix}"
