"""Command-line interface for Honesty Mirror."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .assembler import StatsAssembler
from .config import TrackerSettings, get_log_path, resolve_db_path
from .dates import parse_day
from .db import open_database
from .exclusions import ExclusionList
from .models import ReportPersonality
from .reporting import SummaryPrinter, build_weekly_report

app = typer.Typer(help="Local focus tracker that shows how you actually spend your time.")
exclude_app = typer.Typer(help="Manage apps that are never tracked.")
app.add_typer(exclude_app, name="exclude")

DB_OPTION = typer.Option(
    None,
    "--db",
    path_type=Path,
    help="Location of the SQLite database.",
)
WEEKDAY_OPTION = typer.Option(
    0,
    "--first-weekday",
    min=0,
    max=6,
    help="First day of the week (0 = Monday, 6 = Sunday).",
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def collect(
    db_path: Optional[Path] = DB_OPTION,
    sample_seconds: float = typer.Option(
        1.0,
        "--interval",
        min=0.2,
        help="Foreground sampling interval in seconds.",
    ),
    flush_seconds: Optional[float] = typer.Option(
        None,
        "--flush-interval",
        min=5.0,
        help="Seconds between writes of pending visits (default 60).",
    ),
    window_titles: bool = typer.Option(
        False,
        "--window-titles/--no-window-titles",
        help="Store a snapshot of the focused window title with each session.",
    ),
) -> None:
    """Run the focus collector until interrupted."""
    from .collector import ActivityCollector

    log_handler = logging.FileHandler(get_log_path(), encoding="utf-8")
    log_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    logging.getLogger().addHandler(log_handler)

    settings = TrackerSettings.from_intervals(
        sample_seconds=sample_seconds,
        flush_seconds=flush_seconds,
        capture_window_titles=window_titles,
    )
    try:
        collector = ActivityCollector.from_path(resolve_db_path(db_path), settings)
    except RuntimeError as exc:
        raise typer.BadParameter(str(exc)) from exc
    collector.run_forever()


@app.command()
def today(db_path: Optional[Path] = DB_OPTION) -> None:
    """Print today's focus summary."""
    with open_database(resolve_db_path(db_path)) as db:
        stats = StatsAssembler(db).today_stats()
    SummaryPrinter(typer.echo).print_today(stats)


@app.command()
def weekly(
    week: Optional[str] = typer.Option(
        None,
        "--week",
        help="Any date (YYYY-MM-DD) inside the week to summarize. Defaults to this week.",
    ),
    archive: bool = typer.Option(
        False,
        "--archive",
        help="Store the stats snapshot as a weekly report.",
    ),
    personality: ReportPersonality = typer.Option(
        ReportPersonality.NEUTRAL,
        "--personality",
        help="Tone recorded with an archived report.",
    ),
    first_weekday: int = WEEKDAY_OPTION,
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Print behavioural patterns for a week."""
    week_start = _parse_week(week)
    with open_database(resolve_db_path(db_path)) as db:
        stats = StatsAssembler(db, first_weekday=first_weekday).weekly_stats(week_start)
        if archive:
            report = build_weekly_report(stats, personality=personality)
            db.save_weekly_report(report)
            typer.echo(f"Archived report {report.id}.")
    SummaryPrinter(typer.echo).print_weekly(stats)


@app.command()
def reports(
    limit: int = typer.Option(10, "--limit", min=1, help="Number of reports to list."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """List archived weekly reports, newest week first."""
    with open_database(resolve_db_path(db_path)) as db:
        archived = db.get_weekly_reports(limit)
    SummaryPrinter(typer.echo).print_reports(archived)


@exclude_app.command("add")
def exclude_add(
    app_id: str = typer.Argument(..., help="Executable name, e.g. slack.exe."),
    name: Optional[str] = typer.Option(None, "--name", help="Display name."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Stop tracking an app."""
    from .normalization import app_id_for, display_name

    key = app_id_for(app_id)
    if key is None:
        raise typer.BadParameter("app id must not be empty")
    with open_database(resolve_db_path(db_path)) as db:
        ExclusionList(db).add(key, name or display_name(app_id))
    typer.echo(f"Excluded {key}.")


@exclude_app.command("remove")
def exclude_remove(
    app_id: str = typer.Argument(..., help="Executable name to track again."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Resume tracking an app."""
    with open_database(resolve_db_path(db_path)) as db:
        removed = ExclusionList(db).remove(app_id.strip().lower())
    if not removed:
        typer.echo(f"{app_id} was not excluded.")
        raise typer.Exit(code=1)
    typer.echo(f"Tracking {app_id} again.")


@exclude_app.command("list")
def exclude_list(db_path: Optional[Path] = DB_OPTION) -> None:
    """Show excluded apps."""
    with open_database(resolve_db_path(db_path)) as db:
        apps = db.get_excluded_apps()
    if not apps:
        typer.echo("No excluded apps.")
        return
    for entry in apps:
        typer.echo(f"  {entry.app_id:<30} {entry.app_name}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = DB_OPTION,
    sample_seconds: float = typer.Option(
        1.0,
        "--interval",
        min=0.2,
        help="Foreground sampling interval in seconds.",
    ),
    first_weekday: int = WEEKDAY_OPTION,
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open today's stats in the default browser.",
    ),
    run_collector: bool = typer.Option(
        True,
        "--collector/--no-collector",
        help="Run the focus collector alongside the API.",
    ),
) -> None:
    """Serve the local stats API, by default with the collector in the background."""
    from .server_runner import run_dashboard

    settings = TrackerSettings.from_intervals(
        sample_seconds=sample_seconds, first_weekday=first_weekday
    )
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path,
        settings=settings,
        open_browser=open_browser,
        run_collector=run_collector,
    )


def _parse_week(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_day(value)
    except ValueError as exc:
        raise typer.BadParameter("expected a date in YYYY-MM-DD format") from exc
