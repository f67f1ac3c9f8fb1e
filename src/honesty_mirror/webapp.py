"""FastAPI application exposing today/weekly stats and the exclusion list locally."""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .assembler import StatsAssembler
from .collector import ActivityCollector
from .config import TrackerSettings, resolve_db_path
from .dates import parse_day
from .db import Database
from .exclusions import ExclusionList
from .models import ReportPersonality, Session, WeeklyReport
from .reporting import build_weekly_report

logger = logging.getLogger(__name__)


class CollectorRunner:
    """Manage the activity collector in a background thread."""

    def __init__(self, db_path: Path, settings: TrackerSettings) -> None:
        self._db_path = Path(db_path)
        self._settings = settings
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._collector: Optional[ActivityCollector] = None
        self.last_error: Optional[str] = None

    def start(self) -> bool:
        """Start collecting in the background; returns False if it cannot run here."""
        with self._lock:
            if self._thread and self._thread.is_alive():
                return True
            stop_event = threading.Event()
            try:
                collector = ActivityCollector.from_path(self._db_path, self._settings)
            except RuntimeError as exc:
                self.last_error = str(exc)
                logger.warning("Collector not started (%s); serving stored data only.", exc)
                return False
            self.last_error = None
            thread = threading.Thread(
                target=collector.run_until_stopped,
                args=(stop_event,),
                name="collector",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            self._collector = collector
            thread.start()
            logger.info("Collector background thread started.")
            return True

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
            self._collector = None
        if thread:
            # Shutdown flushes pending visits before the thread exits.
            thread.join(timeout=30)
            logger.info("Collector background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def current_app(self) -> Optional[str]:
        with self._lock:
            collector = self._collector
        return collector.tracker.current_app if collector else None

    def live_session(self) -> Optional[Session]:
        with self._lock:
            collector = self._collector
        return collector.tracker.current_session if collector else None

    def pending_visits(self) -> int:
        with self._lock:
            collector = self._collector
        return len(collector.buffer) if collector else 0


class ExcludedAppPayload(BaseModel):
    app_id: str
    app_name: str

    model_config = ConfigDict(extra="forbid")


class ArchiveRequest(BaseModel):
    week: Optional[str] = None
    analysis: str = ""
    personality: ReportPersonality = ReportPersonality.NEUTRAL

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    run_collector: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = resolve_db_path(db_path)
    resolved_settings = settings or TrackerSettings()
    runner = CollectorRunner(resolved_db_path, resolved_settings)
    db = Database(resolved_db_path).initialize()
    exclusions = ExclusionList(db)
    assembler = StatsAssembler(db, first_weekday=resolved_settings.first_weekday)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_collector:
            runner.start()
        try:
            yield
        finally:
            runner.stop()
            db.close()

    app = FastAPI(title="Honesty Mirror", version="0.3.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://127.0.0.1", "http://localhost"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.collector_runner = runner

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "collector_running": request.app.state.collector_runner.is_running(),
            "collector_error": runner.last_error,
            "database_path": str(request.app.state.db_path),
            "pending_visits": runner.pending_visits(),
            "current_app": runner.current_app(),
            "flush_seconds": resolved_settings.flush_interval.total_seconds(),
        }

    @app.get("/api/today")
    def today() -> Dict[str, Any]:
        stats = assembler.today_stats(live_session=runner.live_session())
        return stats.model_dump(mode="json")

    @app.get("/api/weekly")
    def weekly(
        week: Optional[str] = Query(
            default=None,
            description="Any date (YYYY-MM-DD) inside the requested week.",
        ),
    ) -> Dict[str, Any]:
        stats = assembler.weekly_stats(_parse_date(week))
        return stats.model_dump(mode="json")

    @app.get("/api/reports")
    def list_reports(limit: int = Query(default=10, ge=1, le=100)) -> Dict[str, Any]:
        reports = db.get_weekly_reports(limit)
        return {"reports": [_report_payload(r, include_stats=False) for r in reports]}

    @app.post("/api/reports")
    def archive_report(payload: ArchiveRequest) -> Dict[str, Any]:
        stats = assembler.weekly_stats(_parse_date(payload.week))
        report = build_weekly_report(stats, payload.analysis, payload.personality)
        db.save_weekly_report(report)
        return _report_payload(report, include_stats=True)

    @app.get("/api/reports/{report_id}")
    def get_report(report_id: str) -> Dict[str, Any]:
        report = db.get_weekly_report(report_id)
        if report is None:
            raise HTTPException(status_code=404, detail="Report not found")
        return _report_payload(report, include_stats=True)

    @app.get("/api/excluded-apps")
    def list_excluded_apps() -> Dict[str, Any]:
        return {
            "excluded_apps": [
                {
                    "app_id": entry.app_id,
                    "app_name": entry.app_name,
                    "excluded_at": entry.excluded_at.isoformat(),
                }
                for entry in db.get_excluded_apps()
            ]
        }

    @app.post("/api/excluded-apps")
    def add_excluded_app(payload: ExcludedAppPayload) -> Dict[str, Any]:
        app_id = payload.app_id.strip().lower()
        app_name = payload.app_name.strip()
        if not app_id or not app_name:
            raise HTTPException(status_code=400, detail="app_id and app_name are required")
        excluded = exclusions.add(app_id, app_name)
        return {
            "app_id": excluded.app_id,
            "app_name": excluded.app_name,
            "excluded_at": excluded.excluded_at.isoformat(),
        }

    @app.delete("/api/excluded-apps/{app_id}")
    def remove_excluded_app(app_id: str) -> Dict[str, Any]:
        if not exclusions.remove(app_id):
            raise HTTPException(status_code=404, detail="App is not excluded")
        return {"removed": app_id}

    return app


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_day(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _report_payload(report: WeeklyReport, *, include_stats: bool) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": report.id,
        "week_start": report.week_start.isoformat(),
        "week_end": report.week_end.isoformat(),
        "analysis": report.analysis,
        "personality": report.personality.value,
        "shareable": report.personality.is_shareable,
        "created_at": report.created_at.isoformat(),
    }
    if include_stats:
        stats = report.week_stats
        payload["stats"] = stats.model_dump(mode="json") if stats else None
    return payload
