"""Helpers to launch the local dashboard."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import TrackerSettings
from .webapp import create_app

logger = logging.getLogger(__name__)


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    open_browser: bool = False,
    run_collector: bool = True,
    log_level: str = "info",
) -> None:
    """Serve the dashboard API, optionally with the collector running alongside it."""
    app = create_app(
        db_path=db_path,
        settings=settings or TrackerSettings(),
        run_collector=run_collector,
    )

    if open_browser:
        url = f"http://{host}:{port}/api/today"
        threading.Thread(target=_open_after_delay, args=(url,), daemon=True).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _open_after_delay(url: str) -> None:
    time.sleep(1.0)
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logger.exception("Failed to launch browser for %s", url)
