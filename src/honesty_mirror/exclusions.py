"""In-memory view of the excluded-apps table."""

from __future__ import annotations

import logging
import threading

from .db import Database
from .models import ExcludedApp

logger = logging.getLogger(__name__)


class ExclusionList:
    """Answers ``is_excluded`` lookups without touching the database.

    Changes made through :meth:`add` and :meth:`remove` are written through
    to the database first, so the cache never claims an exclusion that was
    not persisted.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._app_ids: set[str] = set()
        self._lock = threading.Lock()

    def load(self) -> "ExclusionList":
        apps = self._db.get_excluded_apps()
        with self._lock:
            self._app_ids = {app.app_id for app in apps}
        logger.debug("Loaded %d excluded apps.", len(apps))
        return self

    def is_excluded(self, app_id: str) -> bool:
        with self._lock:
            return app_id in self._app_ids

    def add(self, app_id: str, app_name: str) -> ExcludedApp:
        app = ExcludedApp(app_id=app_id, app_name=app_name)
        self._db.add_excluded_app(app)
        with self._lock:
            self._app_ids.add(app_id)
        logger.info("Excluded %s (%s) from tracking.", app_name, app_id)
        return app

    def remove(self, app_id: str) -> bool:
        removed = self._db.remove_excluded_app(app_id)
        with self._lock:
            self._app_ids.discard(app_id)
        return removed
