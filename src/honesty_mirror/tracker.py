"""Focus-change state machine that turns focus events into sessions and visits."""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .buffer import PendingVisitBuffer
from .db import ActivityStore, StoreError
from .models import FocusChanged, Session, Visit

logger = logging.getLogger(__name__)


class TrackerState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


def _never_excluded(app_id: str) -> bool:
    return False


class SessionTracker:
    """Owns the single open session and closes it on every focus transition.

    The tracker is driven from one thread (the collector's consumer loop);
    the lock only protects readers on other threads from seeing a session
    halfway through being closed.
    """

    def __init__(
        self,
        store: ActivityStore,
        buffer: PendingVisitBuffer,
        *,
        is_excluded: Callable[[str], bool] = _never_excluded,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._buffer = buffer
        self._is_excluded = is_excluded
        self._clock = clock
        self._current: Optional[Session] = None
        self._previous_app_id: Optional[str] = None
        self._lock = threading.Lock()
        self.current_session_duration: float = 0.0

    @property
    def state(self) -> TrackerState:
        with self._lock:
            if self._current is None:
                return TrackerState.IDLE
            return TrackerState.TRACKING

    @property
    def current_session(self) -> Optional[Session]:
        """A copy of the open session, safe to hand to other threads."""
        with self._lock:
            if self._current is None:
                return None
            return dataclasses.replace(self._current)

    @property
    def current_app(self) -> Optional[str]:
        with self._lock:
            return self._current.app_name if self._current else None

    @property
    def previous_app_id(self) -> Optional[str]:
        return self._previous_app_id

    def handle_event(self, event: FocusChanged) -> Optional[Visit]:
        """Apply a focus notification; returns the visit closed by it, if any."""
        if event.became_active:
            return self.focus_gained(
                event.app_id,
                event.app_name,
                window_title=event.window_title,
                timestamp=event.timestamp,
            )
        return self.focus_lost(event.app_id, timestamp=event.timestamp)

    def focus_gained(
        self,
        app_id: str,
        app_name: str,
        *,
        window_title: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[Visit]:
        now = timestamp or self._clock()
        with self._lock:
            closed = self._close_locked(now)
            if self._is_excluded(app_id):
                logger.debug("Ignoring focus on excluded app %s.", app_id)
                return closed
            self._current = Session(
                app_id=app_id,
                app_name=app_name,
                window_title=window_title,
                start_time=now,
            )
            self.current_session_duration = 0.0
            logger.debug("Tracking %s (%s).", app_name, app_id)
            return closed

    def focus_lost(
        self, app_id: str, *, timestamp: Optional[datetime] = None
    ) -> Optional[Visit]:
        now = timestamp or self._clock()
        with self._lock:
            if self._current is None or self._current.app_id != app_id:
                logger.debug("Ignoring stale focus-lost event for %s.", app_id)
                return None
            return self._close_locked(now)

    def refresh(self, now: Optional[datetime] = None) -> float:
        """Recompute the live duration of the open session."""
        now = now or self._clock()
        with self._lock:
            if self._current is None:
                self.current_session_duration = 0.0
            else:
                self.current_session_duration = self._current.duration_seconds(now)
            return self.current_session_duration

    def close_current(self, timestamp: Optional[datetime] = None) -> Optional[Visit]:
        now = timestamp or self._clock()
        with self._lock:
            return self._close_locked(now)

    def shutdown(self, timestamp: Optional[datetime] = None) -> int:
        """Close the open session and synchronously flush pending visits."""
        self.close_current(timestamp)
        written = self._buffer.flush()
        remaining = len(self._buffer)
        if remaining:
            logger.error("%d visits could not be written before shutdown.", remaining)
        return written

    def _close_locked(self, now: datetime) -> Optional[Visit]:
        session = self._current
        if session is None:
            return None

        session.end_time = max(now, session.start_time)
        try:
            self._store.save_session(session)
        except (StoreError, sqlite3.Error):
            logger.exception("Failed to save session %s.", session.id)

        visit = Visit.from_session(session, self._previous_app_id)
        self._buffer.append(visit)

        self._previous_app_id = session.app_id
        self._current = None
        self.current_session_duration = 0.0
        logger.debug(
            "Closed %s after %.1fs.", session.app_name, visit.duration_seconds
        )
        return visit
