"""Runtime that serializes focus events and ticks onto one consumer thread."""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from .buffer import PendingVisitBuffer
from .config import TrackerSettings
from .db import Database, StoreError
from .exclusions import ExclusionList
from .focus import PollingFocusSource, create_default_probe
from .models import FocusChanged
from .scheduler import FLUSH, REFRESH, Tick, TickScheduler
from .tracker import SessionTracker

logger = logging.getLogger(__name__)


QueueItem = Union[FocusChanged, Tick]

_POLL_SECONDS = 0.25


@dataclass(slots=True)
class CollectorState:
    running: bool = False
    events_processed: int = 0
    events_dropped: int = 0
    last_flush_time: Optional[datetime] = None


class ActivityCollector:
    """Wires a focus source, schedulers, tracker and buffer around one queue.

    Producers (the focus source thread and the tick schedulers) only put
    items on the bounded queue; the consumer applies them in order, so the
    tracker never sees two transitions at once.
    """

    def __init__(
        self,
        db: Database,
        settings: TrackerSettings,
        *,
        source: Optional[PollingFocusSource] = None,
        exclusions: Optional[ExclusionList] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db = db
        self.settings = settings
        self._clock = clock
        self._source = source
        self.exclusions = exclusions or ExclusionList(db)
        self.buffer = PendingVisitBuffer(
            db,
            write_attempts=settings.write_attempts,
            write_backoff=settings.write_backoff,
        )
        self.tracker = SessionTracker(
            db,
            self.buffer,
            is_excluded=self.exclusions.is_excluded,
            clock=clock,
        )
        self.state = CollectorState()
        self._state_lock = threading.Lock()
        self._queue: queue.Queue[QueueItem] = queue.Queue(maxsize=settings.queue_size)
        self._schedulers = [
            TickScheduler(
                REFRESH, settings.refresh_interval.total_seconds(), self.submit, clock=clock
            ),
            TickScheduler(
                FLUSH, settings.flush_interval.total_seconds(), self.submit, clock=clock
            ),
        ]

    @classmethod
    def from_path(cls, db_path: Path, settings: TrackerSettings) -> "ActivityCollector":
        # The probe raises on unsupported platforms; create it before opening the database.
        probe = create_default_probe(capture_window_titles=settings.capture_window_titles)
        db = Database(db_path).initialize()
        return cls(db, settings, source=PollingFocusSource(probe))

    def submit(self, item: QueueItem) -> bool:
        """Queue an event or tick; returns False if it had to be dropped."""
        try:
            self._queue.put(item, timeout=self.settings.queue_put_timeout.total_seconds())
        except queue.Full:
            with self._state_lock:
                self.state.events_dropped += 1
            logger.warning("Event queue full; dropped %r.", item)
            return False
        return True

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self.run_until_stopped(stop_event)
        except KeyboardInterrupt:
            logger.info("Collector interrupted; flushing pending visits.")
            stop_event.set()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run until ``stop_event`` is set, then drain and shut down."""
        logger.info("Starting collector; writing to %s", self.db.path)
        self.exclusions.load()
        self.state.running = True

        if self._source is not None:
            initial = self._source.current_focus()
            if initial is not None:
                self.tracker.handle_event(initial)

        for scheduler in self._schedulers:
            scheduler.start()
        source_thread = self._start_source(stop_event)
        try:
            self._consume(stop_event)
        finally:
            stop_event.set()
            for scheduler in self._schedulers:
                scheduler.stop()
            if source_thread is not None:
                source_thread.join(timeout=5)
            self._drain()
            self.shutdown()

    def process(self, item: QueueItem) -> None:
        """Apply a single queued item on the consumer thread."""
        if isinstance(item, FocusChanged):
            self.tracker.handle_event(item)
            self.state.events_processed += 1
        elif isinstance(item, Tick):
            if item.kind == REFRESH:
                self.tracker.refresh(item.timestamp)
            elif item.kind == FLUSH:
                self.buffer.flush()
                self._reload_exclusions()
                self.state.last_flush_time = item.timestamp

    def shutdown(self) -> None:
        """Close the open session, flush every pending visit, close the store."""
        try:
            self.tracker.shutdown(self._clock())
            self.state.last_flush_time = self._clock()
        finally:
            self.state.running = False
            self.db.close()
            logger.info("Collector stopped.")

    def _reload_exclusions(self) -> None:
        # Picks up exclusions added from the CLI or dashboard.
        try:
            self.exclusions.load()
        except (StoreError, sqlite3.Error):
            logger.warning("Could not reload excluded apps; keeping the cached list.")

    def _consume(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                item = self._queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            self.process(item)

    def _drain(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            self.process(item)

    def _start_source(self, stop_event: threading.Event) -> Optional[threading.Thread]:
        if self._source is None:
            return None
        thread = threading.Thread(
            target=self._source.run,
            args=(self.submit, stop_event, self.settings.sample_interval.total_seconds()),
            name="focus-source",
            daemon=True,
        )
        thread.start()
        return thread

