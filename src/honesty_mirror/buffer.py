"""Queue of visits waiting to be written to the store."""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from datetime import timedelta
from typing import Callable, Optional

from .db import ActivityStore, DatabaseNotInitializedError, StoreError
from .models import Visit

logger = logging.getLogger(__name__)


class PendingVisitBuffer:
    """Holds unflushed visits with at-least-once delivery to the store.

    A flush takes the whole queue and writes it in order, retrying each visit a
    bounded number of times. A visit that still fails is put back together
    with the rest of the batch, so one flush sleeps for at most one visit's
    backoff. Visits appended by another thread during a flush are kept ahead
    of the re-queued ones.
    """

    def __init__(
        self,
        store: ActivityStore,
        *,
        write_attempts: int = 3,
        write_backoff: timedelta = timedelta(milliseconds=200),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._write_attempts = max(1, write_attempts)
        self._write_backoff = write_backoff.total_seconds()
        self._sleep = sleep
        self._pending: list[Visit] = []
        self._lock = threading.Lock()
        # Serializes flushes so a record is never written by two flushes at once.
        self._flush_lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def append(self, visit: Visit) -> None:
        with self._lock:
            self._pending.append(visit)

    def snapshot(self) -> list[Visit]:
        with self._lock:
            return list(self._pending)

    def flush(self) -> int:
        """Write pending visits in order and return how many were stored.

        The pass stops at the first visit that still fails after its retries;
        that visit and everything after it go back to the queue untouched and
        wait for the next flush.
        """
        with self._flush_lock:
            with self._lock:
                if not self._pending:
                    return 0
                batch = self._pending
                self._pending = []

            written = 0
            for visit in batch:
                if not self._save_with_retry(visit):
                    break
                written += 1

            failed = batch[written:]
            if failed:
                with self._lock:
                    self._pending.extend(failed)
                logger.warning(
                    "Re-queued %d of %d visits after write failures.",
                    len(failed),
                    len(batch),
                )
            logger.debug("Flushed %d visits.", written)
            return written

    def _save_with_retry(self, visit: Visit) -> bool:
        delay = self._write_backoff
        last_error: Optional[Exception] = None
        for attempt in range(1, self._write_attempts + 1):
            try:
                self._store.save_visit(visit)
                return True
            except DatabaseNotInitializedError as exc:
                # Retrying cannot help until the store is opened again.
                last_error = exc
                break
            except (StoreError, sqlite3.Error) as exc:
                last_error = exc
                if attempt < self._write_attempts:
                    self._sleep(delay)
                    delay *= 2
        logger.warning("Failed to save visit %s: %s", visit.id, last_error)
        return False
