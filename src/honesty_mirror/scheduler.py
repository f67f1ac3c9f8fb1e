"""Periodic tick sources feeding the collector's event queue."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)

REFRESH = "refresh"
FLUSH = "flush"


@dataclass(slots=True, frozen=True)
class Tick:
    kind: str
    timestamp: datetime = field(default_factory=datetime.now)


class TickScheduler:
    """Emits a :class:`Tick` of one kind every ``interval`` seconds until stopped."""

    def __init__(
        self,
        kind: str,
        interval: float,
        emit: Callable[[Tick], None],
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.kind = kind
        self.interval = interval
        self._emit = emit
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"tick-{self.kind}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        # Wait first: the first tick is one interval after start.
        while not self._stop_event.wait(self.interval):
            self._emit(Tick(kind=self.kind, timestamp=self._clock()))
