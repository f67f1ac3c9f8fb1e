"""Foreground-application observation.

The tracker only consumes :class:`FocusChanged` events; this module is the
platform glue that produces them by sampling the foreground window.
"""

from __future__ import annotations

import ctypes
import logging
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import psutil

from .models import FocusChanged
from .normalization import app_id_for, display_name, normalize_window_title

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ForegroundApp:
    app_id: str
    app_name: str
    window_title: Optional[str] = None


class ForegroundProbe(ABC):
    """Reports which application currently holds focus."""

    @abstractmethod
    def get_foreground_app(self) -> Optional[ForegroundApp]:
        """Return the focused app, or ``None`` when nothing is focused."""


class WindowsForegroundProbe(ForegroundProbe):
    """Reads the foreground window through Win32 and resolves it with psutil."""

    def __init__(self, capture_window_titles: bool = False) -> None:
        from ctypes import wintypes

        self._wintypes = wintypes
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._capture_window_titles = capture_window_titles

    def get_foreground_app(self) -> Optional[ForegroundApp]:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None

        pid = self._wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        if not pid.value:
            return None
        try:
            process_name = psutil.Process(pid.value).name()
        except (psutil.Error, ProcessLookupError):
            return None

        app_id = app_id_for(process_name)
        if app_id is None:
            return None

        window_title: Optional[str] = None
        if self._capture_window_titles:
            length = self._user32.GetWindowTextLengthW(hwnd)
            buffer = ctypes.create_unicode_buffer(length + 1)
            self._user32.GetWindowTextW(hwnd, buffer, length + 1)
            window_title = normalize_window_title(buffer.value)

        return ForegroundApp(
            app_id=app_id,
            app_name=display_name(process_name),
            window_title=window_title,
        )


def create_default_probe(capture_window_titles: bool = False) -> ForegroundProbe:
    if sys.platform == "win32":
        return WindowsForegroundProbe(capture_window_titles=capture_window_titles)
    raise RuntimeError(f"Foreground detection is not supported on {sys.platform}.")


class PollingFocusSource:
    """Samples a probe and emits focus-lost/focus-gained pairs on each change."""

    def __init__(
        self,
        probe: ForegroundProbe,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._probe = probe
        self._clock = clock
        self._last: Optional[ForegroundApp] = None

    def current_focus(self) -> Optional[FocusChanged]:
        """A synthetic focus-gained event for whatever is focused right now."""
        app = self._sample()
        self._last = app
        if app is None:
            return None
        return FocusChanged(
            app_id=app.app_id,
            app_name=app.app_name,
            window_title=app.window_title,
            became_active=True,
            timestamp=self._clock(),
        )

    def poll(self) -> list[FocusChanged]:
        app = self._sample()
        previous = self._last
        if _same_app(previous, app):
            return []

        now = self._clock()
        events: list[FocusChanged] = []
        if previous is not None:
            events.append(
                FocusChanged(
                    app_id=previous.app_id,
                    app_name=previous.app_name,
                    became_active=False,
                    timestamp=now,
                )
            )
        if app is not None:
            events.append(
                FocusChanged(
                    app_id=app.app_id,
                    app_name=app.app_name,
                    window_title=app.window_title,
                    became_active=True,
                    timestamp=now,
                )
            )
        self._last = app
        return events

    def run(
        self,
        emit: Callable[[FocusChanged], None],
        stop_event: threading.Event,
        interval: float,
    ) -> None:
        while not stop_event.is_set():
            for event in self.poll():
                emit(event)
            stop_event.wait(interval)

    def _sample(self) -> Optional[ForegroundApp]:
        try:
            return self._probe.get_foreground_app()
        except OSError:
            logger.exception("Failed to query the foreground app.")
            return None


def _same_app(left: Optional[ForegroundApp], right: Optional[ForegroundApp]) -> bool:
    if left is None or right is None:
        return left is right
    return left.app_id == right.app_id
