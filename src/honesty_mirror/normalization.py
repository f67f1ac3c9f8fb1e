"""Turn raw process names and window titles into stable app identities."""

from __future__ import annotations

import re
from typing import Optional

_KNOWN_NAMES: dict[str, str] = {
    "msedge": "Microsoft Edge",
    "chrome": "Google Chrome",
    "firefox": "Firefox",
    "code": "Visual Studio Code",
    "winword": "Microsoft Word",
    "excel": "Microsoft Excel",
    "outlook": "Microsoft Outlook",
    "explorer": "File Explorer",
    "windowsterminal": "Windows Terminal",
}

_TITLE_SUFFIXES = re.compile(
    r"\s+[-|]\s+(Microsoft Edge|Google Chrome|Mozilla Firefox|Brave|Opera)$"
)
_EXECUTABLE_SUFFIX = re.compile(r"\.(exe|app|bin)$", re.IGNORECASE)


def app_id_for(process_name: Optional[str]) -> Optional[str]:
    """Stable key for an application: its lower-cased executable name."""
    if not process_name:
        return None
    key = process_name.strip().lower()
    return key or None


def display_name(process_name: Optional[str]) -> str:
    if not process_name:
        return "Unknown"
    stem = _EXECUTABLE_SUFFIX.sub("", process_name.strip())
    known = _KNOWN_NAMES.get(stem.lower())
    if known:
        return known
    return stem[:1].upper() + stem[1:] if stem else "Unknown"


def normalize_window_title(window_title: Optional[str]) -> Optional[str]:
    """Drop browser branding so the snapshot names the page, not the browser."""
    if not window_title:
        return None
    normalized = _TITLE_SUFFIXES.sub("", window_title.strip())
    normalized = re.sub(r"\s{2,}", " ", normalized).strip(" -|")
    return normalized or None
