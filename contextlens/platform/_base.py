"""Abstract base class defining the cross-platform capture interface.

Each platform implements this interface with OS-specific behavior for the
data directory, focused-window inspection and file permissions.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

MAX_TEXT_LENGTH = 5000

_URL_IN_TITLE = re.compile(r"https?://[^\s]+")
_DOMAIN_IN_TITLE = re.compile(r"\b((?:[a-z0-9-]+\.)+(?:com|org|net|io|dev|app|co|edu|gov))\b", re.IGNORECASE)


@dataclass
class RawWindowState:
    """What the OS reports about the focused window, before any filtering."""

    app_name: str
    window_title: str = ""
    url: str | None = None
    visible_text: str = ""
    focused_text: str = ""
    focused_role: str | None = None


def url_from_title(window_title: str) -> str | None:
    """Best-effort URL recovery from a browser window title."""
    match = _URL_IN_TITLE.search(window_title)
    if match:
        return match.group(0)
    match = _DOMAIN_IN_TITLE.search(window_title)
    if match:
        return f"https://{match.group(1).lower()}"
    return None


class PlatformBase(ABC):
    """Abstract interface for platform-specific operations."""

    @abstractmethod
    def get_data_dir(self) -> Path:
        """Return the platform-appropriate data directory.

        macOS: ~/Library/Application Support/ContextLens/
        Windows: %LOCALAPPDATA%\\ContextLens\\
        Linux: $XDG_DATA_HOME/contextlens/
        """

    def default_watch_dirs(self) -> list[Path]:
        home = Path.home()
        return [home / "Desktop", home / "Documents", home / "Downloads"]

    @abstractmethod
    def has_capture_permission(self) -> bool:
        """Return True if focused-window inspection is permitted.

        macOS: Accessibility permission for the host process.
        Windows: always True.
        Linux: an X display and ``xdotool`` are available.
        """

    @abstractmethod
    def read_focused_window(self) -> RawWindowState | None:
        """Inspect the focused window. Blocking; run it in a worker thread.

        Returns None when no window has focus. Raises ``CaptureTimeoutError``
        when the OS query hangs and ``CaptureError`` on other OS failures so
        the caller can count them.
        """

    @abstractmethod
    def set_owner_only_permissions(self, path: Path) -> None:
        """Set file permissions so only the current user can access the file."""
