"""Linux (X11) platform implementation using xdotool and psutil."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
from pathlib import Path

import psutil

from contextlens.exceptions import CaptureError, CaptureTimeoutError, CaptureUnavailableError
from contextlens.platform._base import PlatformBase, RawWindowState, url_from_title

logger = logging.getLogger(__name__)

XDOTOOL_TIMEOUT_SECONDS = 3
_BROWSER_PROCESSES = ("chrome", "chromium", "firefox", "brave", "msedge", "opera", "vivaldi")


class LinuxPlatform(PlatformBase):
    """Linux implementation for X11 sessions."""

    def get_data_dir(self) -> Path:
        base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
        return Path(base) / "contextlens"

    def has_capture_permission(self) -> bool:
        return bool(os.environ.get("DISPLAY")) and shutil.which("xdotool") is not None

    def _xdotool(self, *args: str) -> str:
        try:
            result = subprocess.run(
                ["xdotool", *args],
                capture_output=True,
                text=True,
                timeout=XDOTOOL_TIMEOUT_SECONDS,
            )
        except FileNotFoundError as e:
            raise CaptureUnavailableError("xdotool not found") from e
        except subprocess.TimeoutExpired as e:
            raise CaptureTimeoutError(f"xdotool {args[0]} timed out") from e
        if result.returncode != 0:
            raise CaptureError(
                f"xdotool {args[0]} exited {result.returncode}: {result.stderr.strip()[:200]}"
            )
        return result.stdout.strip()

    def read_focused_window(self) -> RawWindowState | None:
        window_id = self._xdotool("getactivewindow")
        if not window_id:
            return None
        title = self._xdotool("getwindowname", window_id) or ""
        pid = self._xdotool("getwindowpid", window_id)
        if not pid or not pid.isdigit():
            return None
        try:
            app_name = psutil.Process(int(pid)).name()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            raise CaptureError(f"Cannot resolve process {pid}") from e

        state = RawWindowState(app_name=app_name, window_title=title)
        if any(b in app_name.lower() for b in _BROWSER_PROCESSES):
            state.url = url_from_title(title)
        return state

    def set_owner_only_permissions(self, path: Path) -> None:
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
