"""Windows platform implementation.

Uses user32 through ctypes for the foreground window title and psutil for
the owning process name. NTFS ACLs restrict file access to the owner.
"""

from __future__ import annotations

import ctypes
import logging
import os
import subprocess
from pathlib import Path

import psutil

from contextlens.exceptions import CaptureError, CaptureUnavailableError
from contextlens.platform._base import PlatformBase, RawWindowState, url_from_title

logger = logging.getLogger(__name__)

# Executable names mapped to the display names the classifier knows.
_PROCESS_DISPLAY_NAMES: dict[str, str] = {
    "chrome.exe": "Google Chrome",
    "msedge.exe": "Microsoft Edge",
    "firefox.exe": "Firefox",
    "brave.exe": "Brave Browser",
    "code.exe": "Visual Studio Code",
    "outlook.exe": "Microsoft Outlook",
    "winword.exe": "Microsoft Word",
    "excel.exe": "Microsoft Excel",
    "ms-teams.exe": "Microsoft Teams",
    "windowsterminal.exe": "Windows Terminal",
}


class WindowsPlatform(PlatformBase):
    """Windows implementation using user32, psutil and icacls."""

    def get_data_dir(self) -> Path:
        local_app_data = os.environ.get("LOCALAPPDATA", "")
        if not local_app_data:
            local_app_data = str(Path.home() / "AppData" / "Local")
        return Path(local_app_data) / "ContextLens"

    def has_capture_permission(self) -> bool:
        return hasattr(ctypes, "windll")

    def read_focused_window(self) -> RawWindowState | None:
        if not hasattr(ctypes, "windll"):
            raise CaptureUnavailableError("user32 is not available")
        user32 = ctypes.windll.user32
        hwnd = user32.GetForegroundWindow()
        if not hwnd:
            return None

        length = user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        user32.GetWindowTextW(hwnd, buffer, length + 1)
        title = buffer.value

        pid = ctypes.c_ulong()
        user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        try:
            exe = psutil.Process(pid.value).name()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            raise CaptureError(f"Cannot resolve process {pid.value}") from e

        app_name = _PROCESS_DISPLAY_NAMES.get(exe.lower(), Path(exe).stem)
        state = RawWindowState(app_name=app_name, window_title=title)
        if exe.lower() in ("chrome.exe", "msedge.exe", "firefox.exe", "brave.exe"):
            state.url = url_from_title(title)
        return state

    def set_owner_only_permissions(self, path: Path) -> None:
        """Set NTFS ACL to owner-only using icacls."""
        try:
            username = os.environ.get("USERNAME", "")
            if username:
                subprocess.run(
                    ["icacls", str(path), "/inheritance:r", "/grant:r", f"{username}:(F)"],
                    capture_output=True,
                    timeout=10,
                )
        except (subprocess.TimeoutExpired, FileNotFoundError):
            logger.warning("Failed to set owner-only permissions on %s", path)
