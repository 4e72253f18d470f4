"""macOS platform implementation.

Focused-window inspection goes through ``osascript`` and System Events,
which requires the Accessibility permission. Browser URLs are read with
per-browser AppleScript, falling back to parsing the window title.
"""

from __future__ import annotations

import logging
import os
import stat
import subprocess
from pathlib import Path

from contextlens.exceptions import CaptureError, CaptureTimeoutError, CaptureUnavailableError
from contextlens.platform._base import MAX_TEXT_LENGTH, PlatformBase, RawWindowState, url_from_title

logger = logging.getLogger(__name__)

OSASCRIPT_TIMEOUT_SECONDS = 3
_FIELD_SEP = "\x1f"

_FRONT_WINDOW_SCRIPT = """
set sep to (ASCII character 31)
tell application "System Events"
    set frontApp to first application process whose frontmost is true
    set appName to name of frontApp
    set windowTitle to ""
    set focusedRole to ""
    set focusedText to ""
    try
        set windowTitle to name of front window of frontApp
    end try
    try
        set focusedElement to value of attribute "AXFocusedUIElement" of frontApp
        set focusedRole to value of attribute "AXRole" of focusedElement
        set focusedText to value of attribute "AXValue" of focusedElement as text
    end try
    return appName & sep & windowTitle & sep & focusedRole & sep & focusedText
end tell
"""

_PERMISSION_SCRIPT = 'tell application "System Events" to get name of first application process'

_BROWSER_URL_SCRIPTS: dict[str, str] = {
    "Safari": 'tell application "Safari" to return URL of front document',
    "Google Chrome": 'tell application "Google Chrome" to return URL of active tab of front window',
    "Brave Browser": 'tell application "Brave Browser" to return URL of active tab of front window',
    "Microsoft Edge": 'tell application "Microsoft Edge" to return URL of active tab of front window',
    "Arc": 'tell application "Arc" to return URL of active tab of front window',
}


def _run_osascript(script: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["osascript", "-e", script],
        capture_output=True,
        text=True,
        timeout=OSASCRIPT_TIMEOUT_SECONDS,
    )


class MacOSPlatform(PlatformBase):
    """macOS implementation using System Events and chmod."""

    def get_data_dir(self) -> Path:
        return Path.home() / "Library" / "Application Support" / "ContextLens"

    def has_capture_permission(self) -> bool:
        try:
            result = _run_osascript(_PERMISSION_SCRIPT)
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False
        return result.returncode == 0

    def read_focused_window(self) -> RawWindowState | None:
        try:
            result = _run_osascript(_FRONT_WINDOW_SCRIPT)
        except FileNotFoundError as e:
            raise CaptureUnavailableError("osascript not found") from e
        except subprocess.TimeoutExpired as e:
            raise CaptureTimeoutError("Focused window query timed out") from e
        if result.returncode != 0:
            raise CaptureError(f"osascript failed: {result.stderr.strip()[:200]}")

        parts = result.stdout.rstrip("\n").split(_FIELD_SEP, 3)
        if not parts or not parts[0]:
            return None
        parts += [""] * (4 - len(parts))
        app_name, window_title, role, focused_text = parts
        state = RawWindowState(
            app_name=app_name,
            window_title=window_title,
            focused_role=role or None,
            focused_text=focused_text[:MAX_TEXT_LENGTH],
        )
        if app_name in _BROWSER_URL_SCRIPTS:
            state.url = self._browser_url(app_name) or url_from_title(window_title)
        return state

    def _browser_url(self, app_name: str) -> str | None:
        try:
            result = _run_osascript(_BROWSER_URL_SCRIPTS[app_name])
        except (subprocess.TimeoutExpired, FileNotFoundError):
            logger.debug("Browser URL lookup failed for %s", app_name)
            return None
        url = result.stdout.strip()
        return url if result.returncode == 0 and url else None

    def set_owner_only_permissions(self, path: Path) -> None:
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
