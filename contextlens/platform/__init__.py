"""Cross-platform abstraction for OS-specific capture operations.

Provides a unified interface for:
- Data directory paths
- Capture permission checks
- Focused-window inspection (app name, title, URL, focused text)
- File permissions (chmod on POSIX, NTFS ACL on Windows)

Usage:
    from contextlens.platform import get_platform
    platform = get_platform()
    state = platform.read_focused_window()
"""

from __future__ import annotations

import sys
from functools import lru_cache

from contextlens.platform._base import PlatformBase, RawWindowState

__all__ = ["PlatformBase", "RawWindowState", "get_platform"]


@lru_cache(maxsize=1)
def get_platform() -> PlatformBase:
    """Return the platform implementation for the current OS.

    Raises RuntimeError on unsupported platforms.
    """
    if sys.platform == "darwin":
        from contextlens.platform._macos import MacOSPlatform

        return MacOSPlatform()
    elif sys.platform == "win32":
        from contextlens.platform._windows import WindowsPlatform

        return WindowsPlatform()
    elif sys.platform.startswith("linux"):
        from contextlens.platform._linux import LinuxPlatform

        return LinuxPlatform()
    else:
        raise RuntimeError(f"Unsupported platform: {sys.platform}")
