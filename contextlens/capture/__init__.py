from contextlens.capture.base import CaptureSource, CaptureStats
from contextlens.capture.files import FileWatchSource, SnapshotDirectoryWatcher
from contextlens.capture.window import WindowCaptureSource

__all__ = [
    "CaptureSource",
    "CaptureStats",
    "FileWatchSource",
    "SnapshotDirectoryWatcher",
    "WindowCaptureSource",
]
