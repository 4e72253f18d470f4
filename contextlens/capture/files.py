"""Event-based capture of file-system changes in watched directories.

A directory watcher reports raw ``(path, kind)`` changes, either from the
built-in snapshot scanner or pushed in through ``notify`` /
``notify_threadsafe`` by an external OS watcher. Changes to untracked
extensions, dotfiles and ignored paths are dropped, and bursts for the same
path are coalesced into one ``FileChange`` after a quiet period.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from contextlens.capture.base import DEFAULT_FAILURE_THRESHOLD, CaptureSource, Sink
from contextlens.models import FileChange, FileChangeKind

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0
DEFAULT_SCAN_INTERVAL_SECONDS = 2.0
DEFAULT_SCAN_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_DEPTH = 4

TRACKED_EXTENSIONS: frozenset[str] = frozenset(
    {
        # Documents
        ".md", ".txt", ".rtf", ".doc", ".docx", ".pdf", ".odt",
        # Spreadsheets and presentations
        ".csv", ".xlsx", ".xls", ".numbers", ".ods", ".pptx", ".ppt", ".key",
        # Code
        ".ts", ".tsx", ".js", ".jsx", ".py", ".rs", ".go", ".swift", ".java",
        ".kt", ".rb", ".php", ".c", ".cpp", ".h", ".hpp", ".css", ".scss",
        ".html", ".json", ".yaml", ".yml", ".toml", ".sql", ".sh", ".zsh", ".bash",
        # Design and images
        ".fig", ".sketch", ".psd", ".ai", ".svg", ".png", ".jpg", ".jpeg", ".gif", ".webp",
    }
)

IGNORED_NAMES: frozenset[str] = frozenset(
    {"node_modules", ".git", ".DS_Store", "Thumbs.db", ".Trash", "__pycache__", ".cache"}
)
IGNORED_SUFFIXES: tuple[str, ...] = (".tmp",)
IGNORED_PREFIXES: tuple[str, ...] = ("~$", ".")


def is_ignored_name(name: str) -> bool:
    return (
        name in IGNORED_NAMES
        or name.endswith(IGNORED_SUFFIXES)
        or name.startswith(IGNORED_PREFIXES)
    )


def resolve_kind(raw_kind: str, path: str) -> FileChangeKind:
    """Map a raw watcher kind to a FileChangeKind.

    ``rename`` is ambiguous (a file appeared or vanished) and is resolved by
    checking whether the path still exists. Unknown kinds are modifications.
    """
    if raw_kind == "rename":
        return FileChangeKind.CREATED if os.path.exists(path) else FileChangeKind.DELETED
    try:
        return FileChangeKind(raw_kind)
    except ValueError:
        return FileChangeKind.MODIFIED


class DirectoryWatcher(Protocol):
    """The directory-watch capability consumed by the file source."""

    def scan(self) -> list[tuple[str, str]]:
        """Return ``(path, kind)`` changes since the previous call."""
        ...


class SnapshotDirectoryWatcher:
    """Portable watcher that diffs recursive mtime snapshots.

    The first ``scan()`` records a baseline and reports nothing.
    """

    def __init__(self, directories: Iterable[Path], max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.directories = [Path(d) for d in directories]
        self.max_depth = max_depth
        self._snapshot: dict[str, float] | None = None

    def _take_snapshot(self) -> dict[str, float]:
        snapshot: dict[str, float] = {}
        for base in self.directories:
            base_depth = len(base.parts)
            for root, dirs, files in os.walk(base):
                depth = len(Path(root).parts) - base_depth
                dirs[:] = [] if depth >= self.max_depth else [d for d in dirs if not is_ignored_name(d)]
                for name in files:
                    if is_ignored_name(name):
                        continue
                    path = os.path.join(root, name)
                    try:
                        snapshot[path] = os.stat(path).st_mtime
                    except OSError:
                        continue
        return snapshot

    def scan(self) -> list[tuple[str, str]]:
        current = self._take_snapshot()
        previous, self._snapshot = self._snapshot, current
        if previous is None:
            return []

        changes: list[tuple[str, str]] = []
        for path, mtime in current.items():
            if path not in previous:
                changes.append((path, FileChangeKind.CREATED.value))
            elif mtime != previous[path]:
                changes.append((path, FileChangeKind.MODIFIED.value))
        for path in previous.keys() - current.keys():
            changes.append((path, FileChangeKind.DELETED.value))
        return changes


class FileWatchSource(CaptureSource[FileChange]):
    """Emits debounced FileChange records for tracked files."""

    name = "file watcher"

    def __init__(
        self,
        directories: Iterable[str | Path],
        sink: Sink[FileChange],
        watcher_factory: Callable[[list[Path]], DirectoryWatcher] = SnapshotDirectoryWatcher,
        scan_interval_seconds: float = DEFAULT_SCAN_INTERVAL_SECONDS,
        scan_timeout_seconds: float = DEFAULT_SCAN_TIMEOUT_SECONDS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> None:
        super().__init__(sink, failure_threshold)
        self.directories = [Path(d).expanduser() for d in directories]
        self.scan_interval_seconds = scan_interval_seconds
        self.scan_timeout_seconds = scan_timeout_seconds
        self.debounce_seconds = debounce_seconds
        self._watcher_factory = watcher_factory
        self._watcher: DirectoryWatcher | None = None
        self._active_dirs: list[Path] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: dict[str, tuple[str, asyncio.TimerHandle]] = {}
        self._emit_tasks: set[asyncio.Task[None]] = set()
        self._stop_event = asyncio.Event()
        self._scan_task: asyncio.Task[None] | None = None

    @property
    def active_directories(self) -> list[Path]:
        return list(self._active_dirs)

    async def _check_available(self) -> bool:
        self._active_dirs = [d for d in self.directories if d.is_dir()]
        for missing in set(self.directories) - set(self._active_dirs):
            logger.info("Watched directory %s does not exist, skipping", missing)
        return bool(self._active_dirs)

    async def _on_start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._watcher = self._watcher_factory(self._active_dirs)
        # Baseline scan so pre-existing files are not reported as new.
        await asyncio.to_thread(self._watcher.scan)
        self._scan_task = asyncio.create_task(self._scan_loop())

    async def _on_stop(self) -> None:
        self._stop_event.set()
        if self._scan_task is not None:
            await self._scan_task
            self._scan_task = None
        for path in list(self._pending):
            self._flush(path)
        if self._emit_tasks:
            await asyncio.gather(*self._emit_tasks, return_exceptions=True)

    async def update_directories(self, directories: Iterable[str | Path]) -> None:
        """Replace the watched directories, restarting only this source."""
        new_dirs = [Path(d).expanduser() for d in directories]
        if new_dirs == self.directories:
            return
        self.directories = new_dirs
        if self.is_active:
            await self.stop()
            await self.start()

    async def _scan_loop(self) -> None:
        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.scan_interval_seconds)
                break
            except asyncio.TimeoutError:
                pass
            if not self._running or self._watcher is None:
                break
            try:
                changes = await asyncio.wait_for(
                    asyncio.to_thread(self._watcher.scan), timeout=self.scan_timeout_seconds
                )
            except asyncio.TimeoutError:
                self._record_timeout()
                continue
            except Exception as e:
                self._record_failure(e)
                continue
            self._record_success()
            for path, kind in changes:
                self.notify(path, kind)

    # ------------------------------------------------------------------
    # Notifications and debouncing
    # ------------------------------------------------------------------

    def should_track(self, path: str) -> bool:
        p = Path(path)
        if p.suffix.lower() not in TRACKED_EXTENSIONS:
            return False
        base = next((d for d in self._active_dirs or self.directories if p.is_relative_to(d)), None)
        parts = p.relative_to(base).parts if base is not None else (p.name,)
        return not any(is_ignored_name(part) for part in parts)

    def notify(self, path: str, raw_kind: str) -> None:
        """Record a raw change. Must be called on the event loop thread."""
        if not self._running or not self.should_track(path):
            return
        previous = self._pending.pop(path, None)
        if previous is not None:
            previous[1].cancel()
        loop = self._loop or asyncio.get_running_loop()
        handle = loop.call_later(self.debounce_seconds, self._flush, path)
        self._pending[path] = (raw_kind, handle)

    def notify_threadsafe(self, path: str, raw_kind: str) -> None:
        """Record a raw change from a foreign thread (an OS watcher callback)."""
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self.notify, path, raw_kind)

    def _flush(self, path: str) -> None:
        entry = self._pending.pop(path, None)
        if entry is None:
            return
        raw_kind, handle = entry
        handle.cancel()
        p = Path(path)
        change = FileChange(
            timestamp=datetime.now(UTC),
            kind=resolve_kind(raw_kind, path),
            path=path,
            file_name=p.name,
            directory=str(p.parent),
            extension=p.suffix.lower(),
        )
        task = asyncio.ensure_future(self._emit(change))
        self._emit_tasks.add(task)
        task.add_done_callback(self._emit_tasks.discard)
