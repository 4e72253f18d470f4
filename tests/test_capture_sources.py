"""Tests for the window-poll and file-watch capture sources."""

from __future__ import annotations

import asyncio
import os
import time

import pytest

from contextlens.capture import FileWatchSource, SnapshotDirectoryWatcher, WindowCaptureSource
from contextlens.capture.files import is_ignored_name, resolve_kind
from contextlens.exceptions import CaptureError, CaptureTimeoutError
from contextlens.models import FileChangeKind
from contextlens.platform import RawWindowState


async def _wait_until(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


class Collector:
    def __init__(self) -> None:
        self.items = []

    async def __call__(self, item) -> None:
        self.items.append(item)


class ScriptedWatcher:
    """Directory watcher returning queued scan results, raising queued errors."""

    def __init__(self, results=None) -> None:
        self.results = list(results or [])

    def scan(self):
        if not self.results:
            return []
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class SlowProvider:
    def has_capture_permission(self) -> bool:
        return True

    def read_focused_window(self):
        time.sleep(0.3)
        return RawWindowState(app_name="Slack")


# ---------------------------------------------------------------------------
# Window capture: single snapshots
# ---------------------------------------------------------------------------


class TestWindowCapture:
    @pytest.mark.asyncio
    async def test_capture_builds_observation(self, window_provider):
        provider = window_provider(
            [RawWindowState(app_name="Safari", window_title="Docs", url="https://docs.python.org", visible_text="hello")]
        )
        source = WindowCaptureSource(provider, Collector())

        obs = await source.capture()

        assert obs.app_name == "Safari"
        assert obs.window_title == "Docs"
        assert obs.url == "https://docs.python.org"
        assert obs.visible_text == "hello"
        assert obs.timestamp.tzinfo is not None
        assert source.stats().capture_count == 1

    @pytest.mark.asyncio
    async def test_text_truncated(self, window_provider):
        provider = window_provider([RawWindowState(app_name="Notion", visible_text="a" * 6000)])
        source = WindowCaptureSource(provider, Collector())

        obs = await source.capture()

        assert len(obs.visible_text) == 5000

    @pytest.mark.asyncio
    async def test_identical_state_suppressed(self, window_provider):
        same = RawWindowState(app_name="Notion", visible_text="same")
        provider = window_provider([same, same, RawWindowState(app_name="Notion", visible_text="new")])
        source = WindowCaptureSource(provider, Collector())

        assert await source.capture() is not None
        assert await source.capture() is None
        assert await source.capture() is not None
        assert source.duplicates == 1

    @pytest.mark.asyncio
    async def test_no_focused_window(self, window_provider):
        provider = window_provider([RawWindowState(app_name="")])
        source = WindowCaptureSource(provider, Collector())

        assert await source.capture() is None
        assert source.stats().total_errors == 0

    @pytest.mark.asyncio
    async def test_provider_error_counted(self, window_provider):
        provider = window_provider([RuntimeError("AX failure"), RawWindowState(app_name="Slack")])
        source = WindowCaptureSource(provider, Collector())

        assert await source.capture() is None
        assert source.stats().consecutive_errors == 1

        assert await source.capture() is not None
        stats = source.stats()
        assert stats.consecutive_errors == 0
        assert stats.total_errors == 1

    @pytest.mark.asyncio
    async def test_timeout_counted_separately(self):
        source = WindowCaptureSource(SlowProvider(), Collector(), timeout_seconds=0.05)

        assert await source.capture() is None

        stats = source.stats()
        assert stats.timeouts == 1
        assert stats.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_provider_timeout_counted_as_timeout(self, window_provider):
        provider = window_provider([CaptureTimeoutError("osascript hung"), RawWindowState(app_name="Slack")])
        source = WindowCaptureSource(provider, Collector())

        assert await source.capture() is None

        stats = source.stats()
        assert stats.timeouts == 1
        assert stats.capture_count == 0
        assert stats.total_errors == 0

    @pytest.mark.asyncio
    async def test_repeated_provider_errors_trip_breaker(self, window_provider):
        errors = [CaptureError("xdotool exited 1")] * 3
        source = WindowCaptureSource(window_provider(errors), Collector(), failure_threshold=3)

        for _ in errors:
            assert await source.capture() is None

        assert source.tripped
        assert source.stats().capture_count == 0

    def test_throttle_stretches_interval(self, window_provider):
        source = WindowCaptureSource(
            window_provider(), Collector(), interval_seconds=10, throttle=lambda: True
        )
        assert source._next_wait() == 20

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_raise(self, window_provider, make_obs):
        async def failing_sink(item):
            raise RuntimeError("sink down")

        source = WindowCaptureSource(window_provider(), failing_sink)
        await source._emit(make_obs("Slack"))


# ---------------------------------------------------------------------------
# Window capture: lifecycle
# ---------------------------------------------------------------------------


class TestWindowLifecycle:
    @pytest.mark.asyncio
    async def test_loop_emits_observations(self, window_provider):
        sink = Collector()
        provider = window_provider([RawWindowState(app_name="Slack", visible_text="hi team")])
        source = WindowCaptureSource(provider, sink, interval_seconds=0.01, initial_delay=0)

        await source.start()
        await _wait_until(lambda: provider.calls >= 3)
        await source.stop()

        assert not source.is_active
        assert len(sink.items) == 1
        assert sink.items[0].app_name == "Slack"

    @pytest.mark.asyncio
    async def test_no_permission_stays_inactive(self, window_provider):
        provider = window_provider(permitted=False)
        source = WindowCaptureSource(provider, Collector(), initial_delay=0)

        await source.start()

        assert not source.is_active
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_breaker_trips_after_threshold(self, window_provider):
        provider = window_provider([RuntimeError("boom")])
        source = WindowCaptureSource(
            provider, Collector(), interval_seconds=0.01, initial_delay=0, failure_threshold=3
        )

        await source.start()
        await _wait_until(lambda: source.tripped)

        assert not source.is_active
        assert source.stats().total_errors == 3

        provider.states = [RawWindowState(app_name="Slack")]
        await source.start()
        assert source.is_active
        assert not source.tripped
        await source.stop()

    @pytest.mark.asyncio
    async def test_stop_twice_is_safe(self, window_provider):
        source = WindowCaptureSource(window_provider(), Collector(), initial_delay=10)
        await source.start()
        await source.stop()
        await source.stop()
        assert not source.is_active

    @pytest.mark.asyncio
    async def test_update_interval_when_inactive(self, window_provider):
        source = WindowCaptureSource(window_provider(), Collector())
        await source.update_interval(30)
        assert source.interval_seconds == 30
        assert not source.is_active

    @pytest.mark.asyncio
    async def test_update_interval_restarts_active_source(self, window_provider):
        source = WindowCaptureSource(window_provider(), Collector(), initial_delay=10)
        await source.start()
        await source.update_interval(5)
        assert source.is_active
        assert source.interval_seconds == 5
        await source.stop()


# ---------------------------------------------------------------------------
# File watching
# ---------------------------------------------------------------------------


def test_ignored_names():
    assert is_ignored_name(".DS_Store")
    assert is_ignored_name("node_modules")
    assert is_ignored_name("~$report.docx")
    assert is_ignored_name("draft.tmp")
    assert is_ignored_name(".hidden.md")
    assert not is_ignored_name("report.docx")


def test_resolve_kind(tmp_path):
    existing = tmp_path / "a.md"
    existing.write_text("x")

    assert resolve_kind("rename", str(existing)) == FileChangeKind.CREATED
    assert resolve_kind("rename", str(tmp_path / "gone.md")) == FileChangeKind.DELETED
    assert resolve_kind("deleted", str(existing)) == FileChangeKind.DELETED
    assert resolve_kind("attrib", str(existing)) == FileChangeKind.MODIFIED


class TestShouldTrack:
    @pytest.fixture
    def source(self, tmp_path):
        return FileWatchSource([tmp_path], Collector())

    def test_tracked_extension(self, source, tmp_path):
        assert source.should_track(str(tmp_path / "app.py"))
        assert source.should_track(str(tmp_path / "Report.DOCX"))

    def test_untracked_extension(self, source, tmp_path):
        assert not source.should_track(str(tmp_path / "setup.exe"))

    def test_ignored_directory(self, source, tmp_path):
        assert not source.should_track(str(tmp_path / "node_modules" / "lib" / "index.js"))
        assert not source.should_track(str(tmp_path / ".git" / "config.json"))

    def test_ignored_file_names(self, source, tmp_path):
        assert not source.should_track(str(tmp_path / ".notes.md"))
        assert not source.should_track(str(tmp_path / "~$budget.xlsx"))


class TestSnapshotDirectoryWatcher:
    def test_baseline_then_changes(self, tmp_path):
        existing = tmp_path / "old.md"
        existing.write_text("old")
        watcher = SnapshotDirectoryWatcher([tmp_path])

        assert watcher.scan() == []

        created = tmp_path / "new.md"
        created.write_text("new")
        assert watcher.scan() == [(str(created), "created")]

        stat = existing.stat()
        os.utime(existing, (stat.st_atime, stat.st_mtime + 10))
        assert watcher.scan() == [(str(existing), "modified")]

        created.unlink()
        assert watcher.scan() == [(str(created), "deleted")]

    def test_ignored_entries_skipped(self, tmp_path):
        watcher = SnapshotDirectoryWatcher([tmp_path])
        watcher.scan()

        (tmp_path / ".DS_Store").write_text("x")
        (tmp_path / "node_modules").mkdir()
        (tmp_path / "node_modules" / "index.js").write_text("x")

        assert watcher.scan() == []

    def test_max_depth(self, tmp_path):
        watcher = SnapshotDirectoryWatcher([tmp_path], max_depth=1)
        watcher.scan()

        deep = tmp_path / "a" / "b"
        deep.mkdir(parents=True)
        (tmp_path / "a" / "shallow.md").write_text("x")
        (deep / "deep.md").write_text("x")

        assert watcher.scan() == [(str(tmp_path / "a" / "shallow.md"), "created")]


class TestFileWatchSource:
    @pytest.mark.asyncio
    async def test_missing_directories_stay_inactive(self, tmp_path):
        source = FileWatchSource([tmp_path / "missing"], Collector())
        await source.start()
        assert not source.is_active

    @pytest.mark.asyncio
    async def test_missing_directories_skipped(self, tmp_path):
        source = FileWatchSource(
            [tmp_path, tmp_path / "missing"], Collector(), watcher_factory=lambda dirs: ScriptedWatcher()
        )
        await source.start()
        assert source.active_directories == [tmp_path]
        await source.stop()

    @pytest.mark.asyncio
    async def test_burst_coalesced(self, tmp_path):
        sink = Collector()
        source = FileWatchSource(
            [tmp_path],
            sink,
            watcher_factory=lambda dirs: ScriptedWatcher(),
            scan_interval_seconds=60,
            debounce_seconds=0.05,
        )
        await source.start()
        path = str(tmp_path / "plan.md")

        source.notify(path, "created")
        source.notify(path, "modified")
        source.notify(path, "modified")
        await _wait_until(lambda: sink.items)
        await asyncio.sleep(0.1)
        await source.stop()

        assert len(sink.items) == 1
        change = sink.items[0]
        assert change.kind == FileChangeKind.MODIFIED
        assert change.file_name == "plan.md"
        assert change.extension == ".md"
        assert change.directory == str(tmp_path)

    @pytest.mark.asyncio
    async def test_untracked_changes_dropped(self, tmp_path):
        sink = Collector()
        source = FileWatchSource(
            [tmp_path], sink, watcher_factory=lambda dirs: ScriptedWatcher(), debounce_seconds=0.01
        )
        await source.start()
        source.notify(str(tmp_path / "image.exe"), "created")
        source.notify(str(tmp_path / ".git" / "HEAD.json"), "modified")
        await asyncio.sleep(0.05)
        await source.stop()

        assert sink.items == []

    @pytest.mark.asyncio
    async def test_notify_ignored_when_stopped(self, tmp_path):
        sink = Collector()
        source = FileWatchSource([tmp_path], sink, debounce_seconds=0.01)
        source.notify(str(tmp_path / "plan.md"), "created")
        await asyncio.sleep(0.05)
        assert sink.items == []

    @pytest.mark.asyncio
    async def test_stop_flushes_pending(self, tmp_path):
        sink = Collector()
        source = FileWatchSource(
            [tmp_path], sink, watcher_factory=lambda dirs: ScriptedWatcher(), debounce_seconds=30
        )
        await source.start()
        source.notify(str(tmp_path / "gone.md"), "rename")
        await source.stop()

        assert [c.kind for c in sink.items] == [FileChangeKind.DELETED]

    @pytest.mark.asyncio
    async def test_notify_threadsafe(self, tmp_path):
        sink = Collector()
        source = FileWatchSource(
            [tmp_path], sink, watcher_factory=lambda dirs: ScriptedWatcher(), debounce_seconds=0.01
        )
        await source.start()
        path = str(tmp_path / "thread.py")
        await asyncio.to_thread(source.notify_threadsafe, path, "modified")
        await _wait_until(lambda: sink.items)
        await source.stop()

        assert sink.items[0].path == path

    @pytest.mark.asyncio
    async def test_scan_loop_reports_new_files(self, tmp_path):
        sink = Collector()
        source = FileWatchSource(
            [tmp_path], sink, scan_interval_seconds=0.05, debounce_seconds=0.05
        )
        (tmp_path / "existing.md").write_text("already here")
        await source.start()

        (tmp_path / "notes.md").write_text("hello")
        await _wait_until(lambda: sink.items)
        await source.stop()

        assert {c.file_name for c in sink.items} == {"notes.md"}
        assert sink.items[0].kind == FileChangeKind.CREATED

    @pytest.mark.asyncio
    async def test_scan_failures_trip_breaker(self, tmp_path):
        source = FileWatchSource(
            [tmp_path],
            Collector(),
            watcher_factory=lambda dirs: ScriptedWatcher([[], OSError("a"), OSError("b")]),
            scan_interval_seconds=0.01,
            failure_threshold=2,
        )
        await source.start()
        await _wait_until(lambda: source.tripped)

        assert not source.is_active
        assert source.stats().total_errors == 2

    @pytest.mark.asyncio
    async def test_update_directories_restarts_active_source(self, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        source = FileWatchSource(
            [tmp_path], Collector(), watcher_factory=lambda dirs: ScriptedWatcher(), scan_interval_seconds=60
        )
        await source.start()
        await source.update_directories([other])

        assert source.is_active
        assert source.active_directories == [other]
        await source.stop()
