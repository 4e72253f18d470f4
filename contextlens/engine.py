"""Context engine: wires config, capture sources, pipeline, store and health.

This is the facade a host process talks to. It owns the lifecycle of the
capture sources, applies config updates by restarting only the sources that
depend on the changed fields, runs periodic retention cleanup, and exposes
the query and sync-consumer API.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import asdict
from datetime import date, datetime, tzinfo
from pathlib import Path
from typing import Any

from contextlens.aggregator import DailySummary, build_context_digest, daily_summary
from contextlens.capture import FileWatchSource, SnapshotDirectoryWatcher, WindowCaptureSource
from contextlens.capture.files import DirectoryWatcher
from contextlens.classifier import EventClassifier
from contextlens.config import ConfigManager, EngineConfig, get_settings
from contextlens.health import HealthReporter
from contextlens.models import CommitmentStatus, ContextEvent, ContextEventType
from contextlens.pipeline import Pipeline
from contextlens.platform import PlatformBase, get_platform
from contextlens.privacy import PrivacyFilter
from contextlens.store import EventStore, derive_key, load_or_create_key
from contextlens.store.encryption import KEY_FILENAME

logger = logging.getLogger(__name__)

DB_FILENAME = "context_events.db"
DIGEST_WINDOW_MINUTES = 15
DIGEST_EVENT_LIMIT = 20

_PIPELINE_FIELDS = frozenset(
    {"excluded_apps", "excluded_domains", "excluded_time_windows", "privacy_level"}
)


def _default_platform() -> PlatformBase | None:
    try:
        return get_platform()
    except RuntimeError as e:
        logger.warning("%s; window capture disabled", e)
        return None


class ContextEngine:
    """Composes the capture-to-store pipeline behind one lifecycle."""

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        platform: PlatformBase | None = None,
        store: EventStore | None = None,
        watcher_factory: Callable[[list[Path]], DirectoryWatcher] = SnapshotDirectoryWatcher,
        tz: tzinfo | None = None,
    ) -> None:
        self.config_manager = config_manager or ConfigManager(get_settings())
        self.platform = platform if platform is not None else _default_platform()
        self.tz = tz
        config = self.config

        self.store = store or self._open_store(config)
        self.pipeline = Pipeline(
            store=self.store,
            privacy=PrivacyFilter.from_config(config),
            classifier=EventClassifier(tz=tz),
            privacy_level=config.privacy_level,
        )
        self.health = HealthReporter(
            heartbeat_interval=config.heartbeat_interval_seconds,
            counters=self.pipeline.stats,
        )
        self.window_source: WindowCaptureSource | None = None
        if self.platform is not None:
            self.window_source = WindowCaptureSource(
                provider=self.platform,
                sink=self.pipeline.process_observation,
                interval_seconds=config.capture_interval_seconds,
                timeout_seconds=config.capture_timeout_seconds,
                failure_threshold=config.failure_threshold,
                throttle=lambda: self.health.throttle_active,
            )
        self.file_source = FileWatchSource(
            directories=self._watch_dirs(config),
            sink=self.pipeline.process_file_change,
            watcher_factory=watcher_factory,
            scan_interval_seconds=config.file_scan_interval_seconds,
            debounce_seconds=config.debounce_seconds,
            failure_threshold=config.failure_threshold,
        )
        self._running = False
        self.config_manager.add_listener(self._on_config_changed)

    @property
    def config(self) -> EngineConfig:
        return self.config_manager.config

    @property
    def is_running(self) -> bool:
        return self._running

    def _data_dir(self) -> Path:
        if self.platform is not None:
            return self.platform.get_data_dir()
        return Path.home() / ".contextlens"

    def _watch_dirs(self, config: EngineConfig) -> list[Path]:
        if config.watched_directories or self.platform is None:
            return config.resolved_watch_dirs()
        return self.platform.default_watch_dirs()

    @staticmethod
    def _store_key(config: EngineConfig, db_path: Path) -> bytes | None:
        if not config.encryption_enabled:
            return None
        if config.store_passphrase is not None:
            return derive_key(config.store_passphrase.get_secret_value())
        return load_or_create_key(db_path.parent / KEY_FILENAME)

    def _open_store(self, config: EngineConfig) -> EventStore:
        db_path = Path(config.db_path) if config.db_path else self._data_dir() / DB_FILENAME
        store = EventStore(db_path, encryption_key=self._store_key(config, db_path))
        if self.platform is not None:
            try:
                self.platform.set_owner_only_permissions(db_path)
            except OSError:
                logger.warning("Could not restrict permissions on %s", db_path)
        return store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        if not self.config.enabled:
            logger.info("Context engine disabled by config")
            return
        self._running = True
        if self.window_source is not None:
            await self.window_source.start()
        if self.config.file_watch_enabled:
            await self.file_source.start()
        logger.info("Context engine started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self.window_source is not None:
            await self.window_source.stop()
        await self.file_source.stop()
        logger.info("Context engine stopped")

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run capture, health and retention cleanup until shutdown."""
        await self.start()
        try:
            await asyncio.gather(
                self.health.run(shutdown_event),
                self._cleanup_loop(shutdown_event),
            )
        finally:
            await self.stop()

    async def close(self) -> None:
        await self.stop()
        await self.store.close()

    async def _cleanup_loop(self, shutdown_event: asyncio.Event) -> None:
        while not shutdown_event.is_set():
            try:
                await self.cleanup()
            except Exception:
                logger.exception("Retention cleanup failed")
            try:
                await asyncio.wait_for(
                    shutdown_event.wait(), timeout=self.config.cleanup_interval_hours * 3600
                )
                break
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def _on_config_changed(self, config: EngineConfig, changed: set[str]) -> None:
        pipeline_changes = changed & _PIPELINE_FIELDS
        if pipeline_changes:
            self.pipeline.update_config({name: getattr(config, name) for name in pipeline_changes})

    async def update_config(self, partial: dict[str, Any]) -> set[str]:
        """Apply a partial config update; restart only the affected sources."""
        changed = self.config_manager.update(partial)
        config = self.config

        # Sources restart themselves only if they are currently active.
        if self.window_source is not None:
            self.window_source.timeout_seconds = config.capture_timeout_seconds
            if "capture_interval_ms" in changed:
                await self.window_source.update_interval(config.capture_interval_seconds)
        if "watched_directories" in changed:
            await self.file_source.update_directories(self._watch_dirs(config))

        if "enabled" in changed:
            if config.enabled:
                await self.start()
            else:
                await self.stop()
        elif self._running and "file_watch_enabled" in changed:
            if config.file_watch_enabled:
                await self.file_source.start()
            else:
                await self.file_source.stop()
        return changed

    # ------------------------------------------------------------------
    # Queries and sync consumer
    # ------------------------------------------------------------------

    def subscribe(self, maxsize: int = 100) -> asyncio.Queue[ContextEvent]:
        return self.pipeline.subscribe(maxsize)

    async def recent_events(self, minutes: int = 60, limit: int = 100) -> list[ContextEvent]:
        return await self.store.get_recent(minutes=minutes, limit=limit)

    async def events_by_type(self, event_type: ContextEventType | str, limit: int = 100) -> list[ContextEvent]:
        return await self.store.get_by_event_type(event_type, limit)

    async def events_by_app(self, application: str, limit: int = 100) -> list[ContextEvent]:
        return await self.store.get_by_application(application, limit)

    async def commitments(self, since: datetime | None = None) -> list[ContextEvent]:
        return await self.store.get_commitments(since)

    async def update_commitment_status(
        self, event_id: int, index: int, status: CommitmentStatus | str
    ) -> None:
        await self.store.update_commitment_status(event_id, index, status)

    async def get_unsynced_events(self, limit: int = 100) -> list[ContextEvent]:
        """Events an uploader may send. Never includes local-only events."""
        return await self.store.get_unsynced(limit)

    async def mark_synced(self, event_ids: int | Iterable[int]) -> int:
        return await self.store.mark_synced(event_ids)

    async def event_count(self) -> int:
        return await self.store.count()

    async def daily_summary(self, day: date | None = None) -> DailySummary:
        if day is None:
            day = datetime.now(self.tz).date()
        return await daily_summary(self.store, day, self.tz)

    async def context_digest(self) -> str:
        recent = await self.store.get_recent(minutes=DIGEST_WINDOW_MINUTES, limit=DIGEST_EVENT_LIMIT)
        commitments = await self.store.get_commitments()
        return build_context_digest(recent, commitments, self.tz)

    async def cleanup(self) -> int:
        return await self.store.cleanup_older_than(self.config.retention_days)

    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "pipeline": self.pipeline.stats(),
            "window_capture": asdict(self.window_source.stats()) if self.window_source else None,
            "file_watch": asdict(self.file_source.stats()),
            "throttle_active": self.health.throttle_active,
        }
