"""Poll-based capture of the focused window.

Every interval the source asks the platform provider for the focused
window's app, title, URL and text. Calls run in a worker thread and are
bounded by a timeout. Repeated identical states are suppressed by hashing
the captured text before emitting.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from contextlens.capture.base import DEFAULT_FAILURE_THRESHOLD, CaptureSource, Sink
from contextlens.exceptions import CaptureTimeoutError
from contextlens.models import Observation
from contextlens.platform._base import MAX_TEXT_LENGTH, RawWindowState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 15.0
DEFAULT_TIMEOUT_SECONDS = 3.0
INITIAL_DELAY_SECONDS = 1.0
HASH_PREFIX_LENGTH = 500
THROTTLE_FACTOR = 2


class WindowTextProvider(Protocol):
    """The OS capability consumed by the poll source."""

    def has_capture_permission(self) -> bool: ...

    def read_focused_window(self) -> RawWindowState | None: ...


class WindowCaptureSource(CaptureSource[Observation]):
    """Periodically captures the focused window and emits new observations."""

    name = "window capture"

    def __init__(
        self,
        provider: WindowTextProvider,
        sink: Sink[Observation],
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        initial_delay: float = INITIAL_DELAY_SECONDS,
        throttle: Callable[[], bool] | None = None,
    ) -> None:
        super().__init__(sink, failure_threshold)
        self.provider = provider
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.initial_delay = initial_delay
        self._throttle = throttle
        self._last_hash: str | None = None
        self._duplicates = 0
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def duplicates(self) -> int:
        return self._duplicates

    async def _check_available(self) -> bool:
        return await asyncio.to_thread(self.provider.has_capture_permission)

    async def _on_start(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def _on_stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def update_interval(self, interval_seconds: float) -> None:
        """Change the poll interval, restarting only this source's loop."""
        if interval_seconds == self.interval_seconds:
            return
        self.interval_seconds = interval_seconds
        if self.is_active:
            await self.stop()
            await self.start()

    def _next_wait(self) -> float:
        if self._throttle is not None and self._throttle():
            return self.interval_seconds * THROTTLE_FACTOR
        return self.interval_seconds

    async def _loop(self) -> None:
        wait = self.initial_delay
        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=wait)
                break
            except asyncio.TimeoutError:
                pass
            if not self._running:
                break
            observation = await self.capture()
            if observation is not None:
                await self._emit(observation)
            wait = self._next_wait()

    async def capture(self) -> Observation | None:
        """Take one snapshot. Returns None on timeout, failure or no change."""
        try:
            state = await asyncio.wait_for(
                asyncio.to_thread(self.provider.read_focused_window),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, CaptureTimeoutError):
            self._record_timeout()
            return None
        except Exception as e:
            self._record_failure(e)
            return None

        self._record_success()
        if state is None or not state.app_name:
            return None

        observation = Observation(
            timestamp=datetime.now(UTC),
            app_name=state.app_name,
            window_title=state.window_title,
            visible_text=state.visible_text[:MAX_TEXT_LENGTH],
            focused_text=state.focused_text[:MAX_TEXT_LENGTH],
            focused_role=state.focused_role,
            url=state.url,
        )
        digest = hashlib.md5(
            observation.content[:HASH_PREFIX_LENGTH].encode("utf-8"), usedforsecurity=False
        ).hexdigest()
        if digest == self._last_hash:
            self._duplicates += 1
            return None
        self._last_hash = digest
        return observation
