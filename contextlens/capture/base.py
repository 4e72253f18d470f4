"""Shared lifecycle, counters and circuit breaker for capture sources.

``start()`` and ``stop()`` never raise. A source whose OS capability is
unavailable stays inactive instead of retrying. After ``failure_threshold``
consecutive failed attempts the source stops itself and stays stopped until
``start()`` is called again. Timeouts are counted separately and do not feed
the breaker.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 20
LOG_EVERY_N_FAILURES = 5

T = TypeVar("T")
Sink = Callable[[T], Awaitable[None]]


@dataclass
class CaptureStats:
    """Snapshot of a capture source's health counters."""

    is_running: bool
    capture_count: int
    consecutive_errors: int
    total_errors: int
    timeouts: int
    tripped: bool


class CaptureSource(ABC, Generic[T]):
    """Base class for poll-based and event-based capture sources."""

    name = "capture"

    def __init__(self, sink: Sink[T], failure_threshold: int = DEFAULT_FAILURE_THRESHOLD) -> None:
        self._sink = sink
        self.failure_threshold = failure_threshold
        self._running = False
        self._tripped = False
        self._capture_count = 0
        self._consecutive_errors = 0
        self._total_errors = 0
        self._timeouts = 0

    @property
    def is_active(self) -> bool:
        return self._running

    @property
    def tripped(self) -> bool:
        return self._tripped

    def stats(self) -> CaptureStats:
        return CaptureStats(
            is_running=self._running,
            capture_count=self._capture_count,
            consecutive_errors=self._consecutive_errors,
            total_errors=self._total_errors,
            timeouts=self._timeouts,
            tripped=self._tripped,
        )

    async def start(self) -> None:
        """Start capturing. Clears a tripped breaker. Never raises."""
        if self._running:
            return
        try:
            available = await self._check_available()
        except Exception:
            logger.exception("%s availability check failed", self.name)
            available = False
        if not available:
            logger.warning("%s unavailable, staying inactive", self.name)
            return

        self._tripped = False
        self._consecutive_errors = 0
        self._running = True
        try:
            await self._on_start()
        except Exception:
            self._running = False
            logger.exception("%s failed to start", self.name)
            return
        logger.info("%s started", self.name)

    async def stop(self) -> None:
        """Stop starting new cycles and wait for the one in flight. Never raises."""
        if not self._running:
            return
        self._running = False
        try:
            await self._on_stop()
        except Exception:
            logger.exception("%s failed to stop cleanly", self.name)
        logger.info("%s stopped", self.name)

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def _record_success(self) -> None:
        self._capture_count += 1
        self._consecutive_errors = 0

    def _record_timeout(self) -> None:
        self._timeouts += 1
        logger.debug("%s capture timed out", self.name)

    def _record_failure(self, error: BaseException) -> None:
        self._consecutive_errors += 1
        self._total_errors += 1
        if self._consecutive_errors % LOG_EVERY_N_FAILURES == 1:
            logger.warning(
                "%s capture failed (%d consecutive): %s",
                self.name,
                self._consecutive_errors,
                error,
            )
        if self._consecutive_errors >= self.failure_threshold:
            self._tripped = True
            self._running = False
            logger.error(
                "%s stopped after %d consecutive failures; restart required",
                self.name,
                self._consecutive_errors,
            )

    async def _emit(self, item: T) -> None:
        try:
            await self._sink(item)
        except Exception:
            logger.exception("%s sink failed", self.name)

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _check_available(self) -> bool:
        """Return False if the OS capability is missing."""

    @abstractmethod
    async def _on_start(self) -> None:
        """Begin producing items."""

    @abstractmethod
    async def _on_stop(self) -> None:
        """Stop producing items; wait for in-flight work."""
