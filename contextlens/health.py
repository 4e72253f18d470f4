"""Engine self-monitoring: heartbeat log line plus the adaptive CPU throttle.

The engine must stay out of the user's way. When its own process has used
more than ``cpu_limit_percent`` of a core for longer than ``sustain_seconds``,
the throttle flag goes up and the window capture source doubles its poll
interval until usage drops back under the limit.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import psutil

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 300
CPU_LIMIT_PERCENT = 3.0
CPU_SUSTAIN_SECONDS = 60
MEMORY_WARN_MB = 250.0
CPU_SAMPLE_SECONDS = 0.1

CounterSource = Callable[[], dict[str, int]]


@dataclass
class HealthMetrics:
    """Process snapshot plus whatever counters the pipeline exposes."""

    cpu_percent: float
    memory_mb: float
    uptime_seconds: float
    throttle_active: bool
    throttle_activations: int = 0
    counters: dict[str, int] = field(default_factory=dict)


class HealthReporter:
    """Samples this process with psutil and owns the throttle flag."""

    def __init__(
        self,
        heartbeat_interval: int = HEARTBEAT_INTERVAL_SECONDS,
        counters: CounterSource | None = None,
        cpu_limit_percent: float = CPU_LIMIT_PERCENT,
        sustain_seconds: float = CPU_SUSTAIN_SECONDS,
        memory_warn_mb: float = MEMORY_WARN_MB,
    ) -> None:
        self.heartbeat_interval = heartbeat_interval
        self.cpu_limit_percent = cpu_limit_percent
        self.sustain_seconds = sustain_seconds
        self.memory_warn_mb = memory_warn_mb
        self._counters = counters
        self._process = psutil.Process()
        self._started = time.monotonic()
        self._over_limit_since: float | None = None
        self._throttle_active = False
        self._activations = 0

    @property
    def throttle_active(self) -> bool:
        return self._throttle_active

    def get_metrics(self) -> HealthMetrics:
        """Sample CPU and RSS. Blocks for the CPU sampling window."""
        with self._process.oneshot():
            cpu = self._process.cpu_percent(interval=CPU_SAMPLE_SECONDS)
            rss_mb = self._process.memory_info().rss / (1024 * 1024)
        return HealthMetrics(
            cpu_percent=cpu,
            memory_mb=round(rss_mb, 1),
            uptime_seconds=round(time.monotonic() - self._started, 1),
            throttle_active=self._throttle_active,
            throttle_activations=self._activations,
            counters=dict(self._counters()) if self._counters else {},
        )

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Sample, log and re-evaluate the throttle until shutdown."""
        logger.info("Health reporter running every %ds", self.heartbeat_interval)
        while not shutdown_event.is_set():
            try:
                metrics = await asyncio.to_thread(self.get_metrics)
            except psutil.Error as e:
                logger.warning("Could not sample process metrics: %s", e)
            else:
                self._check_cpu_threshold(metrics.cpu_percent)
                self._report(metrics)
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.heartbeat_interval)
                break
            except asyncio.TimeoutError:
                pass
        logger.info("Health reporter stopped")

    def _report(self, metrics: HealthMetrics) -> None:
        logger.info(
            "Heartbeat: cpu=%.1f%% rss=%.1fMB up=%.0fs throttled=%s %s",
            metrics.cpu_percent,
            metrics.memory_mb,
            metrics.uptime_seconds,
            metrics.throttle_active,
            metrics.counters,
        )
        if metrics.memory_mb > self.memory_warn_mb:
            logger.warning("Resident memory %.1fMB above %.0fMB", metrics.memory_mb, self.memory_warn_mb)

    def _check_cpu_threshold(self, cpu: float, now: float | None = None) -> None:
        now = time.monotonic() if now is None else now
        if cpu <= self.cpu_limit_percent:
            self._over_limit_since = None
            self._set_throttle(False, cpu)
            return
        if self._over_limit_since is None:
            self._over_limit_since = now
        if now - self._over_limit_since > self.sustain_seconds:
            self._set_throttle(True, cpu)

    def _set_throttle(self, active: bool, cpu: float) -> None:
        if active == self._throttle_active:
            return
        self._throttle_active = active
        if active:
            self._activations += 1
            logger.warning("CPU at %.1f%% for over %ss, throttling capture", cpu, self.sustain_seconds)
        else:
            logger.info("CPU back under %.1f%%, throttle lifted", self.cpu_limit_percent)
