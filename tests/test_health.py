"""Tests for the health reporter."""

from __future__ import annotations

import asyncio

import pytest

from contextlens.health import HealthReporter


class TestCpuThrottle:
    def test_brief_spike_does_not_throttle(self) -> None:
        reporter = HealthReporter()
        reporter._check_cpu_threshold(10.0, now=0)
        reporter._check_cpu_threshold(10.0, now=30)
        assert reporter.throttle_active is False

    def test_sustained_load_enables_throttle(self) -> None:
        reporter = HealthReporter()
        reporter._check_cpu_threshold(10.0, now=0)
        reporter._check_cpu_threshold(10.0, now=61)
        assert reporter.throttle_active is True

    def test_recovery_disables_throttle(self) -> None:
        reporter = HealthReporter()
        reporter._check_cpu_threshold(10.0, now=0)
        reporter._check_cpu_threshold(10.0, now=61)
        reporter._check_cpu_threshold(1.0, now=62)
        assert reporter.throttle_active is False

    def test_dip_resets_timer(self) -> None:
        reporter = HealthReporter()
        reporter._check_cpu_threshold(10.0, now=0)
        reporter._check_cpu_threshold(1.0, now=30)
        reporter._check_cpu_threshold(10.0, now=40)
        reporter._check_cpu_threshold(10.0, now=90)
        assert reporter.throttle_active is False

    def test_custom_limits(self) -> None:
        reporter = HealthReporter(cpu_limit_percent=50.0, sustain_seconds=5)
        reporter._check_cpu_threshold(40.0, now=0)
        reporter._check_cpu_threshold(40.0, now=100)
        assert reporter.throttle_active is False

        reporter._check_cpu_threshold(60.0, now=100)
        reporter._check_cpu_threshold(60.0, now=106)
        assert reporter.throttle_active is True

    def test_activations_counted_once_per_episode(self) -> None:
        reporter = HealthReporter()
        for now in (0, 61, 62, 63):
            reporter._check_cpu_threshold(10.0, now=now)
        reporter._check_cpu_threshold(1.0, now=64)
        for now in (100, 170):
            reporter._check_cpu_threshold(10.0, now=now)

        assert reporter.get_metrics().throttle_activations == 2


def test_metrics_include_counters() -> None:
    reporter = HealthReporter(counters=lambda: {"processed": 3})
    metrics = reporter.get_metrics()
    assert metrics.counters == {"processed": 3}
    assert metrics.memory_mb > 0
    assert metrics.throttle_active is False


@pytest.mark.asyncio
async def test_run_stops_on_shutdown() -> None:
    reporter = HealthReporter(heartbeat_interval=60)
    shutdown = asyncio.Event()
    task = asyncio.create_task(reporter.run(shutdown))
    await asyncio.sleep(0.3)
    shutdown.set()
    await asyncio.wait_for(task, timeout=2)
    assert task.done()


def test_memory_warning_logged(caplog) -> None:
    reporter = HealthReporter(memory_warn_mb=0.0)
    with caplog.at_level("WARNING", logger="contextlens.health"):
        reporter._report(reporter.get_metrics())
    assert "Resident memory" in caplog.text
