"""Engine configuration using Pydantic Settings v2.

Loads configuration from environment variables prefixed ``CONTEXTLENS_``
with .env file support. Values are validated on load and on every update.
"""

from __future__ import annotations

import functools
import re
from pathlib import Path

from pydantic import BaseModel, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contextlens.models import PrivacyLevel

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class TimeWindow(BaseModel):
    """A do-not-capture time-of-day window. ``start > end`` wraps midnight."""

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def check_hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError(f"expected HH:MM, got {v!r}")
        return v

    @staticmethod
    def to_minutes(value: str) -> int:
        hours, minutes = value.split(":")
        return int(hours) * 60 + int(minutes)

    def contains(self, minute_of_day: int) -> bool:
        """Inclusive containment test for a minute-of-day value."""
        start = self.to_minutes(self.start)
        end = self.to_minutes(self.end)
        if start <= end:
            return start <= minute_of_day <= end
        return minute_of_day >= start or minute_of_day <= end


class EngineConfig(BaseSettings):
    """ContextLens engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONTEXTLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Capture ──────────────────────────────────────────────────
    enabled: bool = True
    capture_interval_ms: int = 15_000
    capture_timeout_seconds: float = 3.0
    failure_threshold: int = 20

    # ── Privacy ──────────────────────────────────────────────────
    excluded_apps: list[str] = []
    excluded_domains: list[str] = []
    excluded_time_windows: list[TimeWindow] = []
    privacy_level: PrivacyLevel = PrivacyLevel.SYNC_ALLOWED

    # ── File watching ────────────────────────────────────────────
    file_watch_enabled: bool = True
    watched_directories: list[str] = []
    file_scan_interval_seconds: float = 2.0
    debounce_seconds: float = 1.0

    # ── Storage ──────────────────────────────────────────────────
    db_path: str | None = None
    retention_days: int = 30
    encryption_enabled: bool = True
    # Without a passphrase a random key is generated beside the database.
    store_passphrase: SecretStr | None = None
    cleanup_interval_hours: float = 6.0

    # ── Operations ───────────────────────────────────────────────
    heartbeat_interval_seconds: int = 300
    log_level: str = "INFO"

    @field_validator("capture_interval_ms")
    @classmethod
    def check_interval(cls, v: int) -> int:
        if v < 1000:
            raise ValueError("capture_interval_ms must be at least 1000")
        return v

    @field_validator("retention_days", "failure_threshold")
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("excluded_domains")
    @classmethod
    def normalize_domains(cls, v: list[str]) -> list[str]:
        return [d.strip().lower().lstrip(".") for d in v if d.strip()]

    @model_validator(mode="after")
    def check_timeouts(self) -> EngineConfig:
        if self.capture_timeout_seconds <= 0:
            raise ValueError("capture_timeout_seconds must be positive")
        return self

    @property
    def capture_interval_seconds(self) -> float:
        return self.capture_interval_ms / 1000

    def resolved_watch_dirs(self) -> list[Path]:
        """Watched directories with ``~`` expanded; defaults when empty."""
        if self.watched_directories:
            return [Path(d).expanduser() for d in self.watched_directories]
        home = Path.home()
        return [home / "Desktop", home / "Documents", home / "Downloads"]


@functools.lru_cache(maxsize=1)
def get_settings() -> EngineConfig:
    """Return the cached engine settings loaded from the environment."""
    return EngineConfig()
