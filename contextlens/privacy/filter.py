"""Privacy filter: decides what may be captured and strips PII from text.

Exclusion checks run in a fixed order and the first match wins:

1. Built-in sensitive applications (password managers, banking, health,
   system security panels).
2. User-excluded applications.
3. Private or incognito browser windows, by window-title marker.
4. User-excluded domains, by exact host or sub-domain suffix.
5. User-excluded time-of-day windows, including overnight ranges.

A malformed URL never excludes an observation on its own; the app, window
and time checks still apply.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from contextlens.config.settings import EngineConfig, TimeWindow
from contextlens.privacy.patterns import (
    BROWSER_APPS,
    PII_PATTERNS,
    PRIVATE_WINDOW_MARKERS,
    SENSITIVE_APP_PATTERNS,
)

logger = logging.getLogger(__name__)


class PrivacyFilter:
    """App, window, domain and time-based capture exclusion plus PII stripping."""

    def __init__(
        self,
        excluded_apps: Iterable[str] = (),
        excluded_domains: Iterable[str] = (),
        excluded_time_windows: Iterable[TimeWindow | dict[str, str]] = (),
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._excluded_apps: list[str] = []
        self._excluded_domains: list[str] = []
        self._time_windows: list[TimeWindow] = []
        self._now = now
        self.update_config(
            {
                "excluded_apps": excluded_apps,
                "excluded_domains": excluded_domains,
                "excluded_time_windows": excluded_time_windows,
            }
        )

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs: Any) -> PrivacyFilter:
        return cls(
            excluded_apps=config.excluded_apps,
            excluded_domains=config.excluded_domains,
            excluded_time_windows=config.excluded_time_windows,
            **kwargs,
        )

    def update_config(self, partial: dict[str, Any]) -> None:
        """Replace the exclusion lists present in ``partial``; keep the rest."""
        if "excluded_apps" in partial:
            self._excluded_apps = [a.lower() for a in partial["excluded_apps"] if a]
        if "excluded_domains" in partial:
            self._excluded_domains = [
                d.strip().lower().lstrip(".") for d in partial["excluded_domains"] if d.strip()
            ]
        if "excluded_time_windows" in partial:
            self._time_windows = [
                w if isinstance(w, TimeWindow) else TimeWindow(**w)
                for w in partial["excluded_time_windows"]
            ]

    # ------------------------------------------------------------------
    # Capture decision
    # ------------------------------------------------------------------

    def should_capture(self, app: str, window_title: str = "", url: str | None = None) -> bool:
        """Return False if the observation must not be processed at all."""
        try:
            return self._exclusion_reason(app, window_title, url) is None
        except Exception:
            logger.exception("Privacy check failed for app=%s, excluding", app)
            return False

    def _exclusion_reason(self, app: str, window_title: str, url: str | None) -> str | None:
        app_lower = (app or "").lower()
        title_lower = (window_title or "").lower()

        if any(pattern in app_lower for pattern in SENSITIVE_APP_PATTERNS):
            return "sensitive_app"
        if any(excluded in app_lower for excluded in self._excluded_apps):
            return "excluded_app"
        if self.is_browser(app_lower) and any(m in title_lower for m in PRIVATE_WINDOW_MARKERS):
            return "private_window"
        if url and self._is_excluded_domain(url):
            return "excluded_domain"
        if self._in_excluded_time_window():
            return "excluded_time"
        return None

    @staticmethod
    def is_browser(app: str) -> bool:
        app_lower = app.lower()
        return any(browser in app_lower for browser in BROWSER_APPS)

    def _is_excluded_domain(self, url: str) -> bool:
        if not self._excluded_domains:
            return False
        try:
            host = urlsplit(url).hostname
        except ValueError:
            return False
        if not host:
            return False
        return any(host == d or host.endswith("." + d) for d in self._excluded_domains)

    def _in_excluded_time_window(self) -> bool:
        if not self._time_windows:
            return False
        now = self._now()
        minute_of_day = now.hour * 60 + now.minute
        return any(window.contains(minute_of_day) for window in self._time_windows)

    # ------------------------------------------------------------------
    # PII
    # ------------------------------------------------------------------

    @staticmethod
    def strip_pii(text: str) -> str:
        """Replace PII substrings with bracketed tags. Other text is unchanged."""
        if not text:
            return text
        for pii in PII_PATTERNS:
            text = pii.apply(text)
        return text

    @staticmethod
    def contains_pii(text: str) -> bool:
        if not text:
            return False
        return any(pii.apply(text) != text for pii in PII_PATTERNS)
