"""Event pipeline: privacy filter, dedup, classify, persist, notify.

Both capture variants feed this single entry point. Invocations are
serialized with an asyncio.Lock so the classifier's switch-detection state
sees observations in order. Each stage failure is logged and counted, and
the offending observation is dropped without affecting the next one.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import asdict, dataclass
from typing import Any

from contextlens.classifier import EventClassifier
from contextlens.classifier.categories import FILE_SYSTEM_APP
from contextlens.exceptions import SubscriberLimitError
from contextlens.models import ContextEvent, FileChange, Observation, PrivacyLevel
from contextlens.privacy import PrivacyFilter
from contextlens.store import EventStore

logger = logging.getLogger(__name__)

HASH_PREFIX_LENGTH = 1000
MAX_SUBSCRIBERS = 16
DEFAULT_QUEUE_SIZE = 100


@dataclass
class PipelineStats:
    processed: int = 0
    filtered: int = 0
    duplicate: int = 0
    error: int = 0
    dropped_notifications: int = 0


def content_hash(observation: Observation) -> str:
    text = observation.content[:HASH_PREFIX_LENGTH]
    return hashlib.md5(text.encode("utf-8"), usedforsecurity=False).hexdigest()


class Pipeline:
    """Runs each observation end to end before accepting the next."""

    def __init__(
        self,
        store: EventStore,
        privacy: PrivacyFilter | None = None,
        classifier: EventClassifier | None = None,
        privacy_level: PrivacyLevel = PrivacyLevel.SYNC_ALLOWED,
        max_subscribers: int = MAX_SUBSCRIBERS,
    ) -> None:
        self.store = store
        self.privacy = privacy or PrivacyFilter()
        self.classifier = classifier or EventClassifier()
        self.privacy_level = privacy_level
        self.max_subscribers = max_subscribers
        self._lock = asyncio.Lock()
        self._last_hash: str | None = None
        self._stats = PipelineStats()
        self._subscribers: list[asyncio.Queue[ContextEvent]] = []

    def stats(self) -> dict[str, int]:
        return asdict(self._stats)

    # ------------------------------------------------------------------
    # Observer channel
    # ------------------------------------------------------------------

    def subscribe(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> asyncio.Queue[ContextEvent]:
        """Return a bounded queue that receives every stored event."""
        if len(self._subscribers) >= self.max_subscribers:
            raise SubscriberLimitError(f"At most {self.max_subscribers} subscribers allowed")
        queue: asyncio.Queue[ContextEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ContextEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _notify(self, event: ContextEvent) -> None:
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self._stats.dropped_notifications += 1
                logger.debug("Subscriber queue full, dropping event id=%s", event.id)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def update_config(self, partial: dict[str, Any]) -> None:
        """Swap the privacy grade and forward exclusion lists to the filter."""
        if "privacy_level" in partial:
            self.privacy_level = PrivacyLevel(partial["privacy_level"])
        self.privacy.update_config(partial)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_observation(self, observation: Observation) -> ContextEvent | None:
        """Filter, dedup, classify and store one observation.

        Returns the stored event, or None if it was dropped.
        """
        async with self._lock:
            try:
                if not self.privacy.should_capture(
                    observation.app_name, observation.window_title, observation.url
                ):
                    self._stats.filtered += 1
                    return None

                digest = content_hash(observation)
                if digest == self._last_hash:
                    self._stats.duplicate += 1
                    return None
                self._last_hash = digest

                observation.visible_text = self.privacy.strip_pii(observation.visible_text)
                observation.focused_text = self.privacy.strip_pii(observation.focused_text)
                observation.window_title = self.privacy.strip_pii(observation.window_title)

                event = self.classifier.classify(observation)
                return await self._persist(event)
            except Exception:
                self._stats.error += 1
                logger.exception("Failed to process observation from %s", observation.app_name)
                return None

    async def process_file_change(self, change: FileChange) -> ContextEvent | None:
        """Filter, classify and store one file change. No content dedup."""
        async with self._lock:
            try:
                if not self.privacy.should_capture(FILE_SYSTEM_APP, change.file_name):
                    self._stats.filtered += 1
                    return None
                event = self.classifier.classify_file_event(change)
                return await self._persist(event)
            except Exception:
                self._stats.error += 1
                logger.exception("Failed to process file change for %s", change.file_name)
                return None

    async def _persist(self, event: ContextEvent) -> ContextEvent:
        event.privacy_level = self.privacy_level
        await self.store.insert(event)
        self._stats.processed += 1
        self._notify(event)
        return event
