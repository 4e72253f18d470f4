"""Shared test fixtures for the ContextLens tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
import pytest_asyncio

from contextlens.classifier import EventClassifier
from contextlens.models import Observation
from contextlens.platform import RawWindowState
from contextlens.privacy import PrivacyFilter
from contextlens.store import EventStore

# Monday 19 October 2026, 10:00 UTC
REFERENCE_TIME = datetime(2026, 10, 19, 10, 0, tzinfo=UTC)


def make_observation(
    app_name: str,
    window_title: str = "",
    visible_text: str = "",
    timestamp: datetime = REFERENCE_TIME,
    **kwargs,
) -> Observation:
    return Observation(
        timestamp=timestamp,
        app_name=app_name,
        window_title=window_title,
        visible_text=visible_text,
        **kwargs,
    )


class FakeWindowProvider:
    """In-memory stand-in for the OS focused-window capability."""

    def __init__(self, states=None, permitted: bool = True) -> None:
        self.states = list(states or [])
        self.permitted = permitted
        self.calls = 0

    def has_capture_permission(self) -> bool:
        return self.permitted

    def read_focused_window(self) -> RawWindowState | None:
        self.calls += 1
        if not self.states:
            return None
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        if isinstance(state, Exception):
            raise state
        return state


@pytest.fixture
def temp_db_path(tmp_path):
    """Provide a temporary database path."""
    return str(tmp_path / "test_events.db")


@pytest.fixture
def encryption_key():
    """Fixed encryption key for testing."""
    return b"test-key-32-bytes-long-for-aes!!"


@pytest_asyncio.fixture
async def event_store(temp_db_path, encryption_key):
    """Create an encrypted EventStore with a temp database."""
    store = EventStore(temp_db_path, encryption_key=encryption_key)
    yield store
    await store.close()


@pytest.fixture
def classifier():
    return EventClassifier(tz=UTC)


@pytest.fixture
def privacy_filter():
    return PrivacyFilter()


@pytest.fixture
def reference_time():
    return REFERENCE_TIME


@pytest.fixture
def make_obs():
    """Factory for observations stamped at the reference time by default."""
    return make_observation


@pytest.fixture
def window_provider():
    """Factory for fake focused-window providers."""
    return FakeWindowProvider
