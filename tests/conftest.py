"""
Shared pytest fixtures for the eventsync test suite.

Provides factories for candidates, stored events, stub adapters and a
controllable clock.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from eventsync.ingestion.adapters.base_adapter import SourceType
from eventsync.ingestion.persist import InMemoryEventStore
from eventsync.schemas.event import EventCandidate, EventStatus, PersistedEvent, SourceName

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def create_candidate():
    """
    Return a function that creates EventCandidate objects with sensible defaults.

    Example:
        candidate = create_candidate(title="Jazz Night", source_event_id="123")
    """

    def _create_candidate(
        title: str = "Jazz Night",
        source_event_id: str = "123",
        source_name: str = "eventbrite",
        **kwargs,
    ) -> EventCandidate:
        defaults = {
            "title": title,
            "date_time": datetime(2025, 3, 15, 9, 0, tzinfo=UTC),
            "venue_name": "The Basement",
            "venue_address": "7 Macquarie Pl, Sydney",
            "city": "Sydney",
            "description": "Live jazz every Friday",
            "category_tags": ["eventbrite"],
            "image_url": "https://img.example.com/jazz.jpg",
            "source_name": SourceName(source_name),
            "source_event_id": source_event_id,
            "original_url": f"https://www.eventbrite.com.au/e/jazz-night-tickets-{source_event_id}",
        }
        defaults.update(kwargs)
        return EventCandidate(**defaults)

    return _create_candidate


@pytest.fixture
def create_persisted(create_candidate):
    """Return a function that creates stored events from candidate defaults."""

    def _create_persisted(
        status: EventStatus = EventStatus.NEW,
        last_refreshed_at: datetime = T0,
        **kwargs,
    ) -> PersistedEvent:
        stored_fields = {
            k: kwargs.pop(k)
            for k in ("event_id", "imported_at", "imported_by", "import_notes")
            if k in kwargs
        }
        candidate = create_candidate(**kwargs)
        event = PersistedEvent.from_candidate(
            candidate, status=status, refreshed_at=last_refreshed_at
        )
        return event.model_copy(update=stored_fields) if stored_fields else event

    return _create_persisted


@pytest.fixture
def store():
    """Empty in-memory event store."""
    return InMemoryEventStore()


class Clock:
    """Settable clock for orchestrator and scheduler tests."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock pinned at 2025-03-01 09:00 UTC."""
    return Clock()


@pytest.fixture
def make_adapter():
    """
    Return a function that creates stub adapters.

    The stub returns `candidates` from fetch_candidates(), or raises
    `error` when given.
    """

    def _make_adapter(
        source_name: str = "eventbrite",
        candidates: list | None = None,
        error: Exception | None = None,
    ) -> MagicMock:
        adapter = MagicMock()
        adapter.source_name = SourceName(source_name)
        adapter.source_type = SourceType.STATIC
        adapter.config.url = f"https://{source_name}.example.com"
        if error is not None:
            adapter.fetch_candidates = AsyncMock(side_effect=error)
        else:
            adapter.fetch_candidates = AsyncMock(return_value=list(candidates or []))
        adapter.close = AsyncMock()
        return adapter

    return _make_adapter
