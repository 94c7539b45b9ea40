"""
Unit tests for the event schemas.

Tests for EventCandidate validation and PersistedEvent construction.
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from eventsync.schemas.event import (
    CONTENT_FIELDS,
    EventCandidate,
    EventStatus,
    PersistedEvent,
    SourceName,
)

# =============================================================================
# TEST CLASSES
# =============================================================================


class TestEventCandidate:
    """Tests for EventCandidate validation."""

    def test_valid_candidate(self, create_candidate):
        """Should build a candidate from valid fields."""
        candidate = create_candidate()
        assert candidate.title == "Jazz Night"
        assert candidate.source_name == SourceName.EVENTBRITE
        assert candidate.date_time_estimated is False

    def test_empty_title_rejected(self, create_candidate):
        """Should reject an empty or blank title."""
        with pytest.raises(ValidationError):
            create_candidate(title="   ")

    def test_empty_url_rejected(self, create_candidate):
        """Should reject a candidate without original_url."""
        with pytest.raises(ValidationError):
            create_candidate(original_url="")

    def test_empty_source_event_id_rejected(self, create_candidate):
        """Should reject a candidate without source_event_id."""
        with pytest.raises(ValidationError):
            create_candidate(source_event_id="")

    def test_unknown_source_rejected(self):
        """Should reject source names outside the enum."""
        with pytest.raises(ValidationError):
            EventCandidate(
                title="X",
                date_time=datetime.now(UTC),
                source_name="facebook",
                source_event_id="1",
                original_url="https://example.com",
            )

    def test_none_optional_text_becomes_empty(self, create_candidate):
        """Should treat None venue/description/image as empty text."""
        candidate = create_candidate(venue_name=None, description=None, image_url=None)
        assert candidate.venue_name == ""
        assert candidate.description == ""
        assert candidate.image_url == ""

    def test_blank_city_defaults_to_sydney(self, create_candidate):
        """Should default a blank city to Sydney."""
        assert create_candidate(city="").city == "Sydney"
        assert create_candidate(city=None).city == "Sydney"

    def test_naive_datetime_is_utc(self, create_candidate):
        """Should interpret naive datetimes as UTC."""
        candidate = create_candidate(date_time=datetime(2025, 3, 15, 9, 0))
        assert candidate.date_time.tzinfo is not None
        assert candidate.date_time == datetime(2025, 3, 15, 9, 0, tzinfo=UTC)

    def test_aware_datetime_preserved(self, create_candidate):
        """Should keep the instant of aware datetimes."""
        sydney = timezone(timedelta(hours=11))
        candidate = create_candidate(date_time=datetime(2025, 3, 15, 20, 0, tzinfo=sydney))
        assert candidate.date_time == datetime(2025, 3, 15, 9, 0, tzinfo=UTC)

    def test_tags_are_ordered_set(self, create_candidate):
        """Should drop blank and duplicate tags, keeping first occurrence order."""
        candidate = create_candidate(category_tags=["Music", "", "music", "Music", " Jazz "])
        assert candidate.category_tags == ["Music", "music", "Jazz"]

    def test_whitespace_stripped(self, create_candidate):
        """Should strip surrounding whitespace from strings."""
        candidate = create_candidate(title="  Jazz Night  ")
        assert candidate.title == "Jazz Night"

    def test_natural_key(self, create_candidate):
        """Should expose (source_name, source_event_id) as natural key."""
        assert create_candidate(source_event_id="42").natural_key == ("eventbrite", "42")


class TestPersistedEvent:
    """Tests for PersistedEvent."""

    def test_from_candidate(self, create_candidate):
        """Should copy candidate content and set status and timestamps."""
        now = datetime(2025, 3, 1, tzinfo=UTC)
        candidate = create_candidate()
        event = PersistedEvent.from_candidate(candidate, status=EventStatus.NEW, refreshed_at=now)

        assert event.status == EventStatus.NEW
        assert event.last_refreshed_at == now
        assert event.created_at == now
        assert event.imported_at is None
        for name in CONTENT_FIELDS:
            assert getattr(event, name) == getattr(candidate, name)

    def test_event_ids_are_unique(self, create_candidate):
        """Should assign a fresh event_id per record."""
        now = datetime.now(UTC)
        a = PersistedEvent.from_candidate(create_candidate(), status=EventStatus.NEW, refreshed_at=now)
        b = PersistedEvent.from_candidate(create_candidate(), status=EventStatus.NEW, refreshed_at=now)
        assert a.event_id != b.event_id

    def test_explicit_event_id(self, create_candidate):
        """Should honour an explicit event_id."""
        event = PersistedEvent.from_candidate(
            create_candidate(), status=EventStatus.NEW, refreshed_at=datetime.now(UTC), event_id="abc"
        )
        assert event.event_id == "abc"

    def test_naive_timestamps_become_aware(self, create_persisted):
        """Should read naive storage timestamps as UTC."""
        event = PersistedEvent(
            **create_persisted().model_dump(exclude={"last_refreshed_at"}),
            last_refreshed_at=datetime(2025, 3, 1, 9, 0),
        )
        assert event.last_refreshed_at.tzinfo is not None

    def test_import_fields_not_content(self):
        """Import metadata should never be a content field."""
        assert not {"imported_at", "imported_by", "import_notes", "status"} & set(CONTENT_FIELDS)
