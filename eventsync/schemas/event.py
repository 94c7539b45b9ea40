# eventsync/schemas/event.py
"""
Event record shapes for the ingestion pipeline.

Two records travel through the system:

- EventCandidate: a listing freshly extracted from one source observation.
  It is never stored as-is; the orchestrator reconciles it against the store.
- PersistedEvent: the durable catalogue record. It carries everything a
  candidate has plus liveness (last_refreshed_at), the curation status and the
  import metadata that only the import action may write.

The pair (source_name, source_event_id) is the natural key of an event across
runs. Storage-assigned ids (event_id) are never used for reconciliation.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


# ============================================================================
# ENUMS
# ============================================================================


class SourceName(str, Enum):
    """Identifiers of the external listing sources."""

    EVENTBRITE = "eventbrite"
    TIMEOUT = "timeout"
    MEETUP = "meetup"


class EventStatus(str, Enum):
    """
    Curation status of a stored event.

    new/updated/inactive are derived by the ingestion pipeline; imported is
    written exclusively by the import action.
    """

    NEW = "new"
    UPDATED = "updated"
    INACTIVE = "inactive"
    IMPORTED = "imported"


# ============================================================================
# CANDIDATE
# ============================================================================


class EventCandidate(BaseModel):
    """
    A normalized event listing produced by a source adapter.

    Construction fails (pydantic ValidationError) when title, original_url or
    source_event_id is empty, which is how adapters discard unusable items.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1)
    date_time: datetime
    # True when the source showed no parseable date and date_time is the fetch time
    date_time_estimated: bool = False
    venue_name: str = ""
    venue_address: str = ""
    city: str = "Sydney"
    description: str = ""
    category_tags: list[str] = Field(default_factory=list)
    image_url: str = ""
    source_name: SourceName
    source_event_id: str = Field(min_length=1)
    original_url: str = Field(min_length=1)

    @field_validator(
        "venue_name", "venue_address", "description", "image_url", mode="before"
    )
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        """Treat missing optional text as empty text."""
        return "" if v is None else v

    @field_validator("city", mode="before")
    @classmethod
    def default_city(cls, v: Any) -> Any:
        """Fall back to Sydney when a source gives no city."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return "Sydney"
        return v

    @field_validator("date_time")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Interpret naive datetimes as UTC so comparisons are instant-based."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @field_validator("category_tags", mode="before")
    @classmethod
    def ordered_unique_tags(cls, v: Any) -> list[str]:
        """Keep tags as an ordered set: blanks dropped, first occurrence wins."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        seen: set[str] = set()
        tags = []
        for tag in v:
            tag = str(tag).strip()
            if tag and tag not in seen:
                seen.add(tag)
                tags.append(tag)
        return tags

    @property
    def natural_key(self) -> tuple[str, str]:
        """Source-scoped identity of this listing."""
        return (self.source_name.value, self.source_event_id)


# ============================================================================
# PERSISTED EVENT
# ============================================================================


class PersistedEvent(EventCandidate):
    """
    Durable catalogue record.

    imported_at / imported_by / import_notes are owned by the import action;
    the ingestion pipeline reads them but never writes them.
    """

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: EventStatus = EventStatus.NEW
    last_refreshed_at: datetime = Field(default_factory=_utc_now)
    created_at: datetime = Field(default_factory=_utc_now)

    # ---- IMPORT METADATA ----
    imported_at: datetime | None = None
    imported_by: str | None = None
    import_notes: str | None = None

    @field_validator("last_refreshed_at", "created_at", "imported_at")
    @classmethod
    def ensure_aware_timestamps(cls, v: datetime | None) -> datetime | None:
        """Interpret naive storage timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @classmethod
    def from_candidate(
        cls,
        candidate: EventCandidate,
        *,
        status: EventStatus,
        refreshed_at: datetime,
        event_id: str | None = None,
    ) -> "PersistedEvent":
        """Build a fresh stored record from a candidate."""
        data = candidate.model_dump()
        data.update(status=status, last_refreshed_at=refreshed_at, created_at=refreshed_at)
        if event_id:
            data["event_id"] = event_id
        return cls(**data)


# Fields a re-observation may overwrite. Import metadata is never among them.
CONTENT_FIELDS: tuple[str, ...] = (
    "title",
    "date_time",
    "date_time_estimated",
    "venue_name",
    "venue_address",
    "city",
    "description",
    "category_tags",
    "image_url",
    "original_url",
)
