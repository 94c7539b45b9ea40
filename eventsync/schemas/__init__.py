"""Value types shared by the ingestion pipeline, the store and the API."""

from .event import (
    EventCandidate,
    EventStatus,
    PersistedEvent,
    SourceName,
)

__all__ = [
    "EventCandidate",
    "EventStatus",
    "PersistedEvent",
    "SourceName",
]
