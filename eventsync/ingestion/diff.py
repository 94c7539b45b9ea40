"""
Change detection between a fresh candidate and its stored record.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from eventsync.schemas.event import EventCandidate, PersistedEvent

# Fields whose change surfaces a record for re-review
FIELDS_TO_COMPARE: tuple[str, ...] = (
    "title",
    "date_time",
    "venue_name",
    "venue_address",
    "description",
    "image_url",
)


@dataclass(frozen=True)
class FieldChange:
    """Old and new value of one differing field."""

    old: Any
    new: Any


@dataclass
class DiffResult:
    """
    Outcome of comparing a candidate against the store.

    `changes` is for logging only and is never persisted.
    """

    is_new: bool
    is_updated: bool
    changes: dict[str, FieldChange] = field(default_factory=dict)


def _normalize_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _same_instant(a: datetime | None, b: datetime | None) -> bool:
    if a is None or b is None:
        return a is b
    return a == b


def diff_event(candidate: EventCandidate, existing: PersistedEvent | None) -> DiffResult:
    """
    Compare a candidate with its stored record.

    date_time is compared by instant, so the same moment in different zones is
    equal. An estimated candidate date (the source showed none) is not
    compared. Text fields are compared trimmed, with None equal to "".

    Args:
        candidate: Freshly extracted listing
        existing: Stored record with the same natural key, or None

    Returns:
        DiffResult
    """
    if existing is None:
        return DiffResult(is_new=True, is_updated=False)

    changes: dict[str, FieldChange] = {}
    for name in FIELDS_TO_COMPARE:
        new = getattr(candidate, name)
        old = getattr(existing, name)

        if name == "date_time":
            if candidate.date_time_estimated:
                continue
            if not _same_instant(new, old):
                changes[name] = FieldChange(old=old, new=new)
        elif _normalize_text(new) != _normalize_text(old):
            changes[name] = FieldChange(old=old, new=new)

    return DiffResult(is_new=False, is_updated=bool(changes), changes=changes)
