"""
Status lifecycle.

    new ──(watched field changed)──> updated
    any ──(import action)──────────> imported
    new/updated ──(not seen within window)──> inactive

The ingestion pipeline derives new/updated/inactive; only the import action
writes imported.
"""

from datetime import datetime, timedelta

from eventsync.ingestion.diff import DiffResult
from eventsync.schemas.event import EventStatus

DEFAULT_STALENESS_WINDOW = timedelta(days=7)

# Records in these statuses are never swept to inactive
SWEEP_PROTECTED_STATUSES: frozenset[EventStatus] = frozenset(
    {EventStatus.INACTIVE, EventStatus.IMPORTED}
)


def derive_status(
    diff: DiffResult,
    previous: EventStatus | None,
    *,
    protect_imported: bool = False,
) -> EventStatus:
    """
    Derive the status of a record after one observation.

    Args:
        diff: Result of diff_event for the observation
        previous: Stored status, None for a new record
        protect_imported: Keep imported records imported even when they change

    Returns:
        The status to store
    """
    if diff.is_new or previous is None:
        return EventStatus.NEW
    if diff.is_updated:
        if protect_imported and previous == EventStatus.IMPORTED:
            return EventStatus.IMPORTED
        return EventStatus.UPDATED
    return EventStatus(previous)


def stale_threshold(now: datetime, window: timedelta = DEFAULT_STALENESS_WINDOW) -> datetime:
    """Records refreshed strictly before this instant are stale."""
    return now - window
