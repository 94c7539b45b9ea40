"""
Unit tests for the status lifecycle.
"""

from datetime import UTC, datetime, timedelta

import pytest

from eventsync.ingestion.diff import DiffResult
from eventsync.ingestion.status import (
    SWEEP_PROTECTED_STATUSES,
    derive_status,
    stale_threshold,
)
from eventsync.schemas.event import EventStatus

NEW = DiffResult(is_new=True, is_updated=False)
UPDATED = DiffResult(is_new=False, is_updated=True)
UNCHANGED = DiffResult(is_new=False, is_updated=False)


class TestDeriveStatus:
    """Tests for derive_status."""

    def test_new(self):
        """New records are always new."""
        assert derive_status(NEW, None) == EventStatus.NEW

    @pytest.mark.parametrize("previous", list(EventStatus))
    def test_updated_from_any(self, previous):
        """A watched change yields updated, whatever the previous status."""
        assert derive_status(UPDATED, previous) == EventStatus.UPDATED

    @pytest.mark.parametrize("previous", list(EventStatus))
    def test_unchanged_retains(self, previous):
        """No change keeps the previous status."""
        assert derive_status(UNCHANGED, previous) == previous

    def test_protect_imported(self):
        """With protection on, imported stays imported on change."""
        assert derive_status(UPDATED, EventStatus.IMPORTED, protect_imported=True) == EventStatus.IMPORTED

    def test_protect_imported_only_affects_imported(self):
        """Protection does not change other transitions."""
        assert derive_status(UPDATED, EventStatus.NEW, protect_imported=True) == EventStatus.UPDATED


class TestSweepRules:
    """Tests for the staleness sweep helpers."""

    def test_protected_statuses(self):
        """Inactive and imported are never swept."""
        assert SWEEP_PROTECTED_STATUSES == {EventStatus.INACTIVE, EventStatus.IMPORTED}

    def test_threshold(self):
        """Threshold is now minus the window."""
        now = datetime(2025, 3, 10, tzinfo=UTC)
        assert stale_threshold(now) == now - timedelta(days=7)
        assert stale_threshold(now, timedelta(days=1)) == now - timedelta(days=1)
