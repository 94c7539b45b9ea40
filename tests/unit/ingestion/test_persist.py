"""
Unit tests for the persist module.

InMemoryEventStore is exercised directly; PostgresEventStore runs against a
mocked psycopg2 pool.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from eventsync.configs.settings import Settings
from eventsync.ingestion.persist import (
    DuplicateEventError,
    EventNotFoundError,
    InMemoryEventStore,
    PostgresEventStore,
    create_store,
)
from eventsync.schemas.event import EventStatus

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def pg():
    """PostgresEventStore on a mocked connection pool."""
    cursor = MagicMock()
    cursor.rowcount = 1
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    pool = MagicMock()
    pool.getconn.return_value = conn

    with patch("eventsync.ingestion.persist.psycopg2.pool.ThreadedConnectionPool", return_value=pool):
        store = PostgresEventStore({"host": "localhost", "dbname": "events"})
    return store, pool, conn, cursor


# =============================================================================
# IN-MEMORY
# =============================================================================


class TestInMemoryWrites:
    """Tests for InMemoryEventStore write operations."""

    def test_insert_and_find(self, store, create_persisted):
        """Should find an inserted record by natural key."""
        event = store.insert(create_persisted(source_event_id="1"))
        found = store.find_by_natural_key("eventbrite", "1")
        assert found.event_id == event.event_id
        assert store.find_by_natural_key("timeout", "1") is None

    def test_duplicate_natural_key(self, store, create_persisted):
        """Should refuse a second record with the same natural key."""
        store.insert(create_persisted(source_event_id="1"))
        with pytest.raises(DuplicateEventError):
            store.insert(create_persisted(source_event_id="1"))
        assert len(store) == 1

    def test_same_id_other_source(self, store, create_persisted):
        """Natural keys are scoped by source."""
        store.insert(create_persisted(source_event_id="1", source_name="eventbrite"))
        store.insert(create_persisted(source_event_id="1", source_name="timeout"))
        assert len(store) == 2

    def test_returned_records_are_copies(self, store, create_persisted):
        """Mutating a returned record should not change the store."""
        event = store.insert(create_persisted())
        event.category_tags.append("mutated")
        assert "mutated" not in store.get(event.event_id).category_tags

    def test_update_content(self, store, create_persisted):
        """Should overwrite content, status and refresh time only."""
        event = store.insert(create_persisted(imported_by="curator@example.com"))
        later = T0 + timedelta(hours=6)
        store.update_content(
            event.event_id, {"title": "Jazz Night II"}, status=EventStatus.UPDATED, refreshed_at=later
        )

        stored = store.get(event.event_id)
        assert stored.title == "Jazz Night II"
        assert stored.status == EventStatus.UPDATED
        assert stored.last_refreshed_at == later
        assert stored.imported_by == "curator@example.com"
        assert stored.created_at == event.created_at

    def test_update_rejects_import_fields(self, store, create_persisted):
        """Should refuse to write import metadata through update_content."""
        event = store.insert(create_persisted())
        with pytest.raises(ValueError):
            store.update_content(
                event.event_id, {"imported_by": "x"}, status=EventStatus.UPDATED, refreshed_at=T0
            )

    def test_update_unknown(self, store):
        """Should raise EventNotFoundError for unknown ids."""
        with pytest.raises(EventNotFoundError):
            store.update_content("nope", {}, status=EventStatus.UPDATED, refreshed_at=T0)

    def test_touch(self, store, create_persisted):
        """Should only move last_refreshed_at."""
        event = store.insert(create_persisted(status=EventStatus.UPDATED))
        store.touch(event.event_id, T0 + timedelta(days=1))
        stored = store.get(event.event_id)
        assert stored.last_refreshed_at == T0 + timedelta(days=1)
        assert stored.status == EventStatus.UPDATED


class TestInMemorySweep:
    """Tests for mark_stale_inactive."""

    def test_sweep(self, store, create_persisted):
        """Should mark only stale, unprotected records inactive."""
        old = T0 - timedelta(days=10)
        stale_new = store.insert(create_persisted(source_event_id="1", last_refreshed_at=old))
        stale_updated = store.insert(
            create_persisted(source_event_id="2", last_refreshed_at=old, status=EventStatus.UPDATED)
        )
        stale_imported = store.insert(
            create_persisted(source_event_id="3", last_refreshed_at=old, status=EventStatus.IMPORTED)
        )
        fresh = store.insert(create_persisted(source_event_id="4", last_refreshed_at=T0))

        changed = store.mark_stale_inactive(T0 - timedelta(days=7))

        assert changed == 2
        assert store.get(stale_new.event_id).status == EventStatus.INACTIVE
        assert store.get(stale_updated.event_id).status == EventStatus.INACTIVE
        assert store.get(stale_imported.event_id).status == EventStatus.IMPORTED
        assert store.get(fresh.event_id).status == EventStatus.NEW

    def test_sweep_skips_already_inactive(self, store, create_persisted):
        """Already inactive records are not counted again."""
        store.insert(
            create_persisted(last_refreshed_at=T0 - timedelta(days=30), status=EventStatus.INACTIVE)
        )
        assert store.mark_stale_inactive(T0) == 0


class TestInMemoryReads:
    """Tests for list_events, count_events and mark_imported."""

    def test_list_hides_inactive(self, store, create_persisted):
        """Inactive records are hidden by default."""
        store.insert(create_persisted(source_event_id="1"))
        store.insert(create_persisted(source_event_id="2", status=EventStatus.INACTIVE))

        assert len(store.list_events()) == 1
        assert len(store.list_events(include_inactive=True)) == 2
        assert len(store.list_events(status=EventStatus.INACTIVE)) == 1
        assert store.count_events() == 1

    def test_list_filters_and_order(self, store, create_persisted):
        """Should filter by source and text, ordered by date."""
        late = datetime(2025, 4, 1, tzinfo=UTC)
        early = datetime(2025, 3, 20, tzinfo=UTC)
        store.insert(create_persisted(source_event_id="1", title="Late Jazz", date_time=late))
        store.insert(create_persisted(source_event_id="2", title="Early Jazz", date_time=early))
        store.insert(create_persisted(source_event_id="3", title="Rock Show", source_name="timeout"))

        titles = [e.title for e in store.list_events(source="eventbrite")]
        assert titles == ["Early Jazz", "Late Jazz"]
        assert [e.title for e in store.list_events(query="rock")] == ["Rock Show"]
        assert len(store.list_events(limit=1, offset=1, source="eventbrite")) == 1

    def test_mark_imported(self, store, create_persisted):
        """Should set imported status and metadata."""
        event = store.insert(create_persisted())
        imported = store.mark_imported(event.event_id, imported_by="curator", notes="Front page", imported_at=T0)

        assert imported.status == EventStatus.IMPORTED
        assert imported.imported_at == T0
        assert imported.imported_by == "curator"
        assert imported.import_notes == "Front page"

    def test_mark_imported_unknown(self, store):
        """Should raise EventNotFoundError for unknown ids."""
        with pytest.raises(EventNotFoundError):
            store.mark_imported("nope", imported_by="curator")


# =============================================================================
# POSTGRES
# =============================================================================


class TestPostgresEventStore:
    """Tests for PostgresEventStore transaction handling."""

    def test_ensure_schema(self, pg):
        """Should create the table with a unique natural-key index."""
        store, pool, conn, cursor = pg
        store.ensure_schema()

        sql = cursor.execute.call_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS events" in sql
        assert "UNIQUE INDEX" in sql
        conn.commit.assert_called_once()
        pool.putconn.assert_called_once_with(conn)

    def test_touch_commits(self, pg):
        """Should commit each write."""
        store, pool, conn, cursor = pg
        store.touch("abc", T0)

        sql, params = cursor.execute.call_args.args
        assert "SET last_refreshed_at" in sql
        assert params == (T0, "abc")
        conn.commit.assert_called_once()

    def test_failure_rolls_back_and_raises(self, pg):
        """Should roll back, return the connection and re-raise."""
        store, pool, conn, cursor = pg
        cursor.execute.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            store.touch("abc", T0)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_touch_unknown(self, pg):
        """Should raise EventNotFoundError when no row matched."""
        store, pool, conn, cursor = pg
        cursor.rowcount = 0
        with pytest.raises(EventNotFoundError):
            store.touch("abc", T0)
        conn.rollback.assert_called_once()

    def test_update_content_sql(self, pg):
        """Should only set content columns, status and refresh time."""
        store, pool, conn, cursor = pg
        store.update_content("abc", {"title": "New"}, status=EventStatus.UPDATED, refreshed_at=T0)

        sql, params = cursor.execute.call_args.args
        assert "title = %s" in sql
        assert "imported" not in sql
        assert params == ["New", "updated", T0, "abc"]

    def test_sweep_sql(self, pg):
        """Should exclude protected statuses and return the row count."""
        store, pool, conn, cursor = pg
        cursor.rowcount = 4
        assert store.mark_stale_inactive(T0) == 4

        sql, params = cursor.execute.call_args.args
        assert "last_refreshed_at < %s" in sql
        assert params[0] == "inactive"
        assert sorted(params[2]) == ["imported", "inactive"]

    def test_find_returns_model(self, pg, create_persisted):
        """Should map a row to a PersistedEvent."""
        store, pool, conn, cursor = pg
        row = create_persisted().model_dump()
        cursor.fetchone.return_value = row

        found = store.find_by_natural_key("eventbrite", "123")
        assert found.title == "Jazz Night"
        assert cursor.execute.call_args.args[1] == ("eventbrite", "123")


class TestCreateStore:
    """Tests for create_store."""

    def test_in_memory_without_database_url(self):
        """Should fall back to memory when DATABASE_URL is unset."""
        assert isinstance(create_store(Settings(DATABASE_URL=None)), InMemoryEventStore)

    def test_postgres_with_database_url(self):
        """Should build and initialize a Postgres store."""
        settings = Settings(DATABASE_URL="postgresql://user:pass@db:5432/events")
        with patch.object(PostgresEventStore, "__init__", return_value=None) as init, patch.object(
            PostgresEventStore, "ensure_schema"
        ) as ensure:
            store = create_store(settings)

        assert isinstance(store, PostgresEventStore)
        assert init.call_args.args[0]["host"] == "db"
        ensure.assert_called_once()
