# Persistence layer for ingested events
"""
Event Store.

The orchestrator and the read API talk to an EventStore. Two backends ship:

- InMemoryEventStore: used when DATABASE_URL is unset and in tests
- PostgresEventStore: psycopg2 with a threaded connection pool; every write is
  its own transaction (commit on success, rollback and re-raise on failure)

All methods are blocking; async callers go through asyncio.to_thread.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import psycopg2
import psycopg2.errors
import psycopg2.pool
from psycopg2.extras import RealDictCursor

from eventsync.ingestion.status import SWEEP_PROTECTED_STATUSES
from eventsync.schemas.event import CONTENT_FIELDS, EventStatus, PersistedEvent

logger = logging.getLogger(__name__)


class DuplicateEventError(Exception):
    """A record with the same (source_name, source_event_id) already exists."""


class EventNotFoundError(LookupError):
    """No stored record has the given event_id."""


def _check_content(content: dict[str, Any]) -> None:
    unknown = set(content) - set(CONTENT_FIELDS)
    if unknown:
        raise ValueError(f"Not content fields: {sorted(unknown)}")


def _text_matches(event: PersistedEvent, query: str) -> bool:
    needle = query.casefold()
    return any(
        needle in (value or "").casefold()
        for value in (event.title, event.description, event.venue_name)
    )


# =============================================================================
# INTERFACE
# =============================================================================


class EventStore(ABC):
    """Durable catalogue of events keyed by event_id and by natural key."""

    @abstractmethod
    def find_by_natural_key(self, source_name: str, source_event_id: str) -> PersistedEvent | None:
        """Look up a record by (source_name, source_event_id)."""

    @abstractmethod
    def insert(self, event: PersistedEvent) -> PersistedEvent:
        """
        Store a new record.

        Raises:
            DuplicateEventError: If the natural key is already taken
        """

    @abstractmethod
    def update_content(
        self,
        event_id: str,
        content: dict[str, Any],
        *,
        status: EventStatus,
        refreshed_at: datetime,
    ) -> None:
        """
        Overwrite content fields, status and last_refreshed_at.

        Only names in CONTENT_FIELDS are accepted; import metadata is never
        written here.

        Raises:
            EventNotFoundError: If event_id is unknown
            ValueError: If content carries a non-content field
        """

    @abstractmethod
    def touch(self, event_id: str, refreshed_at: datetime) -> None:
        """Set only last_refreshed_at."""

    @abstractmethod
    def mark_stale_inactive(
        self,
        threshold: datetime,
        protected: Iterable[EventStatus] = SWEEP_PROTECTED_STATUSES,
    ) -> int:
        """
        Mark records refreshed before threshold as inactive.

        Records whose status is in `protected` are left alone.

        Returns:
            Number of records changed
        """

    @abstractmethod
    def get(self, event_id: str) -> PersistedEvent | None:
        """Fetch one record by event_id."""

    @abstractmethod
    def list_events(
        self,
        *,
        status: EventStatus | None = None,
        source: str | None = None,
        query: str | None = None,
        include_inactive: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PersistedEvent]:
        """List records ordered by date_time, then title."""

    @abstractmethod
    def count_events(
        self,
        *,
        status: EventStatus | None = None,
        source: str | None = None,
        query: str | None = None,
        include_inactive: bool = False,
    ) -> int:
        """Count records matching the list_events filters."""

    @abstractmethod
    def mark_imported(
        self,
        event_id: str,
        *,
        imported_by: str,
        notes: str | None = None,
        imported_at: datetime | None = None,
    ) -> PersistedEvent:
        """
        Import action: set status=imported and the import metadata.

        Raises:
            EventNotFoundError: If event_id is unknown
        """

    def close(self) -> None:
        """Release backend resources."""


# =============================================================================
# IN-MEMORY
# =============================================================================


class InMemoryEventStore(EventStore):
    """Thread-safe dict-backed store. Returned records are copies."""

    def __init__(self, events: Iterable[PersistedEvent] = ()):
        self._lock = threading.RLock()
        self._events: dict[str, PersistedEvent] = {}
        self._keys: dict[tuple[str, str], str] = {}
        for event in events:
            self.insert(event)

    def __len__(self) -> int:
        return len(self._events)

    def find_by_natural_key(self, source_name: str, source_event_id: str) -> PersistedEvent | None:
        with self._lock:
            event_id = self._keys.get((str(source_name), source_event_id))
            return self._events[event_id].model_copy(deep=True) if event_id else None

    def insert(self, event: PersistedEvent) -> PersistedEvent:
        with self._lock:
            if event.natural_key in self._keys:
                raise DuplicateEventError(f"Event {event.natural_key} already exists")
            stored = event.model_copy(deep=True)
            self._events[stored.event_id] = stored
            self._keys[stored.natural_key] = stored.event_id
            return stored.model_copy(deep=True)

    def _require(self, event_id: str) -> PersistedEvent:
        try:
            return self._events[event_id]
        except KeyError:
            raise EventNotFoundError(event_id) from None

    def update_content(self, event_id, content, *, status, refreshed_at) -> None:
        _check_content(content)
        with self._lock:
            current = self._require(event_id)
            data = current.model_dump()
            data.update(content)
            data.update(status=status, last_refreshed_at=refreshed_at)
            self._events[event_id] = PersistedEvent(**data)

    def touch(self, event_id, refreshed_at) -> None:
        with self._lock:
            current = self._require(event_id)
            self._events[event_id] = current.model_copy(update={"last_refreshed_at": refreshed_at})

    def mark_stale_inactive(self, threshold, protected=SWEEP_PROTECTED_STATUSES) -> int:
        protected = {EventStatus(s) for s in protected}
        changed = 0
        with self._lock:
            for event_id, event in self._events.items():
                if event.last_refreshed_at < threshold and event.status not in protected:
                    self._events[event_id] = event.model_copy(update={"status": EventStatus.INACTIVE})
                    changed += 1
        return changed

    def get(self, event_id: str) -> PersistedEvent | None:
        with self._lock:
            event = self._events.get(event_id)
            return event.model_copy(deep=True) if event else None

    def _filtered(self, status, source, query, include_inactive) -> list[PersistedEvent]:
        events = list(self._events.values())
        if status is not None:
            events = [e for e in events if e.status == EventStatus(status)]
        elif not include_inactive:
            events = [e for e in events if e.status != EventStatus.INACTIVE]
        if source:
            events = [e for e in events if e.source_name.value == str(source)]
        if query:
            events = [e for e in events if _text_matches(e, query)]
        return events

    def list_events(
        self, *, status=None, source=None, query=None, include_inactive=False, limit=50, offset=0
    ) -> list[PersistedEvent]:
        with self._lock:
            events = self._filtered(status, source, query, include_inactive)
            events.sort(key=lambda e: (e.date_time, e.title))
            return [e.model_copy(deep=True) for e in events[offset : offset + limit]]

    def count_events(self, *, status=None, source=None, query=None, include_inactive=False) -> int:
        with self._lock:
            return len(self._filtered(status, source, query, include_inactive))

    def mark_imported(self, event_id, *, imported_by, notes=None, imported_at=None) -> PersistedEvent:
        with self._lock:
            current = self._require(event_id)
            updated = current.model_copy(
                update={
                    "status": EventStatus.IMPORTED,
                    "imported_at": imported_at or datetime.now(UTC),
                    "imported_by": imported_by,
                    "import_notes": notes,
                }
            )
            self._events[event_id] = updated
            return updated.model_copy(deep=True)


# =============================================================================
# POSTGRES
# =============================================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS events (
    event_id            TEXT PRIMARY KEY,
    source_name         TEXT NOT NULL,
    source_event_id     TEXT NOT NULL,
    title               TEXT NOT NULL,
    date_time           TIMESTAMPTZ NOT NULL,
    date_time_estimated BOOLEAN NOT NULL DEFAULT FALSE,
    venue_name          TEXT NOT NULL DEFAULT '',
    venue_address       TEXT NOT NULL DEFAULT '',
    city                TEXT NOT NULL DEFAULT 'Sydney',
    description         TEXT NOT NULL DEFAULT '',
    category_tags       TEXT[] NOT NULL DEFAULT '{}',
    image_url           TEXT NOT NULL DEFAULT '',
    original_url        TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'new',
    last_refreshed_at   TIMESTAMPTZ NOT NULL,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    imported_at         TIMESTAMPTZ,
    imported_by         TEXT,
    import_notes        TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS events_natural_key_idx
    ON events (source_name, source_event_id);
CREATE INDEX IF NOT EXISTS events_status_refreshed_idx
    ON events (status, last_refreshed_at);
"""

_COLUMNS = (
    "event_id",
    "source_name",
    "source_event_id",
    *CONTENT_FIELDS,
    "status",
    "last_refreshed_at",
    "created_at",
    "imported_at",
    "imported_by",
    "import_notes",
)


def _row_values(event: PersistedEvent) -> tuple:
    data = event.model_dump(mode="python")
    data["source_name"] = event.source_name.value
    data["status"] = event.status.value
    return tuple(data[c] for c in _COLUMNS)


def _from_row(row: dict | None) -> PersistedEvent | None:
    return PersistedEvent(**row) if row else None


class PostgresEventStore(EventStore):
    """
    PostgreSQL-backed store.

    Each operation borrows a pooled connection and runs in its own transaction.
    Failures are rolled back, logged and re-raised so the caller can count them.
    """

    def __init__(self, conn_params: dict[str, Any], *, minconn: int = 1, maxconn: int = 5):
        """
        Initialize the connection pool.

        Args:
            conn_params: psycopg2 connection arguments (see Settings.get_psycopg2_params)
        """
        self._pool = psycopg2.pool.ThreadedConnectionPool(minconn=minconn, maxconn=maxconn, **conn_params)

    @classmethod
    def from_settings(cls, settings) -> "PostgresEventStore":
        return cls(settings.get_psycopg2_params())

    @contextmanager
    def _cursor(self) -> Iterator[RealDictCursor]:
        conn = self._pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Event store operation failed: {e}")
            raise
        finally:
            self._pool.putconn(conn)

    def ensure_schema(self) -> None:
        """Create the events table and its indexes if missing."""
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info("Event store schema ready")

    def find_by_natural_key(self, source_name, source_event_id):
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM events WHERE source_name = %s AND source_event_id = %s",
                (str(getattr(source_name, "value", source_name)), source_event_id),
            )
            return _from_row(cur.fetchone())

    def insert(self, event):
        placeholders = ", ".join(["%s"] * len(_COLUMNS))
        try:
            with self._cursor() as cur:
                cur.execute(
                    f"INSERT INTO events ({', '.join(_COLUMNS)}) VALUES ({placeholders}) RETURNING *",
                    _row_values(event),
                )
                return _from_row(cur.fetchone())
        except psycopg2.errors.UniqueViolation as e:
            raise DuplicateEventError(f"Event {event.natural_key} already exists") from e

    def update_content(self, event_id, content, *, status, refreshed_at):
        _check_content(content)
        assignments = [f"{name} = %s" for name in content]
        values = list(content.values())
        assignments += ["status = %s", "last_refreshed_at = %s"]
        values += [EventStatus(status).value, refreshed_at, event_id]
        with self._cursor() as cur:
            cur.execute(f"UPDATE events SET {', '.join(assignments)} WHERE event_id = %s", values)
            if cur.rowcount == 0:
                raise EventNotFoundError(event_id)

    def touch(self, event_id, refreshed_at):
        with self._cursor() as cur:
            cur.execute(
                "UPDATE events SET last_refreshed_at = %s WHERE event_id = %s",
                (refreshed_at, event_id),
            )
            if cur.rowcount == 0:
                raise EventNotFoundError(event_id)

    def mark_stale_inactive(self, threshold, protected=SWEEP_PROTECTED_STATUSES):
        statuses = [EventStatus(s).value for s in protected]
        with self._cursor() as cur:
            cur.execute(
                "UPDATE events SET status = %s WHERE last_refreshed_at < %s AND NOT (status = ANY(%s))",
                (EventStatus.INACTIVE.value, threshold, statuses),
            )
            return cur.rowcount

    def get(self, event_id):
        with self._cursor() as cur:
            cur.execute("SELECT * FROM events WHERE event_id = %s", (event_id,))
            return _from_row(cur.fetchone())

    @staticmethod
    def _where(status, source, query, include_inactive) -> tuple[str, list]:
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = %s")
            params.append(EventStatus(status).value)
        elif not include_inactive:
            clauses.append("status <> %s")
            params.append(EventStatus.INACTIVE.value)
        if source:
            clauses.append("source_name = %s")
            params.append(str(source))
        if query:
            clauses.append("(title ILIKE %s OR description ILIKE %s OR venue_name ILIKE %s)")
            params += [f"%{query}%"] * 3
        return (" WHERE " + " AND ".join(clauses)) if clauses else "", params

    def list_events(
        self, *, status=None, source=None, query=None, include_inactive=False, limit=50, offset=0
    ):
        where, params = self._where(status, source, query, include_inactive)
        with self._cursor() as cur:
            cur.execute(
                f"SELECT * FROM events{where} ORDER BY date_time ASC, title ASC LIMIT %s OFFSET %s",
                [*params, limit, offset],
            )
            return [_from_row(row) for row in cur.fetchall()]

    def count_events(self, *, status=None, source=None, query=None, include_inactive=False):
        where, params = self._where(status, source, query, include_inactive)
        with self._cursor() as cur:
            cur.execute(f"SELECT COUNT(*) AS n FROM events{where}", params)
            return cur.fetchone()["n"]

    def mark_imported(self, event_id, *, imported_by, notes=None, imported_at=None):
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE events
                SET status = %s, imported_at = %s, imported_by = %s, import_notes = %s
                WHERE event_id = %s
                RETURNING *
                """,
                (
                    EventStatus.IMPORTED.value,
                    imported_at or datetime.now(UTC),
                    imported_by,
                    notes,
                    event_id,
                ),
            )
            row = cur.fetchone()
            if row is None:
                raise EventNotFoundError(event_id)
            return _from_row(row)

    def close(self) -> None:
        self._pool.closeall()


def create_store(settings) -> EventStore:
    """Postgres when DATABASE_URL is set, otherwise in-memory."""
    if settings.DATABASE_URL:
        store = PostgresEventStore.from_settings(settings)
        store.ensure_schema()
        return store
    logger.warning("DATABASE_URL not set, using in-memory event store")
    return InMemoryEventStore()
