"""
eventsync.api.app.

FastAPI entrypoint for the event catalogue.

Responsibilities
----------------
• Scheduler lifecycle (started on startup, stopped on shutdown)
• Event listing and lookup
• Import action
• Manual and dry-run ingestion triggers
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from eventsync import __version__
from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.orchestrator import IngestionOrchestrator, load_orchestrator_from_config
from eventsync.ingestion.persist import EventNotFoundError, EventStore
from eventsync.ingestion.scheduler import IngestionScheduler
from eventsync.schemas.event import EventStatus, PersistedEvent, SourceName

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# REQUEST / RESPONSE MODELS
# ---------------------------------------------------------------------------


class EventListResponse(BaseModel):
    """Page of events."""

    total: int
    limit: int
    offset: int
    events: list[PersistedEvent]


class ImportRequest(BaseModel):
    """Body of the import action."""

    imported_by: str = Field(min_length=1)
    import_notes: str | None = None


# ---------------------------------------------------------------------------
# DEPENDENCIES
# ---------------------------------------------------------------------------


def get_store(request: Request) -> EventStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


def get_scheduler(request: Request) -> IngestionScheduler:
    return request.app.state.scheduler


# ---------------------------------------------------------------------------
# APP FACTORY
# ---------------------------------------------------------------------------


def create_app(
    store: EventStore | None = None,
    scheduler: IngestionScheduler | None = None,
    *,
    orchestrator: IngestionOrchestrator | None = None,
    settings: Settings | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """
    Build the API application.

    Components not injected are built from settings on startup.

    Parameters
    ----------
    store : EventStore, optional
        Event store; defaults to the orchestrator's store.
    scheduler : IngestionScheduler, optional
        Scheduler; defaults to one on settings.CRON_SCHEDULE.
    orchestrator : IngestionOrchestrator, optional
        Orchestrator; defaults to load_orchestrator_from_config().
    settings : Settings, optional
        Application settings; defaults to get_settings().
    run_scheduler : bool
        Start the cron loop on startup.

    Returns
    -------
    FastAPI
        Configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Wire components on startup, stop the scheduler on shutdown."""
        cfg = settings or get_settings()
        orch = orchestrator
        if orch is None and scheduler is not None:
            orch = scheduler.orchestrator
        if orch is None:
            orch = load_orchestrator_from_config(cfg, store)

        app.state.orchestrator = orch
        app.state.store = store if store is not None else orch.store
        app.state.scheduler = (
            scheduler if scheduler is not None else IngestionScheduler(orch, cfg.CRON_SCHEDULE)
        )

        if run_scheduler:
            await app.state.scheduler.start()

        yield

        await app.state.scheduler.stop()
        await orch.close()

    app = FastAPI(
        title="eventsync API",
        version=__version__,
        description="Sydney event catalogue: listings, import action and ingestion triggers.",
        lifespan=lifespan,
    )
    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    # -----------------------------------------------------------------------
    # HEALTH
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["Monitoring"])
    def health_check(scheduler: IngestionScheduler = Depends(get_scheduler)) -> dict:
        """Service status and scheduler state."""
        return {
            "status": "ok",
            "scheduler_running": scheduler.is_running,
            "run_in_progress": scheduler.run_in_progress,
            "cron_schedule": scheduler.cron_expression,
        }

    # -----------------------------------------------------------------------
    # EVENTS
    # -----------------------------------------------------------------------

    @app.get("/api/events", response_model=EventListResponse, tags=["Events"])
    def list_events(
        status: EventStatus | None = None,
        source: SourceName | None = None,
        q: str | None = Query(default=None, min_length=1),
        include_inactive: bool = False,
        limit: int = Query(default=50, ge=1, le=200),
        offset: int = Query(default=0, ge=0),
        store: EventStore = Depends(get_store),
    ) -> EventListResponse:
        """
        List events ordered by date.

        Inactive events are hidden unless include_inactive is set or they are
        asked for by status.
        """
        filters = {
            "status": status,
            "source": source.value if source else None,
            "query": q,
            "include_inactive": include_inactive,
        }
        try:
            events = store.list_events(**filters, limit=limit, offset=offset)
            total = store.count_events(**filters)
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Event query failed: {str(e)}")
        return EventListResponse(total=total, limit=limit, offset=offset, events=events)

    @app.get("/api/events/{event_id}", response_model=PersistedEvent, tags=["Events"])
    def get_event(event_id: str, store: EventStore = Depends(get_store)) -> PersistedEvent:
        """Fetch one event."""
        try:
            event = store.get(event_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Event query failed: {str(e)}")
        if event is None:
            raise HTTPException(status_code=404, detail="Event not found")
        return event

    @app.post("/api/events/{event_id}/import", response_model=PersistedEvent, tags=["Events"])
    def import_event(
        event_id: str,
        body: ImportRequest,
        store: EventStore = Depends(get_store),
    ) -> PersistedEvent:
        """Mark an event as imported into the curated catalogue."""
        try:
            event = store.mark_imported(
                event_id, imported_by=body.imported_by, notes=body.import_notes
            )
        except EventNotFoundError:
            raise HTTPException(status_code=404, detail="Event not found")
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to import event: {str(e)}")
        logger.info(f"Event {event_id} imported by {body.imported_by}")
        return event

    # -----------------------------------------------------------------------
    # INGESTION
    # -----------------------------------------------------------------------

    @app.post("/api/scrape/trigger", tags=["Ingestion"])
    async def trigger_scrape(scheduler: IngestionScheduler = Depends(get_scheduler)) -> dict:
        """Run ingestion now; waits for a run already in progress."""
        try:
            summary = await scheduler.trigger_now()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Ingestion run failed: {str(e)}")
        return summary.to_report()

    @app.get("/api/scrape/preview", tags=["Ingestion"])
    async def preview_scrape(
        limit: int = Query(default=10, ge=0, le=100),
        orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
    ) -> dict:
        """Dry run: fetch all sources and return what would be reconciled."""
        summary = await orchestrator.run(dry_run=True)
        return {
            **summary.to_report(),
            "candidates": [c.model_dump(mode="json") for c in summary.candidates[:limit]],
        }


def get_app() -> FastAPI:
    """Uvicorn factory: `uvicorn eventsync.api.app:get_app --factory`."""
    return create_app()


__all__ = ["create_app", "get_app"]
