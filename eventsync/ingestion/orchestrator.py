"""
Ingestion Orchestrator.

Runs every registered source adapter concurrently, merges their candidates and
reconciles them one by one against the event store:

    fetch (fan-out) -> merge (fan-in) -> diff -> status -> write -> staleness sweep

A dry run stops after the merge and writes nothing.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime, timedelta
from typing import Any

from eventsync.configs.config import Config
from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.adapters.base_adapter import BaseSourceAdapter
from eventsync.ingestion.diff import DiffResult, diff_event
from eventsync.ingestion.persist import EventStore, create_store
from eventsync.ingestion.registry import build_adapters_from_config
from eventsync.ingestion.status import (
    DEFAULT_STALENESS_WINDOW,
    SWEEP_PROTECTED_STATUSES,
    derive_status,
    stale_threshold,
)
from eventsync.monitoring.logging import with_context
from eventsync.schemas.event import CONTENT_FIELDS, EventCandidate, EventStatus, PersistedEvent

logger = logging.getLogger(__name__)


# =============================================================================
# RUN SUMMARY
# =============================================================================


@dataclass
class SourceStats:
    """Per-source counters of one run."""

    scraped: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class RunSummary:
    """
    Outcome of one ingestion run.

    `candidates` is only filled on dry runs. `fatal_error` is set when the run
    aborted; counters then reflect the work done before the abort.
    """

    run_id: str
    dry_run: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = None
    sources: dict[str, SourceStats] = field(default_factory=dict)
    inactive_marked: int = 0
    fatal_error: str | None = None
    candidates: list[EventCandidate] = field(default_factory=list)

    def stats_for(self, source_name: str) -> SourceStats:
        return self.sources.setdefault(source_name, SourceStats())

    @property
    def total(self) -> SourceStats:
        total = SourceStats()
        for stats in self.sources.values():
            for f in fields(SourceStats):
                setattr(total, f.name, getattr(total, f.name) + getattr(stats, f.name))
        return total

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, dict[str, int]]:
        """Counters per source plus a "total" row."""
        data = {name: stats.to_dict() for name, stats in self.sources.items()}
        data["total"] = self.total.to_dict()
        return data

    def to_report(self) -> dict[str, Any]:
        """Counters plus run metadata, for the CLI and the API."""
        return {
            "run_id": self.run_id,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "stats": self.to_dict(),
            "inactive_marked": self.inactive_marked,
            "fatal_error": self.fatal_error,
        }


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class IngestionOrchestrator:
    """
    Coordinates source adapters and the event store.

    Responsibilities:
    - Fetch all sources concurrently; a failing source contributes nothing
    - Reconcile candidates sequentially, one store transaction each
    - Sweep records not refreshed within the staleness window
    """

    def __init__(
        self,
        adapters: list[BaseSourceAdapter] | None = None,
        store: EventStore | None = None,
        *,
        staleness_window: timedelta = DEFAULT_STALENESS_WINDOW,
        protect_imported: bool = False,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            adapters: Source adapters, in registration order
            store: Event store; required for live runs
            staleness_window: Age after which unrefreshed records become inactive
            protect_imported: Keep imported records imported when they change
            clock: Returns the current time (tests pin it)
        """
        self.adapters: list[BaseSourceAdapter] = []
        self.store = store
        self.staleness_window = staleness_window
        self.protect_imported = protect_imported
        self._clock = clock or (lambda: datetime.now(UTC))
        for adapter in adapters or []:
            self.register_adapter(adapter)

    # ========================================================================
    # ADAPTER MANAGEMENT
    # ========================================================================

    def register_adapter(self, adapter: BaseSourceAdapter) -> None:
        """Append an adapter; candidates are merged in registration order."""
        self.adapters.append(adapter)
        logger.info(f"Registered adapter: {adapter.source_name.value} (type: {adapter.source_type.value})")

    def list_sources(self) -> list[dict[str, str]]:
        return [
            {"name": a.source_name.value, "type": a.source_type.value, "url": a.config.url}
            for a in self.adapters
        ]

    # ========================================================================
    # EXECUTION
    # ========================================================================

    async def run(self, dry_run: bool = False) -> RunSummary:
        """
        Execute one ingestion run.

        Never raises for source or per-event failures. Anything else aborts the
        run and is reported through RunSummary.fatal_error.

        Args:
            dry_run: Fetch and merge only; nothing is written

        Returns:
            RunSummary
        """
        summary = RunSummary(run_id=uuid.uuid4().hex[:8], dry_run=dry_run, started_at=self._clock())
        log = with_context(logger, run_id=summary.run_id)
        for adapter in self.adapters:
            summary.stats_for(adapter.source_name.value)

        log.info(f"Starting ingestion run (dry_run={dry_run}, sources={len(self.adapters)})")
        try:
            candidates = await self.gather_candidates(summary)
            log.info(f"Total events scraped: {len(candidates)}")

            if dry_run:
                summary.candidates = candidates
                for i, candidate in enumerate(candidates[:5], start=1):
                    log.info(f"[DRY RUN] {i}. {candidate.title} ({candidate.source_name.value})")
            else:
                if self.store is None:
                    raise RuntimeError("A live run needs an event store")
                await asyncio.to_thread(self._persist_all, candidates, summary)
        except Exception as e:
            log.error(f"Fatal ingestion error: {e}", exc_info=True)
            summary.fatal_error = str(e) or type(e).__name__

        summary.ended_at = self._clock()
        self._log_summary(summary)
        return summary

    async def gather_candidates(self, summary: RunSummary | None = None) -> list[EventCandidate]:
        """
        Fetch all adapters concurrently and concatenate their candidates.

        An adapter that raises despite its contract is logged and counted as
        empty.
        """
        results = await asyncio.gather(
            *(adapter.fetch_candidates() for adapter in self.adapters),
            return_exceptions=True,
        )

        merged: list[EventCandidate] = []
        for adapter, result in zip(self.adapters, results, strict=True):
            name = adapter.source_name.value
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"[{name}] Failed: {result}")
                result = []
            if summary is not None:
                summary.stats_for(name).scraped += len(result)
            merged.extend(result)

        await self._close_adapters()
        return merged

    def _persist_all(self, candidates: list[EventCandidate], summary: RunSummary) -> None:
        log = with_context(logger, run_id=summary.run_id)
        for candidate in candidates:
            stats = summary.stats_for(candidate.source_name.value)
            try:
                outcome = self.process_candidate(candidate, run_id=summary.run_id)
            except Exception as e:
                log.error(f"Error processing event '{candidate.title}': {e}")
                stats.errors += 1
                continue
            setattr(stats, outcome, getattr(stats, outcome) + 1)

        summary.inactive_marked = self.sweep_stale()
        log.info(f"Marked {summary.inactive_marked} events as inactive")

    def process_candidate(self, candidate: EventCandidate, *, run_id: str | None = None) -> str:
        """
        Reconcile one candidate with the store.

        Returns:
            "new", "updated" or "unchanged"
        """
        log = with_context(logger, run_id=run_id, source=candidate.source_name.value)
        now = self._clock()
        existing = self.store.find_by_natural_key(candidate.source_name.value, candidate.source_event_id)
        diff = diff_event(candidate, existing)
        status = derive_status(
            diff,
            existing.status if existing else None,
            protect_imported=self.protect_imported,
        )

        if diff.is_new:
            self.store.insert(
                PersistedEvent.from_candidate(candidate, status=EventStatus.NEW, refreshed_at=now)
            )
            return "new"

        if diff.is_updated:
            self._warn_on_imported_change(log, existing, status, diff)
            self.store.update_content(
                existing.event_id,
                self._content_for_update(candidate, existing),
                status=status,
                refreshed_at=now,
            )
            return "updated"

        self.store.touch(existing.event_id, now)
        return "unchanged"

    @staticmethod
    def _content_for_update(candidate: EventCandidate, existing: PersistedEvent) -> dict[str, Any]:
        content = {name: getattr(candidate, name) for name in CONTENT_FIELDS}
        # An estimated date never replaces the stored one
        if candidate.date_time_estimated:
            content["date_time"] = existing.date_time
            content["date_time_estimated"] = existing.date_time_estimated
        return content

    @staticmethod
    def _warn_on_imported_change(log, existing: PersistedEvent, status: EventStatus, diff: DiffResult) -> None:
        if existing.status != EventStatus.IMPORTED:
            return
        changed = ", ".join(diff.changes)
        if status == EventStatus.UPDATED:
            log.warning(
                f"Imported event '{existing.title}' ({existing.event_id}) changed upstream "
                f"[{changed}]; status set to updated for re-review"
            )
        else:
            log.info(f"Imported event '{existing.title}' changed upstream [{changed}]; kept imported")

    def sweep_stale(self) -> int:
        """Mark records not refreshed within the staleness window as inactive."""
        threshold = stale_threshold(self._clock(), self.staleness_window)
        return self.store.mark_stale_inactive(threshold, SWEEP_PROTECTED_STATUSES)

    async def _close_adapters(self) -> None:
        for adapter in self.adapters:
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Failed to close adapter {adapter.source_name.value}: {e}")

    async def close(self) -> None:
        """Release adapters and the store."""
        await self._close_adapters()
        if self.store is not None:
            await asyncio.to_thread(self.store.close)

    def _log_summary(self, summary: RunSummary) -> None:
        log = with_context(logger, run_id=summary.run_id)
        log.info("=" * 50)
        log.info("SCRAPING SUMMARY")
        for name, stats in summary.sources.items():
            log.info(
                f"{name}: {stats.scraped} scraped, {stats.new} new, {stats.updated} updated, "
                f"{stats.unchanged} unchanged, {stats.errors} errors"
            )
        total = summary.total
        log.info(
            f"Total: {total.scraped} scraped, {total.new} new, {total.updated} updated, "
            f"{total.errors} errors, {summary.inactive_marked} marked inactive "
            f"in {summary.duration_seconds:.2f}s"
        )
        log.info("=" * 50)


def load_orchestrator_from_config(
    settings: Settings | None = None,
    store: EventStore | None = None,
) -> IngestionOrchestrator:
    """
    Create an orchestrator from settings and ingestion.yaml.

    Args:
        settings: Application settings; defaults to get_settings()
        store: Event store; built from DATABASE_URL when omitted

    Returns:
        Configured IngestionOrchestrator
    """
    settings = settings or get_settings()
    return IngestionOrchestrator(
        adapters=build_adapters_from_config(Config(settings)),
        store=store if store is not None else create_store(settings),
        staleness_window=timedelta(days=settings.STALENESS_DAYS),
        protect_imported=settings.PROTECT_IMPORTED_ON_UPDATE,
    )
