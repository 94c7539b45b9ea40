"""
Cron scheduler for ingestion runs.

The scheduler is owned by whoever starts it (the CLI `schedule` command or the
API lifespan). A single asyncio.Lock keeps runs from overlapping: a scheduled
tick that finds a run in progress is skipped, a manual trigger waits for it.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from croniter import croniter

from eventsync.ingestion.orchestrator import IngestionOrchestrator, RunSummary

logger = logging.getLogger(__name__)

DEFAULT_CRON_SCHEDULE = "0 */6 * * *"


def resolve_cron_expression(expression: str | None) -> str:
    """Return expression if valid, otherwise the default (every 6 hours)."""
    if expression and croniter.is_valid(expression):
        return expression
    logger.error(f"Invalid cron schedule: {expression!r}. Using default {DEFAULT_CRON_SCHEDULE!r}")
    return DEFAULT_CRON_SCHEDULE


def next_run_time(expression: str, after: datetime | None = None) -> datetime:
    """Next fire time of a cron expression after `after` (default now, UTC)."""
    return croniter(expression, after or datetime.now(UTC)).get_next(datetime)


class IngestionScheduler:
    """Runs the orchestrator on a cron schedule."""

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        cron_expression: str = DEFAULT_CRON_SCHEDULE,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self.orchestrator = orchestrator
        self.cron_expression = resolve_cron_expression(cron_expression)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self.last_summary: RunSummary | None = None

    @property
    def is_running(self) -> bool:
        """True while the schedule loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def run_in_progress(self) -> bool:
        return self._lock.locked()

    def next_run_at(self, after: datetime | None = None) -> datetime:
        """Next fire time of the cron expression after `after` (default now)."""
        return next_run_time(self.cron_expression, after or self._clock())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the schedule loop in the background."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="eventsync-scheduler")
        logger.info(
            f"Scheduler started with schedule {self.cron_expression!r}; "
            f"next run at {self.next_run_at().isoformat()}"
        )

    async def stop(self) -> None:
        """Stop the loop; a run already in progress is cancelled."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        while True:
            delay = (self.next_run_at() - self._clock()).total_seconds()
            await asyncio.sleep(max(delay, 0))
            await self.tick()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def tick(self) -> RunSummary | None:
        """Scheduled run; skipped when another run holds the lock."""
        if self._lock.locked():
            logger.warning("Previous ingestion run still in progress, skipping scheduled run")
            return None
        async with self._lock:
            return await self._execute("scheduled")

    async def trigger_now(self) -> RunSummary:
        """Manual run; waits for any run in progress to finish first."""
        async with self._lock:
            return await self._execute("manual")

    async def _execute(self, trigger: str) -> RunSummary | None:
        logger.info(f"Starting {trigger} ingestion run")
        try:
            summary = await self.orchestrator.run(dry_run=False)
        except Exception as e:
            logger.error(f"{trigger.capitalize()} ingestion run failed: {e}", exc_info=True)
            if trigger == "manual":
                raise
            return None

        self.last_summary = summary
        total = summary.total
        logger.info(
            f"{trigger.capitalize()} run {summary.run_id} completed in {summary.duration_seconds:.2f}s: "
            f"{total.new} new, {total.updated} updated"
        )
        return summary
