#!/usr/bin/env python3
"""Command-line interface for eventsync.

Commands:
  - eventsync run       : One ingestion run (add --dry-run to write nothing)
  - eventsync schedule  : Run ingestion on the cron schedule until interrupted
  - eventsync serve     : Start the HTTP API (scheduler included)
  - eventsync sources   : List registered sources and the next scheduled run

Typical usage:
  eventsync run --dry-run
  eventsync serve --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from eventsync.configs.settings import Settings, get_settings
from eventsync.monitoring.logging import setup_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="eventsync", description="Sydney event ingestion")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = p.add_subparsers(dest="cmd")

    # run
    pr = sub.add_parser("run", help="Run ingestion once")
    pr.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and merge only; nothing is written",
    )
    pr.add_argument("--json-logs", action="store_true", help="Emit JSON logs")

    # schedule
    sub.add_parser("schedule", help="Run ingestion on CRON_SCHEDULE until interrupted")

    # serve
    ps = sub.add_parser("serve", help="Start the HTTP API")
    ps.add_argument("--host", default="127.0.0.1", help="Bind address")
    ps.add_argument("--port", type=int, default=8000, help="Bind port")
    ps.add_argument("--no-scheduler", action="store_true", help="Do not start the cron loop")

    # sources
    sub.add_parser("sources", help="List registered sources")

    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        from eventsync import __version__

        print(f"eventsync version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    settings = get_settings()
    setup_logging(
        args.log_level or settings.LOG_LEVEL,
        json_logs=bool(getattr(args, "json_logs", False) or settings.JSON_LOGS),
    )

    if args.cmd == "sources":
        return _cmd_sources(settings)

    if args.cmd == "run":
        return asyncio.run(_cmd_run(settings, dry_run=args.dry_run))

    if args.cmd == "schedule":
        asyncio.run(_cmd_schedule(settings))
        return 0

    if args.cmd == "serve":
        import uvicorn

        from eventsync.api.app import create_app

        app = create_app(settings=settings, run_scheduler=not args.no_scheduler)
        uvicorn.run(app, host=args.host, port=args.port, log_level=settings.LOG_LEVEL.lower())
        return 0

    print(f"Error: Unknown command {args.cmd}", file=sys.stderr)
    return 1


def _cmd_sources(settings: Settings) -> int:
    from eventsync.configs.config import Config
    from eventsync.ingestion.registry import list_registered_sources
    from eventsync.ingestion.scheduler import next_run_time, resolve_cron_expression

    configured = Config(settings).get_source_configs(enabled_only=False)

    print(f"{'SOURCE':<15} {'ENABLED':<10} {'URL'}")
    print("-" * 60)
    for name in list_registered_sources():
        section = configured.get(name)
        enabled = "no config" if section is None else ("yes" if section.get("enabled", True) else "no")
        url = (section or {}).get("url", "")
        print(f"{name:<15} {enabled:<10} {url}")

    cron = resolve_cron_expression(settings.CRON_SCHEDULE)
    print(f"\nSchedule: {cron} (next run {next_run_time(cron).isoformat()})")
    return 0


async def _cmd_run(settings: Settings, *, dry_run: bool) -> int:
    from eventsync.ingestion.orchestrator import load_orchestrator_from_config

    orchestrator = load_orchestrator_from_config(settings)
    try:
        summary = await orchestrator.run(dry_run=dry_run)
    finally:
        await orchestrator.close()

    report = summary.to_report()
    if dry_run:
        report["candidates"] = [
            {"title": c.title, "source": c.source_name.value, "url": c.original_url}
            for c in summary.candidates
        ]
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 1 if summary.fatal_error else 0


async def _cmd_schedule(settings: Settings) -> None:
    from eventsync.ingestion.orchestrator import load_orchestrator_from_config
    from eventsync.ingestion.scheduler import IngestionScheduler

    orchestrator = load_orchestrator_from_config(settings)
    scheduler = IngestionScheduler(orchestrator, settings.CRON_SCHEDULE)
    await scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
        await orchestrator.close()


if __name__ == "__main__":
    sys.exit(main())
