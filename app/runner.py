#!/usr/bin/env python3
"""Backup scheduler runner service.

Polls the scheduler database and executes every schedule whose ``next_run``
has passed. With ``--drain`` a single cycle keeps pulling batches until the
backlog is empty or the batch limit is hit.

Usage:
    python runner.py [--interval SECONDS] [--max-schedules N] [--drain] [--once]
"""

import argparse
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from backend.database import close_database, initialize_database
from backend.services.backup_scheduler.schedule_service import ScheduleService, get_schedule_service
from config.logging_config import LOG_FORMAT, DATE_FORMAT, configure_logging, get_logger
from config.settings import settings


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunnerOptions:
    """Polling behaviour of the runner."""

    interval: int = 60
    max_schedules: int = 10
    drain: bool = False
    drain_max_batches: int = 20
    once: bool = False


@dataclass
class CycleReport:
    """What one cycle executed."""

    executed: int = 0
    batches: int = 0
    errors: List[str] = field(default_factory=list)


def setup_logging() -> None:
    """Configure logging from settings; an unknown LOG_LEVEL degrades to INFO on the console."""

    try:
        configure_logging(
            log_dir=settings.LOG_DIR,
            log_level=settings.LOG_LEVEL,
            debug=settings.DEBUG,
            log_filename=settings.LOG_FILENAME,
        )
    except ValueError:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=DATE_FORMAT)
        logger.warning("Invalid LOG_LEVEL=%s; using INFO", settings.LOG_LEVEL)


def extract_run_due_summary(result: Any) -> Tuple[int, List[str]]:
    """Pull the execution count and failure messages out of a run-due summary.

    Args:
        result: Value returned by `ScheduleService.run_due`.

    Returns:
        Tuple[int, List[str]]: Number of recorded executions and one message per failed execution.
    """

    if not isinstance(result, dict):
        return 0, [f"run_due returned {type(result).__name__}, expected dict"]

    try:
        count = int(result.get("count") or 0)
    except (TypeError, ValueError):
        count = 0

    failures = [
        f"schedule_id={item.get('schedule_id')}: {item.get('error_message') or 'Unknown error'}"
        for item in result.get("results") or []
        if isinstance(item, dict) and item.get("status") == "failed"
    ]
    return count, failures


async def _run_batches(service: ScheduleService, options: RunnerOptions) -> CycleReport:
    report = CycleReport()
    limit = max(1, options.drain_max_batches) if options.drain else 1

    while report.batches < limit:
        report.batches += 1
        executed, errors = extract_run_due_summary(await service.run_due(max_schedules=options.max_schedules))
        report.executed += executed
        report.errors.extend(errors)
        if executed < options.max_schedules:
            return report

    if options.drain:
        logger.warning("Drain stopped after %s batches; backlog left for the next cycle", limit)
    return report


async def run_cycle(options: Optional[RunnerOptions] = None, service: Optional[ScheduleService] = None) -> int:
    """Execute due schedules once.

    Failures of the cycle itself are logged and swallowed so the loop keeps polling.

    Args:
        options: Runner options; defaults apply when omitted.
        service: Schedule service; defaults to the process-wide instance.

    Returns:
        int: Number of executions recorded in this cycle.
    """

    options = options or RunnerOptions()
    service = service or get_schedule_service()

    logger.debug("Backup cycle started")
    try:
        report = await _run_batches(service, options)
    except Exception:
        logger.exception("Backup cycle failed")
        return 0

    if report.executed:
        logger.info("Backup cycle executed %s schedule(s) in %s batch(es)", report.executed, report.batches)
    else:
        logger.debug("No schedules due")
    for error in report.errors:
        logger.error("Scheduled backup failed: %s", error)

    return report.executed


async def main_loop(options: RunnerOptions) -> None:
    """Open the database, poll until cancelled (or once), then close it."""

    await initialize_database()
    logger.info(
        "Backup runner started (interval=%ss, max_schedules=%s, drain=%s)",
        options.interval,
        options.max_schedules,
        options.drain,
    )

    try:
        while True:
            await run_cycle(options)
            if options.once:
                return
            await asyncio.sleep(options.interval)
    finally:
        await close_database()


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""

    parser = argparse.ArgumentParser(description="Execute due backup schedules periodically")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.RUNNER_INTERVAL,
        help="Seconds to sleep between cycles",
    )
    parser.add_argument(
        "--max-schedules",
        type=int,
        default=settings.RUNNER_MAX_SCHEDULES,
        help="Schedules executed per batch",
    )
    parser.add_argument("--drain", action="store_true", help="Keep running batches until no due schedules remain")
    parser.add_argument("--drain-max-batches", type=int, default=20, help="Upper bound on batches per drained cycle")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    return parser


def options_from_args(args: argparse.Namespace) -> RunnerOptions:
    return RunnerOptions(
        interval=args.interval,
        max_schedules=args.max_schedules,
        drain=args.drain,
        drain_max_batches=args.drain_max_batches,
        once=args.once,
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point."""

    options = options_from_args(build_parser().parse_args(argv))
    setup_logging()
    asyncio.run(main_loop(options))


if __name__ == "__main__":
    main()
