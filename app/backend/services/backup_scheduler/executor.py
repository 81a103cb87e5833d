"""Execution engine for backup schedules.

This module contains the orchestration to:
- Execute a schedule (aggregate export data, build the archive, deliver it)
- Execute all due schedules (runner mode)
- Persist execution history and schedule counters in the SQL database
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool

from backend.services.backup_scheduler.archive_builder import build_archive
from backend.services.backup_scheduler.delivery.dispatcher import DeliveryDispatcher
from backend.services.backup_scheduler.exceptions import ScheduleNotFoundError
from backend.services.backup_scheduler.export_aggregator import aggregate_export, empty_record_counts
from backend.services.backup_scheduler.readers import EntityReaders
from backend.services.backup_scheduler.recurrence import compute_next_run, utcnow
from backend.services.backup_scheduler.repository import ExecutionStore, ScheduleStore
from models.sql.backup_scheduler import BackupExecution, BackupSchedule


logger = logging.getLogger(__name__)


class ScheduleExecutor:
    """Execute backup schedules and record their outcome."""

    def __init__(
        self,
        schedule_store: ScheduleStore,
        execution_store: ExecutionStore,
        readers: EntityReaders,
        dispatcher: DeliveryDispatcher,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the executor.

        Args:
            schedule_store: Schedule persistence.
            execution_store: Execution persistence.
            readers: Entity readers used for the export.
            dispatcher: Archive delivery.
            clock: Source of the current time.
        """

        self.schedule_store = schedule_store
        self.execution_store = execution_store
        self.readers = readers
        self.dispatcher = dispatcher
        self.clock = clock

    async def run_now(self, schedule_id: str) -> BackupExecution:
        """Execute a schedule immediately.

        Args:
            schedule_id: Schedule id.

        Returns:
            BackupExecution: The recorded execution.

        Raises:
            ScheduleNotFoundError: When the schedule does not exist.
        """

        schedule = await self.schedule_store.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)

        return await self.execute(schedule, triggered_by="manual")

    async def run_due(
        self,
        *,
        now: Optional[datetime] = None,
        max_schedules: Optional[int] = None,
    ) -> List[BackupExecution]:
        """Execute all due schedules, one after another.

        A schedule whose execution raises is logged and skipped; the remaining
        schedules still run.

        Args:
            now: Reference time; defaults to the clock.
            max_schedules: Maximum schedules to execute.

        Returns:
            List[BackupExecution]: Recorded executions.
        """

        now = now or self.clock()
        due = await self.schedule_store.list_due(now, limit=max_schedules)
        if due:
            logger.info("Due schedules found count=%s now=%s", len(due), now.isoformat())

        executions: List[BackupExecution] = []
        for schedule in due:
            try:
                executions.append(await self.execute(schedule, triggered_by="schedule"))
            except Exception:
                logger.exception("Scheduled execution crashed schedule_id=%s name=%s", schedule.id, schedule.name)

        return executions

    async def execute(self, schedule: BackupSchedule, *, triggered_by: str = "schedule") -> BackupExecution:
        """Run one schedule end to end and record the execution.

        Stages run in order (aggregate, build, deliver); the first failure marks
        the execution `failed` and skips the rest. Cancellation records a
        `cancelled` execution and is re-raised; schedule counters are untouched.

        Args:
            schedule: Schedule to execute.
            triggered_by: schedule|manual.

        Returns:
            BackupExecution: The recorded execution.
        """

        started_at = self.clock()
        started = time.monotonic()
        execution = BackupExecution(
            id=str(uuid.uuid4()),
            schedule_id=schedule.id,
            schedule_name=schedule.name,
            start_time=started_at,
            end_time=None,
            status="running",
            export_size=None,
            storage_path=None,
            download_url=None,
            delivery_status={},
            error_message=None,
            exported_records=empty_record_counts(),
            execution_duration_ms=0,
            triggered_by=triggered_by,
        )
        logger.info("Backup execution started schedule=%s triggered_by=%s", schedule.name, triggered_by)

        try:
            export = await aggregate_export(schedule, self.readers, exported_at=started_at)
            execution.exported_records = dict(export.record_counts)

            archive = await run_in_threadpool(build_archive, export, schedule, generated_at=self.clock())
            execution.export_size = len(archive)

            await self.dispatcher.deliver(archive, schedule, execution)
            execution.status = "completed"

        except asyncio.CancelledError:
            execution.status = "cancelled"
            execution.error_message = "Execution cancelled"
            self._finish(execution, started)
            logger.warning("Backup execution cancelled schedule=%s", schedule.name)
            await asyncio.shield(self.execution_store.append(execution))
            raise

        except Exception as exc:
            execution.status = "failed"
            execution.error_message = str(exc) or exc.__class__.__name__
            logger.error("Backup execution failed schedule=%s error=%s", schedule.name, execution.error_message)

        self._finish(execution, started)
        await self.execution_store.append(execution)
        await self.schedule_store.record_run(
            schedule.id,
            status=execution.status,
            started_at=started_at,
            next_run=self._next_run(schedule),
        )

        logger.info(
            "Backup execution finished schedule=%s status=%s size=%s duration_ms=%s",
            schedule.name,
            execution.status,
            execution.export_size,
            execution.execution_duration_ms,
        )
        return execution

    def _finish(self, execution: BackupExecution, started: float) -> None:
        execution.end_time = self.clock()
        execution.execution_duration_ms = int(round((time.monotonic() - started) * 1000))

    def _next_run(self, schedule: BackupSchedule) -> Optional[datetime]:
        if not schedule.is_active:
            return None
        try:
            return compute_next_run(schedule.recurrence or {}, self.clock())
        except ValueError:
            logger.error("Invalid recurrence; clearing next_run schedule=%s", schedule.name, exc_info=True)
            return None
