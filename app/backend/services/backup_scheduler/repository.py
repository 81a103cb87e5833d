"""Database access layer for backup schedules and executions.

Rows returned by the stores are detached from their session; the session
factory does not expire attributes on commit, so they stay readable.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import delete, func, select, update

from backend.database.sql_handler import SQLHandler
from backend.services.backup_scheduler.recurrence import utcnow
from models.sql.backup_scheduler import BackupExecution, BackupSchedule


class ScheduleStore:
    """Persistence for `BackupSchedule` rows."""

    def __init__(self, handler: SQLHandler):
        """Initialize the store.

        Args:
            handler: SQL database handler.
        """

        self.handler = handler

    async def list_schedules(self) -> List[BackupSchedule]:
        """List all schedules, newest first."""

        async with self.handler.AsyncSessionLocal() as session:
            result = await session.execute(select(BackupSchedule).order_by(BackupSchedule.created_at.desc()))
            return list(result.scalars().all())

    async def get_schedule(self, schedule_id: str) -> Optional[BackupSchedule]:
        """Get a schedule by id."""

        async with self.handler.AsyncSessionLocal() as session:
            return await session.get(BackupSchedule, schedule_id)

    async def insert(self, schedule: BackupSchedule) -> BackupSchedule:
        """Insert a new schedule.

        Args:
            schedule: Transient schedule.

        Returns:
            BackupSchedule: The persisted schedule.
        """

        now = utcnow()
        if schedule.created_at is None:
            schedule.created_at = now
        if schedule.updated_at is None:
            schedule.updated_at = now

        async with self.handler.AsyncSessionLocal() as session:
            session.add(schedule)
            await session.commit()
            await session.refresh(schedule)
            return schedule

    async def update_fields(self, schedule_id: str, **fields: Any) -> Optional[BackupSchedule]:
        """Update the given columns of a schedule.

        Args:
            schedule_id: Schedule id.
            **fields: Column values to set.

        Returns:
            Optional[BackupSchedule]: The updated schedule, or None if missing.
        """

        async with self.handler.AsyncSessionLocal() as session:
            schedule = await session.get(BackupSchedule, schedule_id)
            if schedule is None:
                return None

            for key, value in fields.items():
                setattr(schedule, key, value)
            schedule.updated_at = utcnow()

            await session.commit()
            await session.refresh(schedule)
            return schedule

    async def delete(self, schedule_id: str) -> bool:
        """Delete a schedule. Its executions are kept.

        Returns:
            bool: True if a row was deleted.
        """

        async with self.handler.AsyncSessionLocal() as session:
            result = await session.execute(delete(BackupSchedule).where(BackupSchedule.id == schedule_id))
            await session.commit()
            return bool(result.rowcount)

    async def list_due(self, now: datetime, *, limit: Optional[int] = None) -> List[BackupSchedule]:
        """List active schedules whose `next_run` is at or before `now`.

        Args:
            now: Reference time.
            limit: Optional maximum number of schedules.

        Returns:
            List[BackupSchedule]: Due schedules ordered by `next_run`.
        """

        stmt = (
            select(BackupSchedule)
            .where(BackupSchedule.is_active.is_(True))
            .where(BackupSchedule.next_run.is_not(None))
            .where(BackupSchedule.next_run <= now)
            .order_by(BackupSchedule.next_run.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.handler.AsyncSessionLocal() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def record_run(
        self,
        schedule_id: str,
        *,
        status: str,
        started_at: datetime,
        next_run: Optional[datetime],
    ) -> None:
        """Record a terminal execution on its schedule in one UPDATE statement.

        Args:
            schedule_id: Schedule id.
            status: completed|failed.
            started_at: Execution start time (becomes `last_run`).
            next_run: Recomputed next run time.
        """

        succeeded = 1 if status == "completed" else 0
        failed = 1 if status == "failed" else 0

        async with self.handler.AsyncSessionLocal() as session:
            await session.execute(
                update(BackupSchedule)
                .where(BackupSchedule.id == schedule_id)
                .values(
                    last_run=started_at,
                    next_run=next_run,
                    total_runs=BackupSchedule.total_runs + 1,
                    successful_runs=BackupSchedule.successful_runs + succeeded,
                    failed_runs=BackupSchedule.failed_runs + failed,
                    updated_at=utcnow(),
                )
            )
            await session.commit()

    async def count_schedules(self, *, active_only: bool = False) -> int:
        """Count schedules."""

        stmt = select(func.count()).select_from(BackupSchedule)
        if active_only:
            stmt = stmt.where(BackupSchedule.is_active.is_(True))

        async with self.handler.AsyncSessionLocal() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def earliest_next_run(self) -> Optional[datetime]:
        """Return the earliest `next_run` among active schedules."""

        stmt = (
            select(BackupSchedule.next_run)
            .where(BackupSchedule.is_active.is_(True))
            .where(BackupSchedule.next_run.is_not(None))
            .order_by(BackupSchedule.next_run.asc())
            .limit(1)
        )
        async with self.handler.AsyncSessionLocal() as session:
            return (await session.execute(stmt)).scalar_one_or_none()


class ExecutionStore:
    """Append-only persistence for `BackupExecution` rows."""

    def __init__(self, handler: SQLHandler):
        """Initialize the store.

        Args:
            handler: SQL database handler.
        """

        self.handler = handler

    async def append(self, execution: BackupExecution) -> BackupExecution:
        """Persist a finished execution.

        Args:
            execution: Transient execution.

        Returns:
            BackupExecution: The persisted execution.
        """

        async with self.handler.AsyncSessionLocal() as session:
            session.add(execution)
            await session.commit()
            return execution

    async def get_execution(self, execution_id: str) -> Optional[BackupExecution]:
        """Get an execution by id."""

        async with self.handler.AsyncSessionLocal() as session:
            return await session.get(BackupExecution, execution_id)

    async def list_executions(self, *, schedule_id: Optional[str] = None, limit: int = 50) -> List[BackupExecution]:
        """List executions, newest first.

        Args:
            schedule_id: Optional schedule filter.
            limit: Maximum number of executions.

        Returns:
            List[BackupExecution]: Executions ordered by start time descending.
        """

        stmt = select(BackupExecution)
        if schedule_id is not None:
            stmt = stmt.where(BackupExecution.schedule_id == schedule_id)
        stmt = stmt.order_by(BackupExecution.start_time.desc()).limit(limit)

        async with self.handler.AsyncSessionLocal() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
