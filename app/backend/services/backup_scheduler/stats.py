"""Read-only statistics over schedules and recent executions."""

from __future__ import annotations

from backend.services.backup_scheduler.repository import ExecutionStore, ScheduleStore
from backend.services.backup_scheduler.schemas import BackupStats


async def compute_stats(
    schedule_store: ScheduleStore,
    execution_store: ExecutionStore,
    *,
    window: int = 100,
) -> BackupStats:
    """Aggregate schedule counts and statistics over the newest executions.

    Args:
        schedule_store: Schedule persistence.
        execution_store: Execution persistence.
        window: Number of most recent executions considered.

    Returns:
        BackupStats: Aggregated statistics. Empty history yields zeros.
    """

    executions = await execution_store.list_executions(limit=window)
    completed = [e for e in executions if e.status == "completed"]

    durations = [e.execution_duration_ms or 0 for e in completed]
    last_success = max((e.start_time for e in completed), default=None)

    return BackupStats(
        total_schedules=await schedule_store.count_schedules(),
        active_schedules=await schedule_store.count_schedules(active_only=True),
        total_executions=len(executions),
        successful_executions=len(completed),
        failed_executions=sum(1 for e in executions if e.status == "failed"),
        last_successful_backup=last_success,
        next_scheduled_backup=await schedule_store.earliest_next_run(),
        total_backup_size=sum(e.export_size or 0 for e in executions),
        average_backup_time=(sum(durations) / len(durations)) if durations else 0.0,
    )
