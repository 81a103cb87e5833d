"""Serialization helpers for backup scheduler models.

These helpers convert SQLAlchemy models into JSON-friendly dictionaries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from models.sql.backup_scheduler import BackupExecution, BackupSchedule


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def schedule_to_dict(schedule: BackupSchedule) -> Dict[str, Any]:
    """Convert a BackupSchedule to a JSON-friendly dict.

    Args:
        schedule: Schedule model.

    Returns:
        Dict[str, Any]: Serialized schedule.
    """

    return {
        "id": schedule.id,
        "name": schedule.name,
        "description": schedule.description,
        "created_by": schedule.created_by,
        "recurrence": schedule.recurrence or {},
        "export_config": schedule.export_config or {},
        "delivery_config": schedule.delivery_config or {},
        "is_active": bool(schedule.is_active),
        "total_runs": int(schedule.total_runs or 0),
        "successful_runs": int(schedule.successful_runs or 0),
        "failed_runs": int(schedule.failed_runs or 0),
        "last_run": _iso(schedule.last_run),
        "next_run": _iso(schedule.next_run),
        "created_at": _iso(schedule.created_at),
        "updated_at": _iso(schedule.updated_at),
    }


def execution_to_dict(execution: BackupExecution) -> Dict[str, Any]:
    """Convert a BackupExecution to a JSON-friendly dict.

    Args:
        execution: Execution model.

    Returns:
        Dict[str, Any]: Serialized execution.
    """

    return {
        "id": execution.id,
        "schedule_id": execution.schedule_id,
        "schedule_name": execution.schedule_name,
        "start_time": _iso(execution.start_time),
        "end_time": _iso(execution.end_time),
        "status": execution.status,
        "export_size": execution.export_size,
        "storage_path": execution.storage_path,
        "download_url": execution.download_url,
        "delivery_status": execution.delivery_status or {},
        "error_message": execution.error_message,
        "exported_records": execution.exported_records or {},
        "execution_duration_ms": execution.execution_duration_ms,
        "triggered_by": execution.triggered_by,
    }
