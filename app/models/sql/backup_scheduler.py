"""Backup scheduler models.

This module contains SQLAlchemy ORM models used to persist:
- Backup schedules (what to export, how to deliver it, and when)
- Backup executions (append-only run history)

Executions deliberately carry no foreign key to schedules: history stays
readable after a schedule is deleted.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, Integer, JSON, String, Text
from sqlalchemy.sql import func

from models.sql.base import Base, UTCDateTime


class BackupSchedule(Base):
    """A named, recurring export job.

    Attributes:
        id (str): Primary key UUID.
        name (str): Human-friendly name.
        description (str): Optional description.
        created_by (str): Identity of the creator.
        recurrence (dict): frequency/time/timezone/weekday/day_of_month/custom_cron.
        export_config (dict): Entity inclusion flags, compression level, date range.
        delivery_config (dict): Delivery method plus email/storage sub-configs.
        is_active (bool): Whether the poller considers this schedule.
        total_runs (int): Terminal executions counted so far.
        successful_runs (int): Completed executions.
        failed_runs (int): Failed executions.
        last_run (datetime): Start time of the most recent execution.
        next_run (datetime): Next due time (UTC), empty while inactive.
        created_at (datetime): Creation timestamp.
        updated_at (datetime): Update timestamp.
    """

    __tablename__ = "backup_schedules"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=False, default="system")

    recurrence = Column(JSON, nullable=False, default=dict)
    export_config = Column(JSON, nullable=False, default=dict)
    delivery_config = Column(JSON, nullable=False, default=dict)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    total_runs = Column(Integer, nullable=False, default=0)
    successful_runs = Column(Integer, nullable=False, default=0)
    failed_runs = Column(Integer, nullable=False, default=0)

    last_run = Column(UTCDateTime(), nullable=True)
    next_run = Column(UTCDateTime(), nullable=True, index=True)

    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime(), server_default=func.now(), onupdate=func.now())


class BackupExecution(Base):
    """One attempt to run a schedule.

    Attributes:
        id (str): Primary key UUID.
        schedule_id (str): Owning schedule id (not a foreign key).
        schedule_name (str): Schedule name at execution time.
        start_time (datetime): Execution start.
        end_time (datetime): Execution end.
        status (str): running|completed|failed|cancelled.
        export_size (int): Archive size in bytes.
        storage_path (str): Object path when storage delivery succeeded.
        download_url (str): Download link (not generated by this service).
        delivery_status (dict): Per-channel status, e.g. {"email": "sent"}.
        error_message (str): Error summary if failed.
        exported_records (dict): Record counts per entity set.
        execution_duration_ms (int): Wall-clock duration in milliseconds.
        triggered_by (str): schedule|manual.
    """

    __tablename__ = "backup_executions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    schedule_id = Column(String, nullable=False, index=True)
    schedule_name = Column(String(255), nullable=False)

    start_time = Column(UTCDateTime(), nullable=False, index=True)
    end_time = Column(UTCDateTime(), nullable=True)

    status = Column(String(32), nullable=False, default="running", index=True)

    export_size = Column(Integer, nullable=True)
    storage_path = Column(String(1024), nullable=True)
    download_url = Column(String(2048), nullable=True)

    delivery_status = Column(JSON, nullable=False, default=dict)
    error_message = Column(Text, nullable=True)

    exported_records = Column(JSON, nullable=False, default=dict)
    execution_duration_ms = Column(Integer, nullable=False, default=0)
    triggered_by = Column(String(32), nullable=False, default="schedule")
