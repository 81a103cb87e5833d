"""Schedule CRUD and execution service for the backup scheduler."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from backend.database import get_database_handler
from backend.database.sql_handler import SQLHandler
from backend.services.backup_scheduler.delivery.dispatcher import DeliveryDispatcher
from backend.services.backup_scheduler.delivery.email_queue import SmtpEmailQueue
from backend.services.backup_scheduler.exceptions import ScheduleNotFoundError
from backend.services.backup_scheduler.executor import ScheduleExecutor
from backend.services.backup_scheduler.readers import EntityReaders, HttpEntityReaders
from backend.services.backup_scheduler.recurrence import compute_initial_next_run, utcnow
from backend.services.backup_scheduler.repository import ExecutionStore, ScheduleStore
from backend.services.backup_scheduler.schemas import (
    DeliveryConfigRequest,
    ExportConfig,
    RecurrenceConfig,
    dump_config,
)
from backend.services.backup_scheduler.serializers import execution_to_dict, schedule_to_dict
from backend.services.backup_scheduler.stats import compute_stats
from config.settings import settings
from models.sql.backup_scheduler import BackupSchedule


logger = logging.getLogger(__name__)


def _default_readers() -> EntityReaders:
    return HttpEntityReaders(
        settings.ENTITY_API_URL,
        api_key=settings.get_entity_api_key(),
        timeout=settings.ENTITY_API_TIMEOUT_SECONDS,
    )


class ScheduleService:
    """Service for managing backup schedules and executing them.

    Configuration payloads are validated with the pydantic config models and
    stored snake_case; invalid payloads raise `pydantic.ValidationError`.
    """

    def __init__(
        self,
        handler: SQLHandler,
        *,
        readers: Optional[EntityReaders] = None,
        dispatcher: Optional[DeliveryDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the service.

        Args:
            handler: SQL handler.
            readers: Entity readers; defaults to the HTTP readers from settings.
            dispatcher: Delivery dispatcher; defaults to SMTP email and the storage factory.
            clock: Source of the current time.
        """

        self.handler = handler
        self.clock = clock
        self.schedules = ScheduleStore(handler)
        self.executions = ExecutionStore(handler)
        self.executor = ScheduleExecutor(
            self.schedules,
            self.executions,
            readers or _default_readers(),
            dispatcher or DeliveryDispatcher(SmtpEmailQueue(), clock=clock),
            clock=clock,
        )

    async def _require(self, schedule_id: str) -> BackupSchedule:
        schedule = await self.schedules.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    async def list_schedules(self) -> List[Dict[str, Any]]:
        """List schedules."""

        return [schedule_to_dict(s) for s in await self.schedules.list_schedules()]

    async def get_schedule(self, schedule_id: str) -> Dict[str, Any]:
        """Get a schedule by id."""

        return schedule_to_dict(await self._require(schedule_id))

    async def create_schedule(
        self,
        *,
        name: str,
        recurrence: Dict[str, Any],
        export_config: Dict[str, Any],
        delivery_config: Dict[str, Any],
        description: Optional[str] = None,
        created_by: str = "system",
        is_active: bool = True,
    ) -> Dict[str, Any]:
        """Create a schedule.

        Args:
            name: Schedule name.
            recurrence: Recurrence config.
            export_config: Export config.
            delivery_config: Delivery config.
            description: Optional description.
            created_by: Identity of the creator.
            is_active: Whether the schedule starts active.

        Returns:
            Dict[str, Any]: The created schedule.
        """

        recurrence_model = RecurrenceConfig.model_validate(recurrence)
        schedule = BackupSchedule(
            name=name,
            description=description,
            created_by=created_by,
            recurrence=dump_config(recurrence_model),
            export_config=dump_config(ExportConfig.model_validate(export_config)),
            delivery_config=dump_config(DeliveryConfigRequest.model_validate(delivery_config)),
            is_active=is_active,
            total_runs=0,
            successful_runs=0,
            failed_runs=0,
            last_run=None,
            next_run=compute_initial_next_run(recurrence_model, now=self.clock(), is_active=is_active),
        )
        created = await self.schedules.insert(schedule)
        logger.info("Backup schedule created id=%s name=%s next_run=%s", created.id, created.name, created.next_run)
        return schedule_to_dict(created)

    async def update_schedule(
        self,
        schedule_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        recurrence: Optional[Dict[str, Any]] = None,
        export_config: Optional[Dict[str, Any]] = None,
        delivery_config: Optional[Dict[str, Any]] = None,
        is_active: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Update a schedule.

        `next_run` is recomputed when the recurrence or the activity changes.
        """

        schedule = await self._require(schedule_id)

        fields: Dict[str, Any] = {}
        if name is not None:
            fields["name"] = name
        if description is not None:
            fields["description"] = description
        if export_config is not None:
            fields["export_config"] = dump_config(ExportConfig.model_validate(export_config))
        if delivery_config is not None:
            fields["delivery_config"] = dump_config(DeliveryConfigRequest.model_validate(delivery_config))

        if recurrence is not None:
            fields["recurrence"] = dump_config(RecurrenceConfig.model_validate(recurrence))
        if is_active is not None:
            fields["is_active"] = is_active

        active = schedule.is_active if is_active is None else is_active
        if recurrence is not None or active != schedule.is_active:
            fields["next_run"] = compute_initial_next_run(
                fields.get("recurrence", schedule.recurrence or {}),
                now=self.clock(),
                is_active=active,
            )

        updated = await self.schedules.update_fields(schedule_id, **fields)
        if updated is None:
            raise ScheduleNotFoundError(schedule_id)

        logger.info("Backup schedule updated id=%s fields=%s", schedule_id, ",".join(sorted(fields)) or "-")
        return schedule_to_dict(updated)

    async def toggle_schedule(self, schedule_id: str) -> Dict[str, Any]:
        """Flip a schedule between active and inactive.

        Reactivating recomputes `next_run` from now; deactivating clears it.
        """

        schedule = await self._require(schedule_id)
        return await self.update_schedule(schedule_id, is_active=not schedule.is_active)

    async def delete_schedule(self, schedule_id: str) -> None:
        """Delete a schedule. Its execution history is kept."""

        if not await self.schedules.delete(schedule_id):
            raise ScheduleNotFoundError(schedule_id)
        logger.info("Backup schedule deleted id=%s", schedule_id)

    async def list_due_schedules(self, *, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """List schedules that are due, without executing them."""

        due = await self.schedules.list_due(now or self.clock())
        return [schedule_to_dict(s) for s in due]

    async def list_executions(self, *, schedule_id: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        """List executions, newest first."""

        items = await self.executions.list_executions(schedule_id=schedule_id, limit=limit)
        return [execution_to_dict(e) for e in items]

    async def get_stats(self) -> Dict[str, Any]:
        """Return aggregated statistics."""

        stats = await compute_stats(self.schedules, self.executions, window=settings.STATS_EXECUTION_WINDOW)
        return stats.model_dump(mode="json")

    async def run_now(self, schedule_id: str) -> Dict[str, Any]:
        """Execute a schedule immediately.

        Raises:
            ScheduleNotFoundError: When the schedule does not exist.
        """

        return execution_to_dict(await self.executor.run_now(schedule_id))

    async def run_due(self, *, now: Optional[datetime] = None, max_schedules: Optional[int] = None) -> Dict[str, Any]:
        """Execute all due schedules.

        Args:
            now: Reference time.
            max_schedules: Maximum schedules to execute.

        Returns:
            Dict[str, Any]: Summary with one entry per recorded execution.
        """

        now = now or self.clock()
        executions = await self.executor.run_due(now=now, max_schedules=max_schedules)
        return {
            "now": now.isoformat(),
            "count": len(executions),
            "results": [execution_to_dict(e) for e in executions],
        }


# Singleton instance
_schedule_service: Optional[ScheduleService] = None


def get_schedule_service() -> ScheduleService:
    """Get the singleton schedule service instance.

    Returns:
        ScheduleService: The schedule service.
    """
    global _schedule_service
    if _schedule_service is None:
        _schedule_service = ScheduleService(get_database_handler())
    return _schedule_service
