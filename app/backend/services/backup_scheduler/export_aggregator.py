"""Collect the entity collections a schedule exports.

Any reader failure aborts the whole export with `ExportAggregationError`; no
partial exports are produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.services.backup_scheduler.exceptions import ExportAggregationError
from backend.services.backup_scheduler.readers import EntityReaders
from backend.services.backup_scheduler.schemas import ExportConfig
from config.settings import settings
from models.sql.backup_scheduler import BackupSchedule


logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.0.0"

# Always present in record counts, whether or not the set is included.
DEFAULT_ENTITY_SETS = ("events", "users", "clubs", "zones", "event_types")


def empty_record_counts() -> Dict[str, int]:
    """Return zeroed record counts for the default entity sets."""

    return {name: 0 for name in DEFAULT_ENTITY_SETS}


@dataclass
class ExportData:
    """Aggregated export payload.

    Attributes:
        collections: Entity set name -> records, for included sets only.
        record_counts: Entity set name -> number of records.
        export_info: Metadata record when `include_metadata` is set.
    """

    collections: Dict[str, List[Any]] = field(default_factory=dict)
    record_counts: Dict[str, int] = field(default_factory=empty_record_counts)
    export_info: Optional[Dict[str, Any]] = None

    @property
    def total_records(self) -> int:
        return sum(self.record_counts.values())


async def aggregate_export(
    schedule: BackupSchedule,
    readers: EntityReaders,
    *,
    exported_at: datetime,
) -> ExportData:
    """Read every entity set enabled in the schedule's export config.

    Args:
        schedule: Schedule being executed.
        readers: Entity readers.
        exported_at: Export timestamp recorded in the metadata.

    Returns:
        ExportData: Collections, counts and optional metadata.

    Raises:
        ExportAggregationError: When the config is invalid or any reader fails.
    """

    try:
        export_config = ExportConfig.model_validate(schedule.export_config or {})
    except ValueError as exc:
        raise ExportAggregationError(f"Invalid export configuration: {exc}") from exc

    sources = [
        ("clubs", export_config.include_clubs, readers.list_clubs),
        ("zones", export_config.include_zones, readers.list_zones),
        ("event_types", export_config.include_event_types, readers.list_event_types),
        ("events", export_config.include_events, lambda: readers.list_events(export_config.date_range)),
        ("users", export_config.include_users, readers.list_users),
        ("schedules", export_config.include_schedules, readers.list_schedules),
    ]

    export = ExportData()
    for name, enabled, read in sources:
        if not enabled:
            continue
        try:
            records = list(await read() or [])
        except Exception as exc:
            logger.exception("Reading %s failed for schedule=%s", name, schedule.name)
            raise ExportAggregationError(f"Failed to prepare export data: reading {name} failed: {exc}") from exc

        export.collections[name] = records
        export.record_counts[name] = len(records)

    if export_config.include_metadata:
        export.export_info = {
            "exportedAt": exported_at.isoformat(),
            "version": EXPORT_FORMAT_VERSION,
            "scheduleName": schedule.name,
            "scheduleId": schedule.id,
            "totalRecords": export.total_records,
            "exportConfig": export_config.model_dump(mode="json", by_alias=True),
            "appVersion": settings.APP_VERSION,
        }

    logger.info(
        "Export aggregated schedule=%s sets=%s total_records=%s",
        schedule.name,
        ",".join(export.collections) or "-",
        export.total_records,
    )
    return export
