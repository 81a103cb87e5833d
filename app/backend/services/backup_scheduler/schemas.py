"""Configuration models for backup schedules.

Schedules store these as JSON columns. The models accept both snake_case and
camelCase keys (`day_of_month` / `dayOfMonth`) and are persisted snake_case via
`model_dump(mode="json")`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


Frequency = Literal["daily", "weekly", "monthly", "custom"]
CompressionLevel = Literal["low", "medium", "high"]
DeliveryMethod = Literal["email", "storage", "both"]
TriggeredBy = Literal["schedule", "manual"]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecurrenceConfig(_ConfigModel):
    """When a schedule runs."""

    frequency: Frequency = Field(..., description="daily|weekly|monthly|custom")
    time: str = Field(..., description="Time of day in HH:MM format")
    timezone: str = Field("UTC", description="IANA timezone the time of day is expressed in")
    weekday: Optional[int] = Field(None, ge=0, le=6, description="0-6 for weekly schedules (0 = Sunday)")
    day_of_month: Optional[int] = Field(None, ge=1, le=31, description="1-31 for monthly schedules")
    custom_cron: Optional[str] = Field(
        None,
        description="Stored as-is; custom schedules currently run daily at `time`",
    )

    @field_validator("time")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        from backend.services.backup_scheduler.recurrence import parse_time_hhmm

        hour, minute = parse_time_hhmm(value)
        return f"{hour:02d}:{minute:02d}"

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        name = str(value or "").strip() or "UTC"
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return name

    @model_validator(mode="after")
    def _require_day_fields(self) -> "RecurrenceConfig":
        if self.frequency == "weekly" and self.weekday is None:
            raise ValueError("weekday is required for weekly schedules")
        if self.frequency == "monthly" and self.day_of_month is None:
            raise ValueError("day_of_month is required for monthly schedules")
        return self


class DateRange(_ConfigModel):
    """Optional date filter applied to time-based entity sets."""

    start: Optional[str] = None
    end: Optional[str] = None


class ExportConfig(_ConfigModel):
    """Which entity sets to export and how to package them."""

    include_events: bool = False
    include_users: bool = False
    include_clubs: bool = False
    include_zones: bool = False
    include_event_types: bool = False
    include_schedules: bool = False
    include_metadata: bool = False
    include_manifest: bool = False
    compression_level: CompressionLevel = "medium"
    date_range: Optional[DateRange] = None


class EmailDeliveryConfig(_ConfigModel):
    """Email delivery settings."""

    recipients: List[str] = Field(default_factory=list)
    subject: Optional[str] = Field(None, description="Subject template; `{date}` is replaced by today's date")
    include_metadata: bool = False
    max_file_size: float = Field(25, gt=0, description="Maximum attachment size in MB")


class StorageDeliveryConfig(_ConfigModel):
    """Object storage delivery settings."""

    # Free-form on purpose: unknown providers fail at delivery time.
    provider: str = Field(..., description="Storage provider identifier, e.g. firebase")
    path: str = Field("/backups", description="Destination base path")
    retention_days: Optional[int] = Field(None, ge=1, description="Delete this schedule's backups older than N days")
    compress: bool = True


class DeliveryConfig(_ConfigModel):
    """How a produced archive is delivered."""

    method: DeliveryMethod
    email: Optional[EmailDeliveryConfig] = None
    storage: Optional[StorageDeliveryConfig] = None


class DeliveryConfigRequest(DeliveryConfig):
    """Delivery config as submitted by a client.

    Stricter than `DeliveryConfig`: every channel the method names must be
    configured. Stored configs are read with the lenient base model so a
    missing channel surfaces as a delivery failure instead of a load error.
    """

    @model_validator(mode="after")
    def _require_channel_configs(self) -> "DeliveryConfigRequest":
        if self.method in ("email", "both") and self.email is None:
            raise ValueError(f"email configuration is required for delivery method '{self.method}'")
        if self.method in ("storage", "both") and self.storage is None:
            raise ValueError(f"storage configuration is required for delivery method '{self.method}'")
        return self


class BackupStats(BaseModel):
    """Aggregated schedule and execution statistics."""

    total_schedules: int = 0
    active_schedules: int = 0
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    last_successful_backup: Optional[datetime] = None
    next_scheduled_backup: Optional[datetime] = None
    total_backup_size: int = 0
    average_backup_time: float = 0.0


def dump_config(model: BaseModel) -> Dict[str, Any]:
    """Serialize a config model for a JSON column.

    Args:
        model: Config model.

    Returns:
        Dict[str, Any]: JSON-friendly snake_case dict.
    """

    return model.model_dump(mode="json")
