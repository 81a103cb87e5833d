"""Error kinds raised by the backup scheduler.

The execution orchestrator converts all of these into a `failed` execution
record; only `ScheduleNotFoundError` reaches manual-trigger callers.
"""

from __future__ import annotations

from typing import Sequence


class BackupSchedulerError(RuntimeError):
    """Base class for backup scheduler errors."""


class ExportAggregationError(BackupSchedulerError):
    """Raised when an entity reader fails while collecting export data."""


class ArchiveBuildError(BackupSchedulerError):
    """Raised when the export cannot be serialized or compressed."""


class DeliveryChannelError(BackupSchedulerError):
    """Raised when a single delivery channel (email or storage) fails."""


class UnknownProviderError(DeliveryChannelError):
    """Raised for storage providers that are not implemented."""

    def __init__(self, provider: str):
        super().__init__(f"Storage provider '{provider}' is not yet implemented")
        self.provider = provider


class AllDeliveryFailedError(BackupSchedulerError):
    """Raised when the delivery policy for a schedule is not satisfied."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__(f"All delivery methods failed: {'; '.join(self.errors)}")


class ScheduleNotFoundError(BackupSchedulerError, LookupError):
    """Raised when a schedule id does not exist."""

    def __init__(self, schedule_id: str):
        super().__init__(f"Schedule not found: {schedule_id}")
        self.schedule_id = schedule_id
