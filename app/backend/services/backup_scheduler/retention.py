"""Age-based retention planning for stored backups.

The planner operates on a list of `BackupObject` metadata and returns (keep,
delete) decisions. It never performs deletions itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Collection, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class BackupObject:
    """Metadata about a stored backup object.

    `schedule_id` is the owning schedule recorded on the object at upload time,
    or None for objects that were not tagged.
    """

    id: str
    name: str
    created_at: datetime
    size: Optional[int] = None
    schedule_id: Optional[str] = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def plan_retention(
    backups: Sequence[BackupObject],
    retention_days: int,
    *,
    now: Optional[datetime] = None,
    protect: Collection[str] = (),
) -> Tuple[List[BackupObject], List[BackupObject]]:
    """Return (keep, delete) lists for an age-based retention policy.

    A backup is deleted when it was created more than `retention_days` before
    `now`. Backups whose id is listed in `protect` are always kept.

    Args:
        backups: Existing backups.
        retention_days: Maximum age in days.
        now: Override current time.
        protect: Backup ids that must never be deleted.

    Returns:
        Tuple[List[BackupObject], List[BackupObject]]: Keep and delete lists,
            each ordered oldest -> newest.

    Raises:
        ValueError: If `retention_days` is not positive.
    """

    if retention_days < 1:
        raise ValueError(f"retention_days must be >= 1, got {retention_days}")

    if not backups:
        return [], []

    cutoff = _as_utc(now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    protected = set(protect)

    keep: List[BackupObject] = []
    delete: List[BackupObject] = []
    for obj in sorted(backups, key=lambda b: _as_utc(b.created_at)):
        if obj.id in protected or _as_utc(obj.created_at) >= cutoff:
            keep.append(obj)
        else:
            delete.append(obj)

    return keep, delete
