"""Recurrence helpers for backup schedules.

This module computes `next_run` timestamps for calendar-based recurrences
(daily, weekly, monthly and custom). The time of day is interpreted in the
recurrence's timezone; all timestamps returned are timezone-aware UTC datetimes.

The functions are pure: "now" is always passed in as `reference`.

Custom recurrences carry an opaque cron expression that is NOT evaluated. They
run daily at the configured time of day until a cron evaluator exists.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time as dt_time, timedelta, timezone
from typing import Any, Mapping, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from backend.services.backup_scheduler.schemas import RecurrenceConfig


def parse_time_hhmm(value: str) -> Tuple[int, int]:
    """Parse a HH:MM string into (hour, minute).

    Args:
        value: Time string in HH:MM format.

    Returns:
        Tuple[int, int]: Parsed (hour, minute).

    Raises:
        ValueError: If the value cannot be parsed or is out of range.
    """

    raw = str(value or "").strip()
    parts = raw.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time-of-day (expected HH:MM): {value!r}")

    try:
        hour = int(parts[0])
        minute = int(parts[1])
    except ValueError as exc:
        raise ValueError(f"Invalid time-of-day (expected HH:MM): {value!r}") from exc

    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise ValueError(f"Invalid time-of-day (out of range): {value!r}")

    return hour, minute


def _clamped_day(year: int, month: int, day_of_month: int) -> date:
    """Return `day_of_month` in the given month, clamped to the month's last day."""

    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def _sunday_based_weekday(day: date) -> int:
    """Return the weekday with 0 = Sunday ... 6 = Saturday."""

    return day.isoweekday() % 7


def compute_next_run(
    recurrence: Union[RecurrenceConfig, Mapping[str, Any]],
    reference: datetime,
) -> datetime:
    """Compute the next run timestamp after a reference time.

    The candidate is the reference's calendar date at the configured time of day.
    If that is still ahead of the reference (and, for weekly/monthly schedules, on
    the configured weekday/day of month) it is returned unchanged; otherwise the
    candidate advances by the recurrence's frequency.

    Examples:
        - daily 14:00, reference 2024-01-01 10:00 -> 2024-01-01 14:00
        - daily 14:00, reference 2024-01-01 15:00 -> 2024-01-02 14:00
        - weekly Monday 09:00, reference Monday 10:00 -> the following Monday

    Args:
        recurrence: Recurrence config (model or raw dict).
        reference: Reference timestamp. Naive values are treated as UTC.

    Returns:
        datetime: Next run timestamp (UTC), strictly after `reference`.

    Raises:
        pydantic.ValidationError: If a raw recurrence dict is invalid, e.g. a
            weekly recurrence without `weekday` or a monthly one without
            `day_of_month`.
    """

    config = recurrence if isinstance(recurrence, RecurrenceConfig) else RecurrenceConfig.model_validate(recurrence)

    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    zone = ZoneInfo(config.timezone)
    hour, minute = parse_time_hhmm(config.time)
    today = reference.astimezone(zone).date()

    def at(day: date) -> datetime:
        return datetime.combine(day, dt_time(hour, minute), tzinfo=zone)

    if config.frequency == "weekly":
        target = int(config.weekday)
        days_ahead = (target - _sunday_based_weekday(today)) % 7
        candidate = at(today + timedelta(days=days_ahead))
        if candidate <= reference:
            candidate = at(today + timedelta(days=days_ahead + 7))

    elif config.frequency == "monthly":
        day_of_month = int(config.day_of_month)
        candidate = at(_clamped_day(today.year, today.month, day_of_month))
        if candidate <= reference:
            year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
            candidate = at(_clamped_day(year, month, day_of_month))

    else:
        # daily, and custom until cron expressions are evaluated
        candidate = at(today)
        if candidate <= reference:
            candidate = at(today + timedelta(days=1))

    return candidate.astimezone(timezone.utc)


def compute_initial_next_run(
    recurrence: Union[RecurrenceConfig, Mapping[str, Any]],
    *,
    now: datetime,
    is_active: bool,
) -> Optional[datetime]:
    """Compute `next_run` for a newly created or re-activated schedule.

    Args:
        recurrence: Recurrence config.
        now: Current timestamp.
        is_active: Whether the schedule is active.

    Returns:
        Optional[datetime]: Next run, or None for inactive schedules.
    """

    if not is_active:
        return None
    return compute_next_run(recurrence, now)


def utcnow() -> datetime:
    """Return the current timezone-aware UTC time (default clock)."""

    return datetime.now(timezone.utc)
