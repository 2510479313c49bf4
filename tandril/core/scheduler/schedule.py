# tandril/core/scheduler/schedule.py
"""Schedule resolver: when does a recurrence rule fire next?

Pure functions only. ``next_run`` never raises for bad input: an unknown
frequency, a missing or malformed sub-field, or an unknown time zone all
resolve to None ("not schedulable").

Naive datetimes are treated as UTC. When the rule names a time zone, the
wall-clock fields (time of day, weekday, day of month) are interpreted in
that zone and the result is returned in it.
"""

import calendar
import re
from datetime import datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tandril.core.scheduler.models import ScheduleConfig

# Weekday numbering with Sunday = 0
WEEKDAYS = [
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
]

FREQUENCIES = ("hourly", "daily", "weekly", "monthly")

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time_of_day(value: Any) -> tuple[int, int] | None:
    """Parse "HH:MM" into (hour, minute).

    Args:
        value: Time string.

    Returns:
        (hour, minute) tuple or None if the value is not a valid time.

    Examples:
        >>> parse_time_of_day("09:30")
        (9, 30)
        >>> parse_time_of_day("25:00") is None
        True
    """
    if not isinstance(value, str):
        return None
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return None
    return hour, minute


def _localize(now: datetime, tz_name: str | None) -> datetime | None:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if tz_name is None or tz_name == "":
        return now
    if not isinstance(tz_name, str):
        return None
    try:
        return now.astimezone(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _weekday_number(dt: datetime) -> int:
    # datetime.weekday() has Monday = 0
    return (dt.weekday() + 1) % 7


def _clamped_day(year: int, month: int, day_of_month: int) -> int:
    return min(day_of_month, calendar.monthrange(year, month)[1])


def _next_daily(local: datetime, hour: int, minute: int) -> datetime:
    candidate = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local:
        candidate += timedelta(days=1)
    return candidate


def _next_weekly(
    local: datetime, days: list[str], hour: int, minute: int
) -> datetime | None:
    numbers = sorted(
        {WEEKDAYS.index(d.lower()) for d in days if d.lower() in WEEKDAYS}
    )
    if not numbers:
        return None

    current = _weekday_number(local)
    later = [d for d in numbers if d > current]
    if later:
        offset = later[0] - current
    else:
        offset = 7 - current + numbers[0]

    target = local + timedelta(days=offset)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _next_monthly(
    local: datetime, day_of_month: int, hour: int, minute: int
) -> datetime:
    candidate = local.replace(
        day=_clamped_day(local.year, local.month, day_of_month),
        hour=hour,
        minute=minute,
        second=0,
        microsecond=0,
    )
    if candidate > local:
        return candidate

    year, month = (local.year + 1, 1) if local.month == 12 else (local.year, local.month + 1)
    return datetime(
        year,
        month,
        _clamped_day(year, month, day_of_month),
        hour,
        minute,
        tzinfo=local.tzinfo,
    )


def next_run(
    config: ScheduleConfig | dict[str, Any] | None, now: datetime
) -> datetime | None:
    """Compute the next instant a recurrence rule fires after ``now``.

    - hourly: now + 1 hour, no alignment to the hour boundary.
    - daily: today at time_of_day, or tomorrow if that is not after now.
    - weekly: next listed weekday strictly after today, wrapping to the
      following week.
    - monthly: day_of_month of this month, or next month if that is not
      after now. Days past the end of a month clamp to its last day.

    Args:
        config: ScheduleConfig or its dict form.
        now: Reference instant.

    Returns:
        Next firing time, or None if the rule cannot be scheduled.
    """
    if config is None:
        return None
    if isinstance(config, dict):
        config = ScheduleConfig.from_dict(config)

    local = _localize(now, config.timezone)
    if local is None:
        return None

    frequency = config.frequency
    if frequency == "hourly":
        return (local.astimezone(timezone.utc) + timedelta(hours=1)).astimezone(
            local.tzinfo
        )

    if frequency not in FREQUENCIES:
        return None

    parsed = parse_time_of_day(config.time_of_day)
    if parsed is None:
        return None
    hour, minute = parsed

    if frequency == "daily":
        return _next_daily(local, hour, minute)

    if frequency == "weekly":
        return _next_weekly(local, config.day_of_week, hour, minute)

    day_of_month = config.day_of_month
    if day_of_month is None or not 1 <= day_of_month <= 31:
        return None
    return _next_monthly(local, day_of_month, hour, minute)


def describe_schedule(config: ScheduleConfig | dict[str, Any] | None) -> str:
    """Human-readable summary of a recurrence rule.

    Examples:
        >>> describe_schedule({"frequency": "daily", "time_of_day": "09:00"})
        'Runs daily at 09:00 (Timezone: UTC)'
    """
    if config is None:
        return "Configure schedule"
    if isinstance(config, dict):
        config = ScheduleConfig.from_dict(config)

    tz = config.timezone or "UTC"
    time_of_day = config.time_of_day or "00:00"

    if config.frequency == "hourly":
        return f"Runs every hour (Timezone: {tz})"
    if config.frequency == "daily":
        return f"Runs daily at {time_of_day} (Timezone: {tz})"
    if config.frequency == "weekly":
        days = (
            ", ".join(d.capitalize() for d in config.day_of_week)
            if config.day_of_week
            else "Not set"
        )
        return f"Runs weekly on {days} at {time_of_day} (Timezone: {tz})"
    if config.frequency == "monthly":
        day = config.day_of_month or "?"
        return f"Runs on day {day} of each month at {time_of_day} (Timezone: {tz})"
    return "Configure schedule"


def time_until(run_at: datetime | None, now: datetime) -> str:
    """Relative description of how far away a run is.

    Args:
        run_at: Upcoming run time.
        now: Reference instant.

    Returns:
        "Overdue", "in N day(s)", "in Hh Mm" or "in Mm".
    """
    if run_at is None:
        return "Not scheduled"

    if run_at.tzinfo is None:
        run_at = run_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    diff_seconds = (run_at - now).total_seconds()
    if diff_seconds < 0:
        return "Overdue"

    hours = int(diff_seconds // 3600)
    minutes = int((diff_seconds % 3600) // 60)

    if hours > 24:
        days = hours // 24
        return f"in {days} day{'s' if days > 1 else ''}"
    if hours > 0:
        return f"in {hours}h {minutes}m"
    return f"in {minutes}m"
