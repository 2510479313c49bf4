# tandril/core/scheduler/models.py
"""Data models for automation triggers."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def _parse_day_of_month(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


@dataclass
class ScheduleConfig:
    """Recurrence rule of a schedule trigger.

    Attributes:
        frequency: "hourly", "daily", "weekly" or "monthly".
        time_of_day: Wall-clock time as "HH:MM" (daily/weekly/monthly).
        day_of_week: Weekday names, e.g. ["monday", "friday"] (weekly).
        day_of_month: Day number 1-31 (monthly).
        timezone: IANA zone name the wall-clock fields are expressed in.
    """

    frequency: str | None = None
    time_of_day: str | None = None
    day_of_week: list[str] = field(default_factory=list)
    day_of_month: int | None = None
    timezone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "frequency": self.frequency,
            "time_of_day": self.time_of_day,
            "day_of_week": list(self.day_of_week),
            "day_of_month": self.day_of_month,
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ScheduleConfig":
        """Create from a stored dict, tolerating missing or odd values."""
        data = data or {}
        days = data.get("day_of_week")
        return cls(
            frequency=data.get("frequency"),
            time_of_day=data.get("time_of_day"),
            day_of_week=[d for d in days if isinstance(d, str)]
            if isinstance(days, list)
            else [],
            day_of_month=_parse_day_of_month(data.get("day_of_month")),
            timezone=data.get("timezone"),
        )


@dataclass
class Trigger:
    """Firing condition of an automation.

    Attributes:
        id: Unique identifier.
        name: Display name.
        trigger_type: Only "schedule" triggers are evaluated by the scheduler.
        schedule_config: Recurrence rule for schedule triggers.
        is_active: Inactive triggers never fire on their own.
        user_id: Owner.
        created_at: Creation time; anchors the first due check.
        activated_at: When the trigger was last switched on.
        last_triggered_at: When the trigger last fired.
        next_run_at: Cached next firing time (informational).
    """

    id: str
    name: str
    trigger_type: str = "schedule"
    schedule_config: ScheduleConfig = field(default_factory=ScheduleConfig)
    is_active: bool = False
    user_id: str | None = None
    created_at: datetime | None = None
    activated_at: datetime | None = None
    last_triggered_at: datetime | None = None
    next_run_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "name": self.name,
            "trigger_type": self.trigger_type,
            "schedule_config": self.schedule_config.to_dict(),
            "is_active": self.is_active,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
            "last_triggered_at": self.last_triggered_at.isoformat()
            if self.last_triggered_at
            else None,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trigger":
        """Create from a stored dict."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            trigger_type=data.get("trigger_type", "schedule"),
            schedule_config=ScheduleConfig.from_dict(data.get("schedule_config")),
            is_active=bool(data.get("is_active", False)),
            user_id=data.get("user_id"),
            created_at=_parse_datetime(data.get("created_at")),
            activated_at=_parse_datetime(data.get("activated_at")),
            last_triggered_at=_parse_datetime(data.get("last_triggered_at")),
            next_run_at=_parse_datetime(data.get("next_run_at")),
        )
