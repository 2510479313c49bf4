"""Scheduling for automation triggers.

This module provides:
- ScheduleConfig / Trigger: recurrence rules and trigger records
- next_run: pure next-run resolution for a recurrence rule
- describe_schedule / time_until: display helpers
- AutomationScheduler: APScheduler-driven periodic tick
"""

from tandril.core.scheduler.manager import AutomationScheduler, get_scheduler
from tandril.core.scheduler.models import ScheduleConfig, Trigger
from tandril.core.scheduler.schedule import (
    FREQUENCIES,
    WEEKDAYS,
    describe_schedule,
    next_run,
    parse_time_of_day,
    time_until,
)

__all__ = [
    "FREQUENCIES",
    "WEEKDAYS",
    "AutomationScheduler",
    "ScheduleConfig",
    "Trigger",
    "describe_schedule",
    "get_scheduler",
    "next_run",
    "parse_time_of_day",
    "time_until",
]
