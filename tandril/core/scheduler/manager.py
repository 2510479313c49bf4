# tandril/core/scheduler/manager.py
"""APScheduler manager driving the automation tick.

Provides singleton access to the scheduler. Uses AsyncIOScheduler so the
tick runs on the same event loop as the API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from tandril.core.automations.orchestrator import AutomationOrchestrator

logger = logging.getLogger(__name__)

TICK_JOB_ID = "automation-tick"


class AutomationScheduler:
    """Singleton manager for the periodic automation tick.

    Trigger due-ness is decided by the orchestrator from stored trigger
    state, so the job store holds a single interval job and needs no
    persistence of its own.
    """

    _instance: AutomationScheduler | None = None
    _initialized: bool = False

    def __new__(cls, tick_seconds: int | None = None) -> AutomationScheduler:  # noqa: ARG003, ARG004
        """Singleton pattern - return existing instance if available.

        Args:
            tick_seconds: Tick interval (used in __init__).

        Returns:
            AutomationScheduler singleton instance.
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, tick_seconds: int | None = None):
        """Initialize the scheduler manager.

        Args:
            tick_seconds: Seconds between ticks. Defaults to 60.
        """
        if AutomationScheduler._initialized:
            return

        self._tick_seconds = tick_seconds or 60
        self._orchestrator: AutomationOrchestrator | None = None
        self._scheduler = AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={
                "coalesce": True,  # Combine missed ticks into one
                "max_instances": 1,  # Never overlap two ticks
                "misfire_grace_time": 30,
            },
        )
        self._scheduler.add_listener(
            self._on_job_executed,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
        )

        AutomationScheduler._initialized = True
        logger.info("AutomationScheduler initialized with %ds tick", self._tick_seconds)

    @classmethod
    def get_instance(cls, tick_seconds: int | None = None) -> AutomationScheduler:
        """Get the singleton instance.

        Args:
            tick_seconds: Tick interval (only used on first call).
        """
        return cls(tick_seconds)

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (for testing)."""
        if cls._instance is not None and cls._instance.is_running:
            cls._instance.shutdown(wait=False)
        cls._instance = None
        cls._initialized = False

    def set_orchestrator(self, orchestrator: AutomationOrchestrator) -> None:
        """Set the orchestrator whose tick() the job calls."""
        self._orchestrator = orchestrator

    @property
    def tick_seconds(self) -> int:
        return self._tick_seconds

    async def _tick(self) -> None:
        if self._orchestrator is None:
            logger.debug("Tick skipped: no orchestrator configured")
            return
        results = await self._orchestrator.tick()
        if results:
            logger.info("Tick ran %d automation(s)", len(results))

    def start(self) -> None:
        """Start the scheduler and register the tick job.

        Must be called from a running event loop.
        """
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=self._tick_seconds,
            id=TICK_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the scheduler.

        Args:
            wait: Whether to wait for a running tick to complete.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Scheduler shutdown")

    def _on_job_executed(self, event: JobExecutionEvent) -> None:
        """Handle job execution events for logging."""
        if event.exception:
            logger.error("Job %s failed: %s", event.job_id, str(event.exception))
        else:
            logger.debug("Job %s completed", event.job_id)

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._scheduler.running

    @property
    def next_tick_at(self) -> datetime | None:
        """Next scheduled tick time, or None when not running."""
        job = self._scheduler.get_job(TICK_JOB_ID)
        return job.next_run_time if job else None


def get_scheduler(tick_seconds: int | None = None) -> AutomationScheduler:
    """Get the automation scheduler singleton.

    Args:
        tick_seconds: Tick interval (only used on first call).
    """
    return AutomationScheduler.get_instance(tick_seconds)
