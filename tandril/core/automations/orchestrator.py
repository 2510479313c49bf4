# tandril/core/automations/orchestrator.py
"""Automation run orchestrator.

Decides which schedule triggers are due, runs the action chains of the
automations attached to them, and records the outcome of each run
(execution log entry plus statistics) on the automation.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from tandril.core.actions.executor import ExecutorProtocol
from tandril.core.automations.models import (
    FAILED,
    PARTIAL_SUCCESS,
    STEP_FAILED,
    STEP_SKIPPED,
    STEP_SUCCESS,
    SUCCESS,
    Automation,
    AutomationAction,
    ExecutionLogEntry,
    RunResult,
    StepResult,
)
from tandril.core.automations.repository import AutomationRepository
from tandril.core.errors import AutomationConfigError, RecordNotFoundError
from tandril.core.scheduler.models import Trigger
from tandril.core.scheduler.schedule import describe_schedule, next_run, time_until
from tandril.utils.logging import correlation_scope

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_due(trigger: Trigger, now: datetime) -> bool:
    """Check whether an active schedule trigger should fire at ``now``.

    The next run is resolved from the later of the last firing and the last
    activation, or from the creation time for a trigger that has neither. A
    trigger with no anchor at all is never due.
    """
    if not trigger.is_active or trigger.trigger_type != "schedule":
        return False
    anchors = [_aware(t) for t in (trigger.last_triggered_at, trigger.activated_at) if t]
    anchor = max(anchors) if anchors else trigger.created_at
    if anchor is None:
        return False
    run_at = next_run(trigger.schedule_config, anchor)
    return run_at is not None and run_at <= _aware(now)


def due_triggers(triggers: list[Trigger], now: datetime) -> list[Trigger]:
    """Filter the triggers that are due at ``now``, preserving order."""
    return [t for t in triggers if is_due(t, now)]


def run_status(steps: list[StepResult], aborted: bool) -> str:
    """Overall status of a run from its step outcomes.

    Args:
        steps: Step results including skipped steps.
        aborted: Whether a stop-on-failure step halted the chain.

    Returns:
        "failed" when aborted or every executed step failed,
        "partial_success" when only some failed, otherwise "success".
    """
    executed = [s for s in steps if s.status != STEP_SKIPPED]
    failures = [s for s in executed if s.status == STEP_FAILED]
    if aborted or (executed and len(failures) == len(executed)):
        return FAILED
    if failures:
        return PARTIAL_SUCCESS
    return SUCCESS


@dataclass
class UpcomingRun:
    """A scheduled run shown on the upcoming-runs calendar."""

    trigger_id: str
    trigger_name: str
    run_at: datetime
    schedule: str
    time_until: str
    automation_ids: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger_id": self.trigger_id,
            "trigger_name": self.trigger_name,
            "run_at": self.run_at.isoformat(),
            "schedule": self.schedule,
            "time_until": self.time_until,
            "automation_ids": list(self.automation_ids),
        }


class AutomationOrchestrator:
    """Runs automations for due triggers and on demand.

    Attributes:
        repository: Automation/trigger/action persistence.
        executor: Executes individual actions.
    """

    def __init__(self, repository: AutomationRepository, executor: ExecutorProtocol) -> None:
        self.repository = repository
        self.executor = executor

    async def run_chain(
        self, automation: Automation, trigger_data: dict[str, Any] | None = None
    ) -> RunResult:
        """Execute an automation's chain once and record the run.

        Steps run in ``order``. A failing step whose ``continue_on_failure``
        is false stops the chain; the remaining steps are recorded as skipped.
        Exactly one execution log entry is appended and the statistics are
        updated before the automation is saved.

        Args:
            automation: Automation to run.
            trigger_data: Context stored with the log entry.

        Returns:
            RunResult with per-step outcomes.

        Raises:
            AutomationConfigError: If the chain has duplicate order values.
        """
        automation.validate()
        with correlation_scope(str(uuid.uuid4())):
            return await self._run_validated(automation, trigger_data)

    async def _run_validated(
        self, automation: Automation, trigger_data: dict[str, Any] | None
    ) -> RunResult:
        logger.info("Running automation %s (%s)", automation.id, automation.name)

        started_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        steps: list[StepResult] = []
        aborted = False
        error_message: str | None = None

        for entry in automation.ordered_chain():
            stored = self.repository.get_action(entry.action_id)
            name = stored.name if stored else entry.action_id
            action_type = stored.action_type if stored else "unknown"

            if aborted:
                steps.append(StepResult(entry.action_id, name, action_type, STEP_SKIPPED))
                continue

            step = await self._run_step(entry.action_id, stored, name, action_type)
            steps.append(step)

            if step.status == STEP_FAILED:
                error_message = error_message or f"{name}: {step.error}"
                if not entry.continue_on_failure:
                    aborted = True
                    logger.warning(
                        "Automation %s stopped at step %d (%s)",
                        automation.id,
                        entry.order,
                        name,
                        extra={"context": {"action_id": entry.action_id, "error": step.error}},
                    )

        execution_time_ms = (time.perf_counter() - started) * 1000
        status = run_status(steps, aborted)

        automation.execution_log.append(
            ExecutionLogEntry(
                timestamp=started_at,
                status=status,
                execution_time_ms=execution_time_ms,
                actions_executed=[s.to_dict() for s in steps],
                trigger_data=dict(trigger_data or {}),
                error_message=error_message,
            )
        )
        automation.statistics.record_run(status, execution_time_ms)
        self.repository.save_automation(automation)

        logger.info(
            "Automation %s finished: %s in %.1fms", automation.id, status, execution_time_ms
        )
        return RunResult(
            automation_id=automation.id,
            status=status,
            steps=steps,
            execution_time_ms=execution_time_ms,
            timestamp=started_at,
            error_message=error_message,
        )

    async def _run_step(
        self,
        action_id: str,
        stored: AutomationAction | None,
        name: str,
        action_type: str,
    ) -> StepResult:
        if stored is None:
            return StepResult(action_id, name, action_type, STEP_FAILED, error="Action not found")

        action = stored.to_action()
        if action is None:
            return StepResult(
                action_id, name, action_type, STEP_FAILED, error="Action definition is malformed"
            )

        try:
            outcome = await self.executor.execute(action)
        except Exception as e:
            logger.exception("Step %s raised: %s", name, e)
            return StepResult(
                action_id, name, action_type, STEP_FAILED, error=str(e) or type(e).__name__
            )

        if outcome.success:
            return StepResult(action_id, name, action_type, STEP_SUCCESS, result=outcome.message)
        return StepResult(action_id, name, action_type, STEP_FAILED, error=outcome.message)

    async def _fire(
        self, trigger: Trigger, now: datetime, trigger_data: dict[str, Any]
    ) -> list[RunResult]:
        results = []
        for automation in self.repository.automations_for_trigger(trigger.id):
            try:
                results.append(await self.run_chain(automation, trigger_data))
            except AutomationConfigError as e:
                logger.error("Automation %s not run: %s", automation.id, e.message)

        trigger.last_triggered_at = now
        trigger.next_run_at = next_run(trigger.schedule_config, now)
        self.repository.save_trigger(trigger)
        return results

    async def tick(self, now: datetime | None = None) -> list[RunResult]:
        """Run every automation attached to a due trigger.

        Args:
            now: Reference time (defaults to the current UTC time).

        Returns:
            Results of every run started by this tick.
        """
        now = _aware(now or datetime.now(timezone.utc))
        triggers = due_triggers(self.repository.list_triggers(active_only=True), now)
        if triggers:
            logger.info("Scheduler tick: %d trigger(s) due", len(triggers))

        results: list[RunResult] = []
        for trigger in triggers:
            results.extend(
                await self._fire(trigger, now, {"scheduled": True, "trigger_id": trigger.id})
            )
        return results

    async def run_trigger_now(self, trigger_id: str) -> list[RunResult]:
        """Fire a trigger immediately, bypassing the due check.

        Raises:
            RecordNotFoundError: If the trigger does not exist.
        """
        trigger = self.repository.get_trigger(trigger_id)
        if trigger is None:
            raise RecordNotFoundError("automation_triggers", trigger_id)
        now = datetime.now(timezone.utc)
        return await self._fire(trigger, now, {"manual": True, "trigger_id": trigger_id})

    def set_trigger_active(
        self, trigger_id: str, active: bool, now: datetime | None = None
    ) -> Trigger:
        """Switch a trigger on or off.

        Switching an inactive trigger on re-anchors its schedule at ``now``,
        so it first fires at its next scheduled time instead of catching up
        on the period it was off.

        Raises:
            RecordNotFoundError: If the trigger does not exist.
        """
        trigger = self.repository.get_trigger(trigger_id)
        if trigger is None:
            raise RecordNotFoundError("automation_triggers", trigger_id)
        if trigger.is_active == active:
            return trigger

        now = _aware(now or datetime.now(timezone.utc))
        trigger.is_active = active
        if active:
            trigger.activated_at = now
            trigger.next_run_at = next_run(trigger.schedule_config, now)
        logger.info("Trigger %s %s", trigger.id, "activated" if active else "paused")
        return self.repository.save_trigger(trigger)

    async def run_automation_now(
        self, automation_id: str, test_mode: bool = False
    ) -> RunResult:
        """Run one automation immediately, regardless of its trigger.

        Raises:
            RecordNotFoundError: If the automation does not exist.
        """
        automation = self.repository.get_automation(automation_id)
        if automation is None:
            raise RecordNotFoundError("automations", automation_id)
        return await self.run_chain(automation, {"manual": True, "test_mode": test_mode})

    def upcoming_runs(self, now: datetime | None = None, limit: int = 10) -> list[UpcomingRun]:
        """Next run of every active schedule trigger, soonest first.

        Args:
            now: Reference time (defaults to the current UTC time).
            limit: Maximum number of entries.
        """
        now = _aware(now or datetime.now(timezone.utc))
        upcoming = []
        for trigger in self.repository.list_triggers(active_only=True):
            run_at = next_run(trigger.schedule_config, now)
            if run_at is None:
                continue
            upcoming.append(
                UpcomingRun(
                    trigger_id=trigger.id,
                    trigger_name=trigger.name,
                    run_at=run_at,
                    schedule=describe_schedule(trigger.schedule_config),
                    time_until=time_until(run_at, now),
                    automation_ids=[
                        a.id for a in self.repository.automations_for_trigger(trigger.id)
                    ],
                )
            )
        upcoming.sort(key=lambda run: run.run_at)
        return upcoming[:limit]
