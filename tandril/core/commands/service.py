# tandril/core/commands/service.py
"""Command lifecycle service.

Drives a Command through its state machine:

    submit   -> interpreting -> awaiting_confirmation (or failed)
    confirm  -> executing -> completed | failed
    cancel   -> failed ("Cancelled by user")

Execution goes through an ActionConfirmationQueue so bulk confirmation and
per-step approval share one code path. Nothing here retries automatically.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from tandril.core.actions.executor import ExecutorProtocol
from tandril.core.actions.models import sanitize_actions
from tandril.core.actions.resolver import ActionResolver, Attachment, AttachmentResolver
from tandril.core.commands.interpreter import InterpretationResult, InterpreterProtocol
from tandril.core.commands.models import (
    AWAITING_CONFIRMATION,
    CANCELLABLE_STATUSES,
    COMPLETED,
    DEFAULT_CONFIDENCE,
    DRAFT,
    EXECUTING,
    FAILED,
    INTERPRETING,
    ActionFailure,
    Command,
    CommandResults,
    assess_risk,
)
from tandril.core.commands.quota import UsageQuota, UsageRepository
from tandril.core.commands.repository import CommandRepository
from tandril.core.errors import (
    CANCELLED,
    INTERPRETATION,
    POLLING,
    VALIDATION,
    CommandValidationError,
    InvalidTransitionError,
    QuotaExceededError,
    RecordNotFoundError,
    TandrilError,
)
from tandril.core.queue.confirmation import ActionConfirmationQueue
from tandril.utils.logging import set_correlation_id

logger = logging.getLogger(__name__)

CANCELLED_BY_USER = "Cancelled by user"
LOST_TRACK = "Lost track of command"

# Watch outcomes
WATCH_TERMINAL = "terminal"
WATCH_CANCELLED = "cancelled"
WATCH_LOST = "lost"


@dataclass
class WatchResult:
    """Why a watch loop stopped, with the last command seen."""

    outcome: str
    command: Command | None
    error: str | None = None
    category: str | None = None


class CommandLifecycle:
    """Submit, observe, confirm and cancel commands.

    Attributes:
        repository: Command persistence.
        interpreter: Turns text into planned actions.
        executor: Applies actions to the store platforms.
        usage: Optional monthly usage counter.
        poll_interval: Default watch interval in seconds.
    """

    def __init__(
        self,
        repository: CommandRepository,
        interpreter: InterpreterProtocol,
        executor: ExecutorProtocol,
        usage: UsageRepository | None = None,
        poll_interval: float = 2.0,
    ) -> None:
        self.repository = repository
        self.interpreter = interpreter
        self.executor = executor
        self.usage = usage
        self.poll_interval = poll_interval

    async def submit(
        self,
        command_text: str,
        platform_targets: list[str],
        attachments: list[str] | None = None,
        quota: UsageQuota | None = None,
        user_id: str | None = None,
    ) -> Command:
        """Validate, interpret and persist a new command.

        Args:
            command_text: Natural-language request.
            platform_targets: Platforms the command applies to.
            attachments: Uploaded file URLs.
            quota: Caller's current monthly usage, checked before anything
                is persisted.
            user_id: Submitting user.

        Returns:
            The command in ``awaiting_confirmation``, ``completed`` (no
            actions planned) or ``failed`` (interpretation failed).

        Raises:
            CommandValidationError: Empty text, no platform, or quota exhausted.
        """
        text = (command_text or "").strip()
        if not text:
            raise CommandValidationError("Please enter a command", field="command_text")
        targets = [t for t in platform_targets or [] if t]
        if not targets:
            raise CommandValidationError(
                "Please select at least one platform", field="platform_targets"
            )
        if quota is not None and quota.at_limit:
            raise QuotaExceededError(quota.limit)

        file_urls = [u for u in attachments or [] if u]
        command = Command(
            id="",
            command_text=text,
            platform_targets=targets,
            file_urls=file_urls,
            user_id=user_id,
            status=DRAFT,
        )
        command.transition_to(INTERPRETING)

        try:
            result = await self.interpreter.interpret(text, targets, file_urls)
        except Exception as e:
            logger.error("Interpreter raised: %s", e)
            result = InterpretationResult(success=False, error=str(e) or None)

        if not result.success:
            command.fail(result.error or "Failed to interpret command", INTERPRETATION)
            command = self.repository.create(command)
            set_correlation_id(command.id)
            logger.info("Command %s failed interpretation: %s", command.id, command.results.error)
            return command

        command.actions_planned = sanitize_actions(result.actions)
        command.confidence_score = (
            min(1.0, max(0.0, float(result.confidence_score)))
            if result.confidence_score is not None
            else DEFAULT_CONFIDENCE
        )
        command.warnings = list(result.warnings)
        command.estimated_impact = result.estimated_impact
        command.risk_level = result.risk_level or assess_risk(
            command.actions_planned, command.confidence_score
        )

        command = self.repository.create(command)
        set_correlation_id(command.id)
        if self.usage is not None and user_id:
            self.usage.increment(user_id)

        command.transition_to(AWAITING_CONFIRMATION)
        command = self.repository.save(command)
        logger.info(
            "Command %s planned %d action(s), risk %s",
            command.id,
            len(command.actions_planned),
            command.risk_level,
        )

        if not command.actions_planned:
            return await self.confirm(command)
        return command

    def poll(self, command_id: str) -> Command:
        """Re-read the persisted command.

        Raises:
            RecordNotFoundError: If the command does not exist.
        """
        command = self.repository.get(command_id)
        if command is None:
            raise RecordNotFoundError("commands", command_id)
        return command

    async def watch(
        self,
        command_id: str,
        interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
        on_update: Callable[[Command], None] | None = None,
    ) -> WatchResult:
        """Poll a command until it is terminal.

        Stops on the first terminal status, when ``cancel_event`` is set, or
        on the first read error (no retry).

        Args:
            command_id: Command to observe.
            interval: Seconds between reads (defaults to ``poll_interval``).
            cancel_event: Set by the caller to stop watching.
            on_update: Called with each command read.

        Returns:
            WatchResult describing why polling stopped.
        """
        interval = self.poll_interval if interval is None else interval
        cancel_event = cancel_event or asyncio.Event()
        last: Command | None = None

        while True:
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=interval)
                return WatchResult(WATCH_CANCELLED, last)
            except asyncio.TimeoutError:
                pass

            try:
                last = self.poll(command_id)
            except Exception as e:
                logger.warning("Stopped watching command %s: %s", command_id, e)
                return WatchResult(WATCH_LOST, last, error=LOST_TRACK, category=POLLING)

            if on_update is not None:
                on_update(last)
            if last.is_terminal:
                return WatchResult(WATCH_TERMINAL, last)

    def start_execution(self, command: Command | str) -> Command:
        """Move a confirmed command to ``executing``.

        The stored record is re-read, so a stale copy of a command that was
        cancelled meanwhile cannot be executed.

        Raises:
            InvalidTransitionError: If the command is not awaiting confirmation.
            RecordNotFoundError: If the command id does not exist.
        """
        command_id = command if isinstance(command, str) else command.id
        current = self.poll(command_id)
        if current.status != AWAITING_CONFIRMATION:
            raise InvalidTransitionError(current.status, EXECUTING)
        set_correlation_id(current.id)
        current.transition_to(EXECUTING)
        return self.repository.save(current)

    async def run_actions(
        self, command: Command, resolver: ActionResolver | None = None
    ) -> Command:
        """Execute every planned action of an executing command in order."""
        queue = self._queue_for(command, resolver)
        await queue.advance_all()
        return self._finish(command, queue)

    async def confirm(
        self, command: Command | str, resolver: ActionResolver | None = None
    ) -> Command:
        """Confirm and execute all planned actions.

        Returns:
            The command in ``completed`` (no failures) or ``failed``, with
            ``success_count`` and per-action failures recorded.
        """
        command = self.start_execution(command)
        return await self.run_actions(command, resolver)

    def begin_stepwise(
        self, command: Command | str, resolver: ActionResolver | None = None
    ) -> tuple[Command, ActionConfirmationQueue]:
        """Start execution with per-action approval.

        Returns:
            The executing command and the queue the caller advances.
        """
        command = self.start_execution(command)
        return command, self._queue_for(command, resolver)

    def finish_stepwise(self, command: Command, queue: ActionConfirmationQueue) -> Command:
        """Record the outcome of a finished (done or cancelled) step-wise queue.

        Raises:
            TandrilError: If the queue still has actions to run.
        """
        if not queue.finished:
            raise TandrilError("Queue still has pending actions", category=VALIDATION)
        return self._finish(command, queue)

    def cancel(self, command: Command | str) -> Command:
        """Cancel a command that has not started executing.

        Cancelling a terminal command is a no-op that returns it unchanged.

        Raises:
            InvalidTransitionError: If the command is executing.
            RecordNotFoundError: If the command id does not exist.
        """
        command_id = command if isinstance(command, str) else command.id
        current = self.poll(command_id)
        if current.is_terminal:
            return current
        if current.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError(current.status, FAILED)

        set_correlation_id(current.id)
        current.fail(CANCELLED_BY_USER, CANCELLED)
        logger.info("Command %s cancelled by user", current.id)
        return self.repository.save(current)

    def _queue_for(
        self, command: Command, resolver: ActionResolver | None
    ) -> ActionConfirmationQueue:
        if resolver is None:
            resolver = AttachmentResolver(
                [Attachment.from_url(url) for url in command.file_urls]
            )
        return ActionConfirmationQueue(
            command.actions_planned,
            self.executor,
            resolver=resolver,
            queue_id=command.id,
        )

    def _finish(self, command: Command, queue: ActionConfirmationQueue) -> Command:
        command.results = CommandResults(
            success_count=len(queue.results),
            failures=[
                ActionFailure(e.index, e.action, e.message, e.category)
                for e in queue.errors
            ],
            messages=[r.message for r in queue.results],
        )
        command.executed_at = datetime.now(timezone.utc)

        total = len(queue.actions)
        if queue.cancelled:
            command.fail(
                f"Execution stopped by user after {queue.idx} of {total} actions",
                CANCELLED,
            )
        elif queue.errors:
            command.fail(
                f"{len(queue.errors)} of {total} actions failed",
                queue.errors[0].category,
            )
        else:
            command.transition_to(COMPLETED)

        logger.info(
            "Command %s %s: %d succeeded, %d failed",
            command.id,
            command.status,
            len(queue.results),
            len(queue.errors),
        )
        return self.repository.save(command)
