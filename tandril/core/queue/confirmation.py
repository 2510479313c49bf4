# tandril/core/queue/confirmation.py
"""Sequential action-confirmation queue.

Lets a user step through the side-effecting actions proposed in one
conversational turn, approving them one at a time or all at once, while
keeping an auditable per-item trail. The queue always advances past a failed
item; success and failure live entirely in ``results`` and ``errors``.
"""

import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any

from tandril.core.actions.executor import ExecutorProtocol
from tandril.core.actions.models import Action, sanitize_actions
from tandril.core.actions.resolver import ActionResolver
from tandril.core.errors import EXECUTION, ActionResolutionError

logger = logging.getLogger(__name__)


@dataclass
class QueueResult:
    """Successful item outcome."""

    index: int
    action: str
    message: str


@dataclass
class QueueError:
    """Failed item outcome (resolution or execution)."""

    index: int
    action: str
    message: str
    category: str


@dataclass
class QueueSummary:
    """Cumulative counts reported once a bulk advance finishes."""

    total: int
    succeeded: int
    failed: int
    remaining: int
    done: bool
    cancelled: bool


ProgressCallback = Callable[["ActionConfirmationQueue"], Awaitable[None] | None]


class ActionConfirmationQueue:
    """Ordered, steppable list of pending actions for one turn.

    Attributes:
        queue_id: Identifier for the queue.
        actions: Well-formed actions in execution order.
        idx: Index of the next action to run. Only ever increases.
        results: Successful outcomes in completion order.
        errors: Failed outcomes in completion order.
        cancelled: Set by cancel(); halts all further advancement.

    Example:
        >>> queue = ActionConfirmationQueue(actions, executor)
        >>> await queue.advance_one()   # user approved the first action
        >>> summary = await queue.advance_all()   # "confirm all remaining"
    """

    def __init__(
        self,
        actions: list[Any],
        executor: ExecutorProtocol,
        resolver: ActionResolver | None = None,
        queue_id: str | None = None,
    ) -> None:
        self.queue_id = queue_id or str(uuid.uuid4())
        self.actions: list[Action] = sanitize_actions(list(actions))
        self.idx = 0
        self.results: list[QueueResult] = []
        self.errors: list[QueueError] = []
        self.cancelled = False
        self._executor = executor
        self._resolver = resolver
        self._in_flight = False

    @property
    def done(self) -> bool:
        """True once every item has been attempted."""
        return self.idx >= len(self.actions)

    @property
    def finished(self) -> bool:
        """True when no further item will run (done or cancelled)."""
        return self.done or self.cancelled

    @property
    def current(self) -> Action | None:
        """Action awaiting approval, or None when finished."""
        if self.finished:
            return None
        return self.actions[self.idx]

    async def advance_one(self) -> bool:
        """Resolve and execute the action at ``idx``.

        Success appends to ``results``; resolution failures, executor
        failures and executor exceptions append to ``errors``. The index
        advances in every case.

        Returns:
            True if an item was processed, False if the queue was already
            finished or an advance is in flight.
        """
        if self.finished or self._in_flight:
            return False

        self._in_flight = True
        index = self.idx
        action = self.actions[index]
        try:
            try:
                if self._resolver is not None:
                    action = await self._resolver.resolve(action)
                outcome = await self._executor.execute(action)
            except ActionResolutionError as e:
                logger.info("Queue %s item %d unresolved: %s", self.queue_id, index, e)
                self.errors.append(QueueError(index, action.label, e.message, e.category))
            except Exception as e:
                logger.exception("Queue %s item %d raised: %s", self.queue_id, index, e)
                self.errors.append(
                    QueueError(index, action.label, str(e) or type(e).__name__, EXECUTION)
                )
            else:
                if outcome.success:
                    self.results.append(QueueResult(index, action.label, outcome.message))
                else:
                    self.errors.append(
                        QueueError(index, action.label, outcome.message, EXECUTION)
                    )
            self.idx = index + 1
        finally:
            self._in_flight = False

        if self.done:
            logger.info(
                "Queue %s done: %d succeeded, %d failed",
                self.queue_id,
                len(self.results),
                len(self.errors),
            )
        return True

    async def advance_all(self, on_progress: ProgressCallback | None = None) -> QueueSummary:
        """Run every remaining action in order.

        Per-item state is updated as each action finishes (and reported to
        ``on_progress``); cumulative counts are returned once the loop ends.
        Cancellation is checked between items.

        Args:
            on_progress: Optional callback invoked after each item.

        Returns:
            QueueSummary with cumulative counts.
        """
        while not self.finished:
            if not await self.advance_one():
                break
            if on_progress is not None:
                maybe_awaitable = on_progress(self)
                if inspect.isawaitable(maybe_awaitable):
                    await maybe_awaitable
        return self.summary()

    def cancel(self) -> bool:
        """Stop the queue. Completed results stay visible.

        Returns:
            True if the queue was cancelled, False if it had already
            finished (completion and cancellation are exclusive causes).
        """
        if self.done or self.cancelled:
            return False
        self.cancelled = True
        logger.info("Queue %s cancelled at item %d", self.queue_id, self.idx)
        return True

    def summary(self) -> QueueSummary:
        return QueueSummary(
            total=len(self.actions),
            succeeded=len(self.results),
            failed=len(self.errors),
            remaining=max(0, len(self.actions) - self.idx),
            done=self.done,
            cancelled=self.cancelled,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize queue state for API responses."""
        current = self.current
        return {
            "queue_id": self.queue_id,
            "actions": [a.to_dict() for a in self.actions],
            "idx": self.idx,
            "current": current.to_dict() if current else None,
            "results": [asdict(r) for r in self.results],
            "errors": [asdict(e) for e in self.errors],
            "done": self.done,
            "cancelled": self.cancelled,
        }
