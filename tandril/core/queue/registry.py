"""One live confirmation queue per conversation."""

import logging
from typing import Any

from tandril.core.actions.executor import ExecutorProtocol
from tandril.core.actions.resolver import ActionResolver
from tandril.core.queue.confirmation import ActionConfirmationQueue

logger = logging.getLogger(__name__)


class ConversationQueues:
    """Tracks the pending-action queue of each conversation.

    A new turn that proposes actions supersedes the previous queue: the old
    one is cancelled (if still running) and dropped.
    """

    def __init__(self) -> None:
        self._queues: dict[str, ActionConfirmationQueue] = {}

    def open(
        self,
        conversation_id: str,
        actions: list[Any],
        executor: ExecutorProtocol,
        resolver: ActionResolver | None = None,
    ) -> ActionConfirmationQueue:
        """Create the queue for a new turn, superseding any previous one."""
        previous = self._queues.pop(conversation_id, None)
        if previous is not None and previous.cancel():
            logger.info(
                "Queue %s superseded in conversation %s",
                previous.queue_id,
                conversation_id,
            )

        queue = ActionConfirmationQueue(actions, executor, resolver=resolver)
        self._queues[conversation_id] = queue
        return queue

    def get(self, conversation_id: str) -> ActionConfirmationQueue | None:
        return self._queues.get(conversation_id)

    def release(self, conversation_id: str) -> bool:
        """Discard the conversation's queue if it is done or cancelled.

        Returns:
            True if a finished queue was discarded.
        """
        queue = self._queues.get(conversation_id)
        if queue is None or not queue.finished:
            return False
        del self._queues[conversation_id]
        return True

    def __len__(self) -> int:
        return len(self._queues)
