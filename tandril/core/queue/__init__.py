"""Action confirmation queue for per-step or bulk user approval."""

from tandril.core.queue.confirmation import (
    ActionConfirmationQueue,
    QueueError,
    QueueResult,
    QueueSummary,
)
from tandril.core.queue.registry import ConversationQueues

__all__ = [
    "ActionConfirmationQueue",
    "ConversationQueues",
    "QueueError",
    "QueueResult",
    "QueueSummary",
]
