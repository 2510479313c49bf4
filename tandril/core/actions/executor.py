# tandril/core/actions/executor.py
"""Action executor: dispatches typed actions to platform handlers.

Platform-specific handlers (Shopify, Etsy, ...) live outside this package and
are registered per action kind. The executor never raises for a single
action: unknown kinds, missing handlers and handler exceptions all come back
as failed ``ActionOutcome`` values.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from tandril.core.actions.models import ACTION_TYPES, Action, UnknownAction

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    """Result of executing one action.

    Attributes:
        success: Whether the side effect was applied.
        message: Human-readable outcome or error message.
        data: Optional handler-specific payload.
    """

    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)


ActionHandler = Callable[[Action], Awaitable[ActionOutcome]]


class ExecutorProtocol(Protocol):
    """Protocol for the platform executor collaborator."""

    async def execute(self, action: Action) -> ActionOutcome:
        """Execute one action and report the outcome."""
        ...


class ActionExecutor:
    """Kind-based dispatcher implementing ExecutorProtocol.

    Example:
        >>> executor = ActionExecutor()
        >>> executor.register("apply_discount", shopify_apply_discount)
        >>> outcome = await executor.execute(action)
    """

    def __init__(self, handlers: dict[str, ActionHandler] | None = None) -> None:
        self._handlers: dict[str, ActionHandler] = dict(handlers or {})

    def register(self, kind: str, handler: ActionHandler) -> None:
        """Register the handler for an action kind (replaces any existing one)."""
        self._handlers[kind] = handler
        logger.debug("Registered action handler: %s", kind)

    @property
    def supported_kinds(self) -> set[str]:
        return set(self._handlers)

    async def execute(self, action: Action) -> ActionOutcome:
        """Execute an action via its registered handler.

        Args:
            action: Typed action record.

        Returns:
            ActionOutcome; failures are returned, never raised.
        """
        if isinstance(action, UnknownAction):
            logger.warning("Refusing unknown action type: %s", action.kind_name)
            return ActionOutcome(
                success=False,
                message=f"Unsupported action type: {action.kind_name or 'unknown'}",
            )

        handler = self._handlers.get(action.kind)
        if handler is None:
            return ActionOutcome(
                success=False,
                message=f"No executor available for action type: {action.kind}",
            )

        try:
            return await handler(action)
        except Exception as e:
            logger.exception("Action %s failed: %s", action.kind, e)
            return ActionOutcome(success=False, message=str(e) or type(e).__name__)


async def _dry_run(action: Action) -> ActionOutcome:
    return ActionOutcome(
        success=True,
        message=f"Dry run: {action.label}",
        data={"dry_run": True, "parameters": action.parameters()},
    )


def dry_run_handlers() -> dict[str, ActionHandler]:
    """Handlers that succeed for every known kind without side effects."""
    return {kind: _dry_run for kind in ACTION_TYPES}
