# tandril/core/lifecycle.py
"""Start-up and shutdown of long-lived components.

The API lifespan registers the automation scheduler here so it starts once
the event loop is running and stops before the process exits.

Example:
    >>> lm = get_lifecycle_manager()
    >>> lm.register("scheduler", get_scheduler())
    >>> await lm.startup()
    >>> await lm.shutdown()
"""

import inspect
import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class LifecycleComponent(Protocol):
    """Protocol for components with lifecycle management."""

    def start(self) -> Any:
        """Start the component."""
        ...

    def shutdown(self) -> Any:
        """Shutdown the component and release resources."""
        ...


async def _call(method: Any) -> None:
    result = method()
    if inspect.isawaitable(result):
        await result


class LifecycleManager:
    """Starts registered components in order and stops them in reverse."""

    def __init__(self) -> None:
        self._components: list[tuple[str, Any]] = []
        self._started = False

    def register(self, name: str, component: Any) -> None:
        """Register a component with start() and shutdown() methods.

        Registering the same name twice replaces the earlier component.
        """
        self._components = [(n, c) for n, c in self._components if n != name]
        self._components.append((name, component))
        logger.debug("Registered lifecycle component: %s", name)

    async def startup(self) -> None:
        """Start all registered components in order.

        Both sync and async start() methods are supported.
        """
        if self._started:
            logger.debug("Lifecycle manager already started")
            return

        for name, component in self._components:
            logger.info("Starting %s", name)
            await _call(component.start)

        self._started = True
        logger.info("All lifecycle components started (%d total)", len(self._components))

    async def shutdown(self) -> None:
        """Shutdown all registered components in reverse order.

        A component that fails to stop is logged and the rest still stop.
        """
        if not self._started:
            logger.debug("Lifecycle manager not started, skipping shutdown")
            return

        for name, component in reversed(self._components):
            logger.info("Stopping %s", name)
            try:
                await _call(component.shutdown)
            except Exception as e:
                logger.error("Error shutting down %s: %s", name, e)

        self._started = False
        logger.info("All lifecycle components stopped")

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def component_count(self) -> int:
        return len(self._components)


_lifecycle_manager: LifecycleManager | None = None


def get_lifecycle_manager() -> LifecycleManager:
    """Get the global lifecycle manager singleton."""
    global _lifecycle_manager
    if _lifecycle_manager is None:
        _lifecycle_manager = LifecycleManager()
    return _lifecycle_manager


def reset_lifecycle_manager() -> None:
    """Reset the global lifecycle manager (for testing)."""
    global _lifecycle_manager
    _lifecycle_manager = None
