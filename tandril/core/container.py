# tandril/core/container.py
"""Wiring of repositories and services from configuration.

Backends (store, interpreter, executor) are chosen here, once, and injected
into the services. Nothing below this module branches on configuration.
"""

import logging
from dataclasses import dataclass

from tandril.config import Settings, settings
from tandril.core.actions.executor import ActionExecutor, ExecutorProtocol, dry_run_handlers
from tandril.core.actions.resolver import AttachmentRegistry
from tandril.core.automations.orchestrator import AutomationOrchestrator
from tandril.core.automations.repository import AutomationRepository
from tandril.core.commands.interpreter import (
    InterpreterProtocol,
    LiteLLMInterpreter,
    RuleBasedInterpreter,
)
from tandril.core.commands.quota import UsageRepository
from tandril.core.commands.repository import CommandRepository
from tandril.core.commands.service import CommandLifecycle
from tandril.core.queue.registry import ConversationQueues
from tandril.core.store import RecordStore, create_store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every long-lived collaborator of the application."""

    config: Settings
    store: RecordStore
    commands: CommandRepository
    automations: AutomationRepository
    usage: UsageRepository
    executor: ExecutorProtocol
    interpreter: InterpreterProtocol
    lifecycle: CommandLifecycle
    orchestrator: AutomationOrchestrator
    queues: ConversationQueues
    attachments: AttachmentRegistry


def build_interpreter(config: Settings) -> InterpreterProtocol:
    """Model-backed interpreter when a key is configured, else keyword rules."""
    if config.api_key:
        return LiteLLMInterpreter(model=config.interpreter_model, api_key=config.api_key)
    logger.warning("GOOGLE_API_KEY not set - using rule-based command interpretation")
    return RuleBasedInterpreter()


def build_executor(config: Settings) -> ActionExecutor:
    """Executor with dry-run handlers unless platform handlers are wired later."""
    if config.dry_run_actions:
        logger.info("Actions run in dry-run mode")
        return ActionExecutor(dry_run_handlers())
    return ActionExecutor()


def build_services(
    config: Settings | None = None,
    store: RecordStore | None = None,
    interpreter: InterpreterProtocol | None = None,
    executor: ExecutorProtocol | None = None,
) -> Services:
    """Create the service graph.

    Args:
        config: Settings (defaults to the module singleton).
        store: Override for the record store.
        interpreter: Override for the interpreter.
        executor: Override for the executor.

    Returns:
        Fully wired Services.
    """
    config = config or settings
    store = store or create_store(config)
    interpreter = interpreter or build_interpreter(config)
    executor = executor or build_executor(config)

    commands = CommandRepository(store)
    automations = AutomationRepository(store)
    usage = UsageRepository(store)
    return Services(
        config=config,
        store=store,
        commands=commands,
        automations=automations,
        usage=usage,
        executor=executor,
        interpreter=interpreter,
        lifecycle=CommandLifecycle(
            commands,
            interpreter,
            executor,
            usage=usage,
            poll_interval=config.poll_interval_seconds,
        ),
        orchestrator=AutomationOrchestrator(automations, executor),
        queues=ConversationQueues(),
        attachments=AttachmentRegistry(),
    )


_services: Services | None = None


def get_services() -> Services:
    """Get the application Services singleton."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Services) -> None:
    """Install a prebuilt Services instance (for testing)."""
    global _services
    _services = services


def reset_services() -> None:
    """Reset the Services singleton (for testing)."""
    global _services
    _services = None
