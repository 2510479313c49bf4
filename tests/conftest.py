# tests/conftest.py
"""Shared pytest fixtures for all test modules.

Provides common fixtures for:
- Singleton reset (AutomationScheduler, Services, LifecycleManager)
- Temporary database paths
- In-memory stores and fake collaborators
"""

import os
import tempfile
from collections.abc import Generator
from typing import Any

import pytest

from tandril.core.actions.executor import ActionExecutor, ActionOutcome, dry_run_handlers
from tandril.core.commands.interpreter import InterpretationResult
from tandril.core.store.memory import InMemoryRecordStore


class FakeInterpreter:
    """Interpreter returning a canned result and recording its calls."""

    def __init__(self, result: InterpretationResult | None = None, error: Exception | None = None):
        self.result = result or InterpretationResult(success=True)
        self.error = error
        self.calls: list[tuple[str, list[str], list[str]]] = []

    async def interpret(
        self, command_text: str, platform_targets: list[str], file_urls: list[str]
    ) -> InterpretationResult:
        self.calls.append((command_text, platform_targets, file_urls))
        if self.error is not None:
            raise self.error
        return self.result


class RecordingExecutor:
    """Executor that records every action and fails selected ones.

    Attributes:
        executed: Labels of actions passed to execute(), in order.
        fail_on: Labels that return a failed outcome.
        raise_on: Labels whose execution raises.
    """

    def __init__(self, fail_on: set[str] | None = None, raise_on: set[str] | None = None):
        self.executed: list[str] = []
        self.fail_on = fail_on or set()
        self.raise_on = raise_on or set()

    async def execute(self, action: Any) -> ActionOutcome:
        self.executed.append(action.label)
        if action.label in self.raise_on:
            raise RuntimeError(f"{action.label} exploded")
        if action.label in self.fail_on:
            return ActionOutcome(success=False, message=f"{action.label} failed")
        return ActionOutcome(success=True, message=f"{action.label} done")


@pytest.fixture
def temp_db() -> Generator[str, None, None]:
    """Create a temporary database file path.

    Yields:
        Path to temporary SQLite database file.
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def make_executor() -> type[RecordingExecutor]:
    """Factory for recording executors with per-test failure sets."""
    return RecordingExecutor


@pytest.fixture
def make_interpreter() -> type[FakeInterpreter]:
    """Factory for interpreters returning a canned result or raising."""
    return FakeInterpreter


@pytest.fixture
def dry_run_executor() -> ActionExecutor:
    return ActionExecutor(dry_run_handlers())


@pytest.fixture
def reset_scheduler_singleton() -> Generator[None, None, None]:
    """Reset AutomationScheduler singleton before and after test."""
    from tandril.core.scheduler.manager import AutomationScheduler

    AutomationScheduler._instance = None
    AutomationScheduler._initialized = False

    yield

    AutomationScheduler.reset()


@pytest.fixture
def reset_services() -> Generator[None, None, None]:
    """Reset the Services and LifecycleManager singletons around a test."""
    from tandril.core.container import reset_services as reset
    from tandril.core.lifecycle import reset_lifecycle_manager

    reset()
    reset_lifecycle_manager()

    yield

    reset()
    reset_lifecycle_manager()
