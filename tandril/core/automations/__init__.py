"""Automations: triggers plus ordered action chains.

This module provides:
- Automation, ChainEntry, AutomationAction: data models
- AutomationRepository: persistence for automations, triggers and actions
- AutomationOrchestrator: due-trigger evaluation and chain execution
"""

from tandril.core.automations.models import (
    FAILED,
    PARTIAL_SUCCESS,
    SUCCESS,
    Automation,
    AutomationAction,
    AutomationStatistics,
    ChainEntry,
    ExecutionLogEntry,
    RunResult,
    StepResult,
)
from tandril.core.automations.orchestrator import (
    AutomationOrchestrator,
    UpcomingRun,
    due_triggers,
    is_due,
)
from tandril.core.automations.repository import AutomationRepository

__all__ = [
    "FAILED",
    "PARTIAL_SUCCESS",
    "SUCCESS",
    "Automation",
    "AutomationAction",
    "AutomationOrchestrator",
    "AutomationRepository",
    "AutomationStatistics",
    "ChainEntry",
    "ExecutionLogEntry",
    "RunResult",
    "StepResult",
    "UpcomingRun",
    "due_triggers",
    "is_due",
]
