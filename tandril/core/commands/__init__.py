"""Command lifecycle: natural-language requests from submission to outcome.

This module provides:
- Command: data model and state machine
- CommandRepository: persistence over the record store
- LiteLLMInterpreter / RuleBasedInterpreter: text -> planned actions
- UsageRepository / UsageQuota: monthly command limits
- CommandLifecycle: submit, watch, confirm and cancel commands
"""

from tandril.core.commands.interpreter import (
    InterpretationResult,
    InterpreterProtocol,
    LiteLLMInterpreter,
    RuleBasedInterpreter,
)
from tandril.core.commands.models import (
    AWAITING_CONFIRMATION,
    COMPLETED,
    DRAFT,
    EXECUTING,
    FAILED,
    INTERPRETING,
    TERMINAL_STATUSES,
    ActionFailure,
    Command,
    CommandResults,
)
from tandril.core.commands.quota import UsageQuota, UsageRepository
from tandril.core.commands.repository import CommandRepository
from tandril.core.commands.service import CommandLifecycle, WatchResult

__all__ = [
    "AWAITING_CONFIRMATION",
    "COMPLETED",
    "DRAFT",
    "EXECUTING",
    "FAILED",
    "INTERPRETING",
    "TERMINAL_STATUSES",
    "ActionFailure",
    "Command",
    "CommandLifecycle",
    "CommandRepository",
    "CommandResults",
    "InterpretationResult",
    "InterpreterProtocol",
    "LiteLLMInterpreter",
    "RuleBasedInterpreter",
    "UsageQuota",
    "UsageRepository",
    "WatchResult",
]
