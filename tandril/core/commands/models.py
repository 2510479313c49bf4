# tandril/core/commands/models.py
"""Command data model and its state machine.

A Command is one natural-language request tracked through
``draft -> interpreting -> awaiting_confirmation -> executing -> completed``.
``failed`` is reachable from every non-terminal state. Transitions only move
forward; terminal commands are never mutated again.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tandril.core.actions.models import Action, sanitize_actions
from tandril.core.errors import CommandValidationError, InvalidTransitionError

DRAFT = "draft"
INTERPRETING = "interpreting"
AWAITING_CONFIRMATION = "awaiting_confirmation"
EXECUTING = "executing"
COMPLETED = "completed"
FAILED = "failed"

TERMINAL_STATUSES = frozenset({COMPLETED, FAILED})
CANCELLABLE_STATUSES = frozenset({INTERPRETING, AWAITING_CONFIRMATION})

TRANSITIONS: dict[str, frozenset[str]] = {
    DRAFT: frozenset({INTERPRETING, FAILED}),
    INTERPRETING: frozenset({AWAITING_CONFIRMATION, FAILED}),
    AWAITING_CONFIRMATION: frozenset({EXECUTING, FAILED}),
    EXECUTING: frozenset({COMPLETED, FAILED}),
    COMPLETED: frozenset(),
    FAILED: frozenset(),
}

RISK_LEVELS = ("low", "medium", "high")
DEFAULT_CONFIDENCE = 0.8


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


@dataclass
class ActionFailure:
    """One action that did not succeed during execution."""

    index: int
    action: str
    message: str
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "action": self.action,
            "message": self.message,
            "category": self.category,
        }


@dataclass
class CommandResults:
    """Outcome summary recorded once a command is terminal.

    Attributes:
        success_count: Number of actions that succeeded.
        failures: Per-action failure details.
        messages: Success messages in completion order.
        error: Command-level failure reason (interpretation error,
            cancellation, execution summary).
        error_category: Category tag for ``error``.
    """

    success_count: int = 0
    failures: list[ActionFailure] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    error: str | None = None
    error_category: str | None = None

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failures": [f.to_dict() for f in self.failures],
            "messages": list(self.messages),
            "error": self.error,
            "error_category": self.error_category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CommandResults | None":
        if not isinstance(data, dict):
            return None
        failures = [
            ActionFailure(
                index=f.get("index", 0),
                action=f.get("action", ""),
                message=f.get("message", ""),
                category=f.get("category", ""),
            )
            for f in data.get("failures") or []
            if isinstance(f, dict)
        ]
        return cls(
            success_count=int(data.get("success_count") or 0),
            failures=failures,
            messages=[m for m in data.get("messages") or [] if isinstance(m, str)],
            error=data.get("error"),
            error_category=data.get("error_category"),
        )


@dataclass
class Command:
    """One user-issued natural-language request.

    Attributes:
        id: Unique identifier assigned by the store ("" until persisted).
        command_text: Raw command text.
        platform_targets: Platforms/shops the command applies to.
        actions_planned: Well-formed planned actions (malformed ones dropped).
        status: Current lifecycle state.
        confidence_score: Interpreter confidence in [0, 1].
        risk_level: "low", "medium" or "high".
        warnings: Interpreter warnings for the user.
        estimated_impact: Interpreter summary of what will change.
        file_urls: Files attached at submission.
        user_id: Submitting user.
        results: Outcome once terminal.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
        executed_at: When execution finished.
    """

    id: str
    command_text: str
    platform_targets: list[str]
    actions_planned: list[Action] = field(default_factory=list)
    status: str = DRAFT
    confidence_score: float = DEFAULT_CONFIDENCE
    risk_level: str = "low"
    warnings: list[str] = field(default_factory=list)
    estimated_impact: str | None = None
    file_urls: list[str] = field(default_factory=list)
    user_id: str | None = None
    results: CommandResults | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    executed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, status: str) -> None:
        """Move to a new status, enforcing the state machine.

        Raises:
            InvalidTransitionError: If the move is not allowed.
            CommandValidationError: If leaving draft with no platform target.
        """
        if status not in TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransitionError(self.status, status)
        if self.status == DRAFT and status != FAILED and not self.platform_targets:
            raise CommandValidationError(
                "Please select at least one platform", field="platform_targets"
            )
        self.status = status

    def fail(self, error: str, category: str) -> None:
        """Move to ``failed`` recording the reason, keeping partial results."""
        self.transition_to(FAILED)
        results = self.results or CommandResults()
        results.error = error
        results.error_category = category
        self.results = results

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "command_text": self.command_text,
            "platform_targets": list(self.platform_targets),
            "actions_planned": [a.to_dict() for a in self.actions_planned],
            "status": self.status,
            "confidence_score": self.confidence_score,
            "risk_level": self.risk_level,
            "warnings": list(self.warnings),
            "estimated_impact": self.estimated_impact,
            "file_urls": list(self.file_urls),
            "user_id": self.user_id,
            "results": self.results.to_dict() if self.results else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Command":
        """Create from a stored dict, filtering malformed planned actions."""
        targets = data.get("platform_targets")
        return cls(
            id=data.get("id", ""),
            command_text=data.get("command_text", ""),
            platform_targets=list(targets) if isinstance(targets, list) else [],
            actions_planned=sanitize_actions(data.get("actions_planned")),
            status=data.get("status", DRAFT),
            confidence_score=float(
                data.get("confidence_score")
                if data.get("confidence_score") is not None
                else DEFAULT_CONFIDENCE
            ),
            risk_level=data.get("risk_level") or "low",
            warnings=[w for w in data.get("warnings") or [] if isinstance(w, str)],
            estimated_impact=data.get("estimated_impact"),
            file_urls=[u for u in data.get("file_urls") or [] if isinstance(u, str)],
            user_id=data.get("user_id"),
            results=CommandResults.from_dict(data.get("results")),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            executed_at=_parse_datetime(data.get("executed_at")),
        )


def assess_risk(actions: list[Action], confidence_score: float) -> str:
    """Estimate the risk level of a planned action list.

    Read-only plans are low risk. Plans that change store data are medium
    risk, or high risk when the interpreter is unsure (confidence < 0.6).

    Args:
        actions: Planned actions.
        confidence_score: Interpreter confidence.

    Returns:
        "low", "medium" or "high".
    """
    if all(a.read_only for a in actions):
        return "low"
    if confidence_score < 0.6:
        return "high"
    return "medium"
