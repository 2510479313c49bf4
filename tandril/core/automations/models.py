# tandril/core/automations/models.py
"""Data models for automations and their runs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tandril.core.actions.models import Action, parse_action
from tandril.core.errors import AutomationConfigError

# Run statuses
SUCCESS = "success"
PARTIAL_SUCCESS = "partial_success"
FAILED = "failed"

# Step statuses
STEP_SUCCESS = "success"
STEP_FAILED = "failed"
STEP_SKIPPED = "skipped"


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


@dataclass
class ChainEntry:
    """One step of an automation's action chain.

    Attributes:
        action_id: Id of the stored AutomationAction to run.
        order: Position in the chain; unique within an automation.
        continue_on_failure: Keep running later steps if this one fails.
    """

    action_id: str
    order: int
    continue_on_failure: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "order": self.order,
            "continue_on_failure": self.continue_on_failure,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChainEntry":
        return cls(
            action_id=str(data["action_id"]),
            order=int(data.get("order", 0)),
            continue_on_failure=bool(data.get("continue_on_failure", False)),
        )


@dataclass
class AutomationStatistics:
    """Aggregate run counters of an automation."""

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    average_execution_time_ms: float = 0.0

    def record_run(self, status: str, execution_time_ms: float) -> None:
        """Fold one run into the counters.

        The average is updated incrementally over all runs. Partial successes
        count toward ``total_runs`` only.
        """
        previous = self.total_runs
        self.total_runs = previous + 1
        if status == SUCCESS:
            self.successful_runs += 1
        elif status == FAILED:
            self.failed_runs += 1
        self.average_execution_time_ms = (
            self.average_execution_time_ms * previous + execution_time_ms
        ) / self.total_runs

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "average_execution_time_ms": self.average_execution_time_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AutomationStatistics":
        data = data or {}
        return cls(
            total_runs=int(data.get("total_runs", 0)),
            successful_runs=int(data.get("successful_runs", 0)),
            failed_runs=int(data.get("failed_runs", 0)),
            average_execution_time_ms=float(data.get("average_execution_time_ms", 0.0)),
        )


@dataclass
class StepResult:
    """Outcome of one chain step within a run."""

    action_id: str
    action_name: str
    action_type: str
    status: str
    result: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "action_name": self.action_name,
            "action_type": self.action_type,
            "status": self.status,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class ExecutionLogEntry:
    """One appended record per automation run."""

    timestamp: datetime
    status: str
    execution_time_ms: float
    actions_executed: list[dict[str, Any]] = field(default_factory=list)
    trigger_data: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "execution_time_ms": self.execution_time_ms,
            "actions_executed": list(self.actions_executed),
            "trigger_data": dict(self.trigger_data),
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionLogEntry":
        return cls(
            timestamp=_parse_datetime(data.get("timestamp")) or datetime.min,
            status=data.get("status", FAILED),
            execution_time_ms=float(data.get("execution_time_ms", 0)),
            actions_executed=list(data.get("actions_executed") or []),
            trigger_data=dict(data.get("trigger_data") or {}),
            error_message=data.get("error_message"),
        )


@dataclass
class RunResult:
    """Outcome of one automation run."""

    automation_id: str
    status: str
    steps: list[StepResult]
    execution_time_ms: float
    timestamp: datetime
    error_message: str | None = None

    @property
    def executed_steps(self) -> list[StepResult]:
        return [s for s in self.steps if s.status != STEP_SKIPPED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "automation_id": self.automation_id,
            "status": self.status,
            "steps": [s.to_dict() for s in self.steps],
            "execution_time_ms": self.execution_time_ms,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
        }


@dataclass
class AutomationAction:
    """Stored, reusable action definition referenced by chain entries.

    Attributes:
        id: Unique identifier.
        name: Display name.
        action_type: Action kind (e.g. "update_inventory", "run_ai_command").
        config: Kind-specific parameters.
        user_id: Owner.
    """

    id: str
    name: str
    action_type: str
    config: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None

    def to_action(self) -> Action | None:
        """Parse into a typed Action, or None when malformed."""
        return parse_action(
            {"type": self.action_type, "title": self.name, "parameters": self.config}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "action_type": self.action_type,
            "config": dict(self.config),
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AutomationAction":
        config = data.get("config")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            action_type=data.get("action_type", ""),
            config=dict(config) if isinstance(config, dict) else {},
            user_id=data.get("user_id"),
        )


@dataclass
class Automation:
    """A named trigger plus an ordered chain of actions.

    Attributes:
        id: Unique identifier.
        name: Display name.
        description: Free text.
        category: Grouping label ("inventory", "pricing", ...).
        trigger_id: Trigger that starts the chain.
        action_chain: Steps, each unique by ``order``.
        is_active: Inactive automations never run from the scheduler.
        statistics: Aggregate run counters.
        execution_log: Appended run records, newest last.
        user_id: Owner.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    id: str
    name: str
    trigger_id: str | None = None
    action_chain: list[ChainEntry] = field(default_factory=list)
    description: str = ""
    category: str = "general"
    is_active: bool = False
    statistics: AutomationStatistics = field(default_factory=AutomationStatistics)
    execution_log: list[ExecutionLogEntry] = field(default_factory=list)
    user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def validate(self) -> None:
        """Check chain invariants.

        Raises:
            AutomationConfigError: If two chain entries share an order value.
        """
        orders = [entry.order for entry in self.action_chain]
        if len(orders) != len(set(orders)):
            raise AutomationConfigError(
                f"Automation '{self.name}' has duplicate chain order values"
            )

    def ordered_chain(self) -> list[ChainEntry]:
        return sorted(self.action_chain, key=lambda entry: entry.order)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "trigger_id": self.trigger_id,
            "action_chain": [entry.to_dict() for entry in self.action_chain],
            "is_active": self.is_active,
            "statistics": self.statistics.to_dict(),
            "execution_log": [entry.to_dict() for entry in self.execution_log],
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Automation":
        """Create from a stored dict."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description") or "",
            category=data.get("category") or "general",
            trigger_id=data.get("trigger_id"),
            action_chain=[
                ChainEntry.from_dict(e)
                for e in data.get("action_chain") or []
                if isinstance(e, dict) and e.get("action_id")
            ],
            is_active=bool(data.get("is_active", False)),
            statistics=AutomationStatistics.from_dict(data.get("statistics")),
            execution_log=[
                ExecutionLogEntry.from_dict(e)
                for e in data.get("execution_log") or []
                if isinstance(e, dict)
            ],
            user_id=data.get("user_id"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )
