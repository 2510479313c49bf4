# tandril/interfaces/api/schemas.py
"""Pydantic models for FastAPI request/response validation."""

from typing import Any

from pydantic import BaseModel, Field


class CommandSubmit(BaseModel):
    """Request body for POST /commands.

    Attributes:
        command_text: Natural-language request.
        platform_targets: Platforms/shops the command applies to.
        file_urls: Uploaded files referenced by the command.
        user_id: Submitting user (enables the monthly quota).
        plan: Subscription plan of the user ("free" or "pro").
    """

    command_text: str = Field(..., description="Natural-language command")
    platform_targets: list[str] = Field(
        default_factory=list, description="Target platforms"
    )
    file_urls: list[str] = Field(default_factory=list, description="Attached file URLs")
    user_id: str | None = Field(None, description="User identifier for quota tracking")
    plan: str = Field("free", description="Subscription plan")


class CommandResultsResponse(BaseModel):
    success_count: int = 0
    failures: list[dict[str, Any]] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)
    error: str | None = None
    error_category: str | None = None


class CommandResponse(BaseModel):
    """Response body for command endpoints."""

    id: str = Field(..., description="Command identifier")
    command_text: str
    platform_targets: list[str]
    status: str = Field(..., description="Lifecycle state")
    actions_planned: list[dict[str, Any]] = Field(default_factory=list)
    confidence_score: float
    risk_level: str
    warnings: list[str] = Field(default_factory=list)
    estimated_impact: str | None = None
    file_urls: list[str] = Field(default_factory=list)
    user_id: str | None = None
    results: CommandResultsResponse | None = None
    created_at: str | None = None
    updated_at: str | None = None
    executed_at: str | None = None


class ScheduleConfigBody(BaseModel):
    frequency: str = Field(..., description="hourly, daily, weekly or monthly")
    time_of_day: str | None = Field(None, description="HH:MM")
    day_of_week: list[str] = Field(default_factory=list)
    day_of_month: int | None = None
    timezone: str | None = None


class TriggerCreate(BaseModel):
    """Schedule trigger created together with an automation."""

    name: str = Field(..., description="Trigger name")
    schedule_config: ScheduleConfigBody


class ChainStepCreate(BaseModel):
    """One chain step: an existing stored action or a new one.

    Attributes:
        action_id: Existing stored action to reference.
        name: Name of a new stored action.
        action_type: Kind of a new stored action.
        config: Parameters of a new stored action.
        order: Position in the chain (defaults to list position).
        continue_on_failure: Keep running later steps if this one fails.
    """

    action_id: str | None = None
    name: str | None = None
    action_type: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    order: int | None = None
    continue_on_failure: bool = False


class AutomationCreate(BaseModel):
    """Request body for POST /automations."""

    name: str = Field(..., description="Automation name")
    description: str = ""
    category: str = "general"
    is_active: bool = False
    trigger_id: str | None = Field(None, description="Existing trigger to attach")
    trigger: TriggerCreate | None = Field(None, description="New trigger to create")
    steps: list[ChainStepCreate] = Field(default_factory=list)
    user_id: str | None = None


class AutomationUpdate(BaseModel):
    """Request body for PATCH /automations/{id}."""

    name: str | None = None
    description: str | None = None
    is_active: bool | None = None


class AutomationResponse(BaseModel):
    """Response body for automation endpoints."""

    id: str
    name: str
    description: str = ""
    category: str = "general"
    trigger_id: str | None = None
    action_chain: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool = False
    statistics: dict[str, Any] = Field(default_factory=dict)
    execution_log: list[dict[str, Any]] = Field(default_factory=list)
    user_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    schedule: str | None = Field(None, description="Human-readable schedule")
    next_run_at: str | None = None


class RunResponse(BaseModel):
    """Response body for POST /automations/{id}/run."""

    automation_id: str
    status: str = Field(..., description="success, partial_success or failed")
    steps: list[dict[str, Any]] = Field(default_factory=list)
    execution_time_ms: float
    timestamp: str
    error_message: str | None = None


class UpcomingRunResponse(BaseModel):
    trigger_id: str
    trigger_name: str
    run_at: str
    schedule: str
    time_until: str
    automation_ids: list[str] = Field(default_factory=list)


class AttachmentCreate(BaseModel):
    """Request body for POST /conversations/{cid}/attachments."""

    url: str = Field(..., description="Uploaded file URL")
    name: str | None = Field(None, description="Display name")
    file_id: str | None = Field(None, description="Identifier actions refer to")


class AttachmentResponse(BaseModel):
    file_id: str
    name: str
    url: str


class QueueOpen(BaseModel):
    """Request body for POST /conversations/{cid}/queue."""

    actions: list[Any] = Field(default_factory=list, description="Proposed actions")


class QueueSummaryResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    remaining: int
    done: bool
    cancelled: bool


class QueueResponse(BaseModel):
    """Response body for queue endpoints."""

    queue_id: str
    actions: list[dict[str, Any]] = Field(default_factory=list)
    idx: int
    current: dict[str, Any] | None = None
    results: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)
    done: bool
    cancelled: bool
    summary: QueueSummaryResponse | None = None


class ErrorResponse(BaseModel):
    detail: str
    category: str
    field: str | None = None
