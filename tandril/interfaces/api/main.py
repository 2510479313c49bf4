# tandril/interfaces/api/main.py
"""FastAPI application for commands, confirmation queues and automations.

Command confirmation returns as soon as the command is ``executing``; the
actions run in a background task and clients poll GET /commands/{id}.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Annotated, Any

from dotenv import load_dotenv
from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Load environment variables from .env file
load_dotenv()

from tandril.config import settings  # noqa: E402
from tandril.core.actions.resolver import Attachment  # noqa: E402
from tandril.core.automations.models import Automation, AutomationAction, ChainEntry  # noqa: E402
from tandril.core.commands.models import Command  # noqa: E402
from tandril.core.container import Services, get_services  # noqa: E402
from tandril.core.errors import (  # noqa: E402
    AutomationConfigError,
    InvalidTransitionError,
    QuotaExceededError,
    RecordNotFoundError,
    TandrilError,
)
from tandril.core.lifecycle import get_lifecycle_manager  # noqa: E402
from tandril.core.queue.confirmation import ActionConfirmationQueue  # noqa: E402
from tandril.core.scheduler.manager import get_scheduler  # noqa: E402
from tandril.core.scheduler.models import ScheduleConfig, Trigger  # noqa: E402
from tandril.core.scheduler.schedule import describe_schedule, next_run  # noqa: E402
from tandril.interfaces.api.schemas import (  # noqa: E402
    AttachmentCreate,
    AttachmentResponse,
    AutomationCreate,
    AutomationResponse,
    AutomationUpdate,
    CommandResponse,
    CommandSubmit,
    QueueOpen,
    QueueResponse,
    RunResponse,
    UpcomingRunResponse,
)
from tandril.interfaces.api.security import (  # noqa: E402
    get_rate_limit_string,
    limiter,
    verify_api_key,
)
from tandril.utils.logging import configure_structured_logging  # noqa: E402
from tandril.utils.observability import setup_logfire  # noqa: E402

logger = logging.getLogger(__name__)

ApiKey = Annotated[str, Depends(verify_api_key)]
ServicesDep = Annotated[Services, Depends(get_services)]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    configure_structured_logging(settings.log_level)
    services = get_services()
    scheduler = get_scheduler(settings.scheduler_tick_seconds)
    scheduler.set_orchestrator(services.orchestrator)

    lifecycle = get_lifecycle_manager()
    lifecycle.register("scheduler", scheduler)
    await lifecycle.startup()

    yield

    await lifecycle.shutdown()
    logger.info("Shutting down...")


app = FastAPI(
    title="Tandril Operations API",
    description="Natural-language store commands, action confirmation and automations",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
setup_logfire(app)


def error_status(exc: TandrilError) -> int:
    """HTTP status for a domain error."""
    if isinstance(exc, QuotaExceededError):
        return 429
    if isinstance(exc, RecordNotFoundError):
        return 404
    if isinstance(exc, InvalidTransitionError):
        return 409
    return 400


@app.exception_handler(TandrilError)
async def handle_domain_error(request: Request, exc: TandrilError) -> JSONResponse:
    """Render domain errors as a message plus a category."""
    body: dict[str, Any] = {"detail": exc.message, "category": exc.category}
    field = getattr(exc, "field", None)
    if field:
        body["field"] = field
    return JSONResponse(status_code=error_status(exc), content=body)


@app.get("/health")
@limiter.limit(get_rate_limit_string)
async def health_check(request: Request, services: ServicesDep) -> dict[str, Any]:
    """Health check endpoint."""
    scheduler = get_scheduler(settings.scheduler_tick_seconds)
    return {
        "status": "healthy",
        "interpreter": type(services.interpreter).__name__,
        "scheduler_running": scheduler.is_running,
    }


# Commands


def _command_response(command: Command) -> CommandResponse:
    return CommandResponse.model_validate(command.to_dict())


def _load_command(services: Services, command_id: str) -> Command:
    return services.lifecycle.poll(command_id)


@app.post("/commands", response_model=CommandResponse, status_code=201)
@limiter.limit(get_rate_limit_string)
async def submit_command(
    request: Request, body: CommandSubmit, services: ServicesDep, _api_key: ApiKey
) -> CommandResponse:
    """Submit a natural-language command for interpretation.

    The response is the command in ``awaiting_confirmation``; or ``failed``
    when interpretation failed; or ``completed`` when nothing needed doing.
    """
    quota = None
    if body.user_id:
        quota = services.usage.quota_for(
            body.user_id, services.config.command_limit_for(body.plan)
        )
    command = await services.lifecycle.submit(
        body.command_text,
        body.platform_targets,
        attachments=body.file_urls,
        quota=quota,
        user_id=body.user_id,
    )
    return _command_response(command)


@app.get("/commands", response_model=list[CommandResponse])
@limiter.limit(get_rate_limit_string)
async def list_commands(
    request: Request,
    services: ServicesDep,
    _api_key: ApiKey,
    user_id: str | None = None,
    status: str | None = None,
    limit: int = 50,
) -> list[CommandResponse]:
    """Command history, newest first."""
    commands = services.commands.list(user_id=user_id, status=status, limit=limit)
    return [_command_response(c) for c in commands]


@app.get("/commands/{command_id}", response_model=CommandResponse)
@limiter.limit(get_rate_limit_string)
async def get_command(
    request: Request, command_id: str, services: ServicesDep, _api_key: ApiKey
) -> CommandResponse:
    """Current state of one command (the polling endpoint)."""
    return _command_response(_load_command(services, command_id))


@app.post("/commands/{command_id}/confirm", response_model=CommandResponse, status_code=202)
@limiter.limit(get_rate_limit_string)
async def confirm_command(
    request: Request,
    command_id: str,
    background_tasks: BackgroundTasks,
    services: ServicesDep,
    _api_key: ApiKey,
) -> CommandResponse:
    """Confirm a planned command; actions run in the background."""
    command = services.lifecycle.start_execution(command_id)
    background_tasks.add_task(services.lifecycle.run_actions, command)
    logger.info("Command %s confirmed and queued for execution", command_id)
    return _command_response(command)


@app.post("/commands/{command_id}/cancel", response_model=CommandResponse)
@limiter.limit(get_rate_limit_string)
async def cancel_command(
    request: Request, command_id: str, services: ServicesDep, _api_key: ApiKey
) -> CommandResponse:
    """Cancel a command that has not started executing."""
    return _command_response(services.lifecycle.cancel(command_id))


# Automations


def _automation_response(services: Services, automation: Automation) -> AutomationResponse:
    data = automation.to_dict()
    trigger = (
        services.automations.get_trigger(automation.trigger_id)
        if automation.trigger_id
        else None
    )
    if trigger is not None:
        data["schedule"] = describe_schedule(trigger.schedule_config)
        data["next_run_at"] = trigger.next_run_at.isoformat() if trigger.next_run_at else None
    return AutomationResponse.model_validate(data)


def _load_automation(services: Services, automation_id: str) -> Automation:
    automation = services.automations.get_automation(automation_id)
    if automation is None:
        raise RecordNotFoundError("automations", automation_id)
    return automation


@app.post("/automations", response_model=AutomationResponse, status_code=201)
@limiter.limit(get_rate_limit_string)
async def create_automation(
    request: Request, body: AutomationCreate, services: ServicesDep, _api_key: ApiKey
) -> AutomationResponse:
    """Create an automation with its trigger and action chain."""
    repo = services.automations
    orders = [
        step.order if step.order is not None else position
        for position, step in enumerate(body.steps, start=1)
    ]
    if len(orders) != len(set(orders)):
        raise AutomationConfigError(f"Automation '{body.name}' has duplicate chain order values")
    for step in body.steps:
        if step.action_id:
            if repo.get_action(step.action_id) is None:
                raise RecordNotFoundError("automation_actions", step.action_id)
        elif not (step.name and step.action_type):
            raise AutomationConfigError("Each step needs an action_id or a name and action_type")

    trigger_id = body.trigger_id
    if trigger_id and repo.get_trigger(trigger_id) is None:
        raise RecordNotFoundError("automation_triggers", trigger_id)
    if body.trigger is not None:
        config = ScheduleConfig.from_dict(body.trigger.schedule_config.model_dump())
        config.timezone = config.timezone or services.config.default_timezone
        trigger = repo.create_trigger(
            Trigger(
                id="",
                name=body.trigger.name,
                schedule_config=config,
                is_active=body.is_active,
                user_id=body.user_id,
                next_run_at=next_run(config, datetime.now(timezone.utc)),
            )
        )
        trigger_id = trigger.id

    chain = []
    for order, step in zip(orders, body.steps):
        action_id = step.action_id
        if not action_id:
            action_id = repo.create_action(
                AutomationAction(
                    id="",
                    name=step.name,
                    action_type=step.action_type,
                    config=step.config,
                    user_id=body.user_id,
                )
            ).id
        chain.append(ChainEntry(action_id, order, step.continue_on_failure))

    automation = repo.create_automation(
        Automation(
            id="",
            name=body.name,
            description=body.description,
            category=body.category,
            trigger_id=trigger_id,
            action_chain=chain,
            is_active=body.is_active,
            user_id=body.user_id,
        )
    )
    logger.info("Automation %s created with %d step(s)", automation.id, len(chain))
    return _automation_response(services, automation)


@app.get("/automations", response_model=list[AutomationResponse])
@limiter.limit(get_rate_limit_string)
async def list_automations(
    request: Request,
    services: ServicesDep,
    _api_key: ApiKey,
    user_id: str | None = None,
    active_only: bool = False,
) -> list[AutomationResponse]:
    automations = services.automations.list_automations(user_id=user_id, active_only=active_only)
    return [_automation_response(services, a) for a in automations]


@app.get("/automations/{automation_id}", response_model=AutomationResponse)
@limiter.limit(get_rate_limit_string)
async def get_automation(
    request: Request, automation_id: str, services: ServicesDep, _api_key: ApiKey
) -> AutomationResponse:
    return _automation_response(services, _load_automation(services, automation_id))


@app.patch("/automations/{automation_id}", response_model=AutomationResponse)
@limiter.limit(get_rate_limit_string)
async def update_automation(
    request: Request,
    automation_id: str,
    body: AutomationUpdate,
    services: ServicesDep,
    _api_key: ApiKey,
) -> AutomationResponse:
    """Rename an automation or switch it on/off.

    Activating an automation also activates its schedule trigger.
    """
    repo = services.automations
    automation = _load_automation(services, automation_id)
    if body.name is not None:
        automation.name = body.name
    if body.description is not None:
        automation.description = body.description
    if body.is_active is not None:
        automation.is_active = body.is_active
        if body.is_active and automation.trigger_id and repo.get_trigger(automation.trigger_id):
            services.orchestrator.set_trigger_active(automation.trigger_id, True)
    return _automation_response(services, repo.save_automation(automation))


@app.delete("/automations/{automation_id}")
@limiter.limit(get_rate_limit_string)
async def delete_automation(
    request: Request, automation_id: str, services: ServicesDep, _api_key: ApiKey
) -> dict[str, str]:
    if not services.automations.delete_automation(automation_id):
        raise RecordNotFoundError("automations", automation_id)
    return {"message": f"Automation {automation_id} deleted"}


@app.post("/automations/{automation_id}/run", response_model=RunResponse)
@limiter.limit(get_rate_limit_string)
async def run_automation(
    request: Request,
    automation_id: str,
    services: ServicesDep,
    _api_key: ApiKey,
    test_mode: bool = False,
) -> RunResponse:
    """Run an automation now, regardless of its schedule."""
    result = await services.orchestrator.run_automation_now(automation_id, test_mode=test_mode)
    return RunResponse.model_validate(result.to_dict())


@app.get("/schedule/upcoming", response_model=list[UpcomingRunResponse])
@limiter.limit(get_rate_limit_string)
async def upcoming_runs(
    request: Request, services: ServicesDep, _api_key: ApiKey, limit: int = 10
) -> list[UpcomingRunResponse]:
    """Next scheduled runs across active triggers, soonest first."""
    return [
        UpcomingRunResponse.model_validate(run.to_dict())
        for run in services.orchestrator.upcoming_runs(limit=limit)
    ]


# Conversation queues


def _queue_response(queue: ActionConfirmationQueue) -> QueueResponse:
    data = queue.to_dict()
    data["summary"] = asdict(queue.summary())
    return QueueResponse.model_validate(data)


def _load_queue(services: Services, conversation_id: str) -> ActionConfirmationQueue:
    queue = services.queues.get(conversation_id)
    if queue is None:
        raise RecordNotFoundError("queues", conversation_id)
    return queue


@app.post("/conversations/{conversation_id}/attachments", response_model=AttachmentResponse)
@limiter.limit(get_rate_limit_string)
async def add_attachment(
    request: Request,
    conversation_id: str,
    body: AttachmentCreate,
    services: ServicesDep,
    _api_key: ApiKey,
) -> AttachmentResponse:
    """Register an uploaded file so queued actions can reference it."""
    attachment = Attachment.from_url(body.url)
    if body.file_id:
        attachment.file_id = body.file_id
    if body.name:
        attachment.name = body.name
    services.attachments.add(conversation_id, attachment)
    return AttachmentResponse.model_validate(asdict(attachment))


@app.post("/conversations/{conversation_id}/queue", response_model=QueueResponse, status_code=201)
@limiter.limit(get_rate_limit_string)
async def open_queue(
    request: Request,
    conversation_id: str,
    body: QueueOpen,
    services: ServicesDep,
    _api_key: ApiKey,
) -> QueueResponse:
    """Open the confirmation queue for a turn, superseding any previous one."""
    queue = services.queues.open(
        conversation_id,
        body.actions,
        services.executor,
        resolver=services.attachments.resolver_for(conversation_id),
    )
    return _queue_response(queue)


@app.get("/conversations/{conversation_id}/queue", response_model=QueueResponse)
@limiter.limit(get_rate_limit_string)
async def get_queue(
    request: Request, conversation_id: str, services: ServicesDep, _api_key: ApiKey
) -> QueueResponse:
    return _queue_response(_load_queue(services, conversation_id))


@app.post("/conversations/{conversation_id}/queue/advance", response_model=QueueResponse)
@limiter.limit(get_rate_limit_string)
async def advance_queue(
    request: Request, conversation_id: str, services: ServicesDep, _api_key: ApiKey
) -> QueueResponse:
    """Approve and run the current action.

    A queue that finishes is discarded; the response is its final state.
    """
    queue = _load_queue(services, conversation_id)
    await queue.advance_one()
    services.queues.release(conversation_id)
    return _queue_response(queue)


@app.post("/conversations/{conversation_id}/queue/advance-all", response_model=QueueResponse)
@limiter.limit(get_rate_limit_string)
async def advance_queue_all(
    request: Request, conversation_id: str, services: ServicesDep, _api_key: ApiKey
) -> QueueResponse:
    """Approve and run every remaining action."""
    queue = _load_queue(services, conversation_id)
    await queue.advance_all()
    services.queues.release(conversation_id)
    return _queue_response(queue)


@app.post("/conversations/{conversation_id}/queue/cancel", response_model=QueueResponse)
@limiter.limit(get_rate_limit_string)
async def cancel_queue(
    request: Request, conversation_id: str, services: ServicesDep, _api_key: ApiKey
) -> QueueResponse:
    """Stop the queue; finished items stay in the response."""
    queue = _load_queue(services, conversation_id)
    queue.cancel()
    services.queues.release(conversation_id)
    return _queue_response(queue)
