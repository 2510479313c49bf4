# tests/test_command_lifecycle.py
"""Tests for the command model, repository, quota and lifecycle service."""

import asyncio
from datetime import datetime, timezone

import pytest

from tandril.core.actions.models import ApplyDiscountAction, GetProductsAction
from tandril.core.commands.interpreter import InterpretationResult
from tandril.core.commands.models import (
    AWAITING_CONFIRMATION,
    COMPLETED,
    DRAFT,
    EXECUTING,
    FAILED,
    INTERPRETING,
    Command,
    CommandResults,
    assess_risk,
)
from tandril.core.commands.quota import UsageQuota, UsageRepository
from tandril.core.commands.repository import CommandRepository
from tandril.core.commands.service import (
    CANCELLED_BY_USER,
    LOST_TRACK,
    WATCH_CANCELLED,
    WATCH_LOST,
    WATCH_TERMINAL,
    CommandLifecycle,
)
from tandril.core.errors import (
    CANCELLED,
    EXECUTION,
    INTERPRETATION,
    POLLING,
    RESOLUTION,
    CommandValidationError,
    InvalidTransitionError,
    QuotaExceededError,
    RecordNotFoundError,
    TandrilError,
)

PRICE_ACTIONS = [
    {
        "type": "get_products",
        "title": "Find all products",
        "parameters": {"filter": "all"},
        "requires_confirmation": False,
    },
    {
        "type": "update_products",
        "title": "Set prices to $10",
        "parameters": {"changes": {"price": "10.00"}},
    },
]


def _plan(actions=None, **kwargs):
    return InterpretationResult(
        success=True,
        actions=PRICE_ACTIONS if actions is None else actions,
        confidence_score=kwargs.pop("confidence_score", 0.9),
        **kwargs,
    )


@pytest.fixture
def repository(memory_store):
    return CommandRepository(memory_store)


@pytest.fixture
def usage(memory_store):
    return UsageRepository(memory_store)


@pytest.fixture
def build_lifecycle(repository, make_interpreter, make_executor):
    def _build(interpreter=None, executor=None, usage=None):
        return CommandLifecycle(
            repository,
            interpreter or make_interpreter(_plan()),
            executor or make_executor(),
            usage=usage,
            poll_interval=0.01,
        )

    return _build


class TestCommandModel:
    """Tests for the Command state machine and serialization."""

    def test_forward_transitions(self):
        command = Command(id="c1", command_text="hi", platform_targets=["shopify"])
        for status in (INTERPRETING, AWAITING_CONFIRMATION, EXECUTING, COMPLETED):
            command.transition_to(status)
        assert command.status == COMPLETED
        assert command.is_terminal

    def test_backward_transition_rejected(self):
        command = Command(
            id="c1", command_text="hi", platform_targets=["shopify"], status=EXECUTING
        )
        with pytest.raises(InvalidTransitionError):
            command.transition_to(AWAITING_CONFIRMATION)

    def test_terminal_is_frozen(self):
        command = Command(id="c1", command_text="hi", platform_targets=["s"], status=FAILED)
        with pytest.raises(InvalidTransitionError):
            command.transition_to(FAILED)

    def test_leaving_draft_requires_platform(self):
        command = Command(id="c1", command_text="hi", platform_targets=[])
        with pytest.raises(CommandValidationError) as exc_info:
            command.transition_to(INTERPRETING)
        assert exc_info.value.field == "platform_targets"
        assert command.status == DRAFT

    def test_fail_keeps_partial_results(self):
        command = Command(
            id="c1", command_text="hi", platform_targets=["s"], status=EXECUTING
        )
        command.results = CommandResults(success_count=2)

        command.fail("1 of 3 actions failed", EXECUTION)

        assert command.status == FAILED
        assert command.results.success_count == 2
        assert command.results.error_category == EXECUTION

    def test_from_dict_filters_malformed_actions(self):
        command = Command.from_dict(
            {
                "id": "c1",
                "command_text": "hi",
                "platform_targets": ["shopify"],
                "actions_planned": [{"type": "get_products"}, "junk", {"x": 1}],
                "status": AWAITING_CONFIRMATION,
            }
        )
        assert len(command.actions_planned) == 1
        assert command.confidence_score == 0.8

    def test_round_trip_keeps_results(self):
        command = Command(id="c1", command_text="hi", platform_targets=["s"])
        command.results = CommandResults(success_count=1, messages=["done"])

        restored = Command.from_dict(command.to_dict())

        assert restored.results.success_count == 1
        assert restored.results.messages == ["done"]


class TestAssessRisk:
    def test_read_only_is_low(self):
        assert assess_risk([GetProductsAction()], 0.3) == "low"

    def test_writes_are_medium(self):
        assert assess_risk([GetProductsAction(), ApplyDiscountAction()], 0.9) == "medium"

    def test_uncertain_writes_are_high(self):
        assert assess_risk([ApplyDiscountAction()], 0.5) == "high"


class TestCommandRepository:
    def test_save_unknown_raises(self, repository):
        with pytest.raises(RecordNotFoundError):
            repository.save(Command(id="ghost", command_text="x", platform_targets=["s"]))

    def test_list_newest_first(self, repository, memory_store):
        memory_store.create(
            "commands",
            {"id": "old", "command_text": "a", "platform_targets": ["s"], "user_id": "u1",
             "created_at": "2024-01-01T00:00:00+00:00"},
        )
        memory_store.create(
            "commands",
            {"id": "new", "command_text": "b", "platform_targets": ["s"], "user_id": "u1",
             "created_at": "2024-02-01T00:00:00+00:00"},
        )

        assert [c.id for c in repository.list(user_id="u1")] == ["new", "old"]


class TestUsageQuota:
    def test_at_limit(self):
        assert UsageQuota(limit=50, used=50).at_limit is True
        assert UsageQuota(limit=50, used=49).remaining == 1

    def test_monthly_counter(self, usage):
        january = datetime(2024, 1, 10, tzinfo=timezone.utc)
        february = datetime(2024, 2, 1, tzinfo=timezone.utc)

        usage.increment("u1", january)
        usage.increment("u1", january)

        assert usage.used("u1", january) == 2
        assert usage.used("u1", february) == 0
        assert usage.quota_for("u1", 2, january).at_limit is True


class TestSubmit:
    """Tests for CommandLifecycle.submit()."""

    @pytest.mark.asyncio
    async def test_plans_and_awaits_confirmation(self, build_lifecycle, make_interpreter, repository):
        interpreter = make_interpreter(_plan(warnings=["Affects 120 products"]))
        lifecycle = build_lifecycle(interpreter)

        command = await lifecycle.submit("set all prices to $10", ["shopify"])

        assert command.status == AWAITING_CONFIRMATION
        assert command.id
        assert len(command.actions_planned) == 2
        assert command.confidence_score == 0.9
        assert command.risk_level == "medium"
        assert command.warnings == ["Affects 120 products"]
        assert repository.get(command.id).status == AWAITING_CONFIRMATION
        assert interpreter.calls == [("set all prices to $10", ["shopify"], [])]

    @pytest.mark.asyncio
    async def test_confidence_clamped_and_impact_kept(self, build_lifecycle, make_interpreter, repository):
        plan = _plan(confidence_score=1.7, estimated_impact="2 products repriced")
        lifecycle = build_lifecycle(make_interpreter(plan))

        command = await lifecycle.submit("set all prices to $10", ["shopify"])

        stored = repository.get(command.id)
        assert stored.confidence_score == 1.0
        assert stored.estimated_impact == "2 products repriced"

    @pytest.mark.asyncio
    async def test_negative_confidence_clamped(self, build_lifecycle, make_interpreter, repository):
        lifecycle = build_lifecycle(make_interpreter(_plan(confidence_score=-0.3)))

        command = await lifecycle.submit("set all prices to $10", ["shopify"])

        assert command.confidence_score == 0.0
        assert command.risk_level == "high"

    @pytest.mark.asyncio
    async def test_interpreter_risk_level_wins(self, build_lifecycle, make_interpreter, repository):
        lifecycle = build_lifecycle(make_interpreter(_plan(risk_level="high")))
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        assert command.risk_level == "high"

    @pytest.mark.asyncio
    async def test_missing_confidence_defaults(self, build_lifecycle, make_interpreter, repository):
        plan = InterpretationResult(success=True, actions=PRICE_ACTIONS)
        lifecycle = build_lifecycle(make_interpreter(plan))

        command = await lifecycle.submit("set all prices to $10", ["shopify"])

        assert command.confidence_score == 0.8

    @pytest.mark.asyncio
    async def test_malformed_actions_dropped(self, build_lifecycle, make_interpreter, repository):
        lifecycle = build_lifecycle(
            make_interpreter(_plan([PRICE_ACTIONS[0], "junk", {"nope": 1}]))
        )
        command = await lifecycle.submit("find products", ["shopify"])
        assert [a.label for a in command.actions_planned] == ["Find all products"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   "])
    async def test_empty_text_rejected_before_persisting(self, build_lifecycle, make_interpreter, repository, text):
        interpreter = make_interpreter(_plan())
        lifecycle = build_lifecycle(interpreter)

        with pytest.raises(CommandValidationError) as exc_info:
            await lifecycle.submit(text, ["shopify"])

        assert exc_info.value.message == "Please enter a command"
        assert exc_info.value.field == "command_text"
        assert repository.list() == []
        assert interpreter.calls == []

    @pytest.mark.asyncio
    async def test_no_platform_rejected(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()

        with pytest.raises(CommandValidationError) as exc_info:
            await lifecycle.submit("discount everything", [])

        assert exc_info.value.field == "platform_targets"
        assert repository.list() == []

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()

        with pytest.raises(QuotaExceededError):
            await lifecycle.submit(
                "discount everything", ["shopify"], quota=UsageQuota(limit=5, used=5)
            )

        assert repository.list() == []

    @pytest.mark.asyncio
    async def test_usage_counted_on_success(self, build_lifecycle, repository, usage):
        lifecycle = build_lifecycle(usage=usage)

        await lifecycle.submit("set all prices to $10", ["shopify"], user_id="u1")

        assert usage.used("u1") == 1

    @pytest.mark.asyncio
    async def test_interpretation_failure_is_persisted(self, build_lifecycle, make_interpreter, repository, usage):
        interpreter = make_interpreter(
            InterpretationResult(success=False, error="Model is overloaded")
        )
        lifecycle = build_lifecycle(interpreter, usage=usage)

        command = await lifecycle.submit("do the thing", ["shopify"], user_id="u1")

        assert command.status == FAILED
        assert command.results.error == "Model is overloaded"
        assert command.results.error_category == INTERPRETATION
        assert repository.get(command.id).status == FAILED
        assert usage.used("u1") == 0

    @pytest.mark.asyncio
    async def test_interpreter_exception_fails_command(self, build_lifecycle, make_interpreter, repository):
        lifecycle = build_lifecycle(make_interpreter(error=RuntimeError("timeout")))

        command = await lifecycle.submit("do the thing", ["shopify"])

        assert command.status == FAILED
        assert command.results.error == "timeout"

    @pytest.mark.asyncio
    async def test_empty_plan_completes_immediately(self, build_lifecycle, make_interpreter, make_executor, repository):
        executor = make_executor()
        lifecycle = build_lifecycle(make_interpreter(_plan([])), executor)

        command = await lifecycle.submit("nothing to do", ["shopify"])

        assert command.status == COMPLETED
        assert command.results.success_count == 0
        assert executor.executed == []


class TestConfirm:
    """Tests for confirmation and execution."""

    @pytest.mark.asyncio
    async def test_confirm_runs_every_action(self, build_lifecycle, make_executor, repository):
        executor = make_executor()
        lifecycle = build_lifecycle(executor=executor)
        command = await lifecycle.submit("set all prices to $10", ["shopify"])

        command = await lifecycle.confirm(command)

        assert command.status == COMPLETED
        assert command.results.success_count == 2
        assert command.results.failure_count == 0
        assert command.executed_at is not None
        assert executor.executed == ["Find all products", "Set prices to $10"]
        assert repository.get(command.id).status == COMPLETED

    @pytest.mark.asyncio
    async def test_partial_failure_fails_command(self, build_lifecycle, make_executor, repository):
        executor = make_executor(fail_on={"Find all products"})
        lifecycle = build_lifecycle(executor=executor)
        command = await lifecycle.submit("set all prices to $10", ["shopify"])

        command = await lifecycle.confirm(command)

        assert command.status == FAILED
        assert command.results.success_count == 1
        assert command.results.failures[0].index == 0
        assert command.results.error == "1 of 2 actions failed"
        assert command.results.error_category == EXECUTION
        assert executor.executed == ["Find all products", "Set prices to $10"]

    @pytest.mark.asyncio
    async def test_confirm_requires_awaiting(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        command = await lifecycle.confirm(command)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.confirm(command)

    @pytest.mark.asyncio
    async def test_attached_file_resolved(self, build_lifecycle, make_interpreter, repository):
        url = "https://cdn.example.com/uploads/stock.csv"
        plan = _plan([{"type": "import_file", "title": "Import", "parameters": {"file_id": url}}])
        lifecycle = build_lifecycle(make_interpreter(plan))
        command = await lifecycle.submit("import this", ["shopify"], attachments=[url])

        command = await lifecycle.confirm(command)

        assert command.status == COMPLETED

    @pytest.mark.asyncio
    async def test_missing_file_is_resolution_failure(self, build_lifecycle, make_interpreter, make_executor, repository):
        plan = _plan([{"type": "import_file", "title": "Import", "parameters": {"file_id": "gone.csv"}}])
        executor = make_executor()
        lifecycle = build_lifecycle(make_interpreter(plan), executor)
        command = await lifecycle.submit("import this", ["shopify"])

        command = await lifecycle.confirm(command)

        assert command.status == FAILED
        assert command.results.error_category == RESOLUTION
        assert executor.executed == []


class TestStepwise:
    @pytest.mark.asyncio
    async def test_finish_requires_finished_queue(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        command, queue = lifecycle.begin_stepwise(command)

        assert command.status == EXECUTING
        with pytest.raises(TandrilError):
            lifecycle.finish_stepwise(command, queue)

    @pytest.mark.asyncio
    async def test_stopped_midway(self, build_lifecycle, make_executor, repository):
        executor = make_executor()
        lifecycle = build_lifecycle(executor=executor)
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        command, queue = lifecycle.begin_stepwise(command)

        await queue.advance_one()
        queue.cancel()
        command = lifecycle.finish_stepwise(command, queue)

        assert command.status == FAILED
        assert command.results.success_count == 1
        assert command.results.error == "Execution stopped by user after 1 of 2 actions"
        assert command.results.error_category == CANCELLED
        assert executor.executed == ["Find all products"]

    @pytest.mark.asyncio
    async def test_all_approved(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        command, queue = lifecycle.begin_stepwise(command)

        await queue.advance_one()
        await queue.advance_one()

        assert lifecycle.finish_stepwise(command, queue).status == COMPLETED


class TestCancel:
    """Tests for CommandLifecycle.cancel()."""

    @pytest.mark.asyncio
    async def test_cancel_awaiting(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])

        cancelled = lifecycle.cancel(command.id)

        assert cancelled.status == FAILED
        assert cancelled.results.error == CANCELLED_BY_USER
        assert cancelled.results.error_category == CANCELLED
        assert repository.get(command.id).status == FAILED

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        first = lifecycle.cancel(command)

        second = lifecycle.cancel(command)

        assert second.status == FAILED
        assert second.results.error == CANCELLED_BY_USER
        assert second.updated_at == first.updated_at

    @pytest.mark.asyncio
    async def test_cancel_completed_is_noop(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        await lifecycle.confirm(command)

        assert lifecycle.cancel(command.id).status == COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_executing_rejected(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        lifecycle.start_execution(command)

        with pytest.raises(InvalidTransitionError):
            lifecycle.cancel(command.id)
        assert repository.get(command.id).status == EXECUTING

    @pytest.mark.asyncio
    async def test_confirm_after_cancel_rejected(self, build_lifecycle, make_executor, repository):
        executor = make_executor()
        lifecycle = build_lifecycle(executor=executor)
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        lifecycle.cancel(command.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.confirm(command)

        stored = repository.get(command.id)
        assert stored.status == FAILED
        assert stored.results.error == CANCELLED_BY_USER
        assert executor.executed == []

    @pytest.mark.asyncio
    async def test_stepwise_after_cancel_rejected(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        lifecycle.cancel(command)

        with pytest.raises(InvalidTransitionError):
            lifecycle.begin_stepwise(command)
        assert repository.get(command.id).status == FAILED

    def test_cancel_unknown(self, build_lifecycle, repository):
        with pytest.raises(RecordNotFoundError):
            build_lifecycle().cancel("missing")


class TestWatch:
    """Tests for CommandLifecycle.watch()."""

    @pytest.mark.asyncio
    async def test_stops_on_terminal(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        seen = []

        async def confirm_later():
            await asyncio.sleep(0.03)
            await lifecycle.confirm(command)

        task = asyncio.create_task(confirm_later())
        result = await lifecycle.watch(command.id, on_update=lambda c: seen.append(c.status))
        await task

        assert result.outcome == WATCH_TERMINAL
        assert result.command.status == COMPLETED
        assert seen[0] == AWAITING_CONFIRMATION
        assert seen[-1] == COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_event_stops_polling(self, build_lifecycle, repository):
        lifecycle = build_lifecycle()
        command = await lifecycle.submit("set all prices to $10", ["shopify"])
        stop = asyncio.Event()
        stop.set()

        result = await lifecycle.watch(command.id, cancel_event=stop)

        assert result.outcome == WATCH_CANCELLED
        assert repository.get(command.id).status == AWAITING_CONFIRMATION

    @pytest.mark.asyncio
    async def test_read_error_loses_track(self, build_lifecycle, repository):
        result = await build_lifecycle().watch("missing", interval=0.01)

        assert result.outcome == WATCH_LOST
        assert result.error == LOST_TRACK
        assert result.category == POLLING
        assert result.command is None

    @pytest.mark.asyncio
    async def test_failed_command_is_terminal(self, build_lifecycle, make_interpreter, repository):
        interpreter = make_interpreter(InterpretationResult(success=False, error="nope"))
        lifecycle = build_lifecycle(interpreter)
        command = await lifecycle.submit("do the thing", ["shopify"])

        result = await lifecycle.watch(command.id)

        assert result.outcome == WATCH_TERMINAL
        assert result.command.results.error == "nope"
