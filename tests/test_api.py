# tests/test_api.py
"""Tests for FastAPI endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from tandril.config import Settings, settings
from tandril.core.commands.interpreter import InterpretationResult
from tandril.core.container import build_services, set_services
from tandril.core.store.memory import InMemoryRecordStore
from tandril.interfaces.api.main import app
from tandril.interfaces.api.security import limiter

PLAN = InterpretationResult(
    success=True,
    actions=[
        {"type": "get_products", "title": "Find all products", "parameters": {"filter": "all"}},
        {
            "type": "update_products",
            "title": "Set prices to $10",
            "parameters": {"changes": {"price": "10.00"}},
        },
    ],
    confidence_score=0.9,
)


@pytest.fixture
def services(make_interpreter, make_executor, monkeypatch, reset_services, reset_scheduler_singleton):
    """Install in-memory services and open access for one test."""
    monkeypatch.setattr(settings, "api_auth_key", "")
    monkeypatch.setattr(settings, "api_rate_limit", 60)
    limiter.reset()

    built = build_services(
        Settings(store_backend="memory", free_plan_command_limit=2),
        store=InMemoryRecordStore(),
        interpreter=make_interpreter(PLAN),
        executor=make_executor(),
    )
    set_services(built)
    return built


@pytest.fixture
async def client(services):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _submit(client, **overrides):
    body = {"command_text": "set all prices to $10", "platform_targets": ["shopify"]}
    body.update(overrides)
    return await client.post("/commands", json=body)


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["interpreter"] == "FakeInterpreter"
        assert data["scheduler_running"] is False


class TestCommandEndpoints:
    """Tests for /commands endpoints."""

    @pytest.mark.asyncio
    async def test_submit_confirm_and_poll(self, client, services):
        response = await _submit(client)

        assert response.status_code == 201
        command = response.json()
        assert command["status"] == "awaiting_confirmation"
        assert len(command["actions_planned"]) == 2
        assert command["risk_level"] == "medium"

        response = await client.post(f"/commands/{command['id']}/confirm")
        assert response.status_code == 202
        assert response.json()["status"] == "executing"

        response = await client.get(f"/commands/{command['id']}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["results"]["success_count"] == 2
        assert services.executor.executed == ["Find all products", "Set prices to $10"]

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, client, services):
        response = await _submit(client, command_text="  ")

        assert response.status_code == 400
        assert response.json() == {
            "detail": "Please enter a command",
            "category": "validation",
            "field": "command_text",
        }
        assert services.commands.list() == []

    @pytest.mark.asyncio
    async def test_missing_platform_rejected(self, client):
        response = await _submit(client, platform_targets=[])

        assert response.status_code == 400
        assert response.json()["field"] == "platform_targets"

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, client):
        assert (await _submit(client, user_id="u1")).status_code == 201
        assert (await _submit(client, user_id="u1")).status_code == 201

        response = await _submit(client, user_id="u1")

        assert response.status_code == 429
        assert response.json()["detail"] == "You have reached your monthly command limit"

    @pytest.mark.asyncio
    async def test_pro_plan_has_higher_limit(self, client):
        for _ in range(3):
            response = await _submit(client, user_id="u1", plan="pro")
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_interpretation_failure_returns_failed_command(self, make_interpreter, client, services):
        services.lifecycle.interpreter = make_interpreter(
            InterpretationResult(success=False, error="Model is overloaded")
        )

        response = await _submit(client)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "failed"
        assert data["results"]["error"] == "Model is overloaded"
        assert data["results"]["error_category"] == "interpretation"

    @pytest.mark.asyncio
    async def test_unknown_command(self, client):
        response = await client.get("/commands/missing")

        assert response.status_code == 404
        assert response.json()["category"] == "validation"

    @pytest.mark.asyncio
    async def test_cancel_then_confirm_conflicts(self, client):
        command_id = (await _submit(client)).json()["id"]

        first = await client.post(f"/commands/{command_id}/cancel")
        second = await client.post(f"/commands/{command_id}/cancel")
        confirm = await client.post(f"/commands/{command_id}/confirm")

        assert first.status_code == 200
        assert first.json()["status"] == "failed"
        assert first.json()["results"]["error"] == "Cancelled by user"
        assert second.status_code == 200
        assert second.json()["status"] == "failed"
        assert confirm.status_code == 409

    @pytest.mark.asyncio
    async def test_cancel_executing_conflicts(self, client, services):
        command_id = (await _submit(client)).json()["id"]
        services.lifecycle.start_execution(services.lifecycle.poll(command_id))

        response = await client.post(f"/commands/{command_id}/cancel")

        assert response.status_code == 409
        assert services.lifecycle.poll(command_id).status == "executing"

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, client):
        kept = (await _submit(client)).json()["id"]
        cancelled = (await _submit(client)).json()["id"]
        await client.post(f"/commands/{cancelled}/cancel")

        response = await client.get("/commands", params={"status": "awaiting_confirmation"})

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [kept]


class TestAutomationEndpoints:
    """Tests for /automations and /schedule endpoints."""

    BODY = {
        "name": "Morning restock",
        "category": "inventory",
        "trigger": {
            "name": "Every morning",
            "schedule_config": {"frequency": "daily", "time_of_day": "09:00"},
        },
        "steps": [
            {"name": "Check stock", "action_type": "get_products", "config": {"filter": "inventory"}},
            {
                "name": "Reorder",
                "action_type": "update_inventory",
                "config": {"sku": "HAT-1", "adjustment": 20},
                "continue_on_failure": True,
            },
        ],
    }

    @pytest.mark.asyncio
    async def test_create_activate_and_list_upcoming(self, client, services):
        response = await client.post("/automations", json=self.BODY)

        assert response.status_code == 201
        automation = response.json()
        assert automation["is_active"] is False
        assert automation["schedule"] == "Runs daily at 09:00 (Timezone: UTC)"
        assert automation["next_run_at"] is not None
        assert [e["order"] for e in automation["action_chain"]] == [1, 2]
        assert automation["action_chain"][1]["continue_on_failure"] is True

        upcoming = await client.get("/schedule/upcoming")
        assert upcoming.json() == []

        response = await client.patch(f"/automations/{automation['id']}", json={"is_active": True})
        assert response.status_code == 200
        assert response.json()["is_active"] is True
        trigger = services.automations.get_trigger(automation["trigger_id"])
        assert trigger.is_active is True
        assert trigger.activated_at is not None
        assert trigger.next_run_at > trigger.activated_at
        assert await services.orchestrator.tick() == []

        upcoming = (await client.get("/schedule/upcoming")).json()
        assert len(upcoming) == 1
        assert upcoming[0]["automation_ids"] == [automation["id"]]

    @pytest.mark.asyncio
    async def test_run_now(self, client, services):
        automation_id = (await client.post("/automations", json=self.BODY)).json()["id"]

        response = await client.post(f"/automations/{automation_id}/run", params={"test_mode": True})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert [s["action_name"] for s in data["steps"]] == ["Check stock", "Reorder"]

        stored = (await client.get(f"/automations/{automation_id}")).json()
        assert stored["statistics"]["total_runs"] == 1
        assert stored["execution_log"][0]["trigger_data"] == {"manual": True, "test_mode": True}

    @pytest.mark.asyncio
    async def test_reuses_stored_action(self, client):
        first = (await client.post("/automations", json=self.BODY)).json()
        action_id = first["action_chain"][0]["action_id"]

        response = await client.post(
            "/automations",
            json={"name": "Reuse", "steps": [{"action_id": action_id}]},
        )

        assert response.status_code == 201
        assert response.json()["action_chain"][0]["action_id"] == action_id

    @pytest.mark.asyncio
    async def test_duplicate_orders_rejected(self, client):
        body = {
            "name": "Clash",
            "steps": [
                {"name": "A", "action_type": "get_products", "order": 1},
                {"name": "B", "action_type": "get_products", "order": 1},
            ],
        }

        response = await client.post("/automations", json=body)

        assert response.status_code == 400
        assert response.json()["category"] == "validation"

    @pytest.mark.asyncio
    async def test_unknown_action_reference(self, client):
        response = await client.post(
            "/automations", json={"name": "Ghost", "steps": [{"action_id": "nope"}]}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_incomplete_step_rejected(self, client):
        response = await client.post("/automations", json={"name": "Half", "steps": [{"name": "A"}]})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete(self, client):
        automation_id = (await client.post("/automations", json=self.BODY)).json()["id"]

        assert (await client.delete(f"/automations/{automation_id}")).status_code == 200
        assert (await client.delete(f"/automations/{automation_id}")).status_code == 404
        assert (await client.get(f"/automations/{automation_id}")).status_code == 404


class TestQueueEndpoints:
    """Tests for /conversations/{id}/queue endpoints."""

    ACTIONS = [
        {"type": "import_file", "title": "Import sheet", "parameters": {"file_id": "f-1"}},
        {"type": "update_products", "title": "Apply prices"},
        {"type": "update_seo", "title": "Refresh SEO"},
    ]

    @pytest.mark.asyncio
    async def test_step_then_confirm_all(self, client):
        await client.post(
            "/conversations/c1/attachments",
            json={"url": "https://cdn.example.com/prices.csv", "file_id": "f-1"},
        )
        opened = await client.post("/conversations/c1/queue", json={"actions": self.ACTIONS})
        assert opened.status_code == 201
        assert opened.json()["current"]["title"] == "Import sheet"

        stepped = (await client.post("/conversations/c1/queue/advance")).json()
        assert stepped["idx"] == 1
        assert stepped["results"][0]["action"] == "Import sheet"

        finished = (await client.post("/conversations/c1/queue/advance-all")).json()
        assert finished["done"] is True
        assert finished["summary"]["succeeded"] == 3
        assert finished["summary"]["remaining"] == 0

        assert (await client.get("/conversations/c1/queue")).status_code == 404

    @pytest.mark.asyncio
    async def test_unresolved_file_recorded(self, client):
        await client.post("/conversations/c1/queue", json={"actions": self.ACTIONS})

        data = (await client.post("/conversations/c1/queue/advance")).json()

        assert data["idx"] == 1
        assert data["errors"][0]["category"] == "resolution"

    @pytest.mark.asyncio
    async def test_cancel_keeps_results(self, client):
        await client.post("/conversations/c1/queue", json={"actions": self.ACTIONS[1:]})
        await client.post("/conversations/c1/queue/advance")

        data = (await client.post("/conversations/c1/queue/cancel")).json()

        assert data["cancelled"] is True
        assert len(data["results"]) == 1
        assert (await client.post("/conversations/c1/queue/advance")).status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_actions_dropped(self, client):
        response = await client.post(
            "/conversations/c1/queue",
            json={"actions": ["junk", {"title": "no kind"}, {"type": "update_seo"}]},
        )
        assert len(response.json()["actions"]) == 1

    @pytest.mark.asyncio
    async def test_new_turn_supersedes(self, client, services):
        await client.post("/conversations/c1/queue", json={"actions": self.ACTIONS})
        old = services.queues.get("c1")

        await client.post("/conversations/c1/queue", json={"actions": self.ACTIONS[1:]})

        assert old.cancelled is True
        assert (await client.get("/conversations/c1/queue")).json()["idx"] == 0


class TestSecurity:
    """Tests for API key auth and rate limiting."""

    @pytest.mark.asyncio
    async def test_missing_api_key_returns_401(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_auth_key", "secret-api-key")

        response = await client.get("/commands")

        assert response.status_code == 401
        assert "Missing API key" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_invalid_api_key_returns_403(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_auth_key", "secret-api-key")

        response = await client.get("/commands", headers={"X-API-Key": "wrong-key"})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_valid_api_key_succeeds(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_auth_key", "secret-api-key")

        response = await client.get("/commands", headers={"X-API-Key": "secret-api-key"})

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_rate_limit(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_rate_limit", 2)

        codes = [(await client.get("/health")).status_code for _ in range(3)]

        assert codes == [200, 200, 429]
