# tandril/core/automations/repository.py
"""Persistence for automations, triggers and stored actions."""

from typing import Any

from tandril.core.automations.models import Automation, AutomationAction
from tandril.core.errors import RecordNotFoundError
from tandril.core.scheduler.models import Trigger
from tandril.core.store.base import RecordStore

AUTOMATIONS = "automations"
TRIGGERS = "automation_triggers"
ACTIONS = "automation_actions"


def _without_server_fields(data: dict[str, Any]) -> dict[str, Any]:
    data = dict(data)
    if not data.get("id"):
        data.pop("id", None)
    data.pop("updated_at", None)
    if data.get("created_at") is None:
        data.pop("created_at", None)
    return data


class AutomationRepository:
    """Repository for automations and the triggers/actions they reference."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    # Automations

    def create_automation(self, automation: Automation) -> Automation:
        """Validate and persist a new automation.

        Raises:
            AutomationConfigError: If the chain has duplicate order values.
        """
        automation.validate()
        record = self.store.create(AUTOMATIONS, _without_server_fields(automation.to_dict()))
        return Automation.from_dict(record)

    def get_automation(self, automation_id: str) -> Automation | None:
        record = self.store.get(AUTOMATIONS, automation_id)
        return Automation.from_dict(record) if record else None

    def save_automation(self, automation: Automation) -> Automation:
        """Write every field of an existing automation (last write wins)."""
        automation.validate()
        data = automation.to_dict()
        data.pop("created_at")
        data.pop("updated_at")
        record = self.store.update(AUTOMATIONS, automation.id, data)
        if record is None:
            raise RecordNotFoundError(AUTOMATIONS, automation.id)
        return Automation.from_dict(record)

    def list_automations(
        self, user_id: str | None = None, active_only: bool = False
    ) -> list[Automation]:
        criteria: dict[str, Any] = {}
        if user_id is not None:
            criteria["user_id"] = user_id
        if active_only:
            criteria["is_active"] = True
        records = self.store.filter(AUTOMATIONS, criteria, order_by="-created_at")
        return [Automation.from_dict(r) for r in records]

    def automations_for_trigger(
        self, trigger_id: str, active_only: bool = True
    ) -> list[Automation]:
        """Automations started by a trigger, oldest first."""
        criteria: dict[str, Any] = {"trigger_id": trigger_id}
        if active_only:
            criteria["is_active"] = True
        records = self.store.filter(AUTOMATIONS, criteria, order_by="created_at")
        return [Automation.from_dict(r) for r in records]

    def delete_automation(self, automation_id: str) -> bool:
        return self.store.delete(AUTOMATIONS, automation_id)

    # Triggers

    def create_trigger(self, trigger: Trigger) -> Trigger:
        record = self.store.create(TRIGGERS, _without_server_fields(trigger.to_dict()))
        return Trigger.from_dict(record)

    def get_trigger(self, trigger_id: str) -> Trigger | None:
        record = self.store.get(TRIGGERS, trigger_id)
        return Trigger.from_dict(record) if record else None

    def save_trigger(self, trigger: Trigger) -> Trigger:
        data = trigger.to_dict()
        data.pop("created_at")
        record = self.store.update(TRIGGERS, trigger.id, data)
        if record is None:
            raise RecordNotFoundError(TRIGGERS, trigger.id)
        return Trigger.from_dict(record)

    def list_triggers(self, active_only: bool = False) -> list[Trigger]:
        """List triggers; ``active_only`` keeps active schedule triggers."""
        criteria: dict[str, Any] = (
            {"trigger_type": "schedule", "is_active": True} if active_only else {}
        )
        records = self.store.filter(TRIGGERS, criteria, order_by="created_at")
        return [Trigger.from_dict(r) for r in records]

    def delete_trigger(self, trigger_id: str) -> bool:
        return self.store.delete(TRIGGERS, trigger_id)

    # Stored actions

    def create_action(self, action: AutomationAction) -> AutomationAction:
        record = self.store.create(ACTIONS, _without_server_fields(action.to_dict()))
        return AutomationAction.from_dict(record)

    def get_action(self, action_id: str) -> AutomationAction | None:
        record = self.store.get(ACTIONS, action_id)
        return AutomationAction.from_dict(record) if record else None

    def list_actions(self, user_id: str | None = None) -> list[AutomationAction]:
        criteria = {"user_id": user_id} if user_id is not None else {}
        records = self.store.filter(ACTIONS, criteria, order_by="created_at")
        return [AutomationAction.from_dict(r) for r in records]

    def delete_action(self, action_id: str) -> bool:
        return self.store.delete(ACTIONS, action_id)
