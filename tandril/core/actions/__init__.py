"""Action records, resolution and execution.

This module provides:
- Action and its per-kind subclasses (tagged union)
- parse_action / sanitize_actions: defensive parsing of raw records
- ActionExecutor: kind-based dispatch to platform handlers
- AttachmentResolver / AttachmentRegistry: late-bound file references
"""

from tandril.core.actions.executor import (
    ActionExecutor,
    ActionOutcome,
    ExecutorProtocol,
    dry_run_handlers,
)
from tandril.core.actions.models import (
    ACTION_TYPES,
    Action,
    ApplyDiscountAction,
    CreateCollectionAction,
    CreateProductsAction,
    CustomCommandAction,
    GetProductsAction,
    ImportFileAction,
    RunCommandAction,
    UnknownAction,
    UpdateInventoryAction,
    UpdateProductsAction,
    UpdateSeoAction,
    parse_action,
    sanitize_actions,
)
from tandril.core.actions.resolver import (
    ActionResolver,
    Attachment,
    AttachmentRegistry,
    AttachmentResolver,
    ConversationResolver,
)

__all__ = [
    "ACTION_TYPES",
    "Action",
    "ActionExecutor",
    "ActionOutcome",
    "ActionResolver",
    "ApplyDiscountAction",
    "Attachment",
    "AttachmentRegistry",
    "AttachmentResolver",
    "ConversationResolver",
    "CreateCollectionAction",
    "CreateProductsAction",
    "CustomCommandAction",
    "ExecutorProtocol",
    "GetProductsAction",
    "ImportFileAction",
    "RunCommandAction",
    "UnknownAction",
    "UpdateInventoryAction",
    "UpdateProductsAction",
    "UpdateSeoAction",
    "dry_run_handlers",
    "parse_action",
    "sanitize_actions",
]
