# tandril/core/actions/models.py
"""Action records: one dataclass per action kind.

Interpreters and stored automation actions produce loosely-shaped dicts
(``{"type": ..., "description": ..., "parameters": {...}}``). They are parsed
here into typed records so the executor can dispatch on ``kind`` and every
kind carries exactly the fields it needs. Anything that is not a dict with a
string kind is dropped by ``sanitize_actions``; a dict with a kind nobody
knows becomes an ``UnknownAction`` that executors fail closed on.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar

logger = logging.getLogger(__name__)

# Keys that describe the record itself rather than the action's parameters
_META_KEYS = {"kind", "type", "title", "description", "requires_confirmation", "parameters"}


@dataclass
class Action:
    """Base action record.

    Attributes:
        title: Short human-readable name (optional).
        description: Human-readable description of the side effect.
        requires_confirmation: Whether the interpreter asked for explicit approval.
        platform: Optional platform/shop the action is scoped to.
    """

    kind: ClassVar[str] = ""
    read_only: ClassVar[bool] = False

    title: str = ""
    description: str = ""
    requires_confirmation: bool = True
    platform: str | None = None

    @property
    def label(self) -> str:
        """Best available display name for the action."""
        return self.title or self.description or self.kind_name

    @property
    def kind_name(self) -> str:
        return self.kind

    def parameters(self) -> dict[str, Any]:
        """Kind-specific fields as a dict."""
        base = {f.name for f in dataclasses.fields(Action)}
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if f.name not in base
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the interpreter's record shape."""
        return {
            "type": self.kind_name,
            "title": self.title,
            "description": self.description,
            "requires_confirmation": self.requires_confirmation,
            "platform": self.platform,
            "parameters": self.parameters(),
        }


@dataclass
class GetProductsAction(Action):
    kind: ClassVar[str] = "get_products"
    read_only: ClassVar[bool] = True

    filter: str | None = None
    operator: str | None = None
    value: Any = None


@dataclass
class UpdateProductsAction(Action):
    kind: ClassVar[str] = "update_products"

    product_ids: list[str] = field(default_factory=list)
    changes: dict[str, Any] = field(default_factory=dict)
    command: str | None = None


@dataclass
class CreateProductsAction(Action):
    kind: ClassVar[str] = "create_products"

    products: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class UpdateInventoryAction(Action):
    kind: ClassVar[str] = "update_inventory"

    product_id: str | None = None
    sku: str | None = None
    quantity: int | None = None
    adjustment: int | None = None


@dataclass
class ApplyDiscountAction(Action):
    kind: ClassVar[str] = "apply_discount"

    discount_type: str = "percentage"
    discount_value: float = 0
    product_ids: list[str] = field(default_factory=list)


@dataclass
class UpdateSeoAction(Action):
    kind: ClassVar[str] = "update_seo"

    product_ids: list[str] = field(default_factory=list)
    title_tag: str | None = None
    meta_description: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class CreateCollectionAction(Action):
    kind: ClassVar[str] = "create_collection"

    name: str = ""
    product_ids: list[str] = field(default_factory=list)


@dataclass
class ImportFileAction(Action):
    """Action that consumes a file uploaded earlier in the conversation.

    ``file_id`` is known when the action is proposed; ``file_url`` and
    ``file_name`` are filled in by the resolution step right before execution.
    """

    kind: ClassVar[str] = "import_file"

    file_id: str = ""
    file_name: str | None = None
    file_url: str | None = None
    target: str = "products"


@dataclass
class RunCommandAction(Action):
    kind: ClassVar[str] = "run_ai_command"

    command_text: str = ""
    platform_targets: list[str] = field(default_factory=list)


@dataclass
class CustomCommandAction(Action):
    kind: ClassVar[str] = "custom_command"

    command: str = ""


@dataclass
class UnknownAction(Action):
    """Record whose kind is not recognised. Never executed successfully."""

    raw_kind: str = ""
    raw_parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def kind_name(self) -> str:
        return self.raw_kind

    def parameters(self) -> dict[str, Any]:
        return dict(self.raw_parameters)


ACTION_TYPES: dict[str, type[Action]] = {
    cls.kind: cls
    for cls in (
        GetProductsAction,
        UpdateProductsAction,
        CreateProductsAction,
        UpdateInventoryAction,
        ApplyDiscountAction,
        UpdateSeoAction,
        CreateCollectionAction,
        ImportFileAction,
        RunCommandAction,
        CustomCommandAction,
    )
}


def parse_action(raw: Any) -> Action | None:
    """Parse one raw action record.

    Accepts either ``kind`` or ``type`` as the discriminator. Parameters may
    be nested under ``parameters`` or given as sibling fields.

    Args:
        raw: Anything an interpreter or the store handed back.

    Returns:
        A typed Action, or None when ``raw`` is not a well-formed record.

    Examples:
        >>> parse_action({"type": "apply_discount", "parameters": {"discount_value": 20}}).discount_value
        20

        >>> parse_action("a string") is None
        True
    """
    if not isinstance(raw, dict):
        return None

    kind = raw.get("kind") or raw.get("type")
    if not isinstance(kind, str) or not kind.strip():
        return None
    kind = kind.strip()

    params = raw.get("parameters")
    merged: dict[str, Any] = dict(params) if isinstance(params, dict) else {}
    for key, value in raw.items():
        if key not in _META_KEYS:
            merged.setdefault(key, value)

    common = {
        "title": str(raw.get("title") or ""),
        "description": str(raw.get("description") or ""),
        "requires_confirmation": bool(raw.get("requires_confirmation", True)),
    }
    platform = merged.pop("platform", None)
    if isinstance(platform, str):
        common["platform"] = platform

    cls = ACTION_TYPES.get(kind)
    if cls is None:
        return UnknownAction(raw_kind=kind, raw_parameters=merged, **common)

    allowed = {f.name for f in dataclasses.fields(cls)} - set(common)
    kwargs = {key: value for key, value in merged.items() if key in allowed}
    try:
        return cls(**common, **kwargs)
    except TypeError:
        logger.warning("Dropping malformed %s action: %r", kind, raw)
        return None


def sanitize_actions(raw_actions: Any) -> list[Action]:
    """Parse a list of raw action records, dropping malformed entries.

    Args:
        raw_actions: Expected to be a list; anything else yields [].

    Returns:
        Well-formed actions in their original order.
    """
    if not isinstance(raw_actions, list):
        return []

    actions = []
    for raw in raw_actions:
        if isinstance(raw, Action):
            actions.append(raw)
            continue
        action = parse_action(raw)
        if action is not None:
            actions.append(action)

    dropped = len(raw_actions) - len(actions)
    if dropped:
        logger.debug("Filtered %d malformed action record(s)", dropped)
    return actions
