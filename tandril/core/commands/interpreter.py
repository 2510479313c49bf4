# tandril/core/commands/interpreter.py
"""Natural-language command interpreters.

Two implementations of ``InterpreterProtocol``:
- LiteLLMInterpreter: asks a language model (via litellm) for a JSON plan.
- RuleBasedInterpreter: keyword fallback used when no model key is set.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from litellm import acompletion

from tandril.core.commands.prompts import build_interpretation_prompt

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n([\s\S]*?)\n```")
_BARE_JSON = re.compile(r"(\{[\s\S]*\})")


@dataclass
class InterpretationResult:
    """Interpreter reply.

    Attributes:
        success: False when the command could not be interpreted.
        actions: Raw planned actions (sanitized by the caller).
        confidence_score: Model confidence, None when omitted.
        warnings: Notes for the user.
        error: Failure reason when success is False.
        risk_level: Optional risk assessment supplied by the interpreter.
        estimated_impact: Free-text description of what will change.
    """

    success: bool
    actions: list[Any] = field(default_factory=list)
    confidence_score: float | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    risk_level: str | None = None
    estimated_impact: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "InterpretationResult":
        """Build a successful result from a decoded JSON plan."""
        if not isinstance(payload, dict):
            return cls(success=False, error="Interpreter returned an invalid plan")

        confidence = payload.get("confidence_score")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = None
        else:
            confidence = min(1.0, max(0.0, float(confidence)))

        warnings = payload.get("warnings")
        risk = payload.get("risk_level")
        actions = payload.get("actions")
        return cls(
            success=True,
            actions=actions if isinstance(actions, list) else [],
            confidence_score=confidence,
            warnings=[w for w in warnings if isinstance(w, str)]
            if isinstance(warnings, list)
            else [],
            risk_level=risk if risk in ("low", "medium", "high") else None,
            estimated_impact=payload.get("estimated_impact"),
        )


class InterpreterProtocol(Protocol):
    """Turns command text into a planned action list."""

    async def interpret(
        self,
        command_text: str,
        platform_targets: list[str],
        file_urls: list[str],
    ) -> InterpretationResult: ...


def extract_json(text: str) -> Any:
    """Decode a JSON object from model output.

    Models sometimes wrap the object in a markdown fence or surround it with
    prose; the first fenced block or outermost braces win.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    match = _FENCED_JSON.search(text) or _BARE_JSON.search(text)
    candidate = match.group(1) if match else text
    return json.loads(candidate)


class LiteLLMInterpreter:
    """Interpreter backed by a language model through litellm.

    Attributes:
        model: litellm model identifier.
        api_key: Provider API key. Without it every call fails cleanly.
    """

    def __init__(self, model: str, api_key: str, max_tokens: int = 2048) -> None:
        self.model = model
        self.api_key = api_key
        self.max_tokens = max_tokens

    async def interpret(
        self,
        command_text: str,
        platform_targets: list[str],
        file_urls: list[str],
    ) -> InterpretationResult:
        if not self.api_key:
            return InterpretationResult(
                success=False, error="No interpreter API key configured"
            )

        try:
            response = await acompletion(
                model=self.model,
                messages=[
                    {
                        "role": "system",
                        "content": build_interpretation_prompt(
                            platform_targets, file_urls
                        ),
                    },
                    {"role": "user", "content": command_text},
                ],
                response_format={"type": "json_object"},
                max_tokens=self.max_tokens,
                api_key=self.api_key,
            )
            content = response.choices[0].message.content or ""
        except Exception as e:
            logger.error("Interpreter call failed: %s", e)
            return InterpretationResult(success=False, error=f"Interpreter error: {e}")

        try:
            payload = extract_json(content)
        except ValueError as e:
            logger.warning("Interpreter returned unparsable output: %s", e)
            return InterpretationResult(
                success=False, error="Could not understand the interpreter response"
            )
        return InterpretationResult.from_payload(payload)


class RuleBasedInterpreter:
    """Keyword matcher for common commands, used without a model key."""

    WARNING = (
        "Using rule-based interpretation. Configure GOOGLE_API_KEY or "
        "GEMINI_API_KEY for better results."
    )

    async def interpret(
        self,
        command_text: str,
        platform_targets: list[str],
        file_urls: list[str],
    ) -> InterpretationResult:
        lower = command_text.lower()
        actions: list[dict[str, Any]] = []
        confidence = 0.7

        if "low stock" in lower or "inventory below" in lower:
            number = re.search(r"\d+", lower)
            threshold = int(number.group(0)) if number else 10
            actions.append(
                {
                    "type": "get_products",
                    "description": f"Find products with inventory below {threshold}",
                    "parameters": {
                        "filter": "inventory_quantity",
                        "operator": "less_than",
                        "value": threshold,
                    },
                    "requires_confirmation": False,
                }
            )

        if "discount" in lower or "% off" in lower:
            percent = re.search(r"(\d+)%", lower)
            percentage = int(percent.group(1)) if percent else 10
            actions.append(
                {
                    "type": "apply_discount",
                    "description": f"Apply {percentage}% discount",
                    "parameters": {
                        "discount_type": "percentage",
                        "discount_value": percentage,
                    },
                    "requires_confirmation": True,
                }
            )

        if "update" in lower and "product" in lower:
            actions.append(
                {
                    "type": "update_products",
                    "description": "Update products based on command",
                    "parameters": {"command": command_text},
                    "requires_confirmation": True,
                }
            )

        for url in file_urls:
            actions.append(
                {
                    "type": "import_file",
                    "description": f"Import {url}",
                    "parameters": {"file_id": url},
                    "requires_confirmation": True,
                }
            )

        if not actions:
            actions.append(
                {
                    "type": "custom_command",
                    "description": command_text,
                    "parameters": {"command": command_text},
                    "requires_confirmation": True,
                }
            )
            confidence = 0.5

        return InterpretationResult(
            success=True,
            actions=actions,
            confidence_score=confidence,
            warnings=[self.WARNING],
            estimated_impact=(
                f"Will perform {len(actions)} action(s) on {', '.join(platform_targets)}"
            ),
        )
