# tandril/core/commands/prompts.py
"""Prompt building for command interpretation."""

ACTION_KINDS = (
    "get_products",
    "update_products",
    "create_products",
    "update_inventory",
    "apply_discount",
    "update_seo",
    "create_collection",
    "import_file",
    "custom_command",
)

_SYSTEM_PROMPT = """You are an AI assistant that interprets e-commerce management commands and converts them into structured actions.

The user manages one or more online stores. They will give you natural language commands like:
- "Update all products in the Winter Collection to be 20% off"
- "Find products with less than 10 in stock"
- "Add SEO tags to my best selling products"

Respond only with valid JSON in this format:

{{
  "actions": [
    {{
      "type": {kinds},
      "description": "Human-readable description of what this action does",
      "parameters": {{}},
      "requires_confirmation": true | false
    }}
  ],
  "confidence_score": 0.0 to 1.0,
  "warnings": ["Any warnings or things the user should know"],
  "estimated_impact": "Description of what will change"
}}

Platform targets: {targets}
{files}
Be specific with your actions and parameters. If you're unsure about something, set requires_confirmation to true."""


def build_interpretation_prompt(
    platform_targets: list[str], file_urls: list[str] | None = None
) -> str:
    """Build the system prompt for interpreting a command.

    Args:
        platform_targets: Platforms the command applies to.
        file_urls: Attached file references, listed so the model can plan
            ``import_file`` actions against them.

    Returns:
        System prompt text.
    """
    files = f"Attached files: {', '.join(file_urls)}\n" if file_urls else ""
    return _SYSTEM_PROMPT.format(
        kinds=" | ".join(f'"{k}"' for k in ACTION_KINDS),
        targets=", ".join(platform_targets),
        files=files,
    )
