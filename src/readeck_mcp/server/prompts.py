"""Prompt templates that point the agent at bookmark resources."""

from typing import Any

from mcp import types
from mcp.shared.exceptions import McpError

from ..readeck.mapping import coerce_bool

SUMMARIZE = "readeck.prompt.summarize"
FLASHCARDS = "readeck.prompt.flashcards"

DEFAULT_FOCUS = "key_ideas"
DEFAULT_NUM_CARDS = 10
DEFAULT_CARD_TYPE = "qa"


def list_prompts() -> list[types.Prompt]:
    """List available prompts."""
    return [
        types.Prompt(
            name=SUMMARIZE,
            description="Summarize a bookmark with optional focus mode.",
            arguments=[
                types.PromptArgument(name="bookmark_id", description="Bookmark ID.", required=True),
                types.PromptArgument(
                    name="focus",
                    description=f"What to focus on (default {DEFAULT_FOCUS}).",
                    required=False,
                ),
            ],
        ),
        types.Prompt(
            name=FLASHCARDS,
            description="Create flashcards from bookmark content/highlights.",
            arguments=[
                types.PromptArgument(name="bookmark_id", description="Bookmark ID.", required=True),
                types.PromptArgument(
                    name="num_cards",
                    description=f"Number of cards (default {DEFAULT_NUM_CARDS}).",
                    required=False,
                ),
                types.PromptArgument(
                    name="card_type",
                    description=f"Card type (default {DEFAULT_CARD_TYPE}).",
                    required=False,
                ),
                types.PromptArgument(
                    name="use_highlights",
                    description="Also read the highlights (default true).",
                    required=False,
                ),
            ],
        ),
    ]


def _prompt_result(description: str, text: str) -> types.GetPromptResult:
    return types.GetPromptResult(
        description=description,
        messages=[
            types.PromptMessage(
                role="user",
                content=types.TextContent(type="text", text=text),
            ),
        ],
    )


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return default


def get_prompt(name: str, arguments: dict[str, Any] | None) -> types.GetPromptResult:
    """
    Render a prompt.

    Raises:
        McpError: INVALID_PARAMS when the prompt is unknown or bookmark_id is missing.
    """
    arguments = arguments or {}
    if name not in (SUMMARIZE, FLASHCARDS):
        raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message="unknown prompt"))

    bookmark_id = arguments.get("bookmark_id")
    if not isinstance(bookmark_id, str) or not bookmark_id.strip():
        raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message="bookmark_id is required"))
    bookmark_id = bookmark_id.strip()
    content_uri = f"readeck://bookmark/{bookmark_id}/content.md"
    highlights_uri = f"readeck://bookmark/{bookmark_id}/highlights.md"

    if name == SUMMARIZE:
        focus = arguments.get("focus") or DEFAULT_FOCUS
        text = f"Summarize this article with focus on {focus}. Read:\n- {content_uri}\n- {highlights_uri}"
        return _prompt_result("Summarize bookmark", text)

    num_cards = _as_int(arguments.get("num_cards"), DEFAULT_NUM_CARDS)
    card_type = arguments.get("card_type") or DEFAULT_CARD_TYPE
    use_highlights = coerce_bool(arguments.get("use_highlights"))
    text = f"Generate {num_cards} {card_type} flashcards from this article. Read:\n- {content_uri}"
    if use_highlights is not False:
        text += f"\n- {highlights_uri}"
    return _prompt_result("Flashcards from bookmark", text)
