"""Loaders for the packaged text that accompanies the MCP server."""

from pathlib import Path
from typing import Any

import yaml

INSTRUCTIONS_FILE = "instructions.md"
TOOLS_FILE = "tools.yaml"


def _strip_text(value: Any) -> Any:
    # YAML block scalars keep a trailing newline; nested parameter maps are walked too.
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return {key: _strip_text(item) for key, item in value.items()}
    return value


def load_instructions(directory: Path) -> str:
    """Read the server instructions shipped next to the server modules."""
    return (directory / INSTRUCTIONS_FILE).read_text(encoding="utf-8").strip()


def load_tool_descriptions(directory: Path) -> dict[str, dict[str, Any]]:
    """
    Read tool and parameter descriptions keyed by tool name.

    Every entry must carry a non-empty ``description``; ``parameters`` defaults
    to an empty mapping. A malformed file raises ``ValueError`` at import time
    rather than producing a tool listing with missing text.
    """
    with (directory / TOOLS_FILE).open(encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{TOOLS_FILE} must map tool names to descriptions")

    catalog: dict[str, dict[str, Any]] = {}
    for name, entry in raw.items():
        entry = _strip_text(entry or {})
        if not isinstance(entry, dict) or not entry.get("description"):
            raise ValueError(f"{TOOLS_FILE}: tool {name!r} has no description")
        entry.setdefault("parameters", {})
        catalog[name] = entry
    return catalog
