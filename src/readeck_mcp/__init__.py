"""MCP server for a Readeck bookmark library."""

from .core.config import SERVER_NAME, SERVER_VERSION

__all__ = ["SERVER_NAME", "SERVER_VERSION"]
