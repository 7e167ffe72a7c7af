"""MCP protocol side: framing, dispatch, tools, resources, prompts and transports."""
