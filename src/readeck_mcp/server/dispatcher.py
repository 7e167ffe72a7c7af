"""
JSON-RPC request dispatcher shared by the stdio and HTTP transports.

Routes requests by exact method name, binds the request id into the
correlation context for the duration of the call and converts handler
outcomes into JSON-RPC response objects. Notifications never produce a
response.
"""

import json
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from mcp import types
from mcp.shared.exceptions import McpError
from pydantic import BaseModel

from ..core.config import (
    DEFAULT_PROTOCOL_VERSION,
    SERVER_NAME,
    SERVER_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
)
from ..core.request_context import RequestContext, Transport, request_scope
from ..readeck.api_client import ReadeckClient
from ..shared.mcp_utils import load_instructions
from . import prompts, resources, tools

logger = logging.getLogger(__name__)

_DIR = Path(__file__).parent

SERVER_ERROR = -32000
JSONRPC_VERSION = "2.0"

INITIALIZED_NOTIFICATIONS = frozenset({"notifications/initialized", "initialized"})

Handler = Callable[[dict[str, Any]], Awaitable[BaseModel | dict[str, Any]]]


def negotiate_protocol_version(requested: Any) -> str:
    """Echo the client's protocol version when supported, else the server default."""
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return DEFAULT_PROTOCOL_VERSION


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC error response object."""
    error = types.ErrorData(code=code, message=message, data=data)
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": error.model_dump(mode="json", exclude_none=True),
    }


def _invalid_params(message: str = "invalid params") -> McpError:
    return McpError(types.ErrorData(code=types.INVALID_PARAMS, message=message))


def _dump_result(result: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(result, BaseModel):
        return result.model_dump(by_alias=True, mode="json", exclude_none=True)
    return result


class Dispatcher:
    """
    Transport-independent JSON-RPC dispatcher.

    Holds no per-request state, so one instance serves concurrent HTTP requests
    as well as the sequential stdio loop.
    """

    def __init__(self, client: ReadeckClient, instructions: str | None = None) -> None:
        self.client = client
        self.instructions = instructions if instructions is not None else load_instructions(_DIR)
        self._handlers: dict[str, Handler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/templates/list": self._list_resource_templates,
            "resources/read": self._read_resource,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
        }

    async def handle_payload(self, payload: bytes | str, transport: Transport) -> dict[str, Any] | None:
        """
        Decode one JSON payload and dispatch it.

        Returns the response object, or None for notifications. A payload that
        is not JSON yields a parse error with a null id.
        """
        try:
            message = json.loads(payload)
        except ValueError:
            logger.warning("Discarding unparsable %s payload (%d bytes)", transport, len(payload))
            return error_response(None, types.PARSE_ERROR, "parse error")
        return await self.handle_message(message, transport)

    async def handle_message(self, message: Any, transport: Transport) -> dict[str, Any] | None:
        """Dispatch one decoded JSON-RPC message."""
        if not isinstance(message, dict):
            return error_response(None, types.INVALID_REQUEST, "invalid request")

        request_id = message.get("id")
        method = message.get("method")
        if not isinstance(method, str) or not method:
            return error_response(request_id, types.INVALID_REQUEST, "invalid request")

        if request_id is None:
            await self._handle_notification(method, transport)
            return None

        params = message.get("params")
        context = RequestContext(request_id=str(request_id), method=method, transport=transport)
        with request_scope(context):
            return await self._handle_request(request_id, method, params, transport)

    async def _handle_request(
        self,
        request_id: Any,
        method: str,
        params: Any,
        transport: Transport,
    ) -> dict[str, Any]:
        start = time.perf_counter()
        logger.info("Request started: method=%s transport=%s", method, transport)
        outcome = "ok"
        try:
            if params is not None and not isinstance(params, dict):
                raise _invalid_params()
            handler = self._handlers.get(method)
            if handler is None:
                raise McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message="method not found"))
            result = await handler(params or {})
            response = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": _dump_result(result)}
        except McpError as e:
            outcome = f"error {e.error.code}"
            response = error_response(request_id, e.error.code, e.error.message, e.error.data)
        except Exception as e:
            logger.exception("Unhandled error in %s", method)
            outcome = f"error {SERVER_ERROR}"
            response = error_response(request_id, SERVER_ERROR, str(e) or type(e).__name__)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Request finished: method=%s transport=%s outcome=%s duration_ms=%.1f",
            method, transport, outcome, duration_ms,
        )
        return response

    async def _handle_notification(self, method: str, transport: Transport) -> None:
        if method in INITIALIZED_NOTIFICATIONS:
            logger.info("Client initialized over %s", transport)
        else:
            logger.debug("Ignoring notification %s", method)

    # --- lifecycle ---

    async def _initialize(self, params: dict[str, Any]) -> types.InitializeResult:
        version = negotiate_protocol_version(params.get("protocolVersion"))
        client_info = params.get("clientInfo") or {}
        logger.info(
            "Initialize: client=%s protocol=%s",
            client_info.get("name", "unknown") if isinstance(client_info, dict) else "unknown",
            version,
        )
        return types.InitializeResult(
            protocolVersion=version,
            capabilities=types.ServerCapabilities(
                tools=types.ToolsCapability(),
                resources=types.ResourcesCapability(subscribe=False),
                prompts=types.PromptsCapability(),
            ),
            serverInfo=types.Implementation(name=SERVER_NAME, version=SERVER_VERSION),
            instructions=self.instructions or None,
        )

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    # --- tools ---

    async def _list_tools(self, params: dict[str, Any]) -> types.ListToolsResult:
        return types.ListToolsResult(tools=tools.list_tools())

    async def _call_tool(self, params: dict[str, Any]) -> types.CallToolResult:
        name = params.get("name")
        if not isinstance(name, str):
            raise _invalid_params()
        return await tools.call_tool(self.client, name, params.get("arguments"))

    # --- resources ---

    async def _list_resources(self, params: dict[str, Any]) -> types.ListResourcesResult:
        return types.ListResourcesResult(resources=[])

    async def _list_resource_templates(self, params: dict[str, Any]) -> types.ListResourceTemplatesResult:
        return types.ListResourceTemplatesResult(resourceTemplates=resources.list_resource_templates())

    async def _read_resource(self, params: dict[str, Any]) -> types.ReadResourceResult:
        return await resources.read_resource(self.client, params.get("uri"))

    # --- prompts ---

    async def _list_prompts(self, params: dict[str, Any]) -> types.ListPromptsResult:
        return types.ListPromptsResult(prompts=prompts.list_prompts())

    async def _get_prompt(self, params: dict[str, Any]) -> types.GetPromptResult:
        name = params.get("name")
        arguments = params.get("arguments")
        if not isinstance(name, str) or (arguments is not None and not isinstance(arguments, dict)):
            raise _invalid_params()
        return prompts.get_prompt(name, arguments)
