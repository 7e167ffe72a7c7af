"""Tests for JSON-RPC dispatching."""

import logging
from typing import Any

import pytest
import respx
from httpx import Response

from readeck_mcp.core.config import DEFAULT_PROTOCOL_VERSION, SERVER_NAME
from readeck_mcp.core.request_context import RequestIdFilter, Transport
from readeck_mcp.readeck.api_client import ReadeckClient
from readeck_mcp.server.dispatcher import Dispatcher, negotiate_protocol_version


def _request(method: str, params: Any = None, request_id: Any = 1) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


class TestEnvelope:
    """Tests for request/response envelope handling."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_id", [7, "abc", 0, 3.5])
    async def test__handle_message__echoes_id(self, dispatcher: Dispatcher, request_id: Any) -> None:
        """The response id equals the request id, including its JSON type."""
        response = await dispatcher.handle_message(_request("ping", request_id=request_id), Transport.STDIO)

        assert response == {"jsonrpc": "2.0", "id": request_id, "result": {}}

    @pytest.mark.asyncio
    async def test__handle_message__notification_has_no_response(self, dispatcher: Dispatcher) -> None:
        for method in ("notifications/initialized", "initialized", "notifications/cancelled", "tools/list"):
            message = {"jsonrpc": "2.0", "method": method}
            assert await dispatcher.handle_message(message, Transport.STDIO) is None

    @pytest.mark.asyncio
    async def test__handle_payload__parse_error(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_payload(b"{oops", Transport.STDIO)

        assert response == {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "parse error"}}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            [],
            "ping",
            {"jsonrpc": "2.0", "id": 1},
            {"jsonrpc": "2.0", "id": 1, "method": ""},
            {"jsonrpc": "2.0", "id": 1, "method": 5},
        ],
    )
    async def test__handle_message__invalid_request(self, dispatcher: Dispatcher, message: Any) -> None:
        response = await dispatcher.handle_message(message, Transport.HTTP)

        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test__handle_message__method_not_found(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(_request("tools/unknown", request_id=9), Transport.STDIO)

        assert response["id"] == 9
        assert response["error"] == {"code": -32601, "message": "method not found"}

    @pytest.mark.asyncio
    async def test__handle_message__non_object_params(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(_request("tools/list", params=[1, 2]), Transport.STDIO)

        assert response["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test__handle_message__logs_with_request_id(
        self, dispatcher: Dispatcher, caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Start and finish lines are logged with the request id bound."""
        caplog.set_level(logging.INFO, logger="readeck_mcp.server.dispatcher")
        caplog.handler.addFilter(RequestIdFilter())

        await dispatcher.handle_message(_request("ping", request_id="req-5"), Transport.HTTP)

        records = [r for r in caplog.records if r.name == "readeck_mcp.server.dispatcher"]
        assert [r.getMessage().split(":")[0] for r in records] == ["Request started", "Request finished"]
        assert all(r.request_id == "req-5" for r in records)
        assert "duration_ms=" in records[1].getMessage()


class TestInitialize:
    """Tests for the initialize handshake."""

    @pytest.mark.parametrize("version", ["2025-06-18", "2025-03-26", "2024-11-05"])
    def test__negotiate_protocol_version__supported_echoed(self, version: str) -> None:
        assert negotiate_protocol_version(version) == version

    @pytest.mark.parametrize("version", ["1999-01-01", None, 20250618])
    def test__negotiate_protocol_version__fallback(self, version: Any) -> None:
        assert negotiate_protocol_version(version) == DEFAULT_PROTOCOL_VERSION

    @pytest.mark.asyncio
    async def test__initialize__result(self, dispatcher: Dispatcher) -> None:
        params = {
            "protocolVersion": "2025-03-26",
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "1.0"},
        }
        response = await dispatcher.handle_message(_request("initialize", params), Transport.STDIO)

        result = response["result"]
        assert result["protocolVersion"] == "2025-03-26"
        assert result["serverInfo"]["name"] == SERVER_NAME
        assert set(result["capabilities"]) >= {"tools", "resources", "prompts"}
        assert result["instructions"] == "Test instructions."

    @pytest.mark.asyncio
    async def test__initialize__without_params(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(_request("initialize"), Transport.STDIO)

        assert response["result"]["protocolVersion"] == DEFAULT_PROTOCOL_VERSION

    @pytest.mark.asyncio
    async def test__default_instructions_loaded_from_package(self, client: ReadeckClient) -> None:
        """Without explicit instructions the packaged instructions.md is used."""
        assert "readeck" in Dispatcher(client).instructions.lower()


class TestCatalogMethods:
    """Tests for the list methods and their routing."""

    @pytest.mark.asyncio
    async def test__tools_list(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(_request("tools/list"), Transport.STDIO)

        names = [tool["name"] for tool in response["result"]["tools"]]
        assert names == [
            "readeck.search",
            "readeck.get",
            "readeck.archive",
            "readeck.labels.list",
            "readeck.labels.set",
            "readeck.highlights.list",
            "readeck.cite",
        ]
        assert all(tool["inputSchema"]["type"] == "object" for tool in response["result"]["tools"])

    @pytest.mark.asyncio
    async def test__resources_list_is_empty(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(_request("resources/list"), Transport.STDIO)

        assert response["result"]["resources"] == []

    @pytest.mark.asyncio
    async def test__resource_templates_list(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(_request("resources/templates/list"), Transport.STDIO)

        templates = {t["uriTemplate"]: t["mimeType"] for t in response["result"]["resourceTemplates"]}
        assert templates == {
            "readeck://bookmark/{id}": "application/json",
            "readeck://bookmark/{id}/content.md": "text/markdown",
            "readeck://bookmark/{id}/content.txt": "text/plain",
            "readeck://bookmark/{id}/highlights.json": "application/json",
            "readeck://bookmark/{id}/highlights.md": "text/markdown",
        }

    @pytest.mark.asyncio
    async def test__prompts_list(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(_request("prompts/list"), Transport.STDIO)

        assert [p["name"] for p in response["result"]["prompts"]] == [
            "readeck.prompt.summarize",
            "readeck.prompt.flashcards",
        ]

    @pytest.mark.asyncio
    async def test__tools_call_requires_string_name(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(
            _request("tools/call", {"name": 5, "arguments": {}}), Transport.STDIO,
        )

        assert response["error"] == {"code": -32602, "message": "invalid params"}

    @pytest.mark.asyncio
    async def test__prompts_get_requires_object_arguments(self, dispatcher: Dispatcher) -> None:
        response = await dispatcher.handle_message(
            _request("prompts/get", {"name": "readeck.prompt.summarize", "arguments": ["x"]}),
            Transport.STDIO,
        )

        assert response["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test__tools_call_upstream_failure_is_tool_error(
        self, mock_api: respx.MockRouter, dispatcher: Dispatcher,
    ) -> None:
        """Upstream failures come back as an isError result, not a protocol error."""
        mock_api.get("/bookmarks/b1").mock(return_value=Response(404))

        response = await dispatcher.handle_message(
            _request("tools/call", {"name": "readeck.get", "arguments": {"id": "b1"}}), Transport.HTTP,
        )

        assert "error" not in response
        assert response["result"]["isError"] is True
        assert response["result"]["structuredContent"]["error"]["code"] == "not_found"
