"""
Starlette application for the HTTP transport.

Each POST to the MCP path carries exactly one JSON-RPC message and is answered
with one JSON response (or 202 for notifications and client responses).
Requests are dispatched independently, so concurrent callers do not wait on
each other.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from mcp import types
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from ..core.config import Settings
from ..core.request_context import Transport
from ..readeck.api_client import ReadeckClient
from .auth import is_authorized, is_origin_allowed
from .dispatcher import Dispatcher, error_response
from .framing import MAX_HTTP_BODY_SIZE, BodyError, accepts_rpc_response, decode_http_body

logger = logging.getLogger(__name__)


async def health_check(request: Request) -> JSONResponse:  # noqa: ARG001
    """Health check endpoint."""
    return JSONResponse({"status": "healthy"})


class AccessMiddleware:
    """
    ASGI middleware enforcing the bearer token and Origin allow-list on the MCP path.

    Runs before routing, so a rejected caller gets 401/403 whatever the method.
    """

    def __init__(self, app: Any, path: str, auth_token: str, allowed_origins: list[str]) -> None:
        self.app = app
        self.path = path
        self.auth_token = auth_token
        self.allowed_origins = allowed_origins

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:  # noqa: D102
        if scope["type"] != "http" or scope.get("path") != self.path:
            await self.app(scope, receive, send)
            return

        headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope["headers"]}
        response: Response | None = None
        if not is_authorized(headers.get("authorization"), self.auth_token):
            logger.warning("Rejected MCP request: missing or invalid bearer token")
            response = PlainTextResponse(
                "unauthorized", status_code=401, headers={"WWW-Authenticate": "Bearer"},
            )
        elif not is_origin_allowed(headers.get("origin"), self.allowed_origins):
            logger.warning("Rejected MCP request from origin %s", headers.get("origin"))
            response = PlainTextResponse("forbidden origin", status_code=403)

        if response is not None:
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


async def _read_limited_body(request: Request, limit: int) -> bytes | None:
    """Read the request body, returning None as soon as it exceeds ``limit`` bytes."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        return None
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            return None
    return bytes(body)


async def mcp_endpoint(request: Request) -> Response:
    """Handle one JSON-RPC message posted to the MCP path."""
    if request.method != "POST":
        return Response(status_code=405, headers={"Allow": "POST"})
    if not accepts_rpc_response(request.headers.get("accept")):
        return PlainTextResponse("not acceptable", status_code=406)

    body = await _read_limited_body(request, MAX_HTTP_BODY_SIZE)
    if body is None:
        return PlainTextResponse("request body too large", status_code=413)

    try:
        message = decode_http_body(body)
    except BodyError as e:
        return JSONResponse(error_response(None, e.code, str(e)))

    if isinstance(message, dict) and "method" not in message:
        # A JSON-RPC response sent by the client needs no answer
        if "result" in message or "error" in message:
            return Response(status_code=202)
        return JSONResponse(error_response(message.get("id"), types.INVALID_REQUEST, "invalid request"))

    dispatcher: Dispatcher = request.app.state.dispatcher
    response = await dispatcher.handle_message(message, Transport.HTTP)
    if response is None:
        return Response(status_code=202)
    return JSONResponse(response)


def create_app(settings: Settings, client: ReadeckClient | None = None) -> Starlette:
    """
    Build the HTTP application.

    Args:
        settings: Application settings (MCP path, auth token, allowed origins).
        client: Readeck client to use; built from settings when omitted.
    """
    client = client or ReadeckClient.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette):  # noqa: ARG001, ANN202
        logger.info("HTTP transport ready at %s", settings.mcp_http_path)
        yield
        await client.aclose()

    app = Starlette(
        routes=[
            Route("/health", health_check, methods=["GET"]),
            Route(settings.mcp_http_path, mcp_endpoint, methods=["GET", "POST", "DELETE"]),
        ],
        middleware=[
            Middleware(
                AccessMiddleware,
                path=settings.mcp_http_path,
                auth_token=settings.mcp_http_auth_token,
                allowed_origins=settings.allowed_origins,
            ),
        ],
        lifespan=lifespan,
    )
    app.state.dispatcher = Dispatcher(client)
    return app
