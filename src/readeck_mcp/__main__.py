"""Entry point for running the Readeck MCP server."""

import asyncio
import logging
import sys

import uvicorn

from .core.config import get_settings
from .core.request_context import RequestIdFilter
from .server.main import create_app
from .server.stdio import run_stdio

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"


def configure_logging(level: str) -> None:
    """Send all logs to stderr with the request id attached; stdout is reserved for frames."""
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RequestIdFilter())
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=[handler], force=True)


def main() -> None:
    """Load settings, configure logging and serve over the configured transport."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = logging.getLogger("readeck_mcp")

    if settings.mcp_transport == "stdio":
        logger.info("Starting stdio transport")
        asyncio.run(run_stdio(settings))
        return

    logger.info("Starting HTTP transport on %s", settings.mcp_http_addr)
    uvicorn.run(
        create_app(settings),
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
