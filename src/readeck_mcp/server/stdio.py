"""
Stdio transport: a sequential read, dispatch, write loop over framed messages.

stdout carries protocol frames only; all logging goes to stderr.
"""

import asyncio
import logging
import sys
from typing import BinaryIO

from ..core.config import Settings
from ..core.request_context import Transport
from ..readeck.api_client import ReadeckClient
from .dispatcher import Dispatcher
from .framing import FrameWriter, read_frame

logger = logging.getLogger(__name__)


class StdioServer:
    """
    Serves one client over a byte stream pair.

    Requests are handled strictly in order; a response is written before the
    next frame is read.
    """

    def __init__(self, dispatcher: Dispatcher, reader: asyncio.StreamReader, output: BinaryIO) -> None:
        self.dispatcher = dispatcher
        self.reader = reader
        self.writer = FrameWriter(output)

    async def serve(self) -> None:
        """
        Run until EOF.

        Raises:
            FramingError: When the input stream is not validly framed.
        """
        logger.info("Stdio transport ready")
        while True:
            payload = await read_frame(self.reader)
            if payload is None:
                logger.info("Stdin closed, stopping")
                return
            response = await self.dispatcher.handle_payload(payload, Transport.STDIO)
            if response is not None:
                await self.writer.write(response)


async def connect_stdin() -> asyncio.StreamReader:
    """Attach a non-blocking StreamReader to the process stdin."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)
    return reader


async def run_stdio(settings: Settings) -> None:
    """Serve MCP over stdin/stdout until the client disconnects."""
    async with ReadeckClient.from_settings(settings) as client:
        reader = await connect_stdin()
        server = StdioServer(Dispatcher(client), reader, sys.stdout.buffer)
        await server.serve()
