# modman/logs/server.py
from __future__ import annotations
import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from modman.core.errors import LogServerError
from .messages import SocketMessage, SocketMessageType, parseSocketLine

logger = logging.getLogger(__name__)

__all__ = ["LogServerState", "LogServer", "MessageSink"]

MessageSink = Callable[[SocketMessage], Awaitable[None] | None]

# Long stack traces arrive as single JSON lines
_READ_LIMIT = 4 * 1024 * 1024



class LogServerState(str, Enum):
    Listening = "Listening"
    Connected = "Connected"
    Closed = "Closed"



class LogServer:
    """
    TCP endpoint the game connects to (via -consolePort) to stream its log.

    Exactly one connection is served; later ones are closed straight away.
    Lines are newline-delimited JSON SocketMessages, forwarded to the sink in
    arrival order. Serving ends on EOF or on a Quit message.
    """
    def __init__(self) -> None:
        self.host = "127.0.0.1"
        self.port = 0
        self.state = LogServerState.Closed
        self._server: asyncio.Server | None = None
        self._claimed = False
        self._writer: asyncio.StreamWriter | None = None
        self._sink: MessageSink | None = None
        self._sinkReady = asyncio.Event()
        self._done: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    @classmethod
    async def start(cls, preferredPort: int = 0, host: str = "127.0.0.1") -> LogServer:
        server = cls()
        try:
            server._server = await asyncio.start_server(server._onClient, host, preferredPort, limit=_READ_LIMIT)
        except OSError as err:
            raise LogServerError(f"Couldn't bind log server on {host}:{preferredPort}") from err
        sockets = server._server.sockets or ()
        if not sockets:
            server._server.close()
            raise LogServerError(f"Log server on {host}:{preferredPort} has no socket")
        server.host = host
        server.port = sockets[0].getsockname()[1]
        server.state = LogServerState.Listening
        logger.info("Log server listening on %s:%d", host, server.port)
        return server

    async def _onClient(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if self._claimed or self._done.done():
            logger.warning("Log server on port %d refused an extra connection", self.port)
            writer.close()
            return
        self._claimed = True
        self._writer = writer
        self.state = LogServerState.Connected
        try:
            await self._sinkReady.wait()
            if self._sink is not None:
                await self._pump(reader)
        except Exception as err:
            if not self._done.done():
                self._done.set_exception(err)
        else:
            if not self._done.done():
                self._done.set_result(None)
        finally:
            writer.close()

    async def _pump(self, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                raw = await reader.readline()
            except (ConnectionError, asyncio.LimitOverrunError, ValueError) as err:
                logger.warning("Log stream on port %d broke: %s", self.port, err)
                return
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace")
            if not line.strip():
                continue
            message = parseSocketLine(line)
            await self._deliver(message)
            if message.type == SocketMessageType.Quit:
                logger.info("Game on port %d sent Quit", self.port)
                return

    async def _deliver(self, message: SocketMessage) -> None:
        assert self._sink is not None
        result = self._sink(message)
        if inspect.isawaitable(result):
            await result

    async def listen(self, sink: MessageSink) -> None:
        """Serves the single connection until EOF/Quit, then closes the server."""
        if self._server is None:
            raise LogServerError("Log server was not started")
        self._sink = sink
        self._sinkReady.set()
        try:
            await self._done
        finally:
            await self.close()

    async def close(self) -> None:
        self._sinkReady.set()
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        if not self._done.done():
            self._done.set_result(None)
        if self.state != LogServerState.Closed:
            logger.info("Log server on port %d closed", self.port)
        self.state = LogServerState.Closed
