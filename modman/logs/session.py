# modman/logs/session.py
from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import IO

from modman.core.errors import FilesystemError, NotFoundError
from modman.core.locks import AsyncRWLock
from .messages import SocketMessage, SocketMessageType

logger = logging.getLogger(__name__)

__all__ = ["LogSession", "LogSessions"]



def _matches(message: SocketMessage, filterType: SocketMessageType | None, needle: str) -> bool:
    if filterType is not None and message.type != filterType:
        return False
    if not needle:
        return True
    return needle in message.message.lower() or needle in (message.senderName or "").lower()



def _sameContent(a: SocketMessage, b: SocketMessage) -> bool:
    return a.type == b.type and a.message == b.message and a.senderName == b.senderName



def _writeLine(fh: IO[str], line: str) -> None:
    fh.write(line + "\n")
    fh.flush()



class LogSession:
    """
    Everything one running game instance has logged.

    Messages are append-only and addressed by arrival index. Each append goes
    to the backing file first and then to memory, under the session's own lock.
    clear() only forgets the in-memory list; the file keeps growing.
    """
    def __init__(self, port: int, logPath: Path | None = None) -> None:
        self.port = port
        self.logPath = Path(logPath) if logPath is not None else None
        self._messages: list[SocketMessage] = []
        self._lock = AsyncRWLock()
        self._file: IO[str] | None = None
        if self.logPath is not None:
            try:
                self.logPath.parent.mkdir(parents=True, exist_ok=True)
                self._file = self.logPath.open("a", encoding="utf-8")
            except OSError as err:
                raise FilesystemError("Can't open game log file", path=str(self.logPath)) from err

    async def append(self, message: SocketMessage) -> int:
        """Returns the new message's index."""
        async with self._lock.write():
            if self._file is not None:
                try:
                    await asyncio.to_thread(_writeLine, self._file, message.formatLine())
                except OSError as err:
                    raise FilesystemError("Can't write game log", path=str(self.logPath)) from err
            self._messages.append(message)
            return len(self._messages) - 1

    async def query(self, filterType: SocketMessageType | None = None, search: str = "") -> list[int]:
        """Indices of matching messages in arrival order. Search is case-insensitive over text and sender."""
        needle = (search or "").strip().lower()
        async with self._lock.read():
            return [index for index, message in enumerate(self._messages) if _matches(message, filterType, needle)]

    async def queryGrouped(self, filterType: SocketMessageType | None = None, search: str = "") -> list[tuple[int, int]]:
        """Like query(), with runs of identical consecutive matches folded into (firstIndex, count)."""
        needle = (search or "").strip().lower()
        groups: list[tuple[int, int]] = []
        previous: SocketMessage | None = None
        async with self._lock.read():
            for index, message in enumerate(self._messages):
                if not _matches(message, filterType, needle):
                    continue
                if previous is not None and groups and _sameContent(previous, message):
                    first, count = groups[-1]
                    groups[-1] = (first, count + 1)
                else:
                    groups.append((index, 1))
                previous = message
        return groups

    async def getMessage(self, index: int) -> SocketMessage:
        async with self._lock.read():
            if index < 0 or index >= len(self._messages):
                raise NotFoundError(f"No log message #{index} on port {self.port}")
            return self._messages[index]

    async def count(self) -> int:
        async with self._lock.read():
            return len(self._messages)

    async def clear(self) -> None:
        async with self._lock.write():
            self._messages.clear()

    async def close(self) -> None:
        async with self._lock.write():
            if self._file is not None:
                try:
                    self._file.flush()
                finally:
                    self._file.close()
                    self._file = None



class LogSessions:
    """Registry of log sessions by port."""
    def __init__(self) -> None:
        self._sessions: dict[int, LogSession] = {}
        self._lock = AsyncRWLock()

    async def create(self, port: int, logPath: Path | None = None) -> LogSession:
        session = LogSession(port, logPath)
        async with self._lock.write():
            old = self._sessions.get(port)
            self._sessions[port] = session
        if old is not None:
            await old.close()
        logger.info("Log session for port %d started (file=%s)", port, logPath)
        return session

    async def get(self, port: int) -> LogSession:
        async with self._lock.read():
            session = self._sessions.get(port)
        if session is None:
            raise NotFoundError(f"No log session on port {port}")
        return session

    async def ports(self) -> list[int]:
        async with self._lock.read():
            return sorted(self._sessions)

    async def remove(self, port: int) -> None:
        async with self._lock.write():
            session = self._sessions.pop(port, None)
        if session is not None:
            await session.close()

    async def closeAll(self) -> None:
        async with self._lock.write():
            sessions = list(self._sessions.values())
        for session in sessions:
            await session.close()
