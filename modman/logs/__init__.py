from __future__ import annotations

from .game import GameLauncher, GameRun, gameLogPath, launchGame, runGame
from .messages import GameMessage, SocketMessage, SocketMessageType, parseSocketLine
from .server import LogServer, LogServerState
from .session import LogSession, LogSessions

__all__ = [
    "GameLauncher",
    "GameRun",
    "gameLogPath",
    "launchGame",
    "runGame",
    "GameMessage",
    "SocketMessage",
    "SocketMessageType",
    "parseSocketLine",
    "LogServer",
    "LogServerState",
    "LogSession",
    "LogSessions",
]
