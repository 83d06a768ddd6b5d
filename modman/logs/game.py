# modman/logs/game.py
from __future__ import annotations
import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from modman.app.paths import gameLogsDir
from modman.app.settings import Config, saveConfig
from modman.core.errors import FilesystemError, NotFoundError
from modman.core.logging import setLogContext
from modman.events import GameStarted, LogFatal, LogUpdated, ModWarningsShown
from .messages import SocketMessage, SocketMessageType
from .server import LogServer
from .session import LogSession

if TYPE_CHECKING:
    from modman.app.context import AppContext
    from modman.mods.local import LocalDatabase

logger = logging.getLogger(__name__)

__all__ = [
    "GameLauncher", "GameRun", "PendingWarning", "collectUnseenWarnings", "acknowledgeWarnings",
    "launchGame", "runGame", "gameLogPath",
]

GameLauncher = Callable[[Config, int], Awaitable[None]]

OWML_LAUNCHER = "OWML.Launcher.exe"



async def launchGame(config: Config, port: int) -> None:
    """Starts <owmlPath>/OWML.Launcher.exe -consolePort <port>. Doesn't wait for the game to exit."""
    owmlPath = Path(config.owmlPath)
    executable = Path(config.launcher.executable) if config.launcher.executable else owmlPath / OWML_LAUNCHER
    if not executable.is_file():
        raise NotFoundError("Game launcher not found", path=str(executable))
    args = [*config.launcher.prefixArgs, str(executable), "-consolePort", str(port), *config.launcher.extraArgs]
    try:
        proc = await asyncio.create_subprocess_exec(*args, cwd=str(owmlPath))
    except OSError as err:
        raise FilesystemError("Couldn't start the game launcher", path=str(executable)) from err
    logger.info("Launched %s (pid=%s, consolePort=%d)", executable.name, proc.pid, port)



def gameLogPath(port: int, now: datetime | None = None) -> Path:
    """<appData>/game_logs/<YYYY-MM-DD>/<HH-MM-SS>_<port>.log"""
    now = now or datetime.now()
    return gameLogsDir() / now.strftime("%Y-%m-%d") / f"{now.strftime('%H-%M-%S')}_{port}.log"



@dataclass(frozen=True)
class PendingWarning:
    uniqueName: str
    title: str
    body: str



def collectUnseenWarnings(localDb: LocalDatabase, viewed: Iterable[str]) -> list[PendingWarning]:
    """Manifest warnings of enabled mods that aren't in `viewed` yet, by unique name."""
    seen = set(viewed)
    pending = [
        PendingWarning(localMod.uniqueName, localMod.manifest.warning.title, localMod.manifest.warning.body)
        for localMod in localDb.active()
        if localMod.manifest.warning is not None and localMod.uniqueName not in seen
    ]
    pending.sort(key=lambda warning: warning.uniqueName)
    return pending



async def acknowledgeWarnings(ctx: AppContext) -> list[PendingWarning]:
    """
    Publishes the warnings the user hasn't seen and records them in
    viewedAlerts, so each one is shown once per mod.
    """
    async with ctx.localDb.read() as localDb:
        pending = collectUnseenWarnings(localDb, ctx.config.peek().viewedAlerts)
    if not pending:
        return []
    async with ctx.config.write() as state:
        current = state.peek()
        viewed = list(dict.fromkeys([*current.viewedAlerts, *(warning.uniqueName for warning in pending)]))
        updated = current.model_copy(update={"viewedAlerts": viewed})
        await asyncio.to_thread(saveConfig, updated, ctx.settingsPath)
        state.set(updated)
    ctx.bus.publish(ModWarningsShown(warnings=tuple(pending)))
    logger.info("Showing %d mod warning(s) before launch", len(pending))
    return pending



@dataclass
class GameRun:
    port: int
    session: LogSession
    server: LogServer
    task: asyncio.Task[None] = field(repr=False)
    warnings: list[PendingWarning] = field(default_factory=list)

    async def stop(self) -> None:
        await self.server.close()
        await asyncio.gather(self.task, return_exceptions=True)



async def runGame(ctx: AppContext, launcher: GameLauncher | None = None) -> GameRun:
    """
    Surfaces unseen mod warnings, starts a log server and a session for it,
    launches the game pointed at that port, and keeps streaming in the background. Await `run.task` to wait
    until the game disconnects.
    """
    launcher = launcher or launchGame
    warnings = await acknowledgeWarnings(ctx)
    config = ctx.config.peek()

    server = await LogServer.start()
    port = server.port
    setLogContext(port=port, op="runGame")
    try:
        session = await ctx.logSessions.create(port, gameLogPath(port))
    except FilesystemError:
        await server.close()
        raise

    async def sink(message: SocketMessage) -> None:
        await session.append(message)
        ctx.bus.publish(LogUpdated(port=port))
        if message.type == SocketMessageType.Fatal:
            ctx.bus.publish(LogFatal(port=port, message=message))

    async def serve() -> None:
        try:
            await server.listen(sink)
        finally:
            await session.close()
            ctx.games.pop(port, None)
            logger.info("Game on port %d disconnected", port)

    task = asyncio.create_task(serve(), name=f"game-log-{port}")
    run = GameRun(port=port, session=session, server=server, task=task, warnings=warnings)
    ctx.games[port] = run
    ctx.bus.publish(GameStarted(port=port))

    try:
        await launcher(config, port)
    except BaseException:
        await run.stop()
        raise
    return run
