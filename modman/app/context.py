# modman/app/context.py
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from modman.app.settings import Config, loadConfig
from modman.core.locks import SharedState
from modman.core.logging import ProgressLogHandler, installProgressHandler, removeProgressHandler
from modman.events import EventBus
from modman.install.busy import BusySet
from modman.install.orchestrator import Orchestrator
from modman.logs.session import LogSessions
from modman.mods.local import LocalDatabase
from modman.mods.remote import RemoteDatabase
from modman.progress import ProgressTracker

if TYPE_CHECKING:
    from modman.logs.game import GameRun

logger = logging.getLogger(__name__)

__all__ = ["AppContext"]



@dataclass(eq=False)
class AppContext:
    """
    Every shared handle the core needs, built once at startup and passed
    explicitly to operations. Each handle carries its own lock.
    """
    config: SharedState[Config]
    localDb: SharedState[LocalDatabase]
    remoteDb: SharedState[RemoteDatabase]
    bus: EventBus
    busy: BusySet
    logSessions: LogSessions
    tracker: ProgressTracker
    settingsPath: Path | None = None
    games: dict[int, GameRun] = field(default_factory=dict)
    orchestrator: Orchestrator = field(init=False)
    _progressHandler: ProgressLogHandler | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.orchestrator = Orchestrator(self)

    @classmethod
    def create(cls, config: Config | None = None, *, settingsPath: Path | None = None) -> AppContext:
        """Builds a context with empty databases. Call refresh commands to populate them."""
        if config is None:
            config = loadConfig(settingsPath)
        bus = EventBus()
        tracker = ProgressTracker()
        tracker.attach(bus)
        ctx = cls(
            config=SharedState(config),
            localDb=SharedState(LocalDatabase()),
            remoteDb=SharedState(RemoteDatabase()),
            bus=bus,
            busy=BusySet(bus),
            logSessions=LogSessions(),
            tracker=tracker,
            settingsPath=settingsPath,
        )
        ctx._progressHandler = installProgressHandler(bus)
        logger.debug("App context created (owmlPath=%s)", config.owmlPath)
        return ctx

    async def aclose(self) -> None:
        for run in list(self.games.values()):
            await run.stop()
        self.games.clear()
        await self.logSessions.closeAll()
        if self._progressHandler is not None:
            removeProgressHandler(self._progressHandler)
            self._progressHandler = None
        self.tracker.detach()
        # Let bus callbacks scheduled on the loop drain
        await asyncio.sleep(0)
        logger.debug("App context closed")
