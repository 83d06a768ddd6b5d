# modman/app/commands.py
from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from modman.app.context import AppContext
from modman.app.settings import Config, deepMerge, defaultConfig, saveConfig
from modman.core.errors import MalformedDataError, NotFoundError
from modman.core.logging import setLogContext
from modman.events import ConfigReloaded, LogUpdated, OwmlConfigReloaded
from modman.logs.game import GameLauncher, GameRun, runGame
from modman.logs.messages import SocketMessage, SocketMessageType
from modman.mods.io import exportMods, readModList
from modman.mods.local import LocalDatabase, LocalMod, UnsafeLocalMod
from modman.mods.manifest import OWML_UNIQUE_NAME
from modman.mods.owml_config import OwmlConfig, readOwmlConfig, writeOwmlConfig
from modman.mods.remote import Alert, RemoteDatabase, RemoteMod, fetchAlert
from modman.mods.toggle import ToggleResult, toggleAll, toggleMod
from modman.mods.validate import ModProblem, hasDisabledDeps, validateDatabase
from modman.progress import ProgressBarState

logger = logging.getLogger(__name__)



# ----- Databases -----

async def refreshLocalDb(ctx: AppContext) -> LocalDatabase:
    return await ctx.orchestrator.refreshLocalDb()


async def refreshRemoteDb(ctx: AppContext) -> RemoteDatabase:
    return await ctx.orchestrator.refreshRemoteDb()


async def getLocalMods(ctx: AppContext, filter: str = "") -> list[UnsafeLocalMod]:
    """Search results, or with no filter every entry: ones with errors first, then by name."""
    async with ctx.localDb.read() as localDb:
        if filter:
            return localDb.search(filter)
        entries = list(localDb.all())
    entries.sort(key=lambda entry: (-len(entry.errors), entry.displayName.lower()))
    return entries


async def getLocalMod(ctx: AppContext, uniqueName: str) -> UnsafeLocalMod:
    async with ctx.localDb.read() as localDb:
        entry = localDb.getModUnsafe(uniqueName)
    if entry is None:
        raise NotFoundError("Mod not found", uniqueName=uniqueName)
    return entry


async def getRemoteMods(ctx: AppContext, filter: str = "") -> list[RemoteMod]:
    """Search results, or with no filter everything but the loader, most downloaded first."""
    async with ctx.remoteDb.read() as remoteDb:
        if filter:
            return remoteDb.search(filter)
        mods = [remoteMod for remoteMod in remoteDb.all() if remoteMod.uniqueName != OWML_UNIQUE_NAME]
    mods.sort(key=lambda remoteMod: remoteMod.downloadCount, reverse=True)
    return mods


async def getRemoteMod(ctx: AppContext, uniqueName: str) -> RemoteMod:
    async with ctx.remoteDb.read() as remoteDb:
        remoteMod = remoteDb.getMod(uniqueName)
    if remoteMod is None:
        raise NotFoundError("Mod not found in the remote database", uniqueName=uniqueName)
    return remoteMod


async def getOwml(ctx: AppContext) -> LocalMod | None:
    async with ctx.localDb.read() as localDb:
        return localDb.getOwml()


# ----- Toggle & validation -----

async def toggleModCommand(ctx: AppContext, uniqueName: str, enabled: bool, recursive: bool = False) -> ToggleResult:
    setLogContext(uniqueName=uniqueName, op="toggle")
    async with ctx.localDb.read() as localDb:
        result = await asyncio.to_thread(toggleMod, uniqueName, localDb, enabled, recursive)
    await ctx.orchestrator.refreshLocalDb()
    return result


async def toggleAllCommand(ctx: AppContext, enabled: bool) -> ToggleResult:
    setLogContext(op="toggleAll")
    async with ctx.localDb.read() as localDb:
        result = await asyncio.to_thread(toggleAll, localDb, enabled)
    await ctx.orchestrator.refreshLocalDb()
    return result


async def validate(ctx: AppContext) -> list[ModProblem]:
    async with ctx.localDb.read() as localDb:
        return validateDatabase(localDb)


async def dbHasIssues(ctx: AppContext) -> bool:
    """True when an enabled mod has problems, or the loader is missing/outdated."""
    async with ctx.localDb.read() as localDb:
        if any(localMod.errors for localMod in localDb.active()):
            return True
        owml = localDb.getOwml()
        return owml is None or bool(owml.errors)


async def modHasDisabledDeps(ctx: AppContext, uniqueName: str) -> bool:
    async with ctx.localDb.read() as localDb:
        localMod = localDb.getMod(uniqueName)
        if localMod is None:
            raise NotFoundError("Mod not found", uniqueName=uniqueName)
        return hasDisabledDeps(localMod, localDb)


# ----- Busy state & progress -----

def getModBusy(ctx: AppContext, uniqueName: str) -> bool:
    return ctx.busy.isBusy(uniqueName)


def getBusyMods(ctx: AppContext) -> tuple[str, ...]:
    return ctx.busy.snapshot()


def getDownloads(ctx: AppContext) -> list[ProgressBarState]:
    return list(ctx.tracker.getDownloads().values())


def clearDownloads(ctx: AppContext) -> None:
    ctx.tracker.clearDownloads(onlyComplete=True)


# ----- Alerts -----

async def getAlert(ctx: AppContext) -> Alert:
    config = ctx.config.peek()
    return await fetchAlert(config.alertUrl, http=config.http)


async def getModAlert(ctx: AppContext, uniqueName: str) -> Alert | None:
    async with ctx.remoteDb.read() as remoteDb:
        return remoteDb.getAlert(uniqueName)


# ----- Config -----

async def getConfig(ctx: AppContext) -> Config:
    async with ctx.config.read() as config:
        return config


def getDefaults() -> Config:
    return defaultConfig()


async def saveConfigCommand(ctx: AppContext, updates: dict[str, Any]) -> Config:
    """Validates `updates` on top of the current config, persists it and swaps it in."""
    async with ctx.config.write() as state:
        try:
            merged = Config.model_validate(deepMerge(state.peek().model_dump(mode="json"), updates))
        except ValidationError as err:
            raise MalformedDataError("Invalid settings") from err
        await asyncio.to_thread(saveConfig, merged, ctx.settingsPath)
        state.set(merged)
    ctx.bus.publish(ConfigReloaded())
    return merged


# ----- Loader -----

async def getOwmlConfig(ctx: AppContext) -> OwmlConfig:
    return await asyncio.to_thread(readOwmlConfig, ctx.config.peek().owmlPath)


async def saveOwmlConfig(ctx: AppContext, updates: dict[str, Any]) -> OwmlConfig:
    """Merges `updates` into OWML.Config.json (or an empty config when there is none yet) and writes it."""
    owmlPath = ctx.config.peek().owmlPath
    try:
        current = (await asyncio.to_thread(readOwmlConfig, owmlPath)).model_dump(mode="json")
    except NotFoundError:
        current = {}
    try:
        merged = OwmlConfig.model_validate(deepMerge(current, updates))
    except ValidationError as err:
        raise MalformedDataError("Invalid OWML settings") from err
    await asyncio.to_thread(writeOwmlConfig, owmlPath, merged)
    ctx.bus.publish(OwmlConfigReloaded())
    return merged


async def setOwml(ctx: AppContext, path: str | Path) -> bool:
    """Points the manager at another loader install. False when `path` doesn't hold OWML."""
    async with ctx.config.write() as state:
        updated = state.peek().model_copy(update={"owmlPath": str(Path(path))})
        if not await asyncio.to_thread(updated.checkOwml):
            logger.warning("No OWML install at '%s'", path)
            return False
        await asyncio.to_thread(saveConfig, updated, ctx.settingsPath)
        state.set(updated)
    ctx.bus.publish(ConfigReloaded())
    ctx.bus.publish(OwmlConfigReloaded())
    await ctx.orchestrator.refreshLocalDb()
    return True


# ----- Import / export -----

async def exportModsCommand(ctx: AppContext, path: str | Path | None = None) -> str:
    async with ctx.localDb.read() as localDb:
        text = exportMods(localDb)
    if path is not None:
        await asyncio.to_thread(Path(path).write_text, text, "utf-8")
    return text


async def importModsCommand(ctx: AppContext, path: str | Path, disableMissing: bool = False) -> list[str]:
    """
    Installs listed mods that aren't present, then enables every listed mod.
    With disableMissing, everything not on the list is disabled first.
    Returns names that couldn't be installed.
    """
    wanted = await asyncio.to_thread(readModList, path)
    async with ctx.localDb.read() as localDb:
        missing = [name for name in wanted if localDb.getMod(name) is None]

    failed: list[str] = []
    if missing:
        for outcome in await ctx.orchestrator.installMany(missing):
            if outcome.status == "failed":
                failed.append(outcome.uniqueName)

    if disableMissing:
        await toggleAllCommand(ctx, False)

    async with ctx.localDb.read() as localDb:
        present = [name for name in wanted if localDb.getMod(name) is not None]
        for name in present:
            await asyncio.to_thread(toggleMod, name, localDb, True, False)
    await ctx.orchestrator.refreshLocalDb()
    logger.info("Imported %d mods (%d failed)", len(present), len(failed))
    return failed


# ----- Game & logs -----

async def startGame(ctx: AppContext, launcher: GameLauncher | None = None) -> GameRun:
    return await runGame(ctx, launcher)


async def getLogLines(
    ctx: AppContext,
    port: int,
    filterType: SocketMessageType | None = None,
    search: str = "",
    grouped: bool = False,
) -> list[int] | list[tuple[int, int]]:
    session = await ctx.logSessions.get(port)
    if grouped:
        return await session.queryGrouped(filterType, search)
    return await session.query(filterType, search)


async def getGameMessage(ctx: AppContext, port: int, index: int) -> SocketMessage:
    session = await ctx.logSessions.get(port)
    return await session.getMessage(index)


async def clearLogs(ctx: AppContext, port: int) -> None:
    session = await ctx.logSessions.get(port)
    await session.clear()
    ctx.bus.publish(LogUpdated(port=port))
