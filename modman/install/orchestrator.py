# modman/install/orchestrator.py
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from modman.app.paths import tempDir
from modman.core.errors import ModManagerError, NotFoundError
from modman.core.logging import setLogContext
from modman.events import DatabaseRefreshed
from modman.mods.local import CONFIG_FILE, DEFAULT_CONFIG_FILE, LocalDatabase, LocalMod, readLocalMod, readOwml
from modman.mods.manifest import OWML_UNIQUE_NAME
from modman.mods.remote import RemoteDatabase, RemoteMod
from modman.mods.toggle import copyDefaultConfig, toggleMod
from modman.mods.updates import checkModNeedsUpdate
from modman.mods.validate import FixOutcome, fixDeps
from .archive import extractMod, extractOwml, peekUniqueName, validateArchive
from .download import downloadArchive
from .remove import removeModDir

if TYPE_CHECKING:
    from modman.app.context import AppContext

logger = logging.getLogger(__name__)

__all__ = ["InstallOutcome", "Orchestrator"]



@dataclass(frozen=True)
class InstallOutcome:
    uniqueName: str
    status: Literal["installed", "busy", "failed"]
    error: str | None = None
    localMod: LocalMod | None = None



class Orchestrator:
    """
    Install/update/remove operations over an AppContext.

    Each operation claims its busy slot before its first await, so a second
    request for the same name is a silent no-op (None / empty result). Slots are
    released in finally blocks, cancellation included. After every operation the
    local database is rebuilt from disk and swapped in.
    """
    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx

    # ----- Database refresh -----

    async def refreshLocalDb(self) -> LocalDatabase:
        config = self.ctx.config.peek()
        db = await asyncio.to_thread(LocalDatabase.fetch, config.owmlPath)
        async with self.ctx.remoteDb.read() as remoteDb:
            db.validateUpdates(remoteDb)
        async with self.ctx.localDb.write() as state:
            state.set(db)
        self.ctx.bus.publish(DatabaseRefreshed(which="local"))
        return db

    async def refreshRemoteDb(self) -> RemoteDatabase:
        config = self.ctx.config.peek()
        db = await RemoteDatabase.fetch(config.databaseUrl, http=config.http)
        async with self.ctx.remoteDb.write() as state:
            state.set(db)
        self.ctx.bus.publish(DatabaseRefreshed(which="remote"))
        # Outdated markers are recomputed on a fresh local snapshot
        await self.refreshLocalDb()
        return db

    async def _refreshAfterOperation(self) -> None:
        try:
            await self.refreshLocalDb()
        except ModManagerError:
            logger.error("Local database refresh after operation failed", exc_info=True)

    # ----- Building blocks -----

    async def _getRemoteMod(self, uniqueName: str) -> RemoteMod:
        async with self.ctx.remoteDb.read() as remoteDb:
            remoteMod = remoteDb.getMod(uniqueName)
        if remoteMod is None:
            raise NotFoundError("Mod not found in the remote database", uniqueName=uniqueName)
        return remoteMod

    async def _getLocalMod(self, uniqueName: str) -> LocalMod | None:
        async with self.ctx.localDb.read() as localDb:
            return localDb.getMod(uniqueName)

    async def _installArchive(
        self,
        archive: Path,
        *,
        barId: str | None,
        expectedName: str | None = None,
        label: str | None = None,
    ) -> LocalMod:
        config = self.ctx.config.peek()
        await asyncio.to_thread(validateArchive, archive)
        uniqueName = expectedName or await asyncio.to_thread(peekUniqueName, archive)
        existing = await self._getLocalMod(uniqueName)
        modPath = await asyncio.to_thread(
            extractMod, archive, config.modsPath,
            barId=barId, existing=existing, expectedName=uniqueName, label=label,
        )
        if existing is None and not (modPath / CONFIG_FILE).is_file() and (modPath / DEFAULT_CONFIG_FILE).is_file():
            await asyncio.to_thread(copyDefaultConfig, modPath)
        return await asyncio.to_thread(readLocalMod, modPath)

    async def _download(self, url: str, *, label: str, barId: str | None) -> Path:
        config = self.ctx.config.peek()
        return await downloadArchive(url, tempDir(), label=label, barId=barId, http=config.http)

    async def _installRemote(self, uniqueName: str, *, prerelease: bool) -> LocalMod:
        """Download + extract of a name whose busy slot the caller already holds."""
        if uniqueName == OWML_UNIQUE_NAME:
            await self._installOwmlUnlocked()
            owml = await asyncio.to_thread(readOwml, self.ctx.config.peek().owmlPath)
            if owml is None:
                raise NotFoundError("OWML manifest missing after install", uniqueName=uniqueName)
            return owml

        setLogContext(uniqueName=uniqueName, op="install")
        remoteMod = await self._getRemoteMod(uniqueName)
        url = remoteMod.downloadUrl
        if prerelease:
            if remoteMod.prerelease is None:
                raise NotFoundError("Mod has no prerelease", uniqueName=uniqueName)
            url = remoteMod.prerelease.downloadUrl

        logger.info("Installing '%s' from %s", uniqueName, url)
        archive = await self._download(url, label=remoteMod.name, barId=uniqueName)
        try:
            return await self._installArchive(archive, barId=uniqueName, expectedName=uniqueName, label=remoteMod.name)
        finally:
            archive.unlink(missing_ok=True)

    async def _installTree(
        self,
        uniqueName: str,
        *,
        prerelease: bool,
        recursive: bool,
        visited: set[str],
    ) -> LocalMod | None:
        if uniqueName in visited or not self.ctx.busy.tryAcquire(uniqueName):
            return None
        visited.add(uniqueName)
        try:
            localMod = await self._installRemote(uniqueName, prerelease=prerelease)
        finally:
            self.ctx.busy.release(uniqueName)

        if recursive:
            missing: list[str] = []
            for dep in dict.fromkeys(localMod.manifest.dependencies):
                if dep == OWML_UNIQUE_NAME or await self._getLocalMod(dep) is not None:
                    continue
                missing.append(dep)
            for dep in missing:
                try:
                    await self._installTree(dep, prerelease=False, recursive=True, visited=visited)
                except ModManagerError as err:
                    # The parent is installed; the gap shows up as a MissingDep warning
                    logger.warning("Couldn't install dependency '%s' of '%s': %s", dep, uniqueName, err)
        return localMod

    async def _installOwmlUnlocked(self) -> None:
        config = self.ctx.config.peek()
        async with self.ctx.remoteDb.read() as remoteDb:
            remoteOwml = remoteDb.getOwml()
        if remoteOwml is None:
            raise NotFoundError("OWML isn't listed in the remote database", uniqueName=OWML_UNIQUE_NAME)
        setLogContext(uniqueName=OWML_UNIQUE_NAME, op="install")
        logger.info("Installing OWML %s into '%s'", remoteOwml.version, config.owmlPath)
        archive = await self._download(remoteOwml.downloadUrl, label="OWML", barId=OWML_UNIQUE_NAME)
        try:
            await asyncio.to_thread(validateArchive, archive)
            await asyncio.to_thread(extractOwml, archive, config.owmlPath, barId=OWML_UNIQUE_NAME)
        finally:
            archive.unlink(missing_ok=True)

    # ----- Operations -----

    async def installMod(self, uniqueName: str, *, prerelease: bool = False, recursive: bool = True) -> LocalMod | None:
        """Installs from the remote database. None when the name is already busy."""
        try:
            installed = await self._installTree(uniqueName, prerelease=prerelease, recursive=recursive, visited=set())
        finally:
            await self._refreshAfterOperation()
        if installed is None:
            logger.info("Install of '%s' skipped, already in progress", uniqueName)
            return None
        return await self._getLocalMod(uniqueName) or installed

    async def installUrl(self, url: str) -> LocalMod | None:
        if not self.ctx.busy.tryAcquire(url):
            return None
        try:
            setLogContext(op="installUrl")
            archive = await self._download(url, label=url.rsplit("/", 1)[-1] or url, barId=None)
            try:
                localMod = await self._installArchive(archive, barId=None)
            finally:
                archive.unlink(missing_ok=True)
        finally:
            self.ctx.busy.release(url)
            await self._refreshAfterOperation()
        logger.info("Installed '%s' from %s", localMod.uniqueName, url)
        return await self._getLocalMod(localMod.uniqueName) or localMod

    async def installZip(self, zipPath: str | Path) -> LocalMod | None:
        zipPath = Path(zipPath)
        key = str(zipPath)
        if not self.ctx.busy.tryAcquire(key):
            return None
        try:
            setLogContext(op="installZip")
            if not zipPath.is_file():
                raise NotFoundError("Archive not found", path=key)
            localMod = await self._installArchive(zipPath, barId=None)
        finally:
            self.ctx.busy.release(key)
            await self._refreshAfterOperation()
        logger.info("Installed '%s' from '%s'", localMod.uniqueName, zipPath)
        return await self._getLocalMod(localMod.uniqueName) or localMod

    async def installOwml(self) -> bool:
        """Returns False when a loader install is already running."""
        if not self.ctx.busy.tryAcquire(OWML_UNIQUE_NAME):
            return False
        try:
            await self._installOwmlUnlocked()
        finally:
            self.ctx.busy.release(OWML_UNIQUE_NAME)
            await self._refreshAfterOperation()
        return True

    async def updateMod(self, uniqueName: str) -> LocalMod | None:
        """Reinstalls from the remote database. config.json and pathsToPreserve survive."""
        if uniqueName == OWML_UNIQUE_NAME:
            if not await self.installOwml():
                return None
            return await self._getLocalMod(OWML_UNIQUE_NAME)
        if await self._getLocalMod(uniqueName) is None:
            raise NotFoundError("Mod not found", uniqueName=uniqueName)
        return await self.installMod(uniqueName, recursive=True)

    async def installMany(self, uniqueNames: list[str]) -> list[InstallOutcome]:
        """
        Installs several mods at once, at most maxConcurrentDownloads in flight.
        Busy names are reported, not retried. One failure never stops the others.
        """
        requested = list(dict.fromkeys(uniqueNames))
        accepted = self.ctx.busy.acquireMany(requested)
        outcomes: dict[str, InstallOutcome] = {
            name: InstallOutcome(name, "busy") for name in requested if name not in accepted
        }
        try:
            limit = asyncio.Semaphore(self.ctx.config.peek().maxConcurrentDownloads)

            async def installOne(name: str) -> InstallOutcome:
                async with limit:
                    try:
                        localMod = await self._installRemote(name, prerelease=False)
                    except ModManagerError as err:
                        logger.error("Install of '%s' failed: %s", name, err)
                        return InstallOutcome(name, "failed", error=str(err))
                    return InstallOutcome(name, "installed", localMod=localMod)

            for outcome in await asyncio.gather(*(installOne(name) for name in accepted)):
                outcomes[outcome.uniqueName] = outcome
        finally:
            self.ctx.busy.releaseMany(accepted)
            await self._refreshAfterOperation()

        failed = sum(1 for outcome in outcomes.values() if outcome.status == "failed")
        logger.info("Batch install done: %d requested, %d attempted, %d failed", len(requested), len(accepted), failed)
        return [outcomes[name] for name in requested]

    async def updateAll(self) -> list[InstallOutcome]:
        return await self.installMany(await self.getUpdatableMods())

    async def uninstallMod(self, uniqueName: str) -> list[str]:
        """Removes a mod. Returns the enabled mods that depended on it."""
        if uniqueName == OWML_UNIQUE_NAME:
            raise NotFoundError("The mod loader can't be uninstalled like a mod", uniqueName=uniqueName)
        if not self.ctx.busy.tryAcquire(uniqueName):
            return []
        try:
            async with self.ctx.localDb.read() as localDb:
                localMod = localDb.getMod(uniqueName)
                if localMod is None:
                    raise NotFoundError("Mod not found", uniqueName=uniqueName)
                warnings = [dependent.uniqueName for dependent in localDb.dependents(uniqueName)]
            await asyncio.to_thread(removeModDir, localMod.modPath, self.ctx.config.peek().modsPath)
        finally:
            self.ctx.busy.release(uniqueName)
            await self._refreshAfterOperation()
        if warnings:
            logger.warning("Uninstalled '%s' while still required by: %s", uniqueName, ", ".join(warnings))
        return warnings

    async def uninstallBrokenMod(self, modPath: str | Path) -> None:
        key = str(modPath)
        if not self.ctx.busy.tryAcquire(key):
            return
        try:
            async with self.ctx.localDb.read() as localDb:
                entry = localDb.getModUnsafe(key)
            if entry is None or entry.valid:
                raise NotFoundError("No broken mod at this path", path=key)
            await asyncio.to_thread(removeModDir, entry.modPath, self.ctx.config.peek().modsPath)
        finally:
            self.ctx.busy.release(key)
            await self._refreshAfterOperation()

    # ----- Queries -----

    async def needsUpdate(self, uniqueName: str) -> bool:
        localMod = await self._getLocalMod(uniqueName)
        if localMod is None:
            return False
        async with self.ctx.remoteDb.read() as remoteDb:
            needsUpdate, _remoteMod = checkModNeedsUpdate(localMod, remoteDb)
        return needsUpdate

    async def getUpdatableMods(self) -> list[str]:
        async with self.ctx.localDb.read() as localDb:
            candidates = list(localDb.valid())
            owml = localDb.getOwml()
            if owml is not None:
                candidates.append(owml)
        async with self.ctx.remoteDb.read() as remoteDb:
            return [
                localMod.uniqueName for localMod in candidates
                if checkModNeedsUpdate(localMod, remoteDb)[0]
            ]

    async def fixModDeps(self, uniqueName: str) -> list[FixOutcome]:
        async with self.ctx.localDb.read() as localDb:
            localMod = localDb.getMod(uniqueName)
        if localMod is None:
            raise NotFoundError("Mod not found", uniqueName=uniqueName)
        remoteDb = self.ctx.remoteDb.peek()

        async def install(remoteMod: RemoteMod) -> None:
            await self.installMod(remoteMod.uniqueName, recursive=True)

        async def enable(depMod: LocalMod) -> None:
            await asyncio.to_thread(toggleMod, depMod.uniqueName, localDb, True, True)

        try:
            outcomes = await fixDeps(localMod, localDb, remoteDb, install=install, enable=enable)
        finally:
            await self._refreshAfterOperation()
        return outcomes
