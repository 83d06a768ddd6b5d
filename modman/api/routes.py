# modman/api/routes.py
from __future__ import annotations
import json
import logging
import time
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from modman.app import commands
from modman.app.context import AppContext
from modman.core.jsonutils import tryJSONify
from modman.install.orchestrator import InstallOutcome
from modman.logs.messages import SocketMessageType
from modman.mods.local import FailedMod, LocalMod, UnsafeLocalMod
from modman.mods.toggle import ToggleResult

logger = logging.getLogger(__name__)
router = APIRouter()



def getCtx(request: Request) -> AppContext:
    return request.app.state.ctx



# ------------------------------------------------
#                   Serializers
# ------------------------------------------------

def localEntryToDict(entry: UnsafeLocalMod) -> dict[str, Any]:
    out: dict[str, Any] = {
        "uniqueName": entry.uniqueName,
        "displayName": entry.displayName,
        "modPath": str(entry.modPath),
        "valid": entry.valid,
        "errors": [{"kind": err.kind.value, "detail": err.detail} for err in entry.errors],
        "errorMessages": entry.errorMessages,
    }
    if isinstance(entry, LocalMod):
        out["enabled"] = entry.enabled
        out["manifest"] = entry.manifest.model_dump(mode="json")
    elif isinstance(entry, FailedMod):
        out["enabled"] = False
    return out


def toggleResultToDict(result: ToggleResult) -> dict[str, Any]:
    return {"changed": result.changed, "inconsistent": result.inconsistent, "cycles": result.cycles}


def outcomeToDict(outcome: InstallOutcome) -> dict[str, Any]:
    return {
        "uniqueName": outcome.uniqueName,
        "status": outcome.status,
        "error": outcome.error,
        "mod": localEntryToDict(outcome.localMod) if outcome.localMod is not None else None,
    }



# ------------------------------------------------
#                   Request bodies
# ------------------------------------------------

class ToggleBody(BaseModel):
    enabled: bool
    recursive: bool = False


class ToggleAllBody(BaseModel):
    enabled: bool


class InstallBody(BaseModel):
    prerelease: bool = False
    recursive: bool = True


class InstallUrlBody(BaseModel):
    url: str


class InstallZipBody(BaseModel):
    path: str


class InstallManyBody(BaseModel):
    uniqueNames: list[str] = Field(default_factory=list)


class BrokenModBody(BaseModel):
    modPath: str


class ImportBody(BaseModel):
    path: str
    disableMissing: bool = False


class OwmlPathBody(BaseModel):
    path: str



# ------------------------------------------------
#                      Routes
# ------------------------------------------------

@router.get("/health")
async def health():
    return {"ok": True, "ts": int(time.time() * 1000)}


@router.post("/api/refresh/local")
async def refreshLocal(request: Request):
    db = await commands.refreshLocalDb(getCtx(request))
    return {"count": len(db)}


@router.post("/api/refresh/remote")
async def refreshRemote(request: Request):
    db = await commands.refreshRemoteDb(getCtx(request))
    return {"count": len(db)}


@router.get("/api/mods/local")
async def listLocalMods(request: Request, filter: str = ""):
    return [localEntryToDict(entry) for entry in await commands.getLocalMods(getCtx(request), filter)]


@router.get("/api/mods/local/{uniqueName}")
async def getLocalMod(request: Request, uniqueName: str):
    return localEntryToDict(await commands.getLocalMod(getCtx(request), uniqueName))


@router.get("/api/mods/remote")
async def listRemoteMods(request: Request, filter: str = ""):
    return [remoteMod.model_dump(mode="json") for remoteMod in await commands.getRemoteMods(getCtx(request), filter)]


@router.get("/api/mods/remote/{uniqueName}")
async def getRemoteMod(request: Request, uniqueName: str):
    return (await commands.getRemoteMod(getCtx(request), uniqueName)).model_dump(mode="json")


@router.get("/api/owml")
async def getOwml(request: Request):
    owml = await commands.getOwml(getCtx(request))
    return localEntryToDict(owml) if owml is not None else None


@router.post("/api/owml/install")
async def installOwml(request: Request):
    return {"started": await getCtx(request).orchestrator.installOwml()}


@router.get("/api/owml/config")
async def getOwmlConfig(request: Request):
    return (await commands.getOwmlConfig(getCtx(request))).model_dump(mode="json")


@router.put("/api/owml/config")
async def putOwmlConfig(request: Request, updates: dict[str, Any]):
    return (await commands.saveOwmlConfig(getCtx(request), updates)).model_dump(mode="json")


@router.post("/api/owml/path")
async def setOwmlPath(request: Request, body: OwmlPathBody):
    return {"ok": await commands.setOwml(getCtx(request), body.path)}


@router.post("/api/mods/toggle-all")
async def toggleAll(request: Request, body: ToggleAllBody):
    return toggleResultToDict(await commands.toggleAllCommand(getCtx(request), body.enabled))


@router.post("/api/mods/update-all")
async def updateAll(request: Request):
    return [outcomeToDict(outcome) for outcome in await getCtx(request).orchestrator.updateAll()]


@router.get("/api/mods/export")
async def exportMods(request: Request):
    return {"mods": json.loads(await commands.exportModsCommand(getCtx(request)))}


@router.post("/api/mods/import")
async def importMods(request: Request, body: ImportBody):
    failed = await commands.importModsCommand(getCtx(request), body.path, body.disableMissing)
    return {"failed": failed}


@router.post("/api/mods/broken/uninstall")
async def uninstallBroken(request: Request, body: BrokenModBody):
    await getCtx(request).orchestrator.uninstallBrokenMod(body.modPath)
    return {"ok": True}


@router.post("/api/mods/{uniqueName}/toggle")
async def toggleMod(request: Request, uniqueName: str, body: ToggleBody):
    result = await commands.toggleModCommand(getCtx(request), uniqueName, body.enabled, body.recursive)
    return toggleResultToDict(result)


@router.post("/api/mods/{uniqueName}/install")
async def installMod(request: Request, uniqueName: str, body: InstallBody | None = None):
    body = body or InstallBody()
    localMod = await getCtx(request).orchestrator.installMod(
        uniqueName, prerelease=body.prerelease, recursive=body.recursive,
    )
    return {"installed": localMod is not None, "mod": localEntryToDict(localMod) if localMod else None}


@router.post("/api/mods/{uniqueName}/update")
async def updateMod(request: Request, uniqueName: str):
    localMod = await getCtx(request).orchestrator.updateMod(uniqueName)
    return {"updated": localMod is not None, "mod": localEntryToDict(localMod) if localMod else None}


@router.delete("/api/mods/{uniqueName}")
async def uninstallMod(request: Request, uniqueName: str):
    return {"warnings": await getCtx(request).orchestrator.uninstallMod(uniqueName)}


@router.get("/api/mods/{uniqueName}/busy")
async def modBusy(request: Request, uniqueName: str):
    return {"busy": commands.getModBusy(getCtx(request), uniqueName)}


@router.get("/api/mods/{uniqueName}/needs-update")
async def modNeedsUpdate(request: Request, uniqueName: str):
    return {"needsUpdate": await getCtx(request).orchestrator.needsUpdate(uniqueName)}


@router.get("/api/mods/{uniqueName}/disabled-deps")
async def modDisabledDeps(request: Request, uniqueName: str):
    return {"hasDisabledDeps": await commands.modHasDisabledDeps(getCtx(request), uniqueName)}


@router.post("/api/mods/{uniqueName}/fix-deps")
async def fixDeps(request: Request, uniqueName: str):
    outcomes = await getCtx(request).orchestrator.fixModDeps(uniqueName)
    return [tryJSONify(outcome) for outcome in outcomes]


@router.post("/api/install/url")
async def installUrl(request: Request, body: InstallUrlBody):
    localMod = await getCtx(request).orchestrator.installUrl(body.url)
    return {"installed": localMod is not None, "mod": localEntryToDict(localMod) if localMod else None}


@router.post("/api/install/zip")
async def installZip(request: Request, body: InstallZipBody):
    localMod = await getCtx(request).orchestrator.installZip(body.path)
    return {"installed": localMod is not None, "mod": localEntryToDict(localMod) if localMod else None}


@router.post("/api/install/many")
async def installMany(request: Request, body: InstallManyBody):
    return [outcomeToDict(outcome) for outcome in await getCtx(request).orchestrator.installMany(body.uniqueNames)]


@router.get("/api/updates")
async def updatableMods(request: Request):
    return {"mods": await getCtx(request).orchestrator.getUpdatableMods()}


@router.get("/api/busy")
async def busyMods(request: Request):
    return {"busy": list(commands.getBusyMods(getCtx(request)))}


@router.get("/api/validation")
async def validation(request: Request):
    problems = await commands.validate(getCtx(request))
    return [
        {"uniqueName": problem.uniqueName, "kind": problem.error.kind.value, "detail": problem.error.detail}
        for problem in problems
    ]


@router.get("/api/validation/has-issues")
async def hasIssues(request: Request):
    return {"hasIssues": await commands.dbHasIssues(getCtx(request))}


@router.get("/api/alert")
async def alert(request: Request):
    return (await commands.getAlert(getCtx(request))).model_dump(mode="json")


@router.get("/api/downloads")
async def downloads(request: Request):
    return tryJSONify(commands.getDownloads(getCtx(request)))


@router.delete("/api/downloads")
async def clearDownloads(request: Request):
    commands.clearDownloads(getCtx(request))
    return {"ok": True}


@router.post("/api/game/start")
async def startGame(request: Request):
    run = await commands.startGame(getCtx(request))
    return {"port": run.port, "warnings": [tryJSONify(warning) for warning in run.warnings]}


@router.get("/api/logs")
async def logPorts(request: Request):
    return {"ports": await getCtx(request).logSessions.ports()}


@router.get("/api/logs/{port}")
async def logLines(request: Request, port: int, type: str | None = None, search: str = "", grouped: bool = False):
    filterType = SocketMessageType.parse(type) if type else None
    lines = await commands.getLogLines(getCtx(request), port, filterType, search, grouped)
    return {"lines": [list(line) if isinstance(line, tuple) else line for line in lines]}


@router.get("/api/logs/{port}/{index}")
async def logMessage(request: Request, port: int, index: int):
    message = await commands.getGameMessage(getCtx(request), port, index)
    return {**message.model_dump(mode="json"), "type": message.type.name}


@router.delete("/api/logs/{port}")
async def clearLogs(request: Request, port: int):
    await commands.clearLogs(getCtx(request), port)
    return {"ok": True}


@router.get("/api/config")
async def getConfig(request: Request):
    return (await commands.getConfig(getCtx(request))).model_dump(mode="json")


@router.put("/api/config")
async def putConfig(request: Request, updates: dict[str, Any]):
    return (await commands.saveConfigCommand(getCtx(request), updates)).model_dump(mode="json")


@router.get("/api/config/defaults")
async def configDefaults():
    return commands.getDefaults().model_dump(mode="json")
