# modman/mods/toggle.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path

from modman.core.errors import FilesystemError, NotFoundError
from modman.core.jsonutils import writeJsonFile
from modman.mods.local import CONFIG_FILE, DEFAULT_CONFIG_FILE, LocalDatabase, LocalMod, readModConfig
from modman.mods.manifest import ModStubConfig

logger = logging.getLogger(__name__)

__all__ = ["ToggleResult", "getModEnabled", "copyDefaultConfig", "toggleMod", "toggleAll"]



@dataclass
class ToggleResult:
    """
    changed: names whose config.json was actually rewritten.
    inconsistent: touched names left enabled with a disabled dependency,
        or disabled while an enabled mod still depends on them.
    cycles: dependency cycles met during recursive traversal, as "A -> B -> A".
    """
    changed: list[str] = field(default_factory=list)
    inconsistent: list[str] = field(default_factory=list)
    cycles: list[str] = field(default_factory=list)

    def merge(self, other: ToggleResult) -> None:
        for target, source in (
            (self.changed, other.changed),
            (self.inconsistent, other.inconsistent),
            (self.cycles, other.cycles),
        ):
            for item in source:
                if item not in target:
                    target.append(item)



def getModEnabled(modPath: str | Path) -> bool:
    configPath = Path(modPath) / CONFIG_FILE
    if not configPath.is_file():
        return False
    return readModConfig(configPath).enabled



def _writeConfig(config: ModStubConfig, configPath: Path) -> None:
    try:
        writeJsonFile(configPath, config.toJson())
    except OSError as err:
        raise FilesystemError("Couldn't write mod config", path=str(configPath)) from err



def copyDefaultConfig(modPath: str | Path) -> ModStubConfig:
    """Materializes config.json from default-config.json and returns what was written."""
    modPath = Path(modPath)
    defaultPath = modPath / DEFAULT_CONFIG_FILE
    if not defaultPath.is_file():
        raise NotFoundError("No default configuration available", path=str(modPath))
    config = readModConfig(defaultPath)
    _writeConfig(config, modPath / CONFIG_FILE)
    logger.debug("Created config.json from defaults in '%s'", modPath)
    return config



def _setEnabled(localMod: LocalMod, enabled: bool) -> bool:
    """Returns True when the file was written."""
    configPath = localMod.configPath
    written = False
    if configPath.is_file():
        config = readModConfig(configPath)
    else:
        config = copyDefaultConfig(localMod.modPath)
        written = True
    if config.enabled == enabled:
        return written
    config.enabled = enabled
    _writeConfig(config, configPath)
    return True



def _findInconsistent(touched: list[str], states: dict[str, bool], localDb: LocalDatabase) -> list[str]:
    out: list[str] = []
    for name in touched:
        localMod = localDb.getMod(name)
        if localMod is None:
            continue
        if states.get(name, False):
            # Enabled with a dependency that is installed but off
            if any(dep in states and not states[dep] for dep in localMod.manifest.dependencies):
                out.append(name)
        else:
            dependents = [
                other.uniqueName for other in localDb.valid()
                if name in other.manifest.dependencies and states.get(other.uniqueName, False)
            ]
            if dependents:
                out.append(name)
    return out



def toggleMod(uniqueName: str, localDb: LocalDatabase, enabled: bool, recursive: bool = False) -> ToggleResult:
    """
    Sets the enabled flag of one mod, and of its dependency closure when recursive.

    Writes config.json directly; the caller refreshes the database afterwards.
    Dependencies that aren't installed are skipped. Each mod is visited once;
    a dependency already on the current path is reported as a cycle and not followed.
    Inconsistent results are reported, never raised.
    """
    localMod = localDb.getMod(uniqueName)
    if localMod is None:
        raise NotFoundError("Mod not found", uniqueName=uniqueName)

    result = ToggleResult()
    if localMod.isLoader:
        logger.debug("Ignoring toggle of the mod loader")
        return result

    states: dict[str, bool] = {entry.uniqueName: entry.enabled for entry in localDb.valid()}
    visited: set[str] = set()
    touched: list[str] = []
    pathStack: list[str] = []

    def visit(current: LocalMod) -> None:
        visited.add(current.uniqueName)
        touched.append(current.uniqueName)
        pathStack.append(current.uniqueName)
        if _setEnabled(current, enabled):
            result.changed.append(current.uniqueName)
        states[current.uniqueName] = enabled

        if recursive:
            for dep in dict.fromkeys(current.manifest.dependencies):
                depMod = localDb.getMod(dep)
                if depMod is None or depMod.isLoader:
                    continue
                if dep in pathStack:
                    cycle = " -> ".join(pathStack[pathStack.index(dep):] + [dep])
                    logger.warning("Dependency cycle while toggling '%s': %s", uniqueName, cycle)
                    result.cycles.append(cycle)
                    continue
                if dep in visited:
                    continue
                visit(depMod)
        pathStack.pop()

    visit(localMod)
    result.inconsistent = _findInconsistent(touched, states, localDb)

    logger.info(
        "%s '%s'%s: %d changed, %d inconsistent",
        "Enabled" if enabled else "Disabled", uniqueName, " recursively" if recursive else "",
        len(result.changed), len(result.inconsistent),
    )
    return result



def toggleAll(localDb: LocalDatabase, enabled: bool) -> ToggleResult:
    """Non-recursive toggle of every valid mod."""
    result = ToggleResult()
    for localMod in list(localDb.valid()):
        result.merge(toggleMod(localMod.uniqueName, localDb, enabled, recursive=False))
    # Per-mod checks ran against a half-toggled state, recompute once everything is written
    states = {name: enabled for name in (m.uniqueName for m in localDb.valid())}
    result.inconsistent = _findInconsistent(list(states), states, localDb)
    return result
