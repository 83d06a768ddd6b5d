# modman/mods/io.py
from __future__ import annotations
from pathlib import Path

from modman.core.errors import FilesystemError, MalformedDataError
from modman.core.jsonutils import readJsonFile, safeJsonDumps
from modman.mods.local import LocalDatabase

__all__ = ["exportMods", "readModList"]



def exportMods(localDb: LocalDatabase) -> str:
    """JSON array with the unique names of every enabled mod."""
    return safeJsonDumps(sorted(localMod.uniqueName for localMod in localDb.active()))



def readModList(path: str | Path) -> list[str]:
    """Reads a list written by exportMods. Duplicates are dropped, order kept."""
    path = Path(path)
    try:
        raw = readJsonFile(path)
    except OSError as err:
        raise FilesystemError("Can't read mod list", path=str(path)) from err
    except ValueError as err:
        raise MalformedDataError("Malformed mod list", path=str(path)) from err
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise MalformedDataError("Mod list must be a JSON array of unique names", path=str(path))
    return list(dict.fromkeys(raw))
