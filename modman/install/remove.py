# modman/install/remove.py
from __future__ import annotations
import logging
import shutil
from pathlib import Path

from modman.core.errors import FilesystemError, NotFoundError

logger = logging.getLogger(__name__)

__all__ = ["removeModDir"]



def removeModDir(modPath: str | Path, modsRoot: str | Path) -> None:
    """Deletes one install directory. Refuses anything that isn't directly inside `modsRoot`."""
    modPath = Path(modPath).resolve()
    modsRoot = Path(modsRoot).resolve()
    if modPath.parent != modsRoot:
        raise FilesystemError("Refusing to delete a directory outside the mods folder", path=str(modPath))
    if not modPath.exists():
        raise NotFoundError("Mod directory doesn't exist", path=str(modPath))
    try:
        shutil.rmtree(modPath)
    except OSError as err:
        raise FilesystemError("Couldn't delete mod directory", path=str(modPath)) from err
    logger.info("Removed '%s'", modPath)
